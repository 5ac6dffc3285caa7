"""
Agent State Store

Storage boundary for per-conversation agent state plus the lifecycle helpers
(initialize, attach plan, clear) used between loop runs.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from .plan import AgentPlan, AgentState, AgentStateStatus

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"plan", "current_step_index", "completed_steps", "context", "status"}
)


class StateStoreError(Exception):
    """Raised when the state store cannot serve a request."""


class StateConflictError(StateStoreError):
    """Raised when a conditional update sees a different version than expected."""

    def __init__(self, conversation_id: str, expected: int, actual: int):
        super().__init__(
            f"Agent state for {conversation_id} is at version {actual}, expected {expected}"
        )
        self.conversation_id = conversation_id
        self.expected = expected
        self.actual = actual


class StateStore(ABC):
    """Durable key-value state, one record per conversation."""

    @abstractmethod
    async def load(self, conversation_id: str) -> Optional[AgentState]:
        """Return the state for a conversation or None."""

    @abstractmethod
    async def create(
        self,
        conversation_id: str,
        status: AgentStateStatus = AgentStateStatus.IDLE,
    ) -> AgentState:
        """Create (or replace) the state record of a conversation."""

    @abstractmethod
    async def update(
        self,
        conversation_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[AgentState]:
        """Apply all ``updates`` at once. Returns None when no state exists."""

    @abstractmethod
    async def delete(self, conversation_id: str) -> None:
        """Remove the state of a conversation."""


class InMemoryStateStore(StateStore):
    """Process-local store keeping serialized snapshots behind an asyncio lock."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def load(self, conversation_id: str) -> Optional[AgentState]:
        async with self._lock:
            record = self._records.get(conversation_id)
            if record is None:
                return None
            return AgentState.from_dict(copy.deepcopy(record))

    async def create(
        self,
        conversation_id: str,
        status: AgentStateStatus = AgentStateStatus.IDLE,
    ) -> AgentState:
        async with self._lock:
            state = AgentState(conversation_id=conversation_id, status=status)
            self._records[conversation_id] = state.to_dict()
            return state

    async def update(
        self,
        conversation_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[AgentState]:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update agent state fields: {sorted(unknown)}")

        async with self._lock:
            record = self._records.get(conversation_id)
            if record is None:
                return None

            current = AgentState.from_dict(copy.deepcopy(record))
            if expected_version is not None and current.version != expected_version:
                raise StateConflictError(
                    conversation_id, expected_version, current.version
                )

            updated = replace(
                current,
                **updates,
                version=current.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            # Serialize before storing so a bad field never lands half-written
            self._records[conversation_id] = updated.to_dict()
            return AgentState.from_dict(copy.deepcopy(self._records[conversation_id]))

    async def delete(self, conversation_id: str) -> None:
        async with self._lock:
            self._records.pop(conversation_id, None)


async def initialize_agent_state(store: StateStore, conversation_id: str) -> AgentState:
    """Create idle state for a new conversation, or reset an existing one."""
    existing = await store.load(conversation_id)
    if existing:
        logger.info("Resetting agent state", conversation_id=conversation_id)
        updated = await store.update(
            conversation_id,
            {
                "status": AgentStateStatus.IDLE,
                "plan": None,
                "current_step_index": 0,
                "completed_steps": [],
                "context": {},
            },
        )
        if updated is not None:
            return updated

    return await store.create(conversation_id, AgentStateStatus.IDLE)


async def get_agent_state(store: StateStore, conversation_id: str) -> Optional[AgentState]:
    return await store.load(conversation_id)


async def update_plan(
    store: StateStore, conversation_id: str, plan: AgentPlan
) -> Optional[AgentState]:
    """Attach a plan and start executing it from the first step."""
    return await store.update(
        conversation_id,
        {
            "plan": plan,
            "status": AgentStateStatus.EXECUTING,
            "current_step_index": 0,
        },
    )


async def set_status(
    store: StateStore, conversation_id: str, status: AgentStateStatus
) -> Optional[AgentState]:
    return await store.update(conversation_id, {"status": status})


async def clear_agent_state(store: StateStore, conversation_id: str) -> None:
    """Drop all state of a conversation (conversation deleted)."""
    await store.delete(conversation_id)
