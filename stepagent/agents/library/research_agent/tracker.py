"""
Step Completion Tracker

Folds tool results into accumulated context and advances the plan cursor.
"""

from typing import Any, Optional

import structlog

from .plan import AgentState, AgentStateStatus, CompletedStep
from .state import StateStore

logger = structlog.get_logger(__name__)


class StepTracker:
    """Read-modify-write operations on agent state, guarded by the state version."""

    def __init__(self, store: StateStore):
        self.store = store

    async def add_to_context(
        self, conversation_id: str, key: str, value: Any
    ) -> Optional[AgentState]:
        """Merge ``{key: value}`` into the accumulated context (last write wins)."""
        state = await self.store.load(conversation_id)
        if state is None:
            return None

        context = {**state.context, key: value}
        return await self.store.update(
            conversation_id,
            {"context": context},
            expected_version=state.version,
        )

    async def complete_current_step(
        self, conversation_id: str, result: str
    ) -> Optional[AgentState]:
        """
        Mark the step under the cursor done and advance the cursor.

        Args:
            conversation_id: Conversation whose plan advances
            result: Result text recorded on the step and in the completed log

        Returns:
            Updated state, or None when there is no plan or no step under the cursor
        """
        state = await self.store.load(conversation_id)
        if state is None or state.plan is None:
            return None

        current_idx = state.current_step_index
        current_step = state.get_current_step()
        if current_step is None:
            return None

        completed_steps = [
            *state.completed_steps,
            CompletedStep(
                step_id=current_step.id,
                description=current_step.description,
                result=result,
            ),
        ]
        updated_plan = state.plan.with_step_done(current_idx, result)
        is_last = current_idx >= len(state.plan.steps) - 1
        status = AgentStateStatus.COMPLETED if is_last else AgentStateStatus.EXECUTING

        updated = await self.store.update(
            conversation_id,
            {
                "plan": updated_plan,
                "completed_steps": completed_steps,
                "current_step_index": current_idx + 1,
                "status": status,
            },
            expected_version=state.version,
        )
        logger.info(
            "Completed plan step",
            conversation_id=conversation_id,
            step_index=current_idx,
            status=status.value,
        )
        return updated
