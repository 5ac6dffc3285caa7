from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

import structlog
from pydantic import BaseModel, Field

from .plan import AgentPlan, AgentStateStatus

logger = structlog.get_logger(__name__)


class AgentEventType(str, Enum):
    """Event types streamed toward the UI/transport layer"""
    AGENT_STATUS = "data-agent-status"
    AGENT_PLAN = "data-agent-plan"
    AGENT_STEP_PROGRESS = "data-agent-step-progress"


class BaseAgentEvent(BaseModel):
    """Base event model for all agent events"""
    type: AgentEventType
    conversation_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StatusEvent(BaseAgentEvent):
    """Agent status change"""
    type: Literal[AgentEventType.AGENT_STATUS] = AgentEventType.AGENT_STATUS
    data: AgentStateStatus


class PlanStepData(BaseModel):
    id: str
    description: str
    status: str
    tool: Optional[str] = None
    result: Optional[str] = None


class PlanData(BaseModel):
    """Plan snapshot"""
    goal: str
    steps: List[PlanStepData]
    reasoning: str = ""

    @classmethod
    def from_plan(cls, plan: AgentPlan) -> "PlanData":
        return cls.model_validate(plan.to_dict())


class PlanEvent(BaseAgentEvent):
    type: Literal[AgentEventType.AGENT_PLAN] = AgentEventType.AGENT_PLAN
    data: PlanData


class StepProgressData(BaseModel):
    """Per-round progress"""
    step_index: int
    status: str
    result: Optional[str] = None


class StepProgressEvent(BaseAgentEvent):
    type: Literal[AgentEventType.AGENT_STEP_PROGRESS] = AgentEventType.AGENT_STEP_PROGRESS
    data: StepProgressData


AgentEvent = Union[StatusEvent, PlanEvent, StepProgressEvent]


class AgentObserver:
    """Receives agent events. Delivery is best-effort."""

    async def emit(self, event: AgentEvent) -> None:
        raise NotImplementedError


class EventCollector(AgentObserver):
    """Buffers events in memory, e.g. for a request/response transport"""

    def __init__(self):
        self.events: List[AgentEvent] = []

    async def emit(self, event: AgentEvent) -> None:
        self.events.append(event)

    def dump(self) -> List[Dict[str, Any]]:
        return [event.model_dump(mode="json") for event in self.events]


async def emit_safely(observer: Optional[AgentObserver], event: AgentEvent) -> None:
    """Deliver an event, logging instead of raising when the observer fails."""

    if observer is None:
        return
    try:
        await observer.emit(event)
    except Exception as e:
        logger.warning("Failed to emit agent event",
                       event_type=event.type.value,
                       error=str(e))
