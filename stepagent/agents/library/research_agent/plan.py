"""
Plan Object and Agent State

Plan, step and per-conversation state records for the research agent loop.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

MAX_PLAN_STEPS = 7


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(Enum):
    """Status of individual plan steps."""

    PENDING = "pending"
    DONE = "done"


class AgentStateStatus(Enum):
    """Status of the per-conversation agent state."""

    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"


@dataclass
class PlanStep:
    """Single step of an execution plan."""

    description: str
    tool: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: StepStatus = StepStatus.PENDING
    result: Optional[str] = None

    def mark_done(self, result: str) -> "PlanStep":
        """Return a copy of this step transitioned to done."""
        if self.status == StepStatus.DONE:
            raise ValueError(f"Step {self.id} is already done")
        return replace(self, status=StepStatus.DONE, result=result)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
        }
        if self.tool is not None:
            data["tool"] = self.tool
        if self.result is not None:
            data["result"] = self.result
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanStep":
        return cls(
            id=data["id"],
            description=data["description"],
            tool=data.get("tool"),
            status=StepStatus(data.get("status", "pending")),
            result=data.get("result"),
        )


@dataclass
class AgentPlan:
    """Flat, ordered plan toward a goal. Steps are fixed once created."""

    goal: str
    steps: List[PlanStep]
    reasoning: str = ""

    def __post_init__(self):
        if not 1 <= len(self.steps) <= MAX_PLAN_STEPS:
            raise ValueError(
                f"A plan needs 1-{MAX_PLAN_STEPS} steps, got {len(self.steps)}"
            )
        ids = [step.id for step in self.steps]
        if len(set(ids)) != len(ids):
            raise ValueError("Plan step ids must be unique")

    def with_step_done(self, index: int, result: str) -> "AgentPlan":
        """Return a copy of the plan with only the step at ``index`` marked done."""
        steps = [
            step.mark_done(result) if idx == index else step
            for idx, step in enumerate(self.steps)
        ]
        return replace(self, steps=steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal": self.goal,
            "steps": [step.to_dict() for step in self.steps],
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentPlan":
        return cls(
            goal=data["goal"],
            steps=[PlanStep.from_dict(step) for step in data["steps"]],
            reasoning=data.get("reasoning", ""),
        )


@dataclass
class CompletedStep:
    """Append-only log entry written when a plan step finishes."""

    step_id: str
    description: str
    result: str
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "description": self.description,
            "result": self.result,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletedStep":
        return cls(
            step_id=data["step_id"],
            description=data["description"],
            result=data["result"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class AgentState:
    """Durable plan state of one conversation."""

    conversation_id: str
    status: AgentStateStatus = AgentStateStatus.IDLE
    plan: Optional[AgentPlan] = None
    current_step_index: int = 0
    completed_steps: List[CompletedStep] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    version: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def get_current_step(self) -> Optional[PlanStep]:
        if self.plan and 0 <= self.current_step_index < len(self.plan.steps):
            return self.plan.steps[self.current_step_index]
        return None

    def get_progress(self) -> Dict[str, Any]:
        total_steps = len(self.plan.steps) if self.plan else 0
        completed = min(self.current_step_index, total_steps)
        return {
            "total_steps": total_steps,
            "completed_steps": completed,
            "progress_percent": (completed / total_steps * 100)
            if total_steps > 0
            else 0,
            "status": self.status.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "status": self.status.value,
            "plan": self.plan.to_dict() if self.plan else None,
            "current_step_index": self.current_step_index,
            "completed_steps": [step.to_dict() for step in self.completed_steps],
            "context": dict(self.context),
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentState":
        plan_data = data.get("plan")
        context = data.get("context") or {}
        if not isinstance(context, dict):
            raise ValueError("Agent state context must be a mapping")

        state = cls(
            conversation_id=data["conversation_id"],
            status=AgentStateStatus(data.get("status", "idle")),
            plan=AgentPlan.from_dict(plan_data) if plan_data else None,
            current_step_index=int(data.get("current_step_index") or 0),
            completed_steps=[
                CompletedStep.from_dict(step)
                for step in data.get("completed_steps") or []
            ],
            context=dict(context),
            version=int(data.get("version", 0)),
        )

        if "created_at" in data:
            state.created_at = datetime.fromisoformat(data["created_at"])
        if "updated_at" in data:
            state.updated_at = datetime.fromisoformat(data["updated_at"])

        return state
