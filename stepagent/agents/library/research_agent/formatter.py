"""
State Context Formatter

Renders agent state into the tagged text block injected before each reasoning
step. Rendering goes through a small block tree so the size bound and
truncation policy apply to a known grammar:

    <agent_state>
      <current_plan> ... </current_plan>
      <accumulated_context> ... </accumulated_context>
      <completed_steps> ... </completed_steps>
    </agent_state>
"""

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from .plan import AgentState, AgentStateStatus

MAX_CONTEXT_CHARS = 16000
ROOT_TAG = "agent_state"
TRUNCATION_MARKER = "[Context truncated due to length]"
INDENT = "  "

DONE = "DONE"
IN_PROGRESS = "IN_PROGRESS"
PENDING = "PENDING"


@dataclass
class Block:
    """A tagged section whose children are text lines or nested blocks."""

    tag: str
    children: List[Union[str, "Block"]] = field(default_factory=list)

    def render(self, depth: int = 0) -> List[str]:
        pad = INDENT * depth
        lines = [f"{pad}<{self.tag}>"]
        for child in self.children:
            if isinstance(child, Block):
                lines.extend(child.render(depth + 1))
            else:
                lines.append(f"{pad}{INDENT}{child}")
        lines.append(f"{pad}</{self.tag}>")
        return lines


def step_marker(index: int, current_step_index: int) -> str:
    if index < current_step_index:
        return DONE
    if index == current_step_index:
        return IN_PROGRESS
    return PENDING


def render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def plan_block(state: AgentState) -> Optional[Block]:
    if not state.plan:
        return None

    lines: List[Union[str, Block]] = [f"Goal: {state.plan.goal}", "Steps:"]
    for idx, step in enumerate(state.plan.steps):
        marker = step_marker(idx, state.current_step_index)
        suffix = f" - Result: {step.result}" if step.result and marker == DONE else ""
        lines.append(f"{idx + 1}. [{marker}] {step.description}{suffix}")
    return Block("current_plan", lines)


def context_block(state: AgentState) -> Optional[Block]:
    if not state.context:
        return None
    return Block(
        "accumulated_context",
        [f"{key}: {render_value(value)}" for key, value in state.context.items()],
    )


def completed_steps_block(state: AgentState) -> Optional[Block]:
    if not state.completed_steps:
        return None
    return Block(
        "completed_steps",
        [f"- {step.description}: {step.result}" for step in state.completed_steps],
    )


def build_state_block(state: AgentState) -> Block:
    sections = [plan_block(state), context_block(state), completed_steps_block(state)]
    return Block(ROOT_TAG, [section for section in sections if section is not None])


def truncate_rendered(body: str, max_chars: int) -> str:
    """Bound a rendered body, keeping the outer tags and the most recent content."""
    header = f"<{ROOT_TAG}>\n{INDENT}{TRUNCATION_MARKER}\n"
    footer = f"\n</{ROOT_TAG}>"
    available = max_chars - len(header) - len(footer)
    if available <= 0:
        return (header + footer)[:max(max_chars, 0)]
    return header + body[-available:] + footer


def format_state_context(
    state: Optional[AgentState], max_chars: int = MAX_CONTEXT_CHARS
) -> str:
    """
    Format agent state for injection into the reasoning engine's input.

    Args:
        state: Current agent state, or None
        max_chars: Hard ceiling on the returned text

    Returns:
        The tagged state block, or "" when there is nothing to inject
    """
    if state is None or state.status == AgentStateStatus.IDLE:
        return ""

    lines = build_state_block(state).render()
    formatted = "\n".join(lines)
    if len(formatted) <= max_chars:
        return formatted

    # Inner lines only; the outer tags are re-added by the truncation
    return truncate_rendered("\n".join(lines[1:-1]), max_chars)
