"""
Planning System for the Research Agent

Decides when a task warrants a plan and turns the task into a short,
structured plan using a fast chat model.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from stepagent.agents.llm import get_model
from stepagent.settings import settings

from .plan import MAX_PLAN_STEPS, AgentPlan, PlanStep, StepStatus
from .tool_registry import FINAL_ANSWER, TOOL_NAMES

logger = structlog.get_logger(__name__)

MIN_PLANNING_TASK_LENGTH = 50

COMPLEX_TASK_INDICATORS = (
    "research",
    "analyze",
    "compare",
    "summarize",
    "find and",
    "search for",
    "look up",
    "multiple",
    "step",
    "then",
    "after that",
    "first",
    "finally",
)

FAILURE_INDICATORS = ("error", "failed", "not found", "unable to", "could not")

FALLBACK_REASONING = "Fallback plan due to planning error"

PLANNING_SYSTEM_PROMPT = """You are a planning agent that creates structured execution plans for tasks.

Your job is to break down a user's request into a clear, actionable plan.

Guidelines:
- Create between 1-{max_steps} steps (prefer fewer, focused steps)
- Each step should be concrete and achievable
- Consider which tools might be needed based on the task
- The final step should usually involve synthesizing results with final_answer
- Keep the plan focused on the user's actual request

Available tools:
- web_search: Search the web for information
- fetch_url: Fetch and extract content from a specific URL
- analyze_content: Analyze and synthesize information
- final_answer: Provide the final response to the user"""


class PlanStepOutput(BaseModel):
    description: str = Field(description="Clear description of what this step accomplishes")
    tool: Optional[str] = Field(
        default=None,
        description=f"Which tool to use for this step, if applicable. One of: {', '.join(TOOL_NAMES)}",
    )


class PlanOutput(BaseModel):
    goal: str = Field(description="The overarching goal to accomplish")
    steps: List[PlanStepOutput] = Field(
        min_length=1,
        max_length=MAX_PLAN_STEPS,
        description="Ordered list of steps to accomplish the goal",
    )
    reasoning: str = Field(description="Brief explanation of why this plan makes sense")


@dataclass
class PlanContext:
    recent_messages: Optional[str] = None
    user_profile: Optional[str] = None


def should_create_plan(task: str) -> bool:
    """
    Check if a task is complex enough to warrant planning.

    Args:
        task: The user's task text

    Returns:
        True if a plan should be generated
    """
    if len(task) < MIN_PLANNING_TASK_LENGTH:
        return False

    lower_task = task.lower()
    return any(indicator in lower_task for indicator in COMPLEX_TASK_INDICATORS)


def should_replan(plan: AgentPlan, step_result: str) -> bool:
    """Hook: does a step result look like a failure while steps remain pending?"""
    lower_result = step_result.lower()
    if not any(indicator in lower_result for indicator in FAILURE_INDICATORS):
        return False
    return any(step.status == StepStatus.PENDING for step in plan.steps)


def convert_to_plan(output: PlanOutput) -> AgentPlan:
    """Convert structured output to an AgentPlan with fresh ids and known tools only."""
    steps = []
    for step in output.steps:
        tool = step.tool if step.tool in TOOL_NAMES else None
        if step.tool and tool is None:
            logger.warning("Dropping unknown tool from plan step", tool=step.tool)
        steps.append(PlanStep(description=step.description, tool=tool))

    return AgentPlan(goal=output.goal, steps=steps, reasoning=output.reasoning)


def create_fallback_plan(task: str) -> AgentPlan:
    return AgentPlan(
        goal=task,
        steps=[
            PlanStep(description="Analyze the request and gather information"),
            PlanStep(description="Provide comprehensive response", tool=FINAL_ANSWER),
        ],
        reasoning=FALLBACK_REASONING,
    )


async def create_plan(
    task: str,
    context: Optional[PlanContext] = None,
    *,
    model: Optional[BaseChatModel] = None,
    timeout: Optional[float] = None,
) -> AgentPlan:
    """
    Create an execution plan for a task.

    Never raises: any failure of the planning call yields the fallback plan.

    Args:
        task: The user's request
        context: Optional recent messages / user profile for the prompt
        model: Chat model to plan with, defaults to settings.PLANNING_MODEL
        timeout: Seconds to wait for the planning call

    Returns:
        An AgentPlan with 1-7 steps
    """
    context_section = ""
    if context:
        context_section = (
            f"\n\nContext:\n{context.recent_messages or ''}\n{context.user_profile or ''}"
        )

    try:
        planner = (model or get_model(settings.PLANNING_MODEL)).with_structured_output(
            PlanOutput
        )
        prompt = ChatPromptTemplate.from_messages([
            ("system", PLANNING_SYSTEM_PROMPT),
            ("human", 'Create a plan to accomplish this task: "{task}"{context}'),
        ])
        output = await asyncio.wait_for(
            (prompt | planner).ainvoke({
                "max_steps": MAX_PLAN_STEPS,
                "task": task,
                "context": context_section,
            }),
            timeout=timeout or settings.PLANNING_TIMEOUT,
        )
        if isinstance(output, dict):
            output = PlanOutput.model_validate(output)
        return convert_to_plan(output)
    except Exception as e:
        logger.warning("Failed to generate plan, using fallback", error=str(e))
        return create_fallback_plan(task)


def format_plan_for_display(plan: Optional[AgentPlan], current_step_index: int = 0) -> str:
    """
    Format a plan for display to the user.

    Args:
        plan: The plan to format
        current_step_index: Cursor of the step in progress

    Returns:
        Markdown checklist of the plan
    """
    if not plan:
        return "No active plan."

    lines = [f"**Plan: {plan.goal}**\n"]

    for i, step in enumerate(plan.steps):
        if step.status == StepStatus.DONE:
            status_icon = "[x]"
        elif i == current_step_index:
            status_icon = "[>]"
        else:
            status_icon = "[ ]"

        tool_str = f" [Tool: {step.tool}]" if step.tool else ""
        lines.append(f"{status_icon} {i + 1}. {step.description}{tool_str}")

    completed = sum(1 for s in plan.steps if s.status == StepStatus.DONE)
    lines.append(f"\n**Progress: {completed}/{len(plan.steps)} steps completed**")

    return "\n".join(lines)
