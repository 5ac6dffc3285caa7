"""
Research Agent Implementation

Bounded, plan-guided tool loop. Before every model call the orchestrator folds
finished rounds into the durable agent state and injects a summary of that
state; the loop stops on the round bound or when the terminal tool is called.
"""

import asyncio
import json
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, TypedDict

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages

from stepagent.agents.llm import get_model
from stepagent.core import supports_tools
from stepagent.settings import settings

from .events import (
    AgentObserver,
    PlanData,
    PlanEvent,
    StatusEvent,
    StepProgressData,
    StepProgressEvent,
    emit_safely,
)
from .formatter import format_state_context
from .plan import AgentStateStatus
from .state import StateStore
from .tool_registry import FINAL_ANSWER, get_research_tool_registry
from .tracker import StepTracker

logger = structlog.get_logger(__name__)

RESEARCH_SYSTEM_PROMPT = """You are a research assistant that answers questions by searching the web, reading pages and analyzing their content.

Key behaviors:
- Follow the current plan step by step when one is provided
- Use web_search to find sources, fetch_url to read them and analyze_content to digest long text
- When a tool returns an error, adapt: try another query or source
- Call final_answer exactly once, when you have a complete answer

Today's date is {current_date}.
"""


class ToolResultRecord(TypedDict):
    """Result of one tool call within a round."""
    tool_name: str
    tool_call_id: str
    result: Any


class RoundRecord(TypedDict):
    """One model invocation plus the tool calls it requested."""
    index: int
    tool_calls: List[str]
    tool_results: List[ToolResultRecord]


class ResearchAgentState(TypedDict, total=False):
    """Loop state. ``processed_round_count`` counts rounds already folded into agent state."""

    messages: Annotated[list[BaseMessage], add_messages]
    conversation_id: Optional[str]
    rounds: List[RoundRecord]
    processed_round_count: int
    injected_context: Optional[str]


@dataclass
class StepPreparation:
    processed_round_count: int
    injected_context: Optional[str] = None


def summarize_result(value: Any, max_chars: int) -> str:
    if isinstance(value, str):
        return value[:max_chars]
    return json.dumps(value, default=str)[:max_chars]


def context_key(index: int, tool_name: str, occurrence: int = 1) -> str:
    """Context key of a result; repeats of a tool within a round get a position suffix."""
    key = f"step_{index + 1}_{tool_name}"
    return key if occurrence == 1 else f"{key}_{occurrence}"


def should_stop(rounds: Sequence[RoundRecord], max_steps: int) -> bool:
    """Stop on the round bound or once any round called the terminal tool."""
    if len(rounds) >= max_steps:
        return True
    return any(FINAL_ANSWER in round_["tool_calls"] for round_ in rounds)


class StepOrchestrator:
    """Per-iteration bookkeeping between the loop and the agent state store."""

    def __init__(
        self,
        store: StateStore,
        observer: Optional[AgentObserver] = None,
        max_result_chars: Optional[int] = None,
        max_context_chars: Optional[int] = None,
    ):
        self.store = store
        self.tracker = StepTracker(store)
        self.observer = observer
        self.max_result_chars = max_result_chars or settings.RESULT_SUMMARY_CHARS
        self.max_context_chars = max_context_chars or settings.MAX_CONTEXT_CHARS

    async def fold_round(self, conversation_id: str, index: int, round_: RoundRecord) -> None:
        """Record one round's tool results and complete the current plan step once."""
        results = round_["tool_results"]
        if not results:
            return

        seen = Counter()
        for record in results:
            seen[record["tool_name"]] += 1
            await self.tracker.add_to_context(
                conversation_id,
                context_key(index, record["tool_name"], seen[record["tool_name"]]),
                summarize_result(record["result"], self.max_result_chars),
            )

        tool_names = ", ".join(record["tool_name"] for record in results)
        state = await self.tracker.complete_current_step(
            conversation_id, f"Executed: {tool_names}"
        )
        if state is not None and state.plan is not None:
            step = state.plan.steps[state.current_step_index - 1]
            await emit_safely(self.observer, StepProgressEvent(
                conversation_id=conversation_id,
                data=StepProgressData(
                    step_index=state.current_step_index - 1,
                    status=step.status.value,
                    result=step.result,
                ),
            ))

    async def prepare_step(
        self,
        conversation_id: Optional[str],
        rounds: Sequence[RoundRecord],
        processed_round_count: int,
        step_number: int = 0,
    ) -> StepPreparation:
        """
        Fold unseen rounds into agent state and build the context to inject.

        Bookkeeping failures are logged and degrade to injecting nothing.

        Args:
            conversation_id: Conversation bound to the loop, if any
            rounds: All rounds finished so far in this run
            processed_round_count: Rounds already folded into agent state
            step_number: Index of the upcoming model call

        Returns:
            Advanced round counter and the state text to inject, if any
        """
        if not conversation_id:
            return StepPreparation(processed_round_count)

        processed = processed_round_count
        try:
            for index in range(processed_round_count, len(rounds)):
                await self.fold_round(conversation_id, index, rounds[index])
                processed = index + 1

            state = await self.store.load(conversation_id)
            if state is None or state.status == AgentStateStatus.IDLE:
                return StepPreparation(processed)

            state_context = format_state_context(state, self.max_context_chars)
            if not state_context:
                return StepPreparation(processed)

            await emit_safely(self.observer, StatusEvent(
                conversation_id=conversation_id, data=state.status
            ))
            if state.plan:
                await emit_safely(self.observer, PlanEvent(
                    conversation_id=conversation_id, data=PlanData.from_plan(state.plan)
                ))

            return StepPreparation(
                processed,
                f"[Step {step_number}] Current agent state:\n{state_context}",
            )
        except Exception:
            logger.exception(
                "Failed to inject agent state",
                conversation_id=conversation_id,
                processed_round_count=processed,
            )
            return StepPreparation(processed)

    async def finalize(
        self,
        conversation_id: Optional[str],
        rounds: Sequence[RoundRecord],
        processed_round_count: int,
    ) -> int:
        """Fold rounds left over when the loop stops; returns the advanced counter."""
        if not conversation_id:
            return processed_round_count

        processed = processed_round_count
        try:
            for index in range(processed_round_count, len(rounds)):
                await self.fold_round(conversation_id, index, rounds[index])
                processed = index + 1

            state = await self.store.load(conversation_id)
            if state is not None and state.status != AgentStateStatus.IDLE:
                await emit_safely(self.observer, StatusEvent(
                    conversation_id=conversation_id, data=state.status
                ))
        except Exception:
            logger.exception(
                "Failed to record final rounds",
                conversation_id=conversation_id,
                processed_round_count=processed,
            )
        return processed


async def execute_tool_call(
    tools_by_name: Dict[str, BaseTool], tool_call: Dict[str, Any], timeout: float
) -> Any:
    """Run one tool call; failures become structured error results."""
    name = tool_call["name"]
    tool = tools_by_name.get(name)
    if tool is None:
        return {"error": f"Unknown tool: {name}", "code": "UNKNOWN_TOOL"}

    try:
        return await asyncio.wait_for(tool.ainvoke(tool_call.get("args") or {}), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Tool call timed out", tool=name, timeout=timeout)
        return {"error": f"Tool {name} timed out after {timeout:g} seconds", "code": "TOOL_TIMEOUT"}
    except Exception as e:
        logger.warning("Tool call failed", tool=name, error=str(e))
        return {"error": f"Tool {name} failed: {e}", "code": "TOOL_FAILED"}


def build_research_agent(
    orchestrator: StepOrchestrator,
    *,
    model: Optional[BaseChatModel] = None,
    tools: Optional[List[BaseTool]] = None,
    use_tools: Optional[bool] = None,
    max_steps: Optional[int] = None,
    tool_timeout: Optional[float] = None,
    system_prompt: Optional[str] = None,
    checkpointer: Optional[BaseCheckpointSaver] = None,
):
    """
    Build the research agent graph.

    Args:
        orchestrator: Bookkeeping for the conversation's agent state
        model: Chat model to use; defaults to the ``model`` entry of the run config
        tools: Tool vocabulary; defaults to the research tool registry
        use_tools: Force tool use on/off; defaults to what the model supports
        max_steps: Round bound, defaults to settings.MAX_STEPS
        tool_timeout: Seconds allowed per tool call
        system_prompt: Instructions prepended to every model call
        checkpointer: LangGraph checkpointer keeping message history per thread

    Returns:
        Compiled StateGraph
    """
    tools = tools if tools is not None else get_research_tool_registry()
    tools_by_name = {tool.name: tool for tool in tools}
    max_steps = max_steps or settings.MAX_STEPS
    tool_timeout = tool_timeout or settings.TOOL_TIMEOUT
    instructions = system_prompt or RESEARCH_SYSTEM_PROMPT.format(
        current_date=datetime.now().strftime("%B %d, %Y")
    )

    def model_name(config: RunnableConfig) -> str:
        return config.get("configurable", {}).get("model", settings.DEFAULT_MODEL)

    def tools_enabled(config: RunnableConfig) -> bool:
        if use_tools is not None:
            return use_tools
        return bool(tools) and supports_tools(model_name(config))

    async def prepare_node(state: ResearchAgentState, config: RunnableConfig) -> Dict[str, Any]:
        if not tools_enabled(config):
            return {"injected_context": None}

        rounds = state.get("rounds", [])
        preparation = await orchestrator.prepare_step(
            state.get("conversation_id"),
            rounds,
            state.get("processed_round_count", 0),
            step_number=len(rounds),
        )
        return {
            "processed_round_count": preparation.processed_round_count,
            "injected_context": preparation.injected_context,
        }

    async def agent_node(state: ResearchAgentState, config: RunnableConfig) -> Dict[str, Any]:
        chat_model = model or get_model(model_name(config))
        with_tools = tools_enabled(config)
        if with_tools:
            chat_model = chat_model.bind_tools(tools)

        messages: List[BaseMessage] = [SystemMessage(content=instructions), *state["messages"]]
        if state.get("injected_context"):
            messages.append(SystemMessage(content=state["injected_context"]))

        response = await chat_model.ainvoke(messages, config)

        rounds = list(state.get("rounds", []))
        tool_calls = [tc["name"] for tc in getattr(response, "tool_calls", None) or []]
        rounds.append(RoundRecord(
            index=len(rounds),
            tool_calls=tool_calls if with_tools else [],
            tool_results=[],
        ))
        logger.debug("Model round finished", round=len(rounds), tool_calls=tool_calls)

        return {"messages": [response], "rounds": rounds, "injected_context": None}

    async def tools_node(state: ResearchAgentState) -> Dict[str, Any]:
        last_message = state["messages"][-1]
        tool_messages = []
        results = []

        for tool_call in last_message.tool_calls:
            result = await execute_tool_call(tools_by_name, tool_call, tool_timeout)
            results.append(ToolResultRecord(
                tool_name=tool_call["name"],
                tool_call_id=tool_call["id"],
                result=result,
            ))
            tool_messages.append(ToolMessage(
                content=result if isinstance(result, str) else json.dumps(result, default=str),
                tool_call_id=tool_call["id"],
                name=tool_call["name"],
            ))

        rounds = list(state["rounds"])
        rounds[-1] = RoundRecord(**{**rounds[-1], "tool_results": results})
        return {"messages": tool_messages, "rounds": rounds}

    async def finalize_node(state: ResearchAgentState, config: RunnableConfig) -> Dict[str, Any]:
        if not tools_enabled(config):
            return {"injected_context": None}

        processed = await orchestrator.finalize(
            state.get("conversation_id"),
            state.get("rounds", []),
            state.get("processed_round_count", 0),
        )
        return {"processed_round_count": processed, "injected_context": None}

    def route_after_agent(state: ResearchAgentState) -> Literal["tools", "finalize"]:
        last_message = state["messages"][-1]
        if state["rounds"][-1]["tool_calls"] and isinstance(last_message, AIMessage):
            return "tools"
        return "finalize"

    def route_after_tools(state: ResearchAgentState) -> Literal["prepare", "finalize"]:
        if should_stop(state["rounds"], max_steps):
            return "finalize"
        return "prepare"

    graph = StateGraph(ResearchAgentState)

    graph.add_node("prepare", prepare_node)
    graph.add_node("agent", agent_node)
    graph.add_node("tools", tools_node)
    graph.add_node("finalize", finalize_node)

    graph.set_entry_point("prepare")

    graph.add_edge("prepare", "agent")
    graph.add_conditional_edges(
        "agent",
        route_after_agent,
        {"tools": "tools", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "tools",
        route_after_tools,
        {"prepare": "prepare", "finalize": "finalize"},
    )
    graph.add_edge("finalize", END)

    return graph.compile(checkpointer=checkpointer)


def extract_final_answer(result: Dict[str, Any]) -> Optional[str]:
    """The terminal tool's answer if it was called, else the last model text."""
    for round_ in reversed(result.get("rounds", [])):
        for record in reversed(round_["tool_results"]):
            value = record["result"]
            if record["tool_name"] == FINAL_ANSWER and isinstance(value, dict) and "answer" in value:
                return value["answer"]

    for message in reversed(result.get("messages", [])):
        if isinstance(message, AIMessage) and isinstance(message.content, str) and message.content:
            return message.content
    return None
