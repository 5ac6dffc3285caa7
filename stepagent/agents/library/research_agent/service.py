"""
Conversation turn service for the research agent.

Owns the state store and the message checkpointer, decides whether a turn gets
a plan, and runs the bounded loop for one user message.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langgraph.checkpoint.memory import MemorySaver

from stepagent.core import supports_tools
from stepagent.settings import settings

from .agent import RoundRecord, StepOrchestrator, build_research_agent, extract_final_answer
from .events import AgentEvent, EventCollector, PlanData, PlanEvent, StatusEvent, emit_safely
from .plan import AgentState, AgentStateStatus
from .planning import create_plan, should_create_plan
from .state import (
    InMemoryStateStore,
    StateStore,
    clear_agent_state,
    initialize_agent_state,
    set_status,
    update_plan,
)

logger = structlog.get_logger(__name__)


@dataclass
class TurnResult:
    answer: Optional[str]
    rounds: List[RoundRecord]
    state: Optional[AgentState]
    events: List[AgentEvent] = field(default_factory=list)


class ResearchAgentService:
    """Runs research agent turns, one active loop per conversation."""

    def __init__(
        self,
        store: Optional[StateStore] = None,
        *,
        model: Optional[BaseChatModel] = None,
        planning_model: Optional[BaseChatModel] = None,
        tools: Optional[List[BaseTool]] = None,
        use_tools: Optional[bool] = None,
        max_steps: Optional[int] = None,
    ):
        self.store = store or InMemoryStateStore()
        self.checkpointer = MemorySaver()
        self.model = model
        self.planning_model = planning_model
        self.tools = tools
        self.use_tools = use_tools
        self.max_steps = max_steps or settings.MAX_STEPS

    def _tools_enabled(self, model_name: str) -> bool:
        if self.use_tools is not None:
            return self.use_tools
        return supports_tools(model_name)

    async def _plan_turn(
        self, conversation_id: str, message: str, collector: EventCollector
    ) -> None:
        await initialize_agent_state(self.store, conversation_id)
        await set_status(self.store, conversation_id, AgentStateStatus.PLANNING)
        await emit_safely(collector, StatusEvent(
            conversation_id=conversation_id, data=AgentStateStatus.PLANNING
        ))

        plan = await create_plan(message, model=self.planning_model)
        await update_plan(self.store, conversation_id, plan)
        logger.info("Attached plan", steps=len(plan.steps), goal=plan.goal)

        await emit_safely(collector, PlanEvent(
            conversation_id=conversation_id, data=PlanData.from_plan(plan)
        ))
        await emit_safely(collector, StatusEvent(
            conversation_id=conversation_id, data=AgentStateStatus.EXECUTING
        ))

    async def run_turn(
        self,
        conversation_id: str,
        message: str,
        model_name: Optional[str] = None,
    ) -> TurnResult:
        """
        Run one user turn through the research loop.

        Args:
            conversation_id: Conversation (and checkpointer thread) id
            message: The user's message
            model_name: Chat model for the loop, defaults to settings.DEFAULT_MODEL

        Returns:
            TurnResult with the final answer, the rounds, the agent state and emitted events
        """
        structlog.contextvars.bind_contextvars(conversation_id=conversation_id)
        try:
            model_name = model_name or settings.DEFAULT_MODEL
            collector = EventCollector()

            if await self.store.load(conversation_id) is None:
                await initialize_agent_state(self.store, conversation_id)

            if self._tools_enabled(model_name) and should_create_plan(message):
                try:
                    await self._plan_turn(conversation_id, message, collector)
                except Exception:
                    logger.exception("Planning failed, continuing without a plan")

            orchestrator = StepOrchestrator(self.store, observer=collector)
            graph = build_research_agent(
                orchestrator,
                model=self.model,
                tools=self.tools,
                use_tools=self.use_tools,
                max_steps=self.max_steps,
                checkpointer=self.checkpointer,
            )
            config = RunnableConfig(
                configurable={"thread_id": conversation_id, "model": model_name},
                recursion_limit=self.max_steps * 3 + 5,
            )
            result = await graph.ainvoke(
                {
                    "messages": [HumanMessage(content=message)],
                    "conversation_id": conversation_id,
                    "rounds": [],
                    "processed_round_count": 0,
                    "injected_context": None,
                },
                config,
            )

            logger.info("Turn finished", rounds=len(result.get("rounds", [])))
            return TurnResult(
                answer=extract_final_answer(result),
                rounds=result.get("rounds", []),
                state=await self.store.load(conversation_id),
                events=collector.events,
            )
        finally:
            structlog.contextvars.unbind_contextvars("conversation_id")

    async def get_state(self, conversation_id: str) -> Optional[AgentState]:
        return await self.store.load(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Drop agent state and message history of a conversation."""
        await clear_agent_state(self.store, conversation_id)
        await self.checkpointer.adelete_thread(conversation_id)
        logger.info("Deleted conversation", conversation_id=conversation_id)
