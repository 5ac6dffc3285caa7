import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.tools import tool

from stepagent.agents.library.research_agent.agent import (
    RoundRecord,
    StepOrchestrator,
    build_research_agent,
    context_key,
    execute_tool_call,
    extract_final_answer,
    should_stop,
    summarize_result,
)
from stepagent.agents.library.research_agent.events import AgentEventType, EventCollector
from stepagent.agents.library.research_agent.state import (
    InMemoryStateStore,
    StateStoreError,
    initialize_agent_state,
    update_plan,
)

from .helpers import FAKE_TOOLS, calls, make_plan, scripted_model, tool_call

CONVERSATION = "conv-1"


def search_round(index, *results):
    return RoundRecord(
        index=index,
        tool_calls=["web_search"] * len(results),
        tool_results=[
            {"tool_name": "web_search", "tool_call_id": f"call-{index}-{i}", "result": r}
            for i, r in enumerate(results)
        ],
    )


def loop_input(message="Research vector databases"):
    return {
        "messages": [HumanMessage(content=message)],
        "conversation_id": CONVERSATION,
        "rounds": [],
        "processed_round_count": 0,
    }


def injected(messages):
    return [
        m.content for m in messages
        if isinstance(m, SystemMessage) and m.content.startswith("[Step ")
    ]


async def planned_store(n_steps=3, store=None):
    store = store or InMemoryStateStore()
    await initialize_agent_state(store, CONVERSATION)
    await update_plan(store, CONVERSATION, make_plan(n_steps))
    return store


class BrokenStore(InMemoryStateStore):
    """Fails every update once ``broken`` is set."""

    def __init__(self):
        super().__init__()
        self.broken = False

    async def update(self, conversation_id, updates, expected_version=None):
        if self.broken:
            raise StateStoreError("store unavailable")
        return await super().update(conversation_id, updates, expected_version)


def test_should_stop():
    assert not should_stop([], 5)
    assert not should_stop([search_round(0, "r")], 5)
    assert should_stop([search_round(i, "r") for i in range(5)], 5)

    final = RoundRecord(index=0, tool_calls=["final_answer"], tool_results=[])
    assert should_stop([final], 5)


def test_context_key_distinguishes_repeated_tools():
    assert context_key(0, "web_search") == "step_1_web_search"
    assert context_key(2, "fetch_url", 2) == "step_3_fetch_url_2"


def test_summarize_result():
    assert summarize_result("a" * 600, 500) == "a" * 500
    assert summarize_result({"title": "Page"}, 500) == '{"title": "Page"}'
    assert summarize_result(None, 500) == "null"


@pytest.mark.asyncio
async def test_prepare_step_completes_once_per_round():
    store = await planned_store()
    orchestrator = StepOrchestrator(store)
    rounds = [search_round(0, "first result", "second result")]

    preparation = await orchestrator.prepare_step(CONVERSATION, rounds, 0, step_number=1)

    state = await store.load(CONVERSATION)
    assert preparation.processed_round_count == 1
    assert state.current_step_index == 1
    assert len(state.completed_steps) == 1
    assert state.completed_steps[0].result == "Executed: web_search, web_search"
    assert state.context == {
        "step_1_web_search": "first result",
        "step_1_web_search_2": "second result",
    }
    assert preparation.injected_context.startswith("[Step 1] Current agent state:\n<agent_state>")
    assert "2. [IN_PROGRESS] Step number 2" in preparation.injected_context


@pytest.mark.asyncio
async def test_prepare_step_does_not_reprocess_rounds():
    store = await planned_store()
    orchestrator = StepOrchestrator(store)
    rounds = [search_round(0, "result")]

    first = await orchestrator.prepare_step(CONVERSATION, rounds, 0, step_number=1)
    second = await orchestrator.prepare_step(
        CONVERSATION, rounds, first.processed_round_count, step_number=1
    )

    state = await store.load(CONVERSATION)
    assert second.processed_round_count == 1
    assert state.current_step_index == 1
    assert len(state.completed_steps) == 1


@pytest.mark.asyncio
async def test_round_without_results_does_not_complete_a_step():
    store = await planned_store()
    orchestrator = StepOrchestrator(store)
    rounds = [RoundRecord(index=0, tool_calls=[], tool_results=[])]

    preparation = await orchestrator.prepare_step(CONVERSATION, rounds, 0, step_number=1)

    assert preparation.processed_round_count == 1
    assert (await store.load(CONVERSATION)).current_step_index == 0


@pytest.mark.asyncio
async def test_prepare_step_without_conversation_or_state():
    orchestrator = StepOrchestrator(InMemoryStateStore())

    no_conversation = await orchestrator.prepare_step(None, [search_round(0, "r")], 0)
    no_state = await orchestrator.prepare_step("unknown", [], 0)

    assert no_conversation.injected_context is None
    assert no_conversation.processed_round_count == 0
    assert no_state.injected_context is None


@pytest.mark.asyncio
async def test_prepare_step_emits_progress_and_plan_events():
    store = await planned_store()
    collector = EventCollector()
    orchestrator = StepOrchestrator(store, observer=collector)

    await orchestrator.prepare_step(CONVERSATION, [search_round(0, "r")], 0, step_number=1)

    types = [event.type for event in collector.events]
    assert types == [
        AgentEventType.AGENT_STEP_PROGRESS,
        AgentEventType.AGENT_STATUS,
        AgentEventType.AGENT_PLAN,
    ]
    progress = collector.events[0].data
    assert (progress.step_index, progress.status, progress.result) == (
        0, "done", "Executed: web_search"
    )


@pytest.mark.asyncio
async def test_bookkeeping_failure_injects_nothing():
    store = BrokenStore()
    await planned_store(store=store)
    store.broken = True
    orchestrator = StepOrchestrator(store)

    preparation = await orchestrator.prepare_step(
        CONVERSATION, [search_round(0, "r")], 0, step_number=1
    )

    assert preparation.injected_context is None
    assert preparation.processed_round_count == 0


@pytest.mark.asyncio
async def test_loop_runs_until_final_answer():
    store = await planned_store()
    model = scripted_model(
        calls(
            tool_call("web_search", {"query": "a"}, "c1"),
            tool_call("web_search", {"query": "b"}, "c2"),
        ),
        calls(tool_call("final_answer", {"answer": "Done."}, "c3")),
    )
    graph = build_research_agent(
        StepOrchestrator(store), model=model, tools=FAKE_TOOLS, use_tools=True
    )

    result = await graph.ainvoke(loop_input(), {"recursion_limit": 50})

    assert extract_final_answer(result) == "Done."
    assert len(result["rounds"]) == 2
    assert result["processed_round_count"] == 2

    state = await store.load(CONVERSATION)
    assert state.current_step_index == 2
    assert [s.result for s in state.completed_steps] == [
        "Executed: web_search, web_search",
        "Executed: final_answer",
    ]
    assert set(state.context) == {
        "step_1_web_search",
        "step_1_web_search_2",
        "step_2_final_answer",
    }
    assert '"snippet": "a"' in state.context["step_1_web_search"]
    assert '"snippet": "b"' in state.context["step_1_web_search_2"]

    assert len(model.received) == 2
    assert injected(model.received[0])[0].startswith("[Step 0] Current agent state:")
    assert injected(model.received[1])[0].startswith("[Step 1] Current agent state:")
    assert "2. [IN_PROGRESS] Step number 2" in injected(model.received[1])[0]


@pytest.mark.asyncio
async def test_loop_stops_at_max_steps():
    store = await planned_store()
    model = scripted_model(*[
        calls(tool_call("web_search", {"query": f"q{i}"}, f"c{i}")) for i in range(5)
    ])
    graph = build_research_agent(
        StepOrchestrator(store), model=model, tools=FAKE_TOOLS, use_tools=True, max_steps=2
    )

    result = await graph.ainvoke(loop_input(), {"recursion_limit": 50})

    assert len(result["rounds"]) == 2
    assert len(model.received) == 2
    state = await store.load(CONVERSATION)
    assert state.current_step_index == 2
    assert len(state.completed_steps) == 2


@pytest.mark.asyncio
async def test_text_answer_without_plan_ends_loop():
    store = InMemoryStateStore()
    await initialize_agent_state(store, CONVERSATION)
    model = scripted_model(AIMessage(content="Plain answer"))
    graph = build_research_agent(
        StepOrchestrator(store), model=model, tools=FAKE_TOOLS, use_tools=True
    )

    result = await graph.ainvoke(loop_input("hi"), {"recursion_limit": 50})

    assert extract_final_answer(result) == "Plain answer"
    assert result["rounds"][0]["tool_calls"] == []
    assert injected(model.received[0]) == []


@pytest.mark.asyncio
async def test_loop_without_tools_skips_bookkeeping():
    store = await planned_store()
    model = scripted_model(AIMessage(content="Reasoned answer"))
    graph = build_research_agent(
        StepOrchestrator(store), model=model, tools=FAKE_TOOLS, use_tools=False
    )

    result = await graph.ainvoke(loop_input(), {"recursion_limit": 50})

    assert extract_final_answer(result) == "Reasoned answer"
    assert injected(model.received[0]) == []
    assert (await store.load(CONVERSATION)).current_step_index == 0


@pytest.mark.asyncio
async def test_loop_survives_store_failures():
    store = BrokenStore()
    await planned_store(store=store)
    store.broken = True
    model = scripted_model(
        calls(tool_call("web_search", {"query": "a"}, "c1")),
        calls(tool_call("final_answer", {"answer": "Still done."}, "c2")),
    )
    graph = build_research_agent(
        StepOrchestrator(store), model=model, tools=FAKE_TOOLS, use_tools=True
    )

    result = await graph.ainvoke(loop_input(), {"recursion_limit": 50})

    assert extract_final_answer(result) == "Still done."
    assert result["processed_round_count"] == 0
    assert injected(model.received[1]) == []


@tool
async def slow_tool(text: str) -> str:
    """Sleep before echoing."""
    await asyncio.sleep(1)
    return text


@tool
def broken_tool(text: str) -> str:
    """Always fails."""
    raise ValueError("boom")


@pytest.mark.asyncio
async def test_execute_tool_call_errors_are_structured():
    tools = {t.name: t for t in (slow_tool, broken_tool)}

    timed_out = await execute_tool_call(
        tools, tool_call("slow_tool", {"text": "x"}, "c1"), timeout=0.01
    )
    failed = await execute_tool_call(tools, tool_call("broken_tool", {"text": "x"}, "c2"), 1)
    unknown = await execute_tool_call(tools, tool_call("teleport", {}, "c3"), 1)

    assert timed_out["code"] == "TOOL_TIMEOUT"
    assert failed["code"] == "TOOL_FAILED"
    assert "boom" in failed["error"]
    assert unknown["code"] == "UNKNOWN_TOOL"
