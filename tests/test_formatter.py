from dataclasses import replace

from stepagent.agents.library.research_agent.formatter import (
    TRUNCATION_MARKER,
    format_state_context,
)
from stepagent.agents.library.research_agent.plan import (
    AgentState,
    AgentStateStatus,
    CompletedStep,
)

from .helpers import make_plan


def executing_state(**kwargs):
    return AgentState(conversation_id="c1", status=AgentStateStatus.EXECUTING, **kwargs)


def test_absent_or_idle_state_formats_empty():
    assert format_state_context(None) == ""
    assert format_state_context(AgentState(conversation_id="c1")) == ""


def test_plan_steps_carry_markers():
    plan = make_plan(3).with_step_done(0, "found sources")
    state = executing_state(plan=plan, current_step_index=1)

    text = format_state_context(state)

    assert text.startswith("<agent_state>\n  <current_plan>")
    assert text.endswith("</agent_state>")
    assert "Goal: Compare vector databases" in text
    assert "1. [DONE] Step number 1 - Result: found sources" in text
    assert "2. [IN_PROGRESS] Step number 2" in text
    assert "3. [PENDING] Step number 3" in text


def test_context_and_completed_sections():
    state = executing_state(
        context={"step_1_web_search": "three results", "step_1_fetch_url": {"title": "Page"}},
        completed_steps=[
            CompletedStep(step_id="s1", description="Search", result="Executed: web_search")
        ],
    )

    text = format_state_context(state)

    assert "<current_plan>" not in text
    assert "    step_1_web_search: three results" in text
    assert 'step_1_fetch_url: {"title": "Page"}' in text
    assert "<completed_steps>\n    - Search: Executed: web_search\n  </completed_steps>" in text


def test_completed_state_is_still_formatted():
    state = replace(executing_state(plan=make_plan(1)), status=AgentStateStatus.COMPLETED)

    assert "<current_plan>" in format_state_context(state)


def test_oversized_state_is_truncated_from_the_front():
    context = {f"step_{i}_web_search": "x" * 400 for i in range(100)}
    context["step_latest_fetch_url"] = "most recent result"
    state = executing_state(context=context)

    text = format_state_context(state, max_chars=2000)

    assert len(text) <= 2000
    assert text.startswith(f"<agent_state>\n  {TRUNCATION_MARKER}\n")
    assert text.endswith("</agent_state>")
    assert text.count("</agent_state>") == 1
    assert "most recent result" in text
    assert "step_0_web_search" not in text


def test_default_bound_is_16000_chars():
    state = executing_state(context={f"k{i}": "y" * 1000 for i in range(40)})

    text = format_state_context(state)

    assert len(text) <= 16000
    assert TRUNCATION_MARKER in text


def test_bound_holds_below_header_size():
    state = executing_state(context={"step_1_web_search": "z" * 500})

    assert len(format_state_context(state, max_chars=40)) <= 40
