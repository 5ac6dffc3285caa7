from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableLambda
from langchain_core.tools import tool
from pydantic import Field

from stepagent.agents.library.research_agent.plan import AgentPlan, PlanStep


class ScriptedChatModel(GenericFakeChatModel):
    """Replays scripted messages and records what it was called with."""

    received: list = Field(default_factory=list)

    def bind_tools(self, tools, **kwargs):
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.received.append(list(messages))
        return super()._generate(messages, stop=stop, run_manager=run_manager, **kwargs)


class StubPlanner:
    """Planning model double: structured output comes from ``fn``."""

    def __init__(self, fn):
        self.fn = fn

    def with_structured_output(self, schema):
        return RunnableLambda(self.fn)


def tool_call(name, args, call_id):
    return {"name": name, "args": args, "id": call_id, "type": "tool_call"}


def scripted_model(*messages):
    return ScriptedChatModel(messages=iter(messages))


def calls(*tool_calls):
    return AIMessage(content="", tool_calls=list(tool_calls))


@tool
def web_search(query: str) -> dict:
    """Search the web."""
    return {"results": [{"title": "Result", "url": "https://example.com", "snippet": query}]}


@tool
def final_answer(answer: str) -> dict:
    """Provide the final answer."""
    return {"answer": answer, "completed": True}


FAKE_TOOLS = [web_search, final_answer]


def make_plan(n_steps=3, goal="Compare vector databases"):
    return AgentPlan(
        goal=goal,
        steps=[PlanStep(description=f"Step number {i + 1}") for i in range(n_steps)],
        reasoning="test plan",
    )
