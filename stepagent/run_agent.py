import asyncio
import sys
from uuid import uuid4

from dotenv import load_dotenv

load_dotenv()

from stepagent.agents import DEFAULT_AGENT, get_agent  # noqa: E402
from stepagent.agents.library.research_agent.planning import format_plan_for_display  # noqa: E402
from stepagent.settings import settings  # noqa: E402
from stepagent.utils import setup_logging  # noqa: E402

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

agent = get_agent(DEFAULT_AGENT)

DEFAULT_QUESTION = (
    "Research the top open-source vector databases, compare their licensing "
    "and then summarize which one fits a small team best."
)


async def main() -> None:
    question = " ".join(sys.argv[1:]) or DEFAULT_QUESTION
    result = await agent.run_turn(str(uuid4()), question)

    if result.state and result.state.plan:
        print(format_plan_for_display(result.state.plan, result.state.current_step_index))
        print()
    print(result.answer or "(no answer)")


if __name__ == "__main__":
    asyncio.run(main())
