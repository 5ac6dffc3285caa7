import os

# Settings are read at import time and need at least one provider
os.environ.setdefault("USE_FAKE_MODEL", "true")

import pytest  # noqa: E402

from stepagent.agents.library.research_agent.state import InMemoryStateStore  # noqa: E402

from .helpers import make_plan  # noqa: E402


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def plan():
    return make_plan()
