from dataclasses import dataclass
from typing import Callable, Optional

from stepagent.agents.library.research_agent import ResearchAgentService
from stepagent.core import AgentInfo

DEFAULT_AGENT = "research_agent"


@dataclass
class AgentConfig:
    description: str
    factory: Callable[[], ResearchAgentService]
    _cached_agent: Optional[ResearchAgentService] = None

    def get_agent(self) -> ResearchAgentService:
        """Lazy-create the agent service when first accessed."""
        if self._cached_agent is None:
            self._cached_agent = self.factory()
        return self._cached_agent


agent_configs: dict[str, AgentConfig] = {
    "research_agent": AgentConfig(
        description="Research assistant that plans multi-step web research and answers with sources",
        factory=ResearchAgentService,
    ),
}


def get_agent(agent_id: str) -> ResearchAgentService:
    return agent_configs[agent_id].get_agent()


def get_all_agent_info() -> list[AgentInfo]:
    return [
        AgentInfo(key=agent_id, description=config.description)
        for agent_id, config in agent_configs.items()
    ]
