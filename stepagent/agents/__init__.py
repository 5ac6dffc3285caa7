from stepagent.agents.agent_manager import DEFAULT_AGENT, get_agent, get_all_agent_info

__all__ = ["DEFAULT_AGENT", "get_agent", "get_all_agent_info"]
