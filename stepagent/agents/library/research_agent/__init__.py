"""
Research Agent Module

Plan-guided, bounded tool loop that keeps a durable per-conversation state
and injects a summary of it before every model call.
"""

from .agent import StepOrchestrator, build_research_agent, should_stop
from .service import ResearchAgentService, TurnResult

__all__ = [
    "ResearchAgentService",
    "StepOrchestrator",
    "TurnResult",
    "build_research_agent",
    "should_stop",
]
