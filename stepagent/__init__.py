"""
stepagent

Plan-guided, bounded multi-step tool-use loop for a research assistant.
"""

__version__ = "0.1.0"
