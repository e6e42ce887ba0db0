"""Agent directory module."""

from .directory import AgentDirectory, IAgentDirectory
from .matcher import IAgentMatcher, ReputationMatcher

__all__ = ["AgentDirectory", "IAgentDirectory", "IAgentMatcher", "ReputationMatcher"]
