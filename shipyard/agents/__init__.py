"""AI Agents for Shipyard."""

from shipyard.agents.base import BaseAgent
from shipyard.agents.recovery_agent import (
    FileEdit,
    RecoveryAgent,
    RecoveryAgentInput,
    RecoveryAgentOutput,
)

__all__ = [
    "BaseAgent",
    "FileEdit",
    "RecoveryAgent",
    "RecoveryAgentInput",
    "RecoveryAgentOutput",
]
