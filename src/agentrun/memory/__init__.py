"""Conversation memory for agent runs."""

from agentrun.memory.agent_memory import (
    OBSERVATION_PREFIX,
    Memory,
    MessageView,
)

__all__ = ["OBSERVATION_PREFIX", "Memory", "MessageView"]
