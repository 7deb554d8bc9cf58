"""
Agent loop for agentrun.

Two variants share the loop in :mod:`agentrun.agent.base_agent`:

* ``tool_calling`` (:class:`ToolCallingAgent`) acts through structured tool calls.
* ``code`` (:class:`CodeAgent`) acts through Python snippets that call tools as functions.

:func:`run_agent` is the single entry point most callers need.
"""

import logging
from typing import (
    Any,
    Dict,
    Type,
)

from agentrun.agent.base_agent import (
    AgentEvent,
    MultiStepAgent,
)
from agentrun.agent.code_agent import CodeAgent
from agentrun.agent.code_executor import LocalPythonExecutor
from agentrun.agent.config import (
    AgentConfig,
    CompletionPolicy,
    RetryPolicy,
)
from agentrun.agent.result import (
    RunResult,
    RunStatus,
)
from agentrun.agent.tool_calling_agent import ToolCallingAgent
from agentrun.agent.tool_executor import ToolExecutor
from agentrun.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

AGENT_TYPES: Dict[str, Type[MultiStepAgent]] = {
    "tool_calling": ToolCallingAgent,
    "code": CodeAgent,
}

__all__ = [
    "AGENT_TYPES",
    "AgentConfig",
    "AgentEvent",
    "CodeAgent",
    "CompletionPolicy",
    "LocalPythonExecutor",
    "MultiStepAgent",
    "RetryPolicy",
    "RunResult",
    "RunStatus",
    "ToolCallingAgent",
    "ToolExecutor",
    "build_agent",
    "run_agent",
]


def build_agent(
    config: AgentConfig, agent_type: str = "tool_calling", **kwargs: Any
) -> MultiStepAgent:
    """
    Instantiate the requested agent variant.

    Raises
    ------
    ConfigurationError
        For an unknown *agent_type* or an invalid tool set.
    """
    cls = AGENT_TYPES.get(agent_type)
    if cls is None:
        raise ConfigurationError(
            f"Unknown agent type '{agent_type}' (available: {', '.join(AGENT_TYPES)})"
        )
    return cls(config, **kwargs)


def run_agent(
    goal: str, config: AgentConfig, agent_type: str = "tool_calling", **kwargs: Any
) -> RunResult:
    """Build an agent from *config* and run it on *goal* (blocking)."""
    agent = build_agent(config, agent_type, **kwargs)
    return agent.run(goal)
