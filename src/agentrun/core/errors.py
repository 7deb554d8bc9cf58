"""
Error taxonomy for agent runs.

Configuration problems fail synchronously while the agent is being built.  Everything that can go
wrong once a run has started is either *recoverable* (surfaced to the model as a tool result) or
*fatal* (attached to the :class:`~agentrun.agent.result.RunResult` of a failed run).
"""

from enum import Enum


class AgentError(Exception):
    """Base class for every error raised by agentrun."""


class ConfigurationError(AgentError):
    """Raised at construction time for invalid tools or missing configuration."""


class ToolErrorKind(str, Enum):
    """Why a tool call produced a failure result."""

    UNKNOWN_TOOL = "unknown_tool"
    INVALID_ARGUMENTS = "invalid_arguments"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    PARSE = "parse"


class ToolError(AgentError):
    """
    A declared, recoverable tool failure.

    Tools raise this to report a failure the model should see (e.g. "file not found").  The agent
    loop raises it for unknown tools, bad arguments and timeouts.
    """

    def __init__(self, message: str, kind: ToolErrorKind = ToolErrorKind.EXECUTION) -> None:
        super().__init__(message)
        self.kind = kind


class ModelError(AgentError):
    """A model provider returned something the loop cannot use."""


class ModelTransportError(ModelError):
    """Network, auth, rate-limit or server failure. Retried with backoff."""


class ModelParseError(ModelError):
    """The model produced a tool call payload that cannot be decoded."""


class ContentPolicyError(ModelError):
    """The provider refused to produce content. Never retried."""


class BudgetExceededError(AgentError):
    """The step budget ran out before a final answer was produced."""


class InternalError(AgentError):
    """An invariant was violated or a tool failed in an undeclared way."""
