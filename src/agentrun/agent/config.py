"""Per-run agent configuration."""

from enum import Enum
from typing import (
    Any,
    Callable,
    Optional,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from agentrun.config import Settings
from agentrun.core.errors import ConfigurationError
from agentrun.core.schema import StepRecord
from agentrun.memory import MessageView
from agentrun.models import (
    ModelAdapter,
    load_model,
)

StepCallback = Callable[[StepRecord], Any]


class CompletionPolicy(str, Enum):
    """What a model reply with text but no tool call means."""

    EXPLICIT = "explicit"  # the model must call final_answer; plain text gets a reminder
    IMPLICIT = "implicit"  # plain text is the final answer


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for transport failures of the model."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(3, ge=0)
    base_delay: float = Field(0.5, ge=0)
    multiplier: float = Field(2.0, ge=1)
    max_delay: float = Field(8.0, ge=0)

    def delay(self, attempt: int) -> float:
        """Seconds to wait before retry number *attempt* (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)


class AgentConfig(BaseModel):
    """
    Everything one run needs, fixed for its whole lifetime.

    Passed explicitly to the agent; nothing here is read from process-wide state once built.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    model: Optional[ModelAdapter] = None
    tools: Tuple[Any, ...] = ()
    max_steps: int = 10
    completion_policy: CompletionPolicy = CompletionPolicy.EXPLICIT
    step_timeout: Optional[float] = None
    stream_outputs: bool = False
    parallel_tool_calls: bool = True
    max_tool_threads: int = 10
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    step_callbacks: Tuple[StepCallback, ...] = ()
    add_base_tools: bool = True
    instructions: Optional[str] = None
    memory_view: Optional[MessageView] = None

    @model_validator(mode="after")
    def _check(self) -> "AgentConfig":
        if self.model is None:
            raise ConfigurationError("AgentConfig requires a model adapter")
        if self.max_steps < 1:
            raise ConfigurationError(f"max_steps must be a positive integer, got {self.max_steps}")
        if self.step_timeout is not None and self.step_timeout <= 0:
            raise ConfigurationError(f"step_timeout must be positive, got {self.step_timeout}")
        if self.max_tool_threads < 1:
            raise ConfigurationError(
                f"max_tool_threads must be a positive integer, got {self.max_tool_threads}"
            )
        return self

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        model: ModelAdapter | None = None,
        tools: Sequence[Any] = (),
        **overrides: Any,
    ) -> "AgentConfig":
        """Build a run configuration from process settings; *overrides* win."""
        try:
            policy = CompletionPolicy(settings.COMPLETION_POLICY.lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown completion policy '{settings.COMPLETION_POLICY}'"
            ) from exc

        values: dict[str, Any] = {
            "model": model or load_model(settings.MODEL_PROVIDER),
            "tools": tuple(tools),
            "max_steps": settings.MAX_STEPS,
            "completion_policy": policy,
            "step_timeout": settings.STEP_TIMEOUT,
            "max_tool_threads": settings.MAX_TOOL_THREADS,
            "retry": RetryPolicy(max_retries=settings.MODEL_MAX_RETRIES),
        }
        values.update(overrides)
        return cls(**values)
