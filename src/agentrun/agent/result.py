"""Outcome of an agent run."""

from enum import Enum
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)
from pydantic_core import to_jsonable_python

from agentrun.core.schema import (
    Message,
    TokenUsage,
)
from agentrun.memory import Memory


class RunStatus(str, Enum):
    """Terminal state of a run."""

    FINISHED = "finished"
    FAILED = "failed"
    BUDGET_EXHAUSTED = "budget_exhausted"


class RunResult(BaseModel):
    """
    What a caller gets back from a run.

    ``final_value`` is set when the run finished, ``partial_value`` (the last observation) when the
    step budget ran out.  ``error`` is set for failed and budget-exhausted runs; it is attached,
    never raised, unless :meth:`raise_for_status` is called.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: RunStatus
    final_value: Any = None
    partial_value: Any = None
    error: Optional[BaseException] = None
    memory: Memory
    step_count: int
    token_usage: TokenUsage
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True when the run ended with a final answer."""
        return self.status is RunStatus.FINISHED

    @property
    def messages(self) -> Tuple[Message, ...]:
        """The full memory trace."""
        return self.memory.messages

    def raise_for_status(self) -> "RunResult":
        """Raise the attached error unless the run finished; returns ``self`` otherwise."""
        if self.status is not RunStatus.FINISHED and self.error is not None:
            raise self.error
        return self

    def summary(self) -> Dict[str, Any]:
        """JSON-compatible description of the run, without the message trace."""
        return {
            "status": self.status.value,
            "final_value": to_jsonable_python(self.final_value, serialize_unknown=True),
            "partial_value": to_jsonable_python(self.partial_value, serialize_unknown=True),
            "error": f"{type(self.error).__name__}: {self.error}" if self.error else None,
            "step_count": self.step_count,
            "token_usage": {
                "input_tokens": self.token_usage.input_tokens,
                "output_tokens": self.token_usage.output_tokens,
                "total_tokens": self.token_usage.total_tokens,
            },
            "duration": round(self.duration, 3),
        }
