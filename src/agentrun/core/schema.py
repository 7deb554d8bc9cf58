"""
Schema definitions for model <-> agent <-> tool messages.

These data models serve as the contract between the model adapters, the agent loop, and individual
tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

import json
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from agentrun.core.errors import ToolErrorKind


class MessageRole(str, Enum):
    """Author of a :class:`Message`."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TokenUsage(BaseModel):
    """Token counts reported by a provider for one generation."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Input plus output tokens."""
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class ToolCallRequest(BaseModel):
    """A call that the model wants the agent to execute."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque id correlating the request with its result")
    name: str = Field(..., description="Requested tool name")
    arguments: Dict[str, Any] | str = Field(
        default_factory=dict, description="Raw argument payload, possibly undecoded JSON text"
    )

    def arguments_json(self) -> str:
        """Arguments as JSON text, the shape most providers expect on replay."""
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments, ensure_ascii=False, default=str)


class ToolCallResult(BaseModel):
    """Outcome of one tool invocation. Never mutated once created."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    name: str
    output: Any = None
    error: Optional[str] = None
    error_kind: Optional[ToolErrorKind] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        """True when the tool succeeded."""
        return self.error is None

    @property
    def observation(self) -> str:
        """Text handed back to the model."""
        if self.error is not None:
            return f"Error: {self.error}"
        if isinstance(self.output, str):
            return self.output.strip()
        try:
            return json.dumps(self.output, ensure_ascii=False, indent=2, default=str)
        except (TypeError, ValueError):
            return str(self.output)


class Message(BaseModel):
    """One entry of the conversation trace."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: Optional[str] = None
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    tool_result: Optional[ToolCallResult] = None
    token_usage: Optional[TokenUsage] = None
    step: Optional[int] = None

    @model_validator(mode="after")
    def _check_role_fields(self) -> "Message":
        if self.tool_calls and self.role is not MessageRole.ASSISTANT:
            raise ValueError("only assistant messages may carry tool calls")
        if (self.tool_result is not None) != (self.role is MessageRole.TOOL):
            raise ValueError("tool messages must carry exactly one tool result")
        return self

    @classmethod
    def system(cls, content: str) -> "Message":
        """Build a system message."""
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, step: Optional[int] = None) -> "Message":
        """Build a user message."""
        return cls(role=MessageRole.USER, content=content, step=step)

    @classmethod
    def from_result(cls, result: ToolCallResult, step: Optional[int] = None) -> "Message":
        """Build the tool-role message carrying *result*."""
        return cls(
            role=MessageRole.TOOL, content=result.observation, tool_result=result, step=step
        )


class ToolCallDelta(BaseModel):
    """A fragment of a streamed tool call. Fragments with the same index belong together."""

    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class MessageDelta(BaseModel):
    """A fragment of a streamed assistant message."""

    role: Optional[MessageRole] = None
    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = Field(default_factory=list)
    token_usage: Optional[TokenUsage] = None


class StepRecord(BaseModel):
    """Metadata for one committed step (timing, usage, outcome)."""

    model_config = ConfigDict(frozen=True)

    step: int
    start_time: float
    end_time: float
    token_usage: Optional[TokenUsage] = None
    tool_names: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    is_final_answer: bool = False

    @property
    def duration(self) -> float:
        """Wall-clock seconds spent in the step."""
        return self.end_time - self.start_time

    def summary(self) -> str:
        """One-line description for logs."""
        parts = [f"Step {self.step}"]
        if self.tool_names:
            parts.append(f"Tools: {', '.join(self.tool_names)}")
        if self.error:
            parts.append(f"Error: {self.error}")
        parts.append(f"Duration: {self.duration:.2f}s")
        return " | ".join(parts)
