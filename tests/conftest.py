"""
Shared helpers for the test-suite.

:class:`ScriptedModel` replays a fixed list of replies so agent runs are deterministic, and a few
small tools cover success, declared failure, undeclared failure and slowness.
"""

import asyncio
import time
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
)

import pytest

from agentrun.agent import (
    AgentConfig,
    RetryPolicy,
)
from agentrun.core.errors import ToolError
from agentrun.core.schema import (
    Message,
    MessageRole,
    TokenUsage,
    ToolCallRequest,
)
from agentrun.models import (
    ModelAdapter,
    ToolCatalog,
)
from agentrun.tools import (
    Tool,
    tool,
)


def reply(content: Optional[str] = None, *calls: ToolCallRequest, tokens: int = 0) -> Message:
    """Build an assistant message the way an adapter would return it."""
    return Message(
        role=MessageRole.ASSISTANT,
        content=content,
        tool_calls=list(calls),
        token_usage=TokenUsage(input_tokens=tokens, output_tokens=tokens),
    )


def call(name: str, call_id: str = "call_0", **arguments: Any) -> ToolCallRequest:
    """Build a tool call request."""
    return ToolCallRequest(id=call_id, name=name, arguments=arguments)


class ScriptedModel(ModelAdapter):
    """Returns the scripted replies in order; exceptions in the script are raised instead."""

    model_id = "scripted"

    def __init__(self, script: Sequence[Any], repeat_last: bool = False) -> None:
        self.script = list(script)
        self.repeat_last = repeat_last
        self.calls: List[List[Message]] = []
        self.catalogs: List[Optional[ToolCatalog]] = []
        self.stops: List[Optional[Sequence[str]]] = []

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> Message:
        self.calls.append(list(messages))
        self.catalogs.append(tools)
        self.stops.append(stop_sequences)
        index = len(self.calls) - 1
        if index >= len(self.script):
            if not self.repeat_last:
                raise AssertionError("scripted model ran out of replies")
            index = len(self.script) - 1
        item = self.script[index]
        if isinstance(item, BaseException):
            raise item
        return item


@tool()
def list_files(path: str = ".") -> list:
    """List the files of a directory.

    Args:
        path: Directory to list
    """
    return ["a.txt", "b.txt"]


@tool()
def add(a: int, b: int) -> int:
    """Add two integers.

    Args:
        a: First operand
        b: Second operand
    """
    return a + b


@tool()
def open_file(path: str) -> str:
    """Read a file that never exists.

    Args:
        path: File to read
    """
    raise ToolError(f"file not found: {path}")


@tool()
def explode() -> str:
    """Fail with an error the tool did not declare."""
    raise RuntimeError("boom")


@tool()
async def slow(seconds: float) -> str:
    """Sleep, then report.

    Args:
        seconds: How long to sleep
    """
    await asyncio.sleep(seconds)
    return f"slept {seconds}"


@tool()
def blocking_sleep(seconds: float) -> float:
    """Block the calling thread for a while and return when it finished.

    Args:
        seconds: How long to block
    """
    time.sleep(seconds)
    return time.monotonic()


class EchoTool(Tool):
    """Class-based tool with an optional parameter."""

    name = "echo"
    description = "Echo the text back, optionally in upper case."
    inputs = {
        "text": {"type": "string", "description": "Text to echo"},
        "upper": {"type": "boolean", "description": "Upper-case it", "default": False},
    }
    output_type = "string"

    def forward(self, text: str, upper: bool = False) -> str:  # type: ignore[override]
        return text.upper() if upper else text


def make_config(model: ModelAdapter, tools: Sequence[Tool] = (), **overrides: Any) -> AgentConfig:
    """Agent config with retries that never sleep."""
    values: Dict[str, Any] = {
        "model": model,
        "tools": tuple(tools),
        "retry": RetryPolicy(max_retries=2, base_delay=0.0),
    }
    values.update(overrides)
    return AgentConfig(**values)


@pytest.fixture
def echo_tool() -> EchoTool:
    """A fresh class-based tool."""
    return EchoTool()
