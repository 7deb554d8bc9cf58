"""
Model adapter interface for agentrun.

Adapters are the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
memory) stays provider-agnostic and talks to a :class:`ModelAdapter`:

* :meth:`ModelAdapter.generate` returns one complete assistant :class:`Message`.
* :meth:`ModelAdapter.generate_stream` yields :class:`MessageDelta` fragments which
  :func:`agglomerate_deltas` reassembles into the same message shape.

Additional providers can be added by subclassing :class:`ModelAdapter` and registering via
:func:`register_model`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Mapping,
    Optional,
    Sequence,
    Type,
)

from agentrun.config import settings
from agentrun.core.errors import ConfigurationError
from agentrun.core.schema import (
    Message,
    MessageDelta,
    MessageRole,
    TokenUsage,
    ToolCallDelta,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

ToolCatalog = Sequence[Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_MODEL_REGISTRY: Dict[str, Type["ModelAdapter"]] = {}


def register_model(name: str) -> Callable:
    """Decorator to register a model adapter class under *name*."""

    def wrapper(cls: Type["ModelAdapter"]) -> Type["ModelAdapter"]:
        _MODEL_REGISTRY[name] = cls
        return cls

    return wrapper


def load_model(name: Optional[str] = None, **kwargs: Any) -> "ModelAdapter":
    """
    Factory that returns an instantiated model adapter.

    Fallback order:
    1. *name* arg
    2. ``settings.MODEL_PROVIDER`` env option
    """
    target = name or settings.MODEL_PROVIDER
    cls = _MODEL_REGISTRY.get(target.lower())
    if cls is None:
        raise ConfigurationError(
            f"Model provider '{target}' is not registered "
            f"(available: {', '.join(sorted(_MODEL_REGISTRY))})."
        )
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Stream reassembly
# ---------------------------------------------------------------------------
def agglomerate_deltas(deltas: Sequence[MessageDelta]) -> Message:
    """
    Reassemble streamed fragments into one assistant message.

    Content is concatenated; tool-call fragments are grouped by index, the name is taken from the
    first fragment that carries one and argument text is concatenated.
    """
    content = ""
    usage: Optional[TokenUsage] = None
    calls: Dict[int, Dict[str, str]] = {}

    for delta in deltas:
        if delta.content:
            content += delta.content
        if delta.token_usage is not None:
            usage = delta.token_usage
        for fragment in delta.tool_calls:
            call = calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
            if fragment.id:
                call["id"] = fragment.id
            if fragment.name and not call["name"]:
                call["name"] = fragment.name
            if fragment.arguments:
                call["arguments"] += fragment.arguments

    tool_calls = [
        ToolCallRequest(
            id=call["id"] or f"call_{index}", name=call["name"], arguments=call["arguments"]
        )
        for index, call in sorted(calls.items())
    ]
    return Message(
        role=MessageRole.ASSISTANT,
        content=content or None,
        tool_calls=tool_calls,
        token_usage=usage,
    )


def message_to_delta(message: Message) -> MessageDelta:
    """Express a complete message as a single fragment."""
    return MessageDelta(
        role=message.role,
        content=message.content,
        tool_calls=[
            ToolCallDelta(index=i, id=call.id, name=call.name, arguments=call.arguments_json())
            for i, call in enumerate(message.tool_calls)
        ],
        token_usage=message.token_usage,
    )


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class ModelAdapter(ABC):
    """Abstract adapter that turns a conversation snapshot into the next assistant message."""

    model_id: str = "model"

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> Message:
        """Return one complete assistant message, possibly carrying tool call requests."""

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> AsyncIterator[MessageDelta]:
        """
        Yield message fragments.

        The default implementation yields the blocking result as a single fragment; providers with
        native streaming override it.
        """
        message = await self.generate(messages, tools, stop_sequences)
        yield message_to_delta(message)

    def parse_tool_calls(self, message: Message) -> Message:
        """Extract tool calls from a message that has none. Default: return it unchanged."""
        return message

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.model_id!r}>"
