"""Anthropic messages-API adapter with native tool use and streaming."""

import logging
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from agentrun.config import settings
from agentrun.core.errors import (
    ConfigurationError,
    ContentPolicyError,
    ModelError,
    ModelTransportError,
)
from agentrun.core.schema import (
    Message,
    MessageDelta,
    MessageRole,
    TokenUsage,
    ToolCallDelta,
    ToolCallRequest,
)
from agentrun.models.base import (
    ModelAdapter,
    ToolCatalog,
    register_model,
)
from agentrun.tools.tool_call_parser import (
    ToolCallParseError,
    decode_arguments,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8192


def _tool_input(call: ToolCallRequest) -> Dict[str, Any]:
    try:
        return decode_arguments(call.arguments)
    except ToolCallParseError:
        # The failed call was already answered with a parse error; replay it without arguments.
        return {}


def to_anthropic_messages(messages: Sequence[Message]) -> Tuple[str, List[Dict[str, Any]]]:
    """Split the trace into a system prompt and Anthropic content-block messages."""
    system_parts: List[str] = []
    out: List[Dict[str, Any]] = []

    def append_user_block(block: Dict[str, Any]) -> None:
        if out and out[-1]["role"] == "user" and isinstance(out[-1]["content"], list):
            out[-1]["content"].append(block)
        else:
            out.append({"role": "user", "content": [block]})

    for message in messages:
        if message.role is MessageRole.SYSTEM:
            system_parts.append(message.content or "")
        elif message.role is MessageRole.TOOL:
            assert message.tool_result is not None
            append_user_block(
                {
                    "type": "tool_result",
                    "tool_use_id": message.tool_result.call_id,
                    "content": message.content or "",
                    "is_error": not message.tool_result.ok,
                }
            )
        elif message.role is MessageRole.ASSISTANT:
            blocks: List[Dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": _tool_input(call),
                    }
                )
            if not blocks:
                blocks.append({"type": "text", "text": "(no content)"})
            out.append({"role": "assistant", "content": blocks})
        else:
            append_user_block({"type": "text", "text": message.content or ""})
    return "\n\n".join(system_parts), out


def to_anthropic_tools(tools: ToolCatalog) -> List[Dict[str, Any]]:
    """Convert function definitions to Anthropic tool definitions."""
    converted = []
    for item in tools:
        function = item["function"]
        converted.append(
            {
                "name": function["name"],
                "description": function.get("description", ""),
                "input_schema": function.get("parameters", {"type": "object", "properties": {}}),
            }
        )
    return converted


def _classify_error(exc: Exception) -> ModelError:
    import anthropic  # pylint: disable=import-outside-toplevel

    transient = (
        anthropic.APIConnectionError,  # includes APITimeoutError
        anthropic.RateLimitError,
        anthropic.AuthenticationError,
        anthropic.PermissionDeniedError,
        anthropic.InternalServerError,
    )
    if isinstance(exc, transient) or (
        isinstance(exc, anthropic.APIStatusError) and exc.status_code >= 500
    ):
        return ModelTransportError(f"Anthropic request failed: {exc}")
    return ModelError(f"Anthropic request rejected: {exc}")


@register_model("anthropic")
class AnthropicModel(ModelAdapter):
    """Anthropic Claude adapter."""

    def __init__(
        self,
        model_id: str | None = None,
        api_key: str | None = None,
        client: Any = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.2,
    ) -> None:
        self.model_id = model_id or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens
        self.temperature = temperature
        if client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            api_key = api_key or settings.ANTHROPIC_API_KEY
            if not api_key:
                raise ConfigurationError("ANTHROPIC_API_KEY is not set")
            try:
                client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
            except anthropic.AnthropicError as exc:
                raise ConfigurationError(f"Cannot create the Anthropic client: {exc}") from exc
        self.client = client

    def _request_kwargs(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog],
        stop_sequences: Optional[Sequence[str]],
    ) -> Dict[str, Any]:
        system, converted = to_anthropic_messages(messages)
        kwargs: Dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": self.max_tokens,
            "messages": converted,
            "temperature": self.temperature,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = to_anthropic_tools(tools)
        if stop_sequences:
            kwargs["stop_sequences"] = list(stop_sequences)
        return kwargs

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> Message:
        import anthropic  # pylint: disable=import-outside-toplevel

        try:
            response = await self.client.messages.create(
                **self._request_kwargs(messages, tools, stop_sequences)
            )
        except anthropic.AnthropicError as exc:
            raise _classify_error(exc) from exc

        if response.stop_reason == "refusal":
            raise ContentPolicyError("Anthropic refused to answer")

        text_parts: List[str] = []
        calls: List[ToolCallRequest] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                calls.append(
                    ToolCallRequest(id=block.id, name=block.name, arguments=dict(block.input))
                )

        logger.debug(
            "Anthropic response: %d text blocks, %d tool calls", len(text_parts), len(calls)
        )
        return Message(
            role=MessageRole.ASSISTANT,
            content="".join(text_parts) or None,
            tool_calls=calls,
            token_usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
        )

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> AsyncIterator[MessageDelta]:
        import anthropic  # pylint: disable=import-outside-toplevel

        input_tokens = 0
        try:
            stream = await self.client.messages.create(
                **self._request_kwargs(messages, tools, stop_sequences), stream=True
            )
            async for event in stream:
                if event.type == "message_start":
                    input_tokens = event.message.usage.input_tokens
                elif event.type == "content_block_start" and event.content_block.type == "tool_use":
                    yield MessageDelta(
                        role=MessageRole.ASSISTANT,
                        tool_calls=[
                            ToolCallDelta(
                                index=event.index,
                                id=event.content_block.id,
                                name=event.content_block.name,
                            )
                        ],
                    )
                elif event.type == "content_block_delta":
                    if event.delta.type == "text_delta":
                        yield MessageDelta(role=MessageRole.ASSISTANT, content=event.delta.text)
                    elif event.delta.type == "input_json_delta":
                        yield MessageDelta(
                            role=MessageRole.ASSISTANT,
                            tool_calls=[
                                ToolCallDelta(index=event.index, arguments=event.delta.partial_json)
                            ],
                        )
                elif event.type == "message_delta":
                    if event.delta.stop_reason == "refusal":
                        raise ContentPolicyError("Anthropic refused to answer")
                    yield MessageDelta(
                        role=MessageRole.ASSISTANT,
                        token_usage=TokenUsage(
                            input_tokens=input_tokens, output_tokens=event.usage.output_tokens
                        ),
                    )
        except anthropic.AnthropicError as exc:
            raise _classify_error(exc) from exc
