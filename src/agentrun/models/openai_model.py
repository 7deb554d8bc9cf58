"""OpenAI chat-completions adapter with native function calling and streaming."""

import logging
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Sequence,
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

logger = logging.getLogger(__name__)


def to_openai_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """Convert the trace to the chat-completions message format."""
    out: List[Dict[str, Any]] = []
    for message in messages:
        if message.role is MessageRole.TOOL:
            assert message.tool_result is not None
            out.append(
                {
                    "role": "tool",
                    "tool_call_id": message.tool_result.call_id,
                    "content": message.content or "",
                }
            )
        elif message.role is MessageRole.ASSISTANT:
            entry: Dict[str, Any] = {"role": "assistant", "content": message.content}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments_json()},
                    }
                    for call in message.tool_calls
                ]
            out.append(entry)
        else:
            out.append({"role": message.role.value, "content": message.content or ""})
    return out


def _classify_error(exc: Exception) -> ModelError:
    import openai  # pylint: disable=import-outside-toplevel

    transient = (
        openai.APIConnectionError,  # includes APITimeoutError
        openai.RateLimitError,
        openai.AuthenticationError,
        openai.PermissionDeniedError,
        openai.InternalServerError,
    )
    if isinstance(exc, transient) or (
        isinstance(exc, openai.APIStatusError) and exc.status_code >= 500
    ):
        return ModelTransportError(f"OpenAI request failed: {exc}")
    return ModelError(f"OpenAI request rejected: {exc}")


def _usage(usage: Any) -> Optional[TokenUsage]:
    if usage is None:
        return None
    return TokenUsage(input_tokens=usage.prompt_tokens, output_tokens=usage.completion_tokens)


@register_model("openai")
class OpenAIModel(ModelAdapter):
    """Adapter for the OpenAI API and any server speaking the same protocol."""

    def __init__(
        self,
        model_id: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,
        temperature: float = 0.2,
    ) -> None:
        self.model_id = model_id or settings.OPENAI_MODEL
        self.temperature = temperature
        if client is None:
            import openai  # pylint: disable=import-outside-toplevel

            api_key = api_key or settings.OPENAI_API_KEY
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY is not set")
            try:
                # Retries are handled by the agent loop.
                client = openai.AsyncOpenAI(
                    api_key=api_key,
                    base_url=base_url or settings.OPENAI_BASE_URL,
                    max_retries=0,
                )
            except openai.OpenAIError as exc:
                raise ConfigurationError(f"Cannot create the OpenAI client: {exc}") from exc
        self.client = client

    def _request_kwargs(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog],
        stop_sequences: Optional[Sequence[str]],
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model_id,
            "messages": to_openai_messages(messages),
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = [dict(item) for item in tools]
        if stop_sequences:
            kwargs["stop"] = list(stop_sequences)
        return kwargs

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> Message:
        import openai  # pylint: disable=import-outside-toplevel

        try:
            completion = await self.client.chat.completions.create(
                **self._request_kwargs(messages, tools, stop_sequences)
            )
        except openai.OpenAIError as exc:
            raise _classify_error(exc) from exc

        choice = completion.choices[0]
        refusal = getattr(choice.message, "refusal", None)
        if choice.finish_reason == "content_filter" or refusal:
            raise ContentPolicyError(f"OpenAI refused to answer: {refusal or 'content filter'}")

        calls = [
            ToolCallRequest(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)
            for tc in choice.message.tool_calls or []
            if tc.type == "function"
        ]
        logger.debug("OpenAI response: %s (%d tool calls)", choice.message.content, len(calls))
        return Message(
            role=MessageRole.ASSISTANT,
            content=choice.message.content,
            tool_calls=calls,
            token_usage=_usage(completion.usage),
        )

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> AsyncIterator[MessageDelta]:
        import openai  # pylint: disable=import-outside-toplevel

        kwargs = self._request_kwargs(messages, tools, stop_sequences)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}
        try:
            stream = await self.client.chat.completions.create(**kwargs)
            async for chunk in stream:
                usage = _usage(chunk.usage)
                if not chunk.choices:
                    if usage is not None:
                        yield MessageDelta(role=MessageRole.ASSISTANT, token_usage=usage)
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason == "content_filter":
                    raise ContentPolicyError("OpenAI refused to answer: content filter")
                delta = choice.delta
                yield MessageDelta(
                    role=MessageRole.ASSISTANT,
                    content=delta.content,
                    tool_calls=[
                        ToolCallDelta(
                            index=tc.index,
                            id=tc.id,
                            name=tc.function.name if tc.function else None,
                            arguments=tc.function.arguments if tc.function else None,
                        )
                        for tc in delta.tool_calls or []
                    ],
                    token_usage=usage,
                )
        except openai.OpenAIError as exc:
            raise _classify_error(exc) from exc
