"""
Hugging Face Text-Generation-Inference (TGI) adapter for self-hosted models.

TGI has no native function calling, so the tool catalog is described in the prompt and the model is
asked to answer with JSON objects like ``{"name": "<tool>", "arguments": { ... }}``.  Those objects
are recovered by :meth:`TGIModel.parse_tool_calls`.
"""

import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
)

import httpx

from agentrun.config import settings
from agentrun.core.errors import (
    ModelError,
    ModelTransportError,
)
from agentrun.core.schema import (
    Message,
    MessageRole,
    TokenUsage,
)
from agentrun.models.base import (
    ModelAdapter,
    ToolCatalog,
    register_model,
)
from agentrun.tools.tool_call_parser import parse_text_tool_calls

logger = logging.getLogger(__name__)

TOOL_CALL_INSTRUCTIONS = """\
When you need to use a tool, respond with JSON like:
{"name": "<tool name>", "arguments": { ... }}
You may write several such objects to call several tools at once.

Available tools:
"""

DEFAULT_STOP = ["\nUser:", "</s>"]


def render_prompt(messages: Sequence[Message], tools: Optional[ToolCatalog] = None) -> str:
    """Flatten the trace into a single completion prompt ending with the assistant cue."""
    lines: List[str] = []
    for message in messages:
        if message.role is MessageRole.SYSTEM:
            text = message.content or ""
            if tools:
                text += "\n\n" + TOOL_CALL_INSTRUCTIONS + _describe_tools(tools)
            lines.append(text)
        elif message.role is MessageRole.USER:
            lines.append(f"User: {message.content or ''}")
        elif message.role is MessageRole.ASSISTANT:
            parts = [message.content] if message.content else []
            parts.extend(
                json.dumps({"name": call.name, "arguments": call.arguments}, default=str)
                for call in message.tool_calls
            )
            lines.append("Assistant: " + "\n".join(parts))
        else:
            assert message.tool_result is not None
            lines.append(f"Tool result ({message.tool_result.name}): {message.content or ''}")
    lines.append("Assistant:")
    return "\n\n".join(lines)


def _describe_tools(tools: ToolCatalog) -> str:
    described = []
    for item in tools:
        function = item["function"]
        params = function.get("parameters", {}).get("properties", {})
        param_desc = ", ".join(f"{p}: {info.get('type', 'any')}" for p, info in params.items())
        described.append(f"- {function['name']}({param_desc}): {function.get('description', '')}")
    return "\n".join(described)


@register_model("tgi")
class TGIModel(ModelAdapter):
    """TGI-based adapter with an httpx client."""

    def __init__(
        self,
        endpoint: str | None = None,
        client: httpx.AsyncClient | None = None,
        max_new_tokens: int = 1024,
        temperature: float = 0.2,
        timeout: float = 30.0,
    ) -> None:
        self.endpoint = (endpoint or settings.TGI_ENDPOINT).rstrip("/")
        self.model_id = self.endpoint
        self.max_new_tokens = max_new_tokens
        self.temperature = temperature
        self.timeout = timeout
        self._client = client

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> Message:
        """Call the TGI ``/generate`` endpoint and return the raw text reply."""
        payload: Dict[str, Any] = {
            "inputs": render_prompt(messages, tools),
            "parameters": {
                "max_new_tokens": self.max_new_tokens,
                "temperature": self.temperature,
                "stop": DEFAULT_STOP + list(stop_sequences or []),
                "details": True,
            },
        }

        try:
            if self._client is not None:
                resp = await self._client.post(f"{self.endpoint}/generate", json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(f"{self.endpoint}/generate", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500 or status in (401, 403, 429):
                raise ModelTransportError(f"TGI request failed with status {status}") from e
            raise ModelError(f"TGI request rejected with status {status}: {e.response.text}") from e
        except httpx.HTTPError as e:
            logger.error("TGI request error: %s", str(e))
            raise ModelTransportError(f"Error calling TGI endpoint: {str(e)}") from e
        except ValueError as e:
            raise ModelError(f"TGI returned a non-JSON body: {str(e)}") from e

        if not isinstance(data, dict) or "generated_text" not in data:
            raise ModelError(f"Unexpected TGI response: {data!r}")

        content: str = data["generated_text"]
        for stop in DEFAULT_STOP:
            content = content.removesuffix(stop)
        details = data.get("details") or {}
        logger.debug("TGI response: %s", content)
        return Message(
            role=MessageRole.ASSISTANT,
            content=content.strip() or None,
            token_usage=TokenUsage(output_tokens=details.get("generated_tokens", 0)),
        )

    def parse_tool_calls(self, message: Message) -> Message:
        """Recover JSON tool calls written in the message text."""
        if message.tool_calls or not message.content:
            return message
        calls = parse_text_tool_calls(message.content)
        if not calls:
            return message
        return message.model_copy(update={"tool_calls": calls})
