"""Reassembly of streamed fragments."""

import asyncio
from typing import (
    Any,
    AsyncIterator,
    List,
    Optional,
    Sequence,
)

from conftest import (
    ScriptedModel,
    add,
    call,
    make_config,
    reply,
)

from agentrun.agent import (
    RunStatus,
    ToolCallingAgent,
)
from agentrun.core.errors import ModelTransportError
from agentrun.core.schema import (
    Message,
    MessageDelta,
    MessageRole,
    TokenUsage,
    ToolCallDelta,
)
from agentrun.models import (
    ToolCatalog,
    agglomerate_deltas,
    message_to_delta,
)


def test_agglomerate_interleaved_fragments() -> None:
    """Text and tool-call fragments arriving interleaved rebuild one message."""

    deltas = [
        MessageDelta(role=MessageRole.ASSISTANT, content="Let me "),
        MessageDelta(tool_calls=[ToolCallDelta(index=0, id="a", name="add")]),
        MessageDelta(content="add."),
        MessageDelta(tool_calls=[ToolCallDelta(index=1, id="b", name="add", arguments="{")]),
        MessageDelta(tool_calls=[ToolCallDelta(index=0, arguments='{"a": 1, ')]),
        MessageDelta(tool_calls=[ToolCallDelta(index=0, arguments='"b": 2}')]),
        MessageDelta(tool_calls=[ToolCallDelta(index=1, arguments="}")]),
        MessageDelta(token_usage=TokenUsage(input_tokens=3, output_tokens=4)),
    ]
    message = agglomerate_deltas(deltas)

    assert message.role is MessageRole.ASSISTANT
    assert message.content == "Let me add."
    assert [c.id for c in message.tool_calls] == ["a", "b"]
    assert message.tool_calls[0].arguments == '{"a": 1, "b": 2}'
    assert message.tool_calls[1].arguments == "{}"
    assert message.token_usage.total_tokens == 7


def test_agglomerate_defaults() -> None:
    """Missing ids are derived from the index; empty text becomes None."""

    message = agglomerate_deltas([MessageDelta(tool_calls=[ToolCallDelta(index=2, name="x")])])
    assert message.content is None
    assert message.tool_calls[0].id == "call_2"
    assert message.tool_calls[0].arguments == ""
    assert message.token_usage is None


def test_message_to_delta_reassembles_to_same_message() -> None:
    """A complete message survives the single-fragment form used by non-streaming adapters."""

    original = Message(
        role=MessageRole.ASSISTANT,
        content="hi",
        tool_calls=[{"id": "c1", "name": "add", "arguments": {"a": 1, "b": 2}}],
    )
    rebuilt = agglomerate_deltas([message_to_delta(original)])
    assert rebuilt.content == "hi"
    assert rebuilt.tool_calls[0].name == "add"
    assert rebuilt.tool_calls[0].arguments == '{"a": 1, "b": 2}'


class ChunkedModel(ScriptedModel):
    """Streams each scripted reply in small pieces, failing the first attempt mid-stream."""

    def __init__(self, script: Sequence[Any], fail_first: bool = False) -> None:
        super().__init__(script)
        self.fail_first = fail_first
        self.attempts = 0

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> AsyncIterator[MessageDelta]:
        self.attempts += 1
        if self.fail_first and self.attempts == 1:
            yield MessageDelta(content="partial")
            raise ModelTransportError("stream dropped")
        message = await self.generate(messages, tools, stop_sequences)
        text = message.content or ""
        for i in range(0, len(text), 3):
            await asyncio.sleep(0)
            yield MessageDelta(content=text[i : i + 3])
        for index, request in enumerate(message.tool_calls):
            start = ToolCallDelta(index=index, id=request.id, name=request.name)
            yield MessageDelta(tool_calls=[start])
            yield MessageDelta(
                tool_calls=[ToolCallDelta(index=index, arguments=request.arguments_json())]
            )


def test_streamed_run_matches_blocking_shape() -> None:
    """A streamed run records the reassembled message, not the fragments."""

    model = ChunkedModel(
        [
            reply("Adding now.", call("add", "c1", a=2, b=2)),
            reply(None, call("final_answer", "c2", answer=4)),
        ]
    )
    agent = ToolCallingAgent(make_config(model, [add], stream_outputs=True))
    result = agent.run("2+2")

    assert result.status is RunStatus.FINISHED
    assert result.final_value == 4
    assert result.messages[2].content == "Adding now."
    assert result.memory.tool_results()[0].output == 4


def test_stream_retried_after_transport_error() -> None:
    """A stream dropped midway is retried from scratch."""

    model = ChunkedModel(
        [reply(None, call("final_answer", "c1", answer="ok"))],
        fail_first=True,
    )
    agent = ToolCallingAgent(make_config(model, stream_outputs=True))

    async def _collect() -> List[Any]:
        return [event async for event in agent.astream("go")]

    events = asyncio.run(_collect())
    result = events[-1]
    assert result.status is RunStatus.FINISHED
    assert model.attempts == 2
    assert result.messages[2].content is None  # the dropped fragment is not recorded


class StallingStreamModel(ScriptedModel):
    """Sends one fragment, then stalls past the step timeout on its first *stalls* attempts."""

    def __init__(self, script: Sequence[Any], stalls: int) -> None:
        super().__init__(script)
        self.stalls = stalls
        self.attempts = 0

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Optional[ToolCatalog] = None,
        stop_sequences: Optional[Sequence[str]] = None,
    ) -> AsyncIterator[MessageDelta]:
        self.attempts += 1
        if self.attempts <= self.stalls:
            yield MessageDelta(content="thinking")
            await asyncio.sleep(5)
        message = await self.generate(messages, tools, stop_sequences)
        yield message_to_delta(message)


def _run_streaming(model: ScriptedModel) -> List[Any]:
    agent = ToolCallingAgent(make_config(model, stream_outputs=True, step_timeout=0.05))

    async def _collect() -> List[Any]:
        return [event async for event in agent.astream("go")]

    return asyncio.run(_collect())


def test_stalled_stream_is_retried() -> None:
    """A stream that stops sending within step_timeout is abandoned and retried."""

    model = StallingStreamModel([reply(None, call("final_answer", "c1", answer="ok"))], stalls=1)
    events = _run_streaming(model)

    result = events[-1]
    assert result.status is RunStatus.FINISHED
    assert result.final_value == "ok"
    assert model.attempts == 2


def test_stalled_stream_fatal_after_exhaustion() -> None:
    """A stream that always stalls fails the run with a transport error after the retries."""

    model = StallingStreamModel([], stalls=10)
    events = _run_streaming(model)

    result = events[-1]
    assert result.status is RunStatus.FAILED
    assert isinstance(result.error, ModelTransportError)
    assert "stream timed out after 0.05s" in str(result.error)
    assert model.attempts == 3
    deltas = [e for e in events if isinstance(e, MessageDelta)]
    assert [d.content for d in deltas] == ["thinking"] * 3
