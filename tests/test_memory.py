"""Append-only memory and its invariants."""

import time

import pytest

from agentrun.core.errors import InternalError
from agentrun.core.schema import (
    Message,
    MessageRole,
    StepRecord,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
)
from agentrun.memory import Memory


def _record(step: int, tokens: int = 0) -> StepRecord:
    now = time.time()
    return StepRecord(
        step=step,
        start_time=now,
        end_time=now + 1,
        token_usage=TokenUsage(input_tokens=tokens, output_tokens=tokens),
    )


def _pair(step: int, call_id: str, output: str) -> list:
    request = ToolCallRequest(id=call_id, name="ls")
    return [
        Message(role=MessageRole.ASSISTANT, tool_calls=[request], step=step),
        Message.from_result(ToolCallResult(call_id=call_id, name="ls", output=output), step),
    ]


def test_seed_and_commit() -> None:
    """Seeded framing comes first; committed steps follow in order."""

    memory = Memory()
    memory.seed("system prompt", "the goal")
    memory.commit_step(_record(1, tokens=2), _pair(1, "c1", "a.txt"))
    memory.commit_step(_record(2, tokens=3), _pair(2, "c2", "b.txt"))

    assert [m.content for m in memory.messages[:2]] == ["system prompt", "the goal"]
    assert len(memory) == 6
    assert [r.output for r in memory.tool_results()] == ["a.txt", "b.txt"]
    assert memory.token_usage().total_tokens == 10
    assert memory.total_duration() == pytest.approx(2.0)
    assert memory.last_observation() == "b.txt"
    assert memory.summary() == "Messages: 6 | Steps: 2 | Tokens: 10 (5 in, 5 out)"


def test_seed_only_once() -> None:
    """A second seed is an invariant violation."""

    memory = Memory()
    memory.seed("s", "g")
    with pytest.raises(InternalError):
        memory.seed("s", "g")


def test_commit_rejects_out_of_order_steps() -> None:
    """Steps must be committed in sequence and carry their own step index."""

    memory = Memory()
    memory.seed("s", "g")
    with pytest.raises(InternalError, match="out of order"):
        memory.commit_step(_record(2), [])
    with pytest.raises(InternalError, match="committed with step 1"):
        memory.commit_step(_record(1), _pair(3, "c1", "x"))
    assert len(memory) == 2  # nothing was appended


def test_commit_rejects_orphan_results() -> None:
    """A tool result must follow the request it answers, within the same step."""

    memory = Memory()
    memory.seed("s", "g")
    orphan = Message.from_result(ToolCallResult(call_id="zz", name="ls", output="x"), 1)
    with pytest.raises(InternalError, match="no matching request"):
        memory.commit_step(_record(1), [orphan])
    assert memory.steps == ()


def test_commit_before_seed() -> None:
    """Memory must be seeded before any step."""

    with pytest.raises(InternalError):
        Memory().commit_step(_record(1), [])


def test_view_hook_shapes_snapshot_only() -> None:
    """The view hook changes what the model sees, never the trace."""

    memory = Memory(view=lambda messages: messages[:1] + messages[-1:])
    memory.seed("s", "g")
    memory.commit_step(_record(1), _pair(1, "c1", "out"))

    assert [m.role for m in memory.snapshot()] == [MessageRole.SYSTEM, MessageRole.TOOL]
    assert len(memory.messages) == 4


def test_dump_is_json_compatible() -> None:
    """The trace can be serialised without custom encoders."""

    memory = Memory()
    memory.seed("s", "g")
    memory.commit_step(_record(1), _pair(1, "c1", "out"))
    dumped = memory.dump()

    assert dumped[0] == {"role": "system", "content": "s", "tool_calls": []}
    assert dumped[2]["tool_calls"] == [{"id": "c1", "name": "ls", "arguments": {}}]
    assert dumped[3]["tool_result"]["output"] == "out"


def test_last_observation_empty() -> None:
    """A run that never produced output has no partial result."""

    memory = Memory()
    memory.seed("s", "g")
    assert memory.last_observation() is None
