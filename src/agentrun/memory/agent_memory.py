"""
In-memory conversation trace for one agent run.

Memory is append-only.  A step's messages are committed together by :meth:`Memory.commit_step`
after the step has fully completed, so a cancelled step never leaves a partial record behind.
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from pydantic_core import to_jsonable_python

from agentrun.core.errors import InternalError
from agentrun.core.schema import (
    Message,
    MessageRole,
    StepRecord,
    TokenUsage,
    ToolCallResult,
)

logger = logging.getLogger(__name__)

OBSERVATION_PREFIX = "Observation:"
"""Prefix of user-role messages that report the outcome of executed code."""

MessageView = Callable[[Sequence[Message]], Sequence[Message]]
"""Hook that shapes what the model sees (e.g. truncation); it never mutates memory."""


class Memory:
    """Ordered record of system prompt, goal, model turns, tool results and step metadata."""

    def __init__(self, view: Optional[MessageView] = None) -> None:
        self._messages: List[Message] = []
        self._steps: List[StepRecord] = []
        self._view = view

    # ------------------------------------------------------------------ #
    # Writing
    # ------------------------------------------------------------------ #
    def seed(self, system_prompt: str, goal: str) -> None:
        """Record the system framing and the user goal. Only valid on an empty memory."""
        if self._messages:
            raise InternalError("memory has already been seeded")
        self._messages.extend([Message.system(system_prompt), Message.user(goal)])

    def commit_step(self, record: StepRecord, messages: Sequence[Message]) -> None:
        """
        Append the messages produced by one step, all or nothing.

        Raises
        ------
        InternalError
            If the batch is out of sequence or a tool result has no matching request.
        """
        if not self._messages:
            raise InternalError("cannot commit a step before the memory is seeded")
        expected = len(self._steps) + 1
        if record.step != expected:
            raise InternalError(f"step {record.step} committed out of order (expected {expected})")

        requested: set[str] = set()
        for message in messages:
            if message.step != record.step:
                raise InternalError(
                    f"message for step {message.step} committed with step {record.step}"
                )
            requested.update(call.id for call in message.tool_calls)
            if message.tool_result is not None and message.tool_result.call_id not in requested:
                raise InternalError(
                    f"tool result '{message.tool_result.call_id}' has no matching request"
                )

        self._messages.extend(messages)
        self._steps.append(record)
        logger.debug("Committed %s (%d messages)", record.summary(), len(messages))

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #
    @property
    def messages(self) -> Tuple[Message, ...]:
        """Every recorded message in causal order."""
        return tuple(self._messages)

    @property
    def steps(self) -> Tuple[StepRecord, ...]:
        """Metadata of every committed step."""
        return tuple(self._steps)

    def snapshot(self) -> List[Message]:
        """Messages to send to the model, shaped by the optional view hook."""
        if self._view is None:
            return list(self._messages)
        return list(self._view(tuple(self._messages)))

    def tool_results(self) -> List[ToolCallResult]:
        """Results of every tool invocation, in the order they were recorded."""
        return [msg.tool_result for msg in self._messages if msg.tool_result is not None]

    def token_usage(self) -> TokenUsage:
        """Aggregated usage over all committed steps."""
        total = TokenUsage()
        for record in self._steps:
            if record.token_usage is not None:
                total = total + record.token_usage
        return total

    def total_duration(self) -> float:
        """Seconds spent in committed steps."""
        return sum(record.duration for record in self._steps)

    def last_observation(self) -> Optional[str]:
        """Most recent tool output or model text, used as the partial result of a cut-off run."""
        for message in reversed(self._messages):
            if message.role in (MessageRole.TOOL, MessageRole.ASSISTANT) and message.content:
                return message.content
            if (
                message.role is MessageRole.USER
                and message.step is not None
                and (message.content or "").startswith(OBSERVATION_PREFIX)
            ):
                return message.content
        return None

    def summary(self) -> str:
        """Short description for logs."""
        parts = [f"Messages: {len(self._messages)}", f"Steps: {len(self._steps)}"]
        usage = self.token_usage()
        parts.append(
            f"Tokens: {usage.total_tokens} ({usage.input_tokens} in, {usage.output_tokens} out)"
        )
        return " | ".join(parts)

    def dump(self) -> List[Dict[str, Any]]:
        """JSON-compatible copy of the trace."""
        return [
            to_jsonable_python(message, exclude_none=True, serialize_unknown=True)
            for message in self._messages
        ]

    def __len__(self) -> int:
        return len(self._messages)
