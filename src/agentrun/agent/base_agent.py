"""
Shared agent loop.

A run is a strict sequence of steps.  Each step asks the model for the next action, lets the
concrete agent act on it, then commits every message the step produced to memory in one call::

    Idle -> Running -> Finished | Failed | Budget-Exhausted

Recoverable problems (tool failures, unknown tools, bad arguments, parse errors) are written to
memory for the model to see and the loop continues.  Fatal problems (transport failures after the
last retry, refused content, undeclared tool exceptions, broken invariants) end the run with
status ``FAILED`` and the error attached to the :class:`RunResult`.
"""

import asyncio
import logging
import time
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    AsyncIterator,
    List,
    Optional,
    Sequence,
    Union,
)

from agentrun.agent.config import (
    AgentConfig,
    CompletionPolicy,
)
from agentrun.agent.prompts import NO_TOOL_CALL_REMINDER
from agentrun.agent.result import (
    RunResult,
    RunStatus,
)
from agentrun.agent.tool_executor import ToolExecutor
from agentrun.core.errors import (
    BudgetExceededError,
    InternalError,
    ModelError,
    ModelParseError,
    ModelTransportError,
)
from agentrun.core.schema import (
    Message,
    MessageDelta,
    StepRecord,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
)
from agentrun.memory import Memory
from agentrun.models import (
    ModelAdapter,
    ToolCatalog,
    agglomerate_deltas,
)
from agentrun.tools import ToolRegistry

logger = logging.getLogger(__name__)

AgentEvent = Union[MessageDelta, ToolCallRequest, ToolCallResult, StepRecord, RunResult]

PARSE_ERROR_SUFFIX = "Now let's retry: take care not to repeat previous errors!"


class StepState:
    """Mutable scratch space of the step in progress. Nothing here reaches memory until commit."""

    def __init__(self, step: int) -> None:
        self.step = step
        self.start_time = time.time()
        self.messages: List[Message] = []
        self.tool_names: List[str] = []
        self.token_usage: Optional[TokenUsage] = None
        self.error: Optional[str] = None
        self.is_final_answer = False
        self.final_value: Any = None
        self.committed = False

    def add(self, message: Message) -> None:
        """Buffer *message* for this step."""
        self.messages.append(message.model_copy(update={"step": self.step}))

    def finish(self, value: Any) -> None:
        """Mark the step as the one that produced the final answer."""
        self.is_final_answer = True
        self.final_value = value

    def record(self) -> StepRecord:
        """Step metadata as of now."""
        return StepRecord(
            step=self.step,
            start_time=self.start_time,
            end_time=time.time(),
            token_usage=self.token_usage,
            tool_names=self.tool_names,
            error=self.error,
            is_final_answer=self.is_final_answer,
        )


class MultiStepAgent(ABC):
    """
    Base class for agents that solve a goal step by step.

    Subclasses provide the system prompt and decide what a model reply means
    (:meth:`_process_message`); retries, timeouts, budget, memory and events are handled here.
    """

    def __init__(self, config: AgentConfig) -> None:
        self.config = config
        self.model: ModelAdapter = config.model  # type: ignore[assignment]
        self.tools = ToolRegistry(config.tools, add_final_answer=config.add_base_tools)
        self._validate_tools()
        self.executor = ToolExecutor(self.tools, timeout=config.step_timeout)
        self.memory: Optional[Memory] = None

    def _validate_tools(self) -> None:
        """Extra construction-time checks on the registry. Default: none."""

    @abstractmethod
    def system_prompt(self) -> str:
        """Prompt seeded as the first message of every run."""

    @abstractmethod
    def _process_message(self, message: Message, state: StepState) -> AsyncIterator[AgentEvent]:
        """Act on the model reply of one step, buffering messages in *state* and yielding events."""

    def _tool_catalog(self) -> Optional[ToolCatalog]:
        """Catalog passed to the model with each request."""
        return self.tools.catalog()

    def _stop_sequences(self) -> Optional[Sequence[str]]:
        return None

    def _prepare_messages(self, messages: List[Message]) -> List[Message]:
        """Shape the memory snapshot before it is sent to the model."""
        return messages

    def _on_run_start(self) -> None:
        """Reset per-run state. Default: nothing to reset."""

    # ------------------------------------------------------------------ #
    # Public entry points
    # ------------------------------------------------------------------ #
    def run(self, goal: str) -> RunResult:
        """Run the agent to completion and return the result (blocking)."""
        return asyncio.run(self.arun(goal))

    async def arun(self, goal: str) -> RunResult:
        """Run the agent to completion and return the result."""
        result: Optional[RunResult] = None
        async for event in self.astream(goal):
            if isinstance(event, RunResult):
                result = event
        if result is None:
            raise InternalError("agent stream ended without a result")
        return result

    async def astream(self, goal: str) -> AsyncIterator[AgentEvent]:
        """
        Run the agent, yielding events as they happen.

        Yields :class:`MessageDelta` fragments (streaming only), each :class:`ToolCallRequest` and
        :class:`ToolCallResult`, a :class:`StepRecord` per committed step and finally the
        :class:`RunResult`.  Cancelling the consumer cancels the run; the step in progress is
        discarded as a whole.
        """
        memory = Memory(view=self.config.memory_view)
        memory.seed(self.system_prompt(), goal)
        self.memory = memory
        self._on_run_start()
        run_start = time.time()
        max_steps = self.config.max_steps
        logger.info("Starting run with %r (max %d steps): %s", self.model, max_steps, goal)

        status: Optional[RunStatus] = None
        final_value: Any = None
        error: Optional[BaseException] = None

        for step in range(1, max_steps + 1):
            logger.info("Step %d/%d", step, max_steps)
            state = StepState(step)
            try:
                async for event in self._run_step(memory, state):
                    yield event
                record = self._commit(memory, state)
            except (ModelError, InternalError) as exc:
                error = exc
            except Exception as exc:  # noqa: BLE001
                error = InternalError(f"Unexpected {type(exc).__name__}: {exc}")
                error.__cause__ = exc

            if error is not None:
                logger.error("Run failed at step %d: %s", step, error)
                self._commit_failed_step(memory, state, error)
                status = RunStatus.FAILED
                break

            self._notify(record)
            yield record
            if state.is_final_answer:
                status = RunStatus.FINISHED
                final_value = state.final_value
                break

        partial_value = None
        if status is None:
            status = RunStatus.BUDGET_EXHAUSTED
            error = BudgetExceededError(
                f"Reached max steps ({max_steps}) without a final answer"
            )
            partial_value = memory.last_observation()
            logger.warning("%s", error)

        result = RunResult(
            status=status,
            final_value=final_value,
            partial_value=partial_value,
            error=error,
            memory=memory,
            step_count=len(memory.steps),
            token_usage=memory.token_usage(),
            duration=time.time() - run_start,
        )
        logger.info("Run %s after %d steps | %s", status.value, result.step_count, memory.summary())
        yield result

    # ------------------------------------------------------------------ #
    # Step internals
    # ------------------------------------------------------------------ #
    async def _run_step(self, memory: Memory, state: StepState) -> AsyncIterator[AgentEvent]:
        message: Optional[Message] = None
        try:
            async for event in self._generate(memory):
                if isinstance(event, Message):
                    message = event
                else:
                    yield event
        except ModelParseError as exc:
            logger.debug("Model output could not be parsed: %s", exc)
            state.error = str(exc)
            state.add(Message.user(f"Error: {exc}\n{PARSE_ERROR_SUFFIX}"))
            return

        if message is None:
            raise InternalError("model produced no message")
        state.token_usage = message.token_usage
        logger.debug("Model replied: %s", message.content)
        async for event in self._process_message(message, state):
            yield event

    async def _generate(self, memory: Memory) -> AsyncIterator[Union[MessageDelta, Message]]:
        """Yield stream fragments (if streaming) and then the complete message, with retries."""
        policy = self.config.retry
        messages = self._prepare_messages(memory.snapshot())
        catalog = self._tool_catalog()
        stop = self._stop_sequences()
        attempt = 0
        while True:
            attempt += 1
            try:
                if self.config.stream_outputs:
                    deltas: List[MessageDelta] = []
                    async for delta in self._stream(messages, catalog, stop):
                        deltas.append(delta)
                        yield delta
                    message = agglomerate_deltas(deltas)
                else:
                    message = await self._with_timeout(
                        self.model.generate(messages, catalog, stop)
                    )
            except ModelTransportError as exc:
                if attempt > policy.max_retries:
                    raise
                delay = policy.delay(attempt)
                logger.warning(
                    "Model call failed (%s); retry %d/%d in %.2fs",
                    exc,
                    attempt,
                    policy.max_retries,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            yield message
            return

    async def _with_timeout(self, call: Any) -> Message:
        timeout = self.config.step_timeout
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise ModelTransportError(f"Model call timed out after {timeout}s") from exc

    async def _stream(
        self,
        messages: List[Message],
        catalog: Optional[ToolCatalog],
        stop: Optional[Sequence[str]],
    ) -> AsyncIterator[MessageDelta]:
        timeout = self.config.step_timeout
        stream = self.model.generate_stream(messages, catalog, stop)
        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            while True:
                remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
                try:
                    delta = await asyncio.wait_for(stream.__anext__(), remaining)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError as exc:
                    raise ModelTransportError(f"Model stream timed out after {timeout}s") from exc
                yield delta
        finally:
            await stream.aclose()  # type: ignore[attr-defined]

    def _handle_plain_text(self, message: Message, state: StepState) -> None:
        """Apply the completion policy to a reply without any call."""
        state.add(message)
        if self.config.completion_policy is CompletionPolicy.IMPLICIT:
            state.finish(message.content)
            return
        state.add(Message.user(NO_TOOL_CALL_REMINDER))

    # ------------------------------------------------------------------ #
    # Commit helpers
    # ------------------------------------------------------------------ #
    def _commit(self, memory: Memory, state: StepState) -> StepRecord:
        record = state.record()
        state.committed = True
        memory.commit_step(record, state.messages)
        logger.debug("%s", record.summary())
        return record

    def _commit_failed_step(self, memory: Memory, state: StepState, error: BaseException) -> None:
        """Record what the failed step produced, unless the failure was the commit itself."""
        if state.committed:
            return
        state.error = f"{type(error).__name__}: {error}"
        try:
            self._commit(memory, state)
        except InternalError:
            logger.exception("Could not record failed step %d", state.step)

    def _notify(self, record: StepRecord) -> None:
        for callback in self.config.step_callbacks:
            try:
                callback(record)
            except Exception:  # noqa: BLE001
                logger.exception("Step callback %r failed", callback)
