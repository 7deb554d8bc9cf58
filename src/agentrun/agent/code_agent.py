"""Agent whose actions are Python snippets calling tools as functions."""

import asyncio
import logging
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
)

from agentrun.agent.base_agent import (
    PARSE_ERROR_SUFFIX,
    AgentEvent,
    MultiStepAgent,
    StepState,
)
from agentrun.agent.code_executor import (
    CodeOutput,
    FinalAnswerSignal,
    InterpreterError,
    LocalPythonExecutor,
)
from agentrun.agent.config import (
    AgentConfig,
    CompletionPolicy,
)
from agentrun.agent.prompts import code_system_prompt
from agentrun.core.errors import (
    InternalError,
    ModelParseError,
    ToolError,
    ToolErrorKind,
)
from agentrun.core.schema import (
    Message,
    MessageRole,
    ToolCallRequest,
    ToolCallResult,
)
from agentrun.memory import OBSERVATION_PREFIX
from agentrun.models import ToolCatalog
from agentrun.tools import (
    FINAL_ANSWER_TOOL_NAME,
    validate_python_tool_name,
)
from agentrun.tools.tool_call_parser import (
    fix_final_answer_code,
    parse_code_blobs,
)

logger = logging.getLogger(__name__)


def _final_answer(answer: Any = None) -> Any:
    raise FinalAnswerSignal(answer)


class _CodeStepTrace:
    """Tool calls made by one snippet, filled in from the executor thread."""

    def __init__(self, step: int) -> None:
        self.step = step
        self.calls: List[ToolCallRequest] = []
        self.results: List[ToolCallResult] = []
        self.fatal: Optional[InternalError] = None

    def next_id(self) -> str:
        return f"call_{self.step}_{len(self.calls)}"


class CodeAgent(MultiStepAgent):
    """
    Each step the model writes a code block; running it is the action.

    Tools are exposed to the snippet as plain functions.  Every such call still goes through the
    :class:`ToolExecutor` and is recorded as a request/result pair, so the trace has the same shape
    as the tool-calling agent's.  ``final_answer(value)`` inside the code ends the run.
    """

    def __init__(
        self,
        config: AgentConfig,
        authorized_imports: Iterable[str] = (),
        code_block_tags: Tuple[str, str] = ("<code>", "</code>"),
        python_executor: LocalPythonExecutor | None = None,
    ) -> None:
        self.code_block_tags = code_block_tags
        self.python_executor = python_executor or LocalPythonExecutor(authorized_imports)
        super().__init__(config)

    def _validate_tools(self) -> None:
        for item in self.tools:
            validate_python_tool_name(item.name)

    def system_prompt(self) -> str:
        return code_system_prompt(
            self.tools,
            self.python_executor.authorized_imports,
            self.code_block_tags,
            self.config.instructions,
        )

    def _tool_catalog(self) -> Optional[ToolCatalog]:
        # Tools are described in the system prompt as Python functions.
        return None

    def _stop_sequences(self) -> Optional[Sequence[str]]:
        return [OBSERVATION_PREFIX, "Calling tools:"]

    def _prepare_messages(self, messages: List[Message]) -> List[Message]:
        """The model sees its code and the observations, not the individual tool calls."""
        prepared = []
        for message in messages:
            if message.role is MessageRole.TOOL:
                continue
            if message.tool_calls:
                message = message.model_copy(update={"tool_calls": []})
            prepared.append(message)
        return prepared

    def _on_run_start(self) -> None:
        self.python_executor.reset()

    # ------------------------------------------------------------------ #
    # Step
    # ------------------------------------------------------------------ #
    async def _process_message(
        self, message: Message, state: StepState
    ) -> AsyncIterator[AgentEvent]:
        text = message.content or ""
        try:
            code = fix_final_answer_code(parse_code_blobs(text, self.code_block_tags))
        except ModelParseError as exc:
            if self.config.completion_policy is CompletionPolicy.IMPLICIT:
                self._handle_plain_text(message, state)
                return
            logger.debug("No code in model output: %s", exc)
            state.error = str(exc)
            state.add(message)
            state.add(Message.user(f"Error: {exc}\n{PARSE_ERROR_SUFFIX}"))
            return

        logger.debug("Executing code:\n%s", code)
        trace = _CodeStepTrace(state.step)
        self.python_executor.send_tools(self._tool_functions(asyncio.get_running_loop(), trace))

        output: Optional[CodeOutput] = None
        error: Optional[InterpreterError] = None
        try:
            output = await asyncio.to_thread(self.python_executor, code)
        except InterpreterError as exc:
            error = exc
        if trace.fatal is not None:
            raise trace.fatal

        state.tool_names = [call.name for call in trace.calls]
        state.add(message.model_copy(update={"tool_calls": trace.calls}))
        for call, result in zip(trace.calls, trace.results):
            yield call
            state.add(Message.from_result(result))
            yield result

        if error is not None:
            logger.debug("Code execution failed: %s", error)
            state.error = str(error)
            logs = f"Execution logs:\n{error.logs}\n" if error.logs else ""
            state.add(Message.user(f"Error: {error}\n{logs}{PARSE_ERROR_SUFFIX}"))
            return

        assert output is not None
        if output.is_final_answer:
            logger.info("Final answer: %s", output.output)
            state.finish(output.output)
            return

        observation = f"{OBSERVATION_PREFIX}\nExecution logs:\n{output.logs}"
        if output.output is not None:
            observation += f"Last output from code snippet:\n{output.output}"
        state.add(Message.user(observation))

    def _tool_functions(
        self, loop: asyncio.AbstractEventLoop, trace: _CodeStepTrace
    ) -> Dict[str, Callable[..., Any]]:
        functions: Dict[str, Callable[..., Any]] = {}
        for name in self.tools.names():
            if name == FINAL_ANSWER_TOOL_NAME:
                functions[name] = _final_answer
            else:
                functions[name] = self._tool_function(name, loop, trace)
        return functions

    def _tool_function(
        self, name: str, loop: asyncio.AbstractEventLoop, trace: _CodeStepTrace
    ) -> Callable[..., Any]:
        """Wrap tool *name* as a function callable from the executor thread."""
        params = list(self.tools.get(name).input_specs())  # type: ignore[union-attr]

        def call_tool(*args: Any, **kwargs: Any) -> Any:
            if len(args) > len(params):
                raise TypeError(
                    f"{name}() takes {len(params)} positional arguments but {len(args)} were given"
                )
            arguments = dict(zip(params, args))
            for key in arguments.keys() & kwargs.keys():
                raise TypeError(f"{name}() got multiple values for argument '{key}'")
            arguments.update(kwargs)

            request = ToolCallRequest(id=trace.next_id(), name=name, arguments=arguments)
            trace.calls.append(request)
            future = asyncio.run_coroutine_threadsafe(self.executor.execute(request), loop)
            try:
                result = future.result()
            except InternalError as exc:
                # Generated code could catch this; the step re-raises it after execution.
                trace.fatal = exc
                raise
            trace.results.append(result)
            if not result.ok:
                raise ToolError(
                    result.error or "tool failed", result.error_kind or ToolErrorKind.EXECUTION
                )
            return result.output

        call_tool.__name__ = name
        return call_tool
