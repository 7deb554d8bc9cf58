"""Agent that acts through structured, schema-validated tool calls."""

import logging
from typing import AsyncIterator

from agentrun.agent.base_agent import (
    PARSE_ERROR_SUFFIX,
    AgentEvent,
    MultiStepAgent,
    StepState,
)
from agentrun.agent.prompts import tool_calling_system_prompt
from agentrun.core.errors import (
    ModelParseError,
    ToolErrorKind,
)
from agentrun.core.schema import (
    Message,
    ToolCallResult,
)
from agentrun.tools import FINAL_ANSWER_TOOL_NAME

logger = logging.getLogger(__name__)

FINAL_ANSWER_NOT_ALONE = (
    f"'{FINAL_ANSWER_TOOL_NAME}' must be the only tool call in its step; "
    "none of the calls in this step were run."
)


class ToolCallingAgent(MultiStepAgent):
    """
    Each step the model returns zero or more tool calls.

    Calls run through the :class:`ToolExecutor` (concurrently when ``parallel_tool_calls`` is on)
    and their results are recorded in the order the model requested them.  A lone ``final_answer``
    call ends the run with its ``answer`` argument.
    """

    def system_prompt(self) -> str:
        return tool_calling_system_prompt(self.tools, self.config.instructions)

    async def _process_message(
        self, message: Message, state: StepState
    ) -> AsyncIterator[AgentEvent]:
        try:
            message = self.model.parse_tool_calls(message)
        except ModelParseError as exc:
            logger.debug("Could not parse tool calls: %s", exc)
            state.error = str(exc)
            state.add(message)
            state.add(Message.user(f"Error: {exc}\n{PARSE_ERROR_SUFFIX}"))
            return

        calls = message.tool_calls
        if not calls:
            self._handle_plain_text(message, state)
            return

        state.add(message)
        state.tool_names = [call.name for call in calls]
        for call in calls:
            logger.debug("Tool call requested: %s(%s)", call.name, call.arguments_json())
            yield call

        if any(call.name == FINAL_ANSWER_TOOL_NAME for call in calls) and len(calls) > 1:
            state.error = FINAL_ANSWER_NOT_ALONE
            results = [
                ToolCallResult(
                    call_id=call.id,
                    name=call.name,
                    error=FINAL_ANSWER_NOT_ALONE,
                    error_kind=ToolErrorKind.PARSE,
                )
                for call in calls
            ]
        else:
            results = await self.executor.execute_all(
                calls,
                parallel=self.config.parallel_tool_calls,
                max_concurrency=self.config.max_tool_threads,
            )
            if calls[0].name == FINAL_ANSWER_TOOL_NAME and results[0].ok:
                logger.info("Final answer: %s", results[0].output)
                state.finish(results[0].output)
                return

        for result in results:
            logger.debug("Observation from '%s': %s", result.name, result.observation)
            state.add(Message.from_result(result))
            yield result
