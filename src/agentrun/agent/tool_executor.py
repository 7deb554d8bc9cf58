"""Dispatches tool call requests against a :class:`ToolRegistry` and wraps errors."""

import asyncio
import inspect
import logging
import time
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from pydantic import ValidationError

from agentrun.core.errors import (
    InternalError,
    ToolError,
    ToolErrorKind,
)
from agentrun.core.schema import (
    ToolCallRequest,
    ToolCallResult,
)
from agentrun.tools import (
    Tool,
    ToolRegistry,
)
from agentrun.tools.tool_call_parser import (
    ToolCallParseError,
    decode_arguments,
)

logger = logging.getLogger(__name__)


def format_validation_error(exc: ValidationError) -> str:
    """One line per problem, using the parameter names the model sent."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "arguments"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)


class ToolExecutor:
    """
    Resolve, validate and invoke tool call requests.

    Every outcome the model can act on (unknown tool, undecodable or invalid arguments, declared
    :class:`ToolError`, timeout) becomes a failed :class:`ToolCallResult`.  Any other exception
    raised by a tool is wrapped in :class:`InternalError` and propagated.
    """

    def __init__(self, registry: ToolRegistry, timeout: float | None = None) -> None:
        self.registry = registry
        self.timeout = timeout

    async def execute(self, request: ToolCallRequest) -> ToolCallResult:
        """
        Run one request.

        Returns
        -------
        ToolCallResult
            Carrying either the tool output or a failure description.

        Raises
        ------
        InternalError
            If the tool raised something other than :class:`ToolError`.
        """
        start = time.perf_counter()
        try:
            logger.debug("Executing tool '%s' with args=%s", request.name, request.arguments)
            output = await self._invoke(request)
        except ToolError as exc:
            logger.debug("Tool '%s' failed (%s): %s", request.name, exc.kind.value, exc)
            return ToolCallResult(
                call_id=request.id,
                name=request.name,
                error=str(exc),
                error_kind=exc.kind,
                duration=time.perf_counter() - start,
            )
        except Exception as exc:
            logger.exception("Unhandled error in tool '%s'", request.name)
            raise InternalError(f"Tool '{request.name}' raised an undeclared error: {exc}") from exc

        return ToolCallResult(
            call_id=request.id,
            name=request.name,
            output=output,
            duration=time.perf_counter() - start,
        )

    async def execute_all(
        self,
        requests: Sequence[ToolCallRequest],
        parallel: bool = True,
        max_concurrency: int = 10,
    ) -> List[ToolCallResult]:
        """
        Run several requests and return their results in request order.

        With *parallel* set, up to *max_concurrency* requests run at once.  A failing request never
        cancels its siblings; an internal error is raised once all of them have completed.
        """
        if not parallel or len(requests) < 2:
            return [await self.execute(request) for request in requests]

        semaphore = asyncio.Semaphore(max_concurrency)

        async def bounded(request: ToolCallRequest) -> ToolCallResult:
            async with semaphore:
                return await self.execute(request)

        outcomes = await asyncio.gather(*(bounded(r) for r in requests), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)  # type: ignore[arg-type]

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _resolve(self, name: str) -> Tool:
        tool = self.registry.get(name)
        if tool is None:
            raise ToolError(
                f"Tool '{name}' is not registered. "
                f"Available tools: {', '.join(self.registry.names()) or 'none'}",
                ToolErrorKind.UNKNOWN_TOOL,
            )
        return tool

    def _arguments(self, tool: Tool, request: ToolCallRequest) -> Dict[str, Any]:
        try:
            raw = decode_arguments(request.arguments)
        except ToolCallParseError as exc:
            raise ToolError(
                f"Could not decode arguments for tool '{tool.name}': {exc}", ToolErrorKind.PARSE
            ) from exc
        try:
            return tool.validate_arguments(raw)
        except ValidationError as exc:
            raise ToolError(
                f"Invalid arguments for tool '{tool.name}': {format_validation_error(exc)}",
                ToolErrorKind.INVALID_ARGUMENTS,
            ) from exc

    async def _invoke(self, request: ToolCallRequest) -> Any:
        tool = self._resolve(request.name)
        kwargs = self._arguments(tool, request)
        call = self._call(tool, kwargs)
        if self.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, self.timeout)
        except asyncio.TimeoutError as exc:
            raise ToolError(
                f"Tool '{tool.name}' timed out after {self.timeout}s", ToolErrorKind.TIMEOUT
            ) from exc

    @staticmethod
    async def _call(tool: Tool, kwargs: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(tool.forward):
            return await tool.forward(**kwargs)
        # Synchronous tools run in a worker thread so they never block the event loop.
        # A timed-out thread is abandoned, not killed.
        return await asyncio.to_thread(tool.forward, **kwargs)
