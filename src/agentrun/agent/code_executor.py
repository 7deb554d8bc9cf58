"""
Local Python executor for the code agent.

Generated code runs with :func:`exec` in a namespace that persists across the steps of one run.
Before execution the code is parsed with :mod:`ast` and every import is checked against an allow
list.  This is a guard rail, not a sandbox: the code runs in the agent's own process.
"""

import ast
import io
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Mapping,
    NamedTuple,
    Optional,
)

from agentrun.core.errors import AgentError

logger = logging.getLogger(__name__)

BASE_BUILTIN_MODULES = (
    "collections",
    "datetime",
    "itertools",
    "json",
    "math",
    "queue",
    "random",
    "re",
    "stat",
    "statistics",
    "time",
    "unicodedata",
)

MAX_PRINT_OUTPUT_LENGTH = 50_000


class InterpreterError(AgentError):
    """Generated code could not be parsed, imported something forbidden, or raised."""

    def __init__(self, message: str, logs: str = "") -> None:
        super().__init__(message)
        self.logs = logs


class FinalAnswerSignal(BaseException):
    """Raised by ``final_answer`` inside generated code to stop execution with a value.

    Derives from :class:`BaseException` so ``except Exception`` in generated code cannot catch it.
    """

    def __init__(self, value: Any) -> None:
        super().__init__(value)
        self.value = value


class CodeOutput(NamedTuple):
    """Result of one execution."""

    output: Any
    logs: str
    is_final_answer: bool


def truncate_content(content: str, max_length: int = MAX_PRINT_OUTPUT_LENGTH) -> str:
    """Keep the head and tail of *content* when it is longer than *max_length*."""
    if len(content) <= max_length:
        return content
    half = max_length // 2
    return (
        content[:half]
        + f"\n..._This content has been truncated to stay below {max_length} characters_...\n"
        + content[-half:]
    )


class LocalPythonExecutor:
    """Execute code snippets in a persistent namespace."""

    def __init__(
        self,
        authorized_imports: Iterable[str] = (),
        max_print_outputs_length: int = MAX_PRINT_OUTPUT_LENGTH,
    ) -> None:
        self.authorized_imports = sorted(set(BASE_BUILTIN_MODULES) | set(authorized_imports))
        self.max_print_outputs_length = max_print_outputs_length
        self.state: Dict[str, Any] = {}
        self._functions: Dict[str, Callable[..., Any]] = {}

    def send_tools(self, functions: Mapping[str, Callable[..., Any]]) -> None:
        """Expose *functions* to generated code under their mapping keys."""
        self._functions = dict(functions)

    def reset(self) -> None:
        """Forget every variable defined by previous snippets."""
        self.state = {}

    def _is_authorized(self, module: str) -> bool:
        if "*" in self.authorized_imports:
            return True
        parts = module.split(".")
        for allowed in self.authorized_imports:
            if allowed.endswith(".*") and (
                module == allowed[:-2] or module.startswith(allowed[:-1])
            ):
                return True
            if allowed == module or allowed == parts[0]:
                return True
        return False

    def check_imports(self, tree: ast.AST) -> None:
        """Raise :class:`InterpreterError` for any import outside the allow list."""
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                modules = [alias.name for alias in node.names]
            elif isinstance(node, ast.ImportFrom):
                modules = [node.module or ""]
            else:
                continue
            for module in modules:
                if not self._is_authorized(module):
                    raise InterpreterError(
                        f"Import of {module} is not allowed. Authorized imports are: "
                        f"{self.authorized_imports}"
                    )

    def __call__(self, code: str) -> CodeOutput:
        """
        Run *code* and return the value of its trailing expression and what it printed.

        Raises
        ------
        InterpreterError
            For syntax errors, forbidden imports and exceptions raised by the code.
        """
        try:
            tree = ast.parse(code, mode="exec")
        except SyntaxError as exc:
            pointer = " " * max((exc.offset or 1) - 1, 0) + "^"
            raise InterpreterError(
                f"Code parsing failed on line {exc.lineno} due to: {type(exc).__name__}\n"
                f"{(exc.text or '').rstrip()}\n{pointer}\nError: {exc.msg}"
            ) from exc
        self.check_imports(tree)

        trailing: Optional[ast.Expression] = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            trailing = ast.Expression(body=tree.body.pop().value)
            ast.fix_missing_locations(trailing)

        buffer = io.StringIO()

        def _print(*values: Any, sep: str = " ", end: str = "\n", **_: Any) -> None:
            buffer.write(sep.join(str(value) for value in values) + end)

        namespace = self.state
        namespace.update(self._functions)
        namespace["print"] = _print

        def logs() -> str:
            return truncate_content(buffer.getvalue(), self.max_print_outputs_length)

        try:
            exec(compile(tree, "<agent-code>", "exec"), namespace)  # pylint: disable=exec-used
            value = None
            if trailing is not None:
                expression = compile(trailing, "<agent-code>", "eval")
                value = eval(expression, namespace)  # pylint: disable=eval-used
        except FinalAnswerSignal as signal:
            return CodeOutput(output=signal.value, logs=logs(), is_final_answer=True)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Generated code raised %s: %s", type(exc).__name__, exc)
            raise InterpreterError(
                f"Code execution failed: {type(exc).__name__}: {exc}", logs=logs()
            ) from exc
        return CodeOutput(output=value, logs=logs(), is_final_answer=False)
