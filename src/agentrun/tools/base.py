"""
Tool contract for agentrun.

A tool is a named, schema-described callable.  Its inputs are declared as an ordered mapping of
parameter name to :class:`ToolInput`; the loop validates model-supplied arguments against a pydantic
model built from that mapping before calling :meth:`Tool.forward`.
"""

import inspect
import keyword
import re
import types
import typing
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Type,
    get_type_hints,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    create_model,
)

from agentrun.core.errors import ConfigurationError

TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
FINAL_ANSWER_TOOL_NAME = "final_answer"

InputType = Literal["string", "number", "integer", "boolean", "object", "array", "any"]
AUTHORIZED_TYPES = ("string", "number", "integer", "boolean", "object", "array", "any", "dict")

_PYTHON_TYPES: Dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "object": Dict[str, Any],
    "array": List[Any],
    "any": Any,
}


class ToolInput(BaseModel):
    """Description of one tool parameter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: InputType
    description: str
    default: Any = None
    nullable: bool = False
    enum: Optional[List[str]] = None
    items: Optional["ToolInput"] = None

    @property
    def has_default(self) -> bool:
        """True when a default was declared (``None`` included)."""
        return "default" in self.model_fields_set

    @property
    def required(self) -> bool:
        """A parameter with no default that is not nullable must be supplied."""
        return not self.has_default and not self.nullable

    def python_type(self) -> Any:
        """The annotation used for argument validation."""
        if self.enum:
            annotation: Any = Literal[tuple(self.enum)]  # type: ignore[misc]
        elif self.type == "array" and self.items is not None:
            annotation = List[self.items.python_type()]  # type: ignore[misc]
        else:
            annotation = _PYTHON_TYPES[self.type]
        if self.nullable:
            annotation = Optional[annotation]
        return annotation

    def json_schema(self) -> Dict[str, Any]:
        """Render the parameter as a JSON-schema fragment for the model catalog."""
        schema: Dict[str, Any] = {"description": self.description}
        if self.type != "any":
            schema["type"] = self.type
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type == "array" and self.items is not None:
            schema["items"] = self.items.json_schema()
        if self.has_default:
            schema["default"] = self.default
        return schema


ToolInput.model_rebuild()


class Tool(ABC):
    """
    Base class for every tool.

    Subclasses set ``name``, ``description`` and ``inputs`` and implement :meth:`forward`, either
    as a plain method or a coroutine.  ``forward`` raises
    :class:`~agentrun.core.errors.ToolError` to report a failure the model should see; any other
    exception aborts the run.
    """

    name: str = ""
    description: str = ""
    inputs: Mapping[str, ToolInput | Mapping[str, Any]] = {}
    output_type: str = "any"
    output_description: Optional[str] = None
    output_schema: Optional[Mapping[str, Any]] = None

    _input_specs: Optional[Dict[str, ToolInput]] = None
    _argument_model: Optional[Type[BaseModel]] = None

    @abstractmethod
    def forward(self, **kwargs: Any) -> Any:
        """Run the tool with validated keyword arguments."""

    # ------------------------------------------------------------------ #
    # Schema helpers
    # ------------------------------------------------------------------ #
    def input_specs(self) -> Dict[str, ToolInput]:
        """Inputs normalised to :class:`ToolInput` instances, declaration order preserved."""
        if self._input_specs is None:
            self._input_specs = {
                param: spec if isinstance(spec, ToolInput) else ToolInput.model_validate(spec)
                for param, spec in self.inputs.items()
            }
        return self._input_specs

    def argument_model(self) -> Type[BaseModel]:
        """Strict pydantic model used to validate call arguments."""
        if self._argument_model is None:
            fields: Dict[str, Any] = {}
            for index, (param, spec) in enumerate(self.input_specs().items()):
                if spec.has_default:
                    default = spec.default
                elif spec.nullable:
                    default = None
                else:
                    default = ...
                # Internal field names avoid clashes with BaseModel attributes.
                fields[f"arg_{index}"] = (spec.python_type(), Field(default, alias=param))
            self._argument_model = create_model(  # type: ignore[call-overload]
                f"{self.__class__.__name__}Arguments",
                __config__=ConfigDict(strict=True, extra="forbid"),
                **fields,
            )
        return self._argument_model

    def validate_arguments(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        """Return keyword arguments for :meth:`forward`; raises pydantic ``ValidationError``."""
        parsed = self.argument_model().model_validate(dict(arguments))
        return parsed.model_dump(by_alias=True)

    def to_dict(self) -> Dict[str, Any]:
        """Function definition in the shape chat providers expect."""
        properties = {param: spec.json_schema() for param, spec in self.input_specs().items()}
        parameters: Dict[str, Any] = {"type": "object", "properties": properties}
        required = [param for param, spec in self.input_specs().items() if spec.required]
        if required:
            parameters["required"] = required
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }

    def signature(self) -> str:
        """Compact signature, e.g. ``read(path: string, limit: integer | null)``."""
        params = []
        for param, spec in self.input_specs().items():
            text = f"{param}: {spec.type}"
            if spec.nullable:
                text += " | null"
            if spec.has_default:
                text += f" = {spec.default!r}"
            params.append(text)
        return f"{self.name}({', '.join(params)}) -> {self.output_type}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name!r}>"


class FinalAnswerTool(Tool):
    """Reserved pseudo-tool the model calls to end a run."""

    name = FINAL_ANSWER_TOOL_NAME
    description = "Provides the final answer to the user. Must be called when the task is complete."
    inputs = {"answer": {"type": "any", "description": "The final answer to return to the user"}}
    output_type = "any"

    def forward(self, answer: Any = None) -> Any:  # type: ignore[override]
        return answer


class FunctionTool(Tool):
    """A :class:`Tool` backed by a plain (or async) function."""

    def __init__(
        self,
        fn: Callable[..., Any],
        name: str,
        description: str,
        inputs: Dict[str, ToolInput],
        output_type: str = "any",
    ) -> None:
        self._fn = fn
        self.name = name
        self.description = description
        self.inputs = inputs
        self.output_type = output_type
        if inspect.iscoroutinefunction(fn):
            self.forward = self._forward_async  # type: ignore[method-assign]

    def forward(self, **kwargs: Any) -> Any:
        return self._fn(**kwargs)

    async def _forward_async(self, **kwargs: Any) -> Any:
        return await self._fn(**kwargs)


# ---------------------------------------------------------------------------
# Building tools from functions
# ---------------------------------------------------------------------------
def _annotation_to_input_type(annotation: Any) -> tuple[str, bool, Optional[List[str]]]:
    """Map a Python annotation to (input type, nullable, enum)."""
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin in (typing.Union, types.UnionType) and args:
        non_null = [arg for arg in args if arg is not type(None)]
        nullable = len(non_null) != len(args)
        if len(non_null) == 1:
            kind, _, enum = _annotation_to_input_type(non_null[0])
            return kind, nullable, enum
        return "any", nullable, None
    if origin is Literal:
        return "string", False, [str(arg) for arg in args]
    base = origin or annotation
    mapping = {str: "string", int: "integer", float: "number", bool: "boolean"}
    if base in mapping:
        return mapping[base], False, None
    if base in (dict, Dict, Mapping):
        return "object", False, None
    if base in (list, List, tuple):
        return "array", False, None
    return "any", False, None


def _parse_docstring(doc: str) -> tuple[str, Dict[str, str]]:
    """Split a Google-style docstring into (summary, {param: description})."""
    summary_lines: List[str] = []
    params: Dict[str, str] = {}
    section = "summary"
    for raw in inspect.cleandoc(doc).splitlines():
        line = raw.strip()
        if line in {"Args:", "Arguments:", "Parameters:"}:
            section = "args"
            continue
        if line.endswith(":") and " " not in line:
            section = "other"  # Returns:, Raises:, ...
            continue
        if section == "args":
            name, sep, text = line.partition(":")
            if sep and name.strip().isidentifier():
                params[name.strip()] = text.strip()
        elif section == "summary":
            summary_lines.append(line)
    return " ".join(part for part in summary_lines if part).strip(), params


def tool(name: str | None = None) -> Callable[[Callable[..., Any]], FunctionTool]:
    """
    Turn an annotated function into a :class:`Tool`.

    The function can be used like this::

        @tool()
        def list_files(path: str = ".") -> list:
            \"\"\"List a directory.

            Args:
                path: Directory to list
            \"\"\"

    Parameter types come from the annotations, descriptions from the docstring.
    """

    def wrapper(fn: Callable[..., Any]) -> FunctionTool:
        summary, param_docs = _parse_docstring(fn.__doc__ or "")
        sig = inspect.signature(fn)
        type_hints = get_type_hints(fn)
        inputs: Dict[str, ToolInput] = {}
        for param_name, param in sig.parameters.items():
            kind, nullable, enum = _annotation_to_input_type(type_hints.get(param_name, Any))
            spec: Dict[str, Any] = {
                "type": kind,
                "description": param_docs.get(param_name, ""),
                "nullable": nullable,
                "enum": enum,
            }
            if param.default is not inspect.Parameter.empty:
                spec["default"] = param.default
            inputs[param_name] = ToolInput.model_validate(spec)
        output_kind, _, _ = _annotation_to_input_type(type_hints.get("return", Any))
        return FunctionTool(
            fn,
            name=name or fn.__name__,
            description=summary,
            inputs=inputs,
            output_type=output_kind,
        )

    return wrapper


# ---------------------------------------------------------------------------
# Registration-time validation
# ---------------------------------------------------------------------------
def validate_tool_name(name: Any) -> None:
    """Raise :class:`ConfigurationError` unless *name* is an acceptable tool name."""
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"Invalid Tool name '{name}': name must be a non-empty string")
    if any(ch.isspace() for ch in name):
        raise ConfigurationError(f"Invalid Tool name '{name}': name must not contain whitespace")
    if not TOOL_NAME_PATTERN.match(name):
        raise ConfigurationError(
            f"Invalid Tool name '{name}': only letters, digits, '_' and '-' are allowed"
        )


def validate_python_tool_name(name: str) -> None:
    """Names called from generated code must also be usable as Python identifiers."""
    if not name.isidentifier() or keyword.iskeyword(name):
        raise ConfigurationError(
            f"Invalid Tool name '{name}': must be a valid identifier and not a reserved keyword"
        )


def validate_tool_definition(candidate: Tool) -> None:
    """Check name, description, input and output declarations of *candidate*."""
    if not isinstance(candidate, Tool):
        raise ConfigurationError(f"{candidate!r} does not implement the Tool contract")
    validate_tool_name(candidate.name)
    if not isinstance(candidate.description, str) or not candidate.description.strip():
        raise ConfigurationError(f"Tool '{candidate.name}': description must be a non-empty string")
    try:
        candidate.input_specs()
    except ValidationError as exc:
        raise ConfigurationError(f"Tool '{candidate.name}': invalid input schema: {exc}") from exc
    if candidate.output_type not in AUTHORIZED_TYPES:
        raise ConfigurationError(
            f"Tool '{candidate.name}': output_type '{candidate.output_type}' must be one of "
            f"[{', '.join(AUTHORIZED_TYPES)}]"
        )
    candidate.argument_model()
