"""
Registration-time validation of tools.

Run with:
$ pytest -q
"""

import pytest
from conftest import (
    EchoTool,
    ScriptedModel,
    add,
    list_files,
    make_config,
)

from agentrun.agent import (
    CodeAgent,
    ToolCallingAgent,
)
from agentrun.core.errors import ConfigurationError
from agentrun.tools import (
    FINAL_ANSWER_TOOL_NAME,
    Tool,
    ToolRegistry,
    tool,
)


class NamedTool(Tool):
    """Tool whose name is set per instance."""

    description = "Does nothing."
    inputs = {}

    def __init__(self, name: str) -> None:
        self.name = name

    def forward(self) -> None:  # type: ignore[override]
        return None


@pytest.mark.parametrize("name", ["list_files", "search", "web-search", "Tool2", "a"])
def test_valid_names_register(name: str) -> None:
    """Names made of letters, digits, '_' and '-' are accepted."""

    registry = ToolRegistry([NamedTool(name)])
    assert name in registry


@pytest.mark.parametrize("name", ["", "list files", "tab\tname", "new\nline", "dots.name", "é"])
def test_invalid_names_rejected(name: str) -> None:
    """Empty names, whitespace and other characters fail with an 'Invalid Tool name' error."""

    with pytest.raises(ConfigurationError) as exc_info:
        ToolRegistry([NamedTool(name)])
    assert str(exc_info.value).startswith(f"Invalid Tool name '{name}'")


def test_duplicate_names_rejected() -> None:
    """Two tools called 'search' are a configuration error, not a silent override."""

    with pytest.raises(ConfigurationError) as exc_info:
        ToolRegistry([NamedTool("search"), NamedTool("search")])
    assert "search" in str(exc_info.value)
    assert "already registered" in str(exc_info.value)


def test_duplicate_names_fail_agent_construction() -> None:
    """The duplicate is caught when the agent is built, before the model is ever called."""

    model = ScriptedModel([])
    config = make_config(model, [NamedTool("search"), NamedTool("search")])
    with pytest.raises(ConfigurationError):
        ToolCallingAgent(config)
    assert model.calls == []


def test_both_agents_share_name_validation() -> None:
    """An invalid name is rejected with the same error by either agent variant."""

    for cls in (ToolCallingAgent, CodeAgent):
        with pytest.raises(ConfigurationError, match="Invalid Tool name 'bad name'"):
            cls(make_config(ScriptedModel([]), [NamedTool("bad name")]))


def test_code_agent_requires_identifiers() -> None:
    """Hyphens are fine for structured calls but not for functions called from code."""

    ToolCallingAgent(make_config(ScriptedModel([]), [NamedTool("web-search")]))
    with pytest.raises(ConfigurationError, match="Invalid Tool name 'web-search'"):
        CodeAgent(make_config(ScriptedModel([]), [NamedTool("web-search")]))
    with pytest.raises(ConfigurationError, match="Invalid Tool name 'class'"):
        CodeAgent(make_config(ScriptedModel([]), [NamedTool("class")]))


def test_empty_description_rejected() -> None:
    """Every tool must describe itself to the model."""

    item = NamedTool("quiet")
    item.description = "  "
    with pytest.raises(ConfigurationError, match="description"):
        ToolRegistry([item])


def test_bad_input_type_rejected() -> None:
    """Input types outside the authorized set fail at registration."""

    item = NamedTool("typed")
    item.inputs = {"x": {"type": "complex", "description": "nope"}}
    with pytest.raises(ConfigurationError, match="invalid input schema"):
        ToolRegistry([item])


def test_bad_output_type_rejected() -> None:
    """``output_type`` must be one of the authorized types."""

    item = NamedTool("typed")
    item.output_type = "image"
    with pytest.raises(ConfigurationError, match="output_type"):
        ToolRegistry([item])


def test_final_answer_added_once() -> None:
    """The reserved pseudo-tool is appended to the registry when requested."""

    registry = ToolRegistry([list_files], add_final_answer=True)
    assert registry.names() == ["list_files", FINAL_ANSWER_TOOL_NAME]
    assert len(registry) == 2
    assert ToolRegistry([list_files]).names() == ["list_files"]


def test_catalog_shape() -> None:
    """The catalog renders OpenAI-style function definitions with required parameters."""

    registry = ToolRegistry([add, EchoTool()])
    catalog = registry.catalog()
    assert catalog[0] == {
        "type": "function",
        "function": {
            "name": "add",
            "description": "Add two integers.",
            "parameters": {
                "type": "object",
                "properties": {
                    "a": {"description": "First operand", "type": "integer"},
                    "b": {"description": "Second operand", "type": "integer"},
                },
                "required": ["a", "b"],
            },
        },
    }
    echo = catalog[1]["function"]["parameters"]
    assert echo["required"] == ["text"]
    assert echo["properties"]["upper"]["default"] is False


def test_tool_decorator_reads_signature() -> None:
    """Types come from annotations, descriptions from the docstring."""

    @tool(name="greet")
    def _greet(who: str, times: int = 1, loud: bool | None = None) -> str:
        """Greet somebody.

        Args:
            who: Person to greet
            times: How often

        Returns:
            The greeting
        """
        return " ".join([f"hi {who}"] * times)

    assert _greet.name == "greet"
    assert _greet.description == "Greet somebody."
    specs = _greet.input_specs()
    assert specs["who"].type == "string" and specs["who"].required
    assert specs["times"].type == "integer" and specs["times"].default == 1
    assert specs["loud"].nullable and not specs["loud"].required
    assert _greet.output_type == "string"
    assert _greet.signature() == (
        "greet(who: string, times: integer = 1, loud: boolean | null = None) -> string"
    )


def test_argument_validation_is_strict() -> None:
    """Arguments are checked against the declared types; extra fields are refused."""

    assert add.validate_arguments({"a": 1, "b": 2}) == {"a": 1, "b": 2}
    for bad in ({"a": "1", "b": 2}, {"a": 1}, {"a": 1, "b": 2, "c": 3}):
        with pytest.raises(ValueError):
            add.validate_arguments(bad)
