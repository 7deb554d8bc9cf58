"""
Tool registry for agentrun.

A :class:`ToolRegistry` is a validated, name-keyed collection of tools built once per agent.  Every
tool is checked when it is registered, so a misconfigured tool fails before the first model call:

    registry = ToolRegistry([ReadTool(cwd), my_function_tool])

Two tools with the same name are rejected rather than silently overriding each other.
"""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
)

from agentrun.core.errors import ConfigurationError
from agentrun.tools.base import (
    FINAL_ANSWER_TOOL_NAME,
    FinalAnswerTool,
    FunctionTool,
    Tool,
    ToolInput,
    tool,
    validate_python_tool_name,
    validate_tool_definition,
    validate_tool_name,
)

logger = logging.getLogger(__name__)

__all__ = [
    "FINAL_ANSWER_TOOL_NAME",
    "FinalAnswerTool",
    "FunctionTool",
    "Tool",
    "ToolInput",
    "ToolRegistry",
    "tool",
    "validate_python_tool_name",
    "validate_tool_definition",
    "validate_tool_name",
]


class ToolRegistry:
    """Name-keyed collection of validated tools."""

    def __init__(self, tools: Iterable[Tool] = (), add_final_answer: bool = False) -> None:
        self._tools: Dict[str, Tool] = {}
        for item in tools:
            self.register(item)
        if add_final_answer and FINAL_ANSWER_TOOL_NAME not in self._tools:
            self.register(FinalAnswerTool())

    def register(self, item: Tool) -> Tool:
        """
        Validate *item* and add it to the registry.

        Raises
        ------
        ConfigurationError
            If the tool is malformed or its name is already taken.
        """
        validate_tool_definition(item)
        if item.name in self._tools:
            raise ConfigurationError(
                f"Invalid Tool name '{item.name}': a tool with this name is already registered"
            )
        logger.debug("Registering tool '%s'", item.name)
        self._tools[item.name] = item
        return item

    def get(self, name: str) -> Optional[Tool]:
        """Return the tool called *name*, or ``None``."""
        return self._tools.get(name)

    def names(self) -> List[str]:
        """Registered names in registration order."""
        return list(self._tools)

    def catalog(self) -> List[Dict[str, Any]]:
        """Model-facing function definitions for every tool."""
        return [item.to_dict() for item in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
