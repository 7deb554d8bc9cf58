"""Terminal output helpers shared by the CLI and the API launcher."""

from enum import Enum
from typing import (
    Any,
    Optional,
    Tuple,
)

from agentrun.core.schema import (
    StepRecord,
    ToolCallRequest,
    ToolCallResult,
)

RESET = "\033[0m"


class AnsiColors(Enum):
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use
        args, kwargs: Passed on to ``print``
    """
    print(f"{color.value}{text}{RESET}", *args, **kwargs)


def describe_event(event: Any) -> Optional[Tuple[str, AnsiColors]]:
    """
    One-line rendering of a run event, or ``None`` for events without one.

    Requests are shown as ``-> name(args)``, results as ``<- name: observation`` (yellow when the
    call failed) and committed steps by their summary.
    """
    if isinstance(event, ToolCallRequest):
        return f"-> {event.name}({event.arguments_json()})", AnsiColors.BLUE
    if isinstance(event, ToolCallResult):
        color = AnsiColors.GREY if event.ok else AnsiColors.YELLOW
        return f"<- {event.name}: {event.observation}", color
    if isinstance(event, StepRecord):
        return event.summary(), AnsiColors.GREY
    return None
