"""
agentrun entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and either runs a single goal
in the terminal or launches the HTTP API.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from agentrun.agent import (
    AgentConfig,
    RunResult,
    RunStatus,
    build_agent,
)
from agentrun.common import (
    AnsiColors,
    colored_print,
    describe_event,
)
from agentrun.config import settings
from agentrun.core.errors import ConfigurationError
from agentrun.core.schema import MessageDelta
from agentrun.tools.filesystem import default_tools

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # SDK clients log every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _print_event(event: Any) -> None:
    if isinstance(event, MessageDelta):
        if event.content:
            print(event.content, end="", flush=True)
    else:
        line = describe_event(event)
        if line is not None:
            colored_print(*line)


async def _run_goal(args: argparse.Namespace) -> RunResult:
    overrides: dict[str, Any] = {"stream_outputs": args.stream}
    if args.max_steps is not None:
        overrides["max_steps"] = args.max_steps
    config = AgentConfig.from_settings(settings, tools=default_tools(args.workdir), **overrides)
    agent = build_agent(config, args.agent)

    result = None
    async for event in agent.astream(args.goal):
        if isinstance(event, RunResult):
            result = event
        else:
            _print_event(event)
    assert result is not None
    return result


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the agentrun application.

    In ``run`` mode the agent works on ``--goal`` and the process exits with status 0 only when the
    run finished with a final answer.  In ``api`` mode the HTTP server is started.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run a multi-step tool-using agent")
    parser.add_argument(
        "--mode",
        choices=["run", "api"],
        type=str.lower,
        default="run",
        help="Run a single goal in the terminal or serve the REST API (default: run)",
    )
    parser.add_argument("--goal", type=str, help="Goal for the agent (run mode)")
    parser.add_argument(
        "--agent",
        choices=["tool_calling", "code"],
        default="tool_calling",
        help="Agent variant (default: %(default)s)",
    )
    parser.add_argument("--max-steps", type=int, default=None, help="Override MAX_STEPS")
    parser.add_argument(
        "--workdir",
        type=str,
        default=settings.WORKDIR,
        help="Root directory for the filesystem tools (default: %(default)s)",
    )
    parser.add_argument("--stream", action="store_true", help="Print model output as it arrives")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting agentrun [%s mode]", args.mode)

    if args.mode == "api":
        # Lazy import to avoid web dependencies if not needed
        from agentrun.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    if not args.goal:
        parser.error("--goal is required in run mode")
    if not Path(args.workdir).is_dir():
        logger.error("Working directory does not exist: %s", args.workdir)
        sys.exit(2)

    try:
        result = asyncio.run(_run_goal(args))
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    if result.status is RunStatus.FINISHED:
        colored_print(f"\nFinal answer: {result.final_value}", AnsiColors.GREEN)
        sys.exit(0)

    colored_print(f"\nRun {result.status.value}: {result.error}", AnsiColors.RED)
    if result.partial_value is not None:
        colored_print(f"Last observation: {result.partial_value}", AnsiColors.YELLOW)
    sys.exit(1)


if __name__ == "__main__":
    main()
