"""
HTTP front end for agentrun.

It exposes the following endpoints:
- **GET /health**         - liveness check.
- **POST /runs**          - run an agent on a goal: {"goal": "...", "agent_type": "code"}.
- **GET /runs**           - list finished runs (without their traces).
- **GET /runs/{run_id}**  - one run including its message trace.
"""

import logging
import uuid
from typing import (
    Dict,
    List,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)

from agentrun.agent import (
    AgentConfig,
    build_agent,
)
from agentrun.api.models import (
    RunDetail,
    RunRequest,
    RunSummary,
)
from agentrun.common import (
    AnsiColors,
    colored_print,
)
from agentrun.config import settings
from agentrun.core.errors import ConfigurationError
from agentrun.models import (
    ModelAdapter,
    load_model,
)
from agentrun.tools import Tool
from agentrun.tools.filesystem import default_tools

logger = logging.getLogger(__name__)

# Run storage (in-memory, lost on restart)
runs: Dict[str, RunDetail] = {}

app = FastAPI(title="agentrun API", version="0.1.0", description="Multi-step tool-using agents")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_model() -> ModelAdapter:
    """Model adapter for the configured provider."""
    try:
        return load_model(settings.MODEL_PROVIDER)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_tools() -> List[Tool]:
    """Filesystem tools rooted at the configured working directory."""
    return default_tools(settings.WORKDIR)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/runs", response_model=RunDetail, summary="Run an agent on a goal")
async def create_run(
    req: RunRequest,
    model: ModelAdapter = Depends(get_model),
    tools: List[Tool] = Depends(get_tools),
) -> RunDetail:
    """Run an agent to completion and return its outcome and trace."""
    overrides = {} if req.max_steps is None else {"max_steps": req.max_steps}
    try:
        config = AgentConfig.from_settings(settings, model=model, tools=tools, **overrides)
        agent = build_agent(config, req.agent_type)
    except ConfigurationError as exc:
        logger.warning("Rejected run: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    result = await agent.arun(req.goal)

    run_id = str(uuid.uuid4())
    detail = RunDetail(
        run_id=run_id,
        goal=req.goal,
        agent_type=req.agent_type,
        messages=result.memory.dump(),
        **result.summary(),
    )
    runs[run_id] = detail
    logger.info("Run %s ended with status %s", run_id, result.status.value)
    return detail


@app.get("/runs", response_model=List[RunSummary], summary="List runs")
async def list_runs() -> List[RunSummary]:
    """List all recorded runs, oldest first."""
    return [RunSummary(**detail.model_dump(exclude={"messages"})) for detail in runs.values()]


@app.get("/runs/{run_id}", response_model=RunDetail, summary="Get one run")
async def get_run(run_id: str) -> RunDetail:
    """Return a recorded run with its message trace."""
    detail = runs.get(run_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Unknown run '{run_id}'")
    return detail


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the agentrun API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of library-only use
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting agentrun API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    secrets = {"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}
    logger.debug("API settings: %s", settings.model_dump(exclude=secrets))

    colored_print(f"agentrun API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "agentrun.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
