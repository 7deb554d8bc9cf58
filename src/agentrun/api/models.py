"""
Pydantic models for agentrun API requests and responses.
This module defines the request and response schemas used by the agentrun API.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    """Goal to run an agent on."""

    goal: str = Field(..., min_length=1, description="What the agent should accomplish")
    agent_type: Literal["tool_calling", "code"] = Field(
        "tool_calling", description="Agent variant to run"
    )
    max_steps: Optional[int] = Field(None, ge=1, description="Step budget (default from settings)")


class TokenUsageResponse(BaseModel):
    """Aggregated token counts of a run."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class RunSummary(BaseModel):
    """Outcome of a run, without its trace."""

    run_id: str
    goal: str
    agent_type: str
    status: str
    final_value: Any = None
    partial_value: Any = None
    error: Optional[str] = None
    step_count: int
    token_usage: TokenUsageResponse
    duration: float


class RunDetail(RunSummary):
    """Outcome of a run with the full message trace."""

    messages: List[Dict[str, Any]] = Field(default_factory=list)
