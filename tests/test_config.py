"""Run configuration, settings and run results."""

import pytest
from conftest import (
    ScriptedModel,
    call,
    make_config,
    reply,
)

from agentrun.agent import (
    AgentConfig,
    CodeAgent,
    CompletionPolicy,
    RetryPolicy,
    RunStatus,
    build_agent,
    run_agent,
)
from agentrun.config import Settings
from agentrun.core.errors import (
    BudgetExceededError,
    ConfigurationError,
)


def test_agent_config_validation() -> None:
    """Invalid limits are configuration errors raised at construction."""

    model = ScriptedModel([])
    with pytest.raises(ConfigurationError, match="requires a model"):
        AgentConfig()
    with pytest.raises(ConfigurationError, match="max_steps"):
        AgentConfig(model=model, max_steps=0)
    with pytest.raises(ConfigurationError, match="step_timeout"):
        AgentConfig(model=model, step_timeout=0)
    with pytest.raises(ConfigurationError, match="max_tool_threads"):
        AgentConfig(model=model, max_tool_threads=0)


def test_retry_delays() -> None:
    """Backoff doubles from the base delay and is capped."""

    policy = RetryPolicy()
    assert [policy.delay(n) for n in range(1, 7)] == [0.5, 1.0, 2.0, 4.0, 8.0, 8.0]


def test_from_settings() -> None:
    """Settings provide the defaults and explicit overrides win."""

    model = ScriptedModel([])
    settings = Settings(
        COMPLETION_POLICY="IMPLICIT", MAX_STEPS=4, STEP_TIMEOUT=2.5, MODEL_MAX_RETRIES=1
    )
    config = AgentConfig.from_settings(settings, model=model, stream_outputs=True)

    assert config.model is model
    assert config.completion_policy is CompletionPolicy.IMPLICIT
    assert config.max_steps == 4
    assert config.step_timeout == 2.5
    assert config.retry.max_retries == 1
    assert config.stream_outputs is True

    assert AgentConfig.from_settings(settings, model=model, max_steps=9).max_steps == 9
    with pytest.raises(ConfigurationError, match="Unknown completion policy"):
        AgentConfig.from_settings(Settings(COMPLETION_POLICY="sometimes"), model=model)


def test_build_agent() -> None:
    """Agent variants are chosen by name."""

    config = make_config(ScriptedModel([]))
    assert isinstance(build_agent(config, "code"), CodeAgent)
    with pytest.raises(ConfigurationError, match="Unknown agent type"):
        build_agent(config, "planner")


def test_run_result_summary_and_raise() -> None:
    """Summaries are JSON-compatible; failures are raised only on request."""

    model = ScriptedModel([reply("thinking", call("add", a=1, b=2))], repeat_last=True)
    result = run_agent("loop", make_config(model, max_steps=1))

    assert result.status is RunStatus.BUDGET_EXHAUSTED
    assert not result.succeeded
    summary = result.summary()
    assert summary["status"] == "budget_exhausted"
    assert summary["error"].startswith("BudgetExceededError: Reached max steps (1)")
    assert summary["step_count"] == 1
    with pytest.raises(BudgetExceededError):
        result.raise_for_status()

    finished = run_agent(
        "finish", make_config(ScriptedModel([reply(None, call("final_answer", answer=3))]))
    )
    assert finished.raise_for_status() is finished
    assert finished.summary()["final_value"] == 3
