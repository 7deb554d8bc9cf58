"""Command-line entry point and its exit codes."""

from pathlib import Path

import pytest
from conftest import (
    ScriptedModel,
    call,
    reply,
)

from agentrun import main as cli
from agentrun.agent import config as agent_config
from agentrun.config import settings


def _use_model(monkeypatch: pytest.MonkeyPatch, model: ScriptedModel) -> None:
    monkeypatch.setattr(agent_config, "load_model", lambda name=None, **kwargs: model)


def _exit_code(argv: list) -> int:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)
    return exc_info.value.code


def test_finished_run_exits_zero(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """The final answer is printed and the exit status is 0."""

    (tmp_path / "notes.txt").write_text("hello\n")
    model = ScriptedModel(
        [
            reply(None, call("ls", "c1")),
            reply(None, call("final_answer", "c2", answer="notes.txt")),
        ]
    )
    _use_model(monkeypatch, model)

    assert _exit_code(["--goal", "what is here?", "--workdir", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "<- ls: notes.txt" in out
    assert "Final answer: notes.txt" in out


def test_budget_exhausted_exits_one(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Any run that did not finish exits with status 1 and shows the last observation."""

    _use_model(monkeypatch, ScriptedModel([reply(None, call("ls"))], repeat_last=True))

    argv = ["--goal", "loop", "--workdir", str(tmp_path), "--max-steps", "2"]
    assert _exit_code(argv) == 1
    out = capsys.readouterr().out
    assert "Run budget_exhausted" in out
    assert "Last observation: (empty directory)" in out


def test_usage_errors_exit_two(tmp_path: Path) -> None:
    """A missing goal or working directory is a usage error."""

    assert _exit_code(["--workdir", str(tmp_path)]) == 2
    assert _exit_code(["--goal", "x", "--workdir", str(tmp_path / "absent")]) == 2


def test_missing_credentials_exit_two(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """A provider without an API key is reported as a configuration error."""

    monkeypatch.setattr(settings, "MODEL_PROVIDER", "openai")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert _exit_code(["--goal", "x", "--workdir", str(tmp_path)]) == 2
