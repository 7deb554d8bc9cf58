"""
Runs of the code agent against a scripted model.

Run with:
$ pytest -q
"""

from conftest import (
    ScriptedModel,
    add,
    explode,
    list_files,
    make_config,
    open_file,
    reply,
)

from agentrun.agent import (
    CodeAgent,
    CompletionPolicy,
    RunStatus,
    run_agent,
)
from agentrun.core.errors import (
    InternalError,
    ToolErrorKind,
)
from agentrun.core.schema import MessageRole
from agentrun.memory import OBSERVATION_PREFIX


def _code(body: str) -> str:
    return f"Thought: doing it.\n<code>\n{body}\n</code>"


def test_tool_calls_inside_code_are_recorded() -> None:
    """Calls made by the snippet are recorded as request/result pairs, then the observation."""

    model = ScriptedModel(
        [
            reply(_code("files = list_files()\nprint(len(files))")),
            reply(_code("final_answer(files[0])")),
        ]
    )
    result = run_agent("list files", make_config(model, [list_files]), agent_type="code")

    assert result.status is RunStatus.FINISHED
    assert result.final_value == "a.txt"  # state persisted between steps
    assistant = result.messages[2]
    assert [c.name for c in assistant.tool_calls] == ["list_files"]
    assert assistant.tool_calls[0].id == "call_1_0"
    assert result.messages[3].role is MessageRole.TOOL
    observation = result.messages[4]
    assert observation.role is MessageRole.USER
    assert observation.content == f"{OBSERVATION_PREFIX}\nExecution logs:\n2\n"


def test_model_sees_observations_not_tool_messages() -> None:
    """Tool messages are kept out of the model's view and no catalog is sent."""

    model = ScriptedModel(
        [
            reply(_code("print(add(2, b=3))")),
            reply(_code("final_answer('done')")),
        ]
    )
    result = run_agent("add", make_config(model, [add]), agent_type="code")

    assert result.status is RunStatus.FINISHED
    second_view = model.calls[1]
    assert all(m.role is not MessageRole.TOOL for m in second_view)
    assert all(not m.tool_calls for m in second_view)
    assert second_view[-1].content.endswith("Execution logs:\n5\n")
    assert model.catalogs == [None, None]
    assert model.stops[0] == [OBSERVATION_PREFIX, "Calling tools:"]


def test_python_stubs_in_system_prompt() -> None:
    """Tools are described to the model as Python functions."""

    agent = CodeAgent(make_config(ScriptedModel([]), [add]))
    prompt = agent.system_prompt()
    assert "def add(a: int, b: int) -> int:" in prompt
    assert "def final_answer(answer: Any) -> Any:" in prompt
    assert "<code>" in prompt


def test_declared_tool_failure_is_recoverable() -> None:
    """An uncaught ToolError becomes an error message and the run goes on."""

    model = ScriptedModel(
        [
            reply(_code("open_file('missing.txt')")),
            reply(_code("final_answer('recovered')")),
        ]
    )
    result = run_agent("read", make_config(model, [open_file]), agent_type="code")

    assert result.status is RunStatus.FINISHED
    (failure,) = result.memory.tool_results()
    assert failure.error_kind is ToolErrorKind.EXECUTION
    error_message = result.messages[4]
    assert error_message.role is MessageRole.USER
    assert "file not found: missing.txt" in error_message.content


def test_caught_tool_failure_continues_the_snippet() -> None:
    """Generated code may handle a declared failure itself."""

    body = (
        "try:\n"
        "    open_file('x')\n"
        "except Exception as exc:\n"
        "    print('handled', exc)\n"
        "final_answer('ok')"
    )
    model = ScriptedModel([reply(_code(body))])
    result = run_agent("read", make_config(model, [open_file]), agent_type="code")

    assert result.status is RunStatus.FINISHED
    assert result.final_value == "ok"


def test_undeclared_tool_error_is_fatal_even_if_caught() -> None:
    """An internal tool failure fails the run, whatever the snippet does with it."""

    body = "try:\n    explode()\nexcept Exception:\n    pass\nfinal_answer('hidden')"
    model = ScriptedModel([reply(_code(body))])
    result = run_agent("boom", make_config(model, [explode]), agent_type="code")

    assert result.status is RunStatus.FAILED
    assert isinstance(result.error, InternalError)


def test_code_errors_are_recoverable() -> None:
    """Exceptions and forbidden imports are reported to the model."""

    model = ScriptedModel(
        [
            reply(_code("import subprocess")),
            reply(_code("print('partial')\nundefined_name")),
            reply(_code("final_answer(1)")),
        ]
    )
    result = run_agent("go", make_config(model), agent_type="code")

    assert result.status is RunStatus.FINISHED
    errors = [m.content for m in result.messages if m.role is MessageRole.USER and m.step]
    assert "Import of subprocess is not allowed" in errors[0]
    assert "NameError" in errors[1]
    assert "Execution logs:\npartial\n" in errors[1]


def test_missing_code_block_explicit_and_implicit() -> None:
    """Without code, explicit completion asks again; implicit completion finishes."""

    model = ScriptedModel([reply("The answer is 4."), reply(_code("final_answer(4)"))])
    result = run_agent("2+2", make_config(model), agent_type="code")
    assert result.status is RunStatus.FINISHED
    assert result.step_count == 2
    assert "Your code snippet is invalid" in result.messages[3].content

    model = ScriptedModel([reply("The answer is 4.")])
    config = make_config(model, completion_policy=CompletionPolicy.IMPLICIT)
    result = run_agent("2+2", config, agent_type="code")
    assert result.status is RunStatus.FINISHED
    assert result.final_value == "The answer is 4."


def test_budget_exhausted_partial_value_is_last_observation() -> None:
    """A cut-off code run reports the last observation."""

    model = ScriptedModel([reply(_code("print('still going')"))], repeat_last=True)
    result = run_agent("loop", make_config(model, max_steps=2), agent_type="code")

    assert result.status is RunStatus.BUDGET_EXHAUSTED
    assert result.step_count == 2
    assert result.partial_value == f"{OBSERVATION_PREFIX}\nExecution logs:\nstill going\n"


def test_authorized_imports_and_fresh_state_per_run() -> None:
    """Extra imports can be allowed; each run starts with an empty namespace."""

    first = "import fractions\nkept = fractions.Fraction(1, 2)\nfinal_answer(str(kept))"
    model = ScriptedModel(
        [
            reply(_code(first)),
            reply(_code("final_answer('kept' in globals())")),
        ]
    )
    agent = CodeAgent(make_config(model), authorized_imports=["fractions"])
    assert agent.run("half").final_value == "1/2"
    assert agent.run("again").final_value is False
