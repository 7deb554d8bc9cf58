"""System prompts and tool catalog rendering for the two agent variants."""

from typing import (
    Iterable,
    List,
    Optional,
)

from agentrun.tools import Tool

TOOL_CALLING_SYSTEM_PROMPT = """\
You are an expert assistant who can solve any task using tool calls.
You will be given a task to solve as best you can.
To do so, you have been given access to the tools listed below.

Each step, call one or more tools. The result of every call will be sent back to you as an
observation, and you can use it as input for the next step. Independent calls can be made in the
same step; they may run concurrently.

When you have the answer, call the `final_answer` tool, alone in its step, with the answer.

Available tools:
{tools}
"""

CODE_SYSTEM_PROMPT = """\
You are an expert assistant who can solve any task using code blobs.
You will be given a task to solve as best you can.
To do so, you have been given access to a list of tools: these tools are Python functions you can
call with code.

Each step, write a short explanation of what you are doing, then the code itself in a single
block between '{open_tag}' and '{close_tag}'. Use print() to see intermediate results; whatever you
print will be shown to you in the next step as an observation. Variables and imports persist
between steps.

Once you have the answer, return it with the `final_answer` function:
{open_tag}
final_answer("YOUR FINAL ANSWER HERE")
{close_tag}

You can only import from these modules: {authorized_imports}

The following functions are available:
```python
{tools}
```
"""

NO_TOOL_CALL_REMINDER = (
    "You did not call any tool. If the task is complete, call `final_answer` with your answer; "
    "otherwise continue working with the available tools."
)

_PYTHON_TYPE_NAMES = {
    "string": "str",
    "number": "float",
    "integer": "int",
    "boolean": "bool",
    "object": "dict",
    "dict": "dict",
    "array": "list",
    "any": "Any",
}


def render_tool_list(tools: Iterable[Tool]) -> str:
    """One line per tool: signature and description."""
    return "\n".join(f"- {item.signature()}: {item.description}" for item in tools)


def python_stub(item: Tool) -> str:
    """Render *item* as a Python function stub with a Google-style docstring."""
    params: List[str] = []
    arg_docs: List[str] = []
    for param, spec in item.input_specs().items():
        annotation = _PYTHON_TYPE_NAMES[spec.type]
        if spec.nullable:
            annotation += " | None"
        text = f"{param}: {annotation}"
        if spec.has_default:
            text += f" = {spec.default!r}"
        elif spec.nullable:
            text += " = None"
        params.append(text)
        arg_docs.append(f"        {param}: {spec.description}")

    returns = _PYTHON_TYPE_NAMES.get(item.output_type, "Any")
    lines = [
        f"def {item.name}({', '.join(params)}) -> {returns}:",
        f'    """{item.description}',
    ]
    if arg_docs:
        lines += ["", "    Args:", *arg_docs]
    if item.output_description:
        lines += ["", "    Returns:", f"        {item.output_description}"]
    lines.append('    """')
    return "\n".join(lines)


def tool_calling_system_prompt(tools: Iterable[Tool], instructions: Optional[str] = None) -> str:
    """System prompt for the tool-calling agent."""
    prompt = TOOL_CALLING_SYSTEM_PROMPT.format(tools=render_tool_list(tools))
    if instructions:
        prompt += f"\n{instructions.strip()}\n"
    return prompt


def code_system_prompt(
    tools: Iterable[Tool],
    authorized_imports: Iterable[str],
    code_block_tags: tuple[str, str],
    instructions: Optional[str] = None,
) -> str:
    """System prompt for the code agent, with every tool rendered as a Python stub."""
    stubs = "\n\n".join(python_stub(item) for item in tools)
    prompt = CODE_SYSTEM_PROMPT.format(
        open_tag=code_block_tags[0],
        close_tag=code_block_tags[1],
        authorized_imports=", ".join(sorted(authorized_imports)),
        tools=stubs,
    )
    if instructions:
        prompt += f"\n{instructions.strip()}\n"
    return prompt

