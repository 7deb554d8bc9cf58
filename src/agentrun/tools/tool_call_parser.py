"""
Parsers that pull calls out of free-form model text.

Two shapes are supported:

* Text tool calls, for models without native function calling.  The model writes one or more
  objects such as ``{"name": "<tool>", "arguments": { ... }}`` (``tool``/``args`` are accepted as
  aliases) anywhere in its reply.
* Code blocks, for the code agent: ``<code> ... </code>`` or a fenced ``python`` block.
"""

import json
import re
from typing import (
    Any,
    Dict,
    List,
    Tuple,
)

from agentrun.core.errors import ModelParseError
from agentrun.core.schema import ToolCallRequest


class ToolCallParseError(ModelParseError):
    """Raised when text looks like a tool call but cannot be decoded."""


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
_QUOTE_SET = {"'", '"'}
_NAME_KEYS = ("name", "tool")
_ARG_KEYS = ("arguments", "args")


def _read_quoted(s: str, i: int) -> Tuple[str, int]:
    """Read a quoted string starting at ``s[i]``, honouring back-slash escapes."""
    quote = s[i]
    if quote not in _QUOTE_SET:
        raise ToolCallParseError(f"expected quote at pos {i}")
    i += 1
    out: List[str] = []
    esc = False
    while i < len(s):
        ch = s[i]
        if esc:
            out.append(ch)
            esc = False
        elif ch == "\\":
            esc = True
        elif ch == quote:
            return "".join(out), i + 1
        else:
            out.append(ch)
        i += 1
    raise ToolCallParseError("unterminated string literal")


def _find_matching_brace(s: str, i: int) -> int:
    """Given s[i] == '{', return index just past its matching '}'."""
    depth = 0
    while i < len(s):
        ch = s[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        elif ch == '"':
            _, i = _read_quoted(s, i)  # skip over quoted section
            continue  # i already advanced
        i += 1
    raise ToolCallParseError("unbalanced braces")


def extract_json_objects(text: str) -> List[str]:
    """Return the text of every balanced top-level ``{...}`` span in *text*, in order."""
    spans: List[str] = []
    i = 0
    while True:
        start = text.find("{", i)
        if start < 0:
            return spans
        try:
            end = _find_matching_brace(text, start)
        except ToolCallParseError:
            return spans  # trailing fragment, not an object
        spans.append(text[start:end])
        i = end


def _load_object(raw: str) -> Dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolCallParseError(f"invalid JSON in tool call: {exc.msg} (pos {exc.pos})") from exc
    if not isinstance(value, dict):
        raise ToolCallParseError("tool call must be a JSON object")
    return value


def _is_call_object(obj: Dict[str, Any]) -> bool:
    if not any(key in obj for key in _NAME_KEYS):
        return False
    if any(key in obj for key in _ARG_KEYS):
        return True
    return set(obj) <= set(_NAME_KEYS)


def _first_key(obj: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in obj:
            return obj[key]
    return None


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------
def parse_text_tool_calls(text: str, id_prefix: str = "call") -> List[ToolCallRequest]:
    """
    Extract tool calls written as JSON objects inside *text*.

    An object is a call when it carries an argument key, or when a name key is all it has. Other
    objects, such as ``{"name": "Alice", "age": 3}`` in an answer, are ignored.

    Raises
    ------
    ToolCallParseError
        If an object naming a tool is not valid JSON or has malformed fields.
    """
    calls: List[ToolCallRequest] = []
    for raw in extract_json_objects(text):
        if not any(f'"{key}"' in raw for key in _NAME_KEYS):
            continue
        obj = _load_object(raw)
        if not _is_call_object(obj):
            continue
        name = _first_key(obj, _NAME_KEYS)
        if not isinstance(name, str) or not name.strip():
            raise ToolCallParseError("'name' must be a non-empty string")
        arguments = _first_key(obj, _ARG_KEYS)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, (dict, str)):
            raise ToolCallParseError(f"arguments for '{name}' must be an object")
        calls.append(
            ToolCallRequest(
                id=f"{id_prefix}_{len(calls)}", name=name.strip(), arguments=arguments
            )
        )
    return calls


def decode_arguments(arguments: Dict[str, Any] | str) -> Dict[str, Any]:
    """Decode a raw argument payload into a mapping. An empty string means no arguments."""
    if isinstance(arguments, dict):
        return arguments
    if not arguments.strip():
        return {}
    return _load_object(arguments)


def _extract_between(text: str, open_tag: str, close_tag: str) -> str | None:
    pattern = re.compile(f"{re.escape(open_tag)}(.*?){re.escape(close_tag)}", re.DOTALL)
    matches = [match.rstrip() for match in pattern.findall(text)]
    if matches:
        return "\n\n".join(matches)
    return None


def _dedent(code: str) -> str:
    lines = code.split("\n")
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    width = min(indents, default=0)
    if width == 0:
        return code
    return "\n".join(line[width:] for line in lines)


def parse_code_blobs(text: str, code_block_tags: Tuple[str, str] = ("<code>", "</code>")) -> str:
    """
    Return the code contained in *text*.

    The configured tags are tried first, then ```` ```python ```` and ```` ```py ```` fences.
    Several blocks are joined with a blank line.

    Raises
    ------
    ModelParseError
        If no code block is present; the message tells the model how to fix its reply.
    """
    open_tag, close_tag = code_block_tags
    for tags in ((open_tag, close_tag), ("```python", "```"), ("```py", "```")):
        code = _extract_between(text, *tags)
        if code is not None:
            return _dedent(code).strip("\n")

    hint = (
        f"It seems like you're trying to return the final answer, you can do it as follows:\n"
        f'{open_tag}\nfinal_answer("YOUR FINAL ANSWER HERE")\n{close_tag}'
        if "final_answer" in text
        else "Make sure to include code with the correct pattern, for instance:\n"
        f"Thoughts: Your thoughts\n{open_tag}\n# Your python code here\n{close_tag}"
    )
    raise ModelParseError(
        f"Your code snippet is invalid, because the pattern {open_tag}(.*?){close_tag} was not "
        f"found in it.\nHere is your code snippet:\n{text}\n{hint}"
    )


_FINAL_ANSWER_ASSIGN = re.compile(r"(?<![.\w])\bfinal_answer(\s*=)(?!=)")
_FINAL_ANSWER_NAME = re.compile(r"(?<![.\w])\bfinal_answer\b(?!\s*\()")


def fix_final_answer_code(code: str) -> str:
    """Rename a *variable* called ``final_answer`` so it cannot shadow the function."""
    if not _FINAL_ANSWER_ASSIGN.search(code):
        return code
    code = _FINAL_ANSWER_ASSIGN.sub(r"final_answer_variable\1", code)
    return _FINAL_ANSWER_NAME.sub("final_answer_variable", code)
