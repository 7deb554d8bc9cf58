"""
Default filesystem tools: ``ls``, ``read``, ``write``, ``edit``, ``find`` and ``grep``.

Every tool is rooted at a working directory.  Relative paths are resolved against it and paths
that escape it are refused.  Outputs are plain text, truncated so a single call cannot flood the
model context.
"""

import logging
import os
import re
from contextlib import contextmanager
from pathlib import (
    Path,
    PurePosixPath,
)
from typing import (
    Iterator,
    List,
    Optional,
)

from agentrun.core.errors import ToolError
from agentrun.tools.base import Tool

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 2000
DEFAULT_MAX_BYTES = 50 * 1024
GREP_MAX_LINE_LENGTH = 500
LS_DEFAULT_LIMIT = 500
FIND_DEFAULT_LIMIT = 1000
GREP_DEFAULT_LIMIT = 100


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob with ``**`` support into a regex over ``/``-separated paths."""
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def _matches(relative: str, regex: re.Pattern[str], pattern: str) -> bool:
    # Patterns without a directory part match the file name at any depth.
    target = relative if "/" in pattern else PurePosixPath(relative).name
    return regex.match(target) is not None


def _is_binary(data: bytes) -> bool:
    return b"\x00" in data[:1000]


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ToolError(f"limit must be a positive integer, got {limit}")


@contextmanager
def _declared_io_errors(path: str) -> Iterator[None]:
    """Report operating-system and decoding failures on *path* as tool failures."""
    try:
        yield
    except UnicodeDecodeError as exc:
        raise ToolError(f"File is not valid UTF-8 text: {path}") from exc
    except OSError as exc:
        raise ToolError(f"Cannot access {path}: {exc.strerror or exc}") from exc


class FileSystemTool(Tool):
    """Base for tools that operate below a root directory."""

    output_type = "string"

    def __init__(self, cwd: str | os.PathLike = ".") -> None:
        self.cwd = Path(cwd).resolve()

    def _resolve(self, path: str) -> Path:
        resolved = (self.cwd / path).resolve()
        if resolved != self.cwd and self.cwd not in resolved.parents:
            raise ToolError(f"Path is outside the working directory: {path}")
        return resolved

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.cwd).as_posix()

    def _walk(self, root: Path) -> Iterator[Path]:
        """Yield files below *root* in sorted order, skipping symlinks."""
        if root.is_file():
            yield root
            return
        for dirpath, dirs, files in os.walk(root, followlinks=False):
            dirs.sort()
            for name in sorted(files):
                candidate = Path(dirpath) / name
                if not candidate.is_symlink():
                    yield candidate


class LsTool(FileSystemTool):
    """List a directory."""

    name = "ls"
    description = (
        "List directory contents. Returns entries sorted alphabetically, with '/' suffix for "
        f"directories. Includes dotfiles. Output is truncated to {LS_DEFAULT_LIMIT} entries."
    )
    inputs = {
        "path": {"type": "string", "description": "Directory to list", "default": "."},
        "limit": {
            "type": "integer",
            "description": "Maximum number of entries to return",
            "default": LS_DEFAULT_LIMIT,
        },
    }

    def forward(  # type: ignore[override]
        self, path: str = ".", limit: int = LS_DEFAULT_LIMIT
    ) -> str:
        _check_limit(limit)
        dir_path = self._resolve(path)
        if not dir_path.is_dir():
            raise ToolError(f"Directory not found: {path}")

        with _declared_io_errors(path):
            entries = sorted(dir_path.iterdir(), key=lambda p: p.name.lower())
            lines = [f"{p.name}/" if p.is_dir() else p.name for p in entries[:limit]]
        if not lines:
            return "(empty directory)"
        text = "\n".join(lines)
        if len(entries) > limit:
            text += f"\n\n[{limit} entries limit reached]"
        return text


class ReadTool(FileSystemTool):
    """Read a text file, a window of lines at a time."""

    name = "read"
    description = (
        "Read the contents of a file. Output is truncated to "
        f"{DEFAULT_MAX_LINES} lines or {DEFAULT_MAX_BYTES // 1024}KB (whichever is hit first). "
        "Use offset/limit for large files; continue with offset until complete."
    )
    inputs = {
        "path": {"type": "string", "description": "Path to the file to read"},
        "offset": {
            "type": "integer",
            "description": "Line number to start reading from (1-indexed)",
            "nullable": True,
        },
        "limit": {
            "type": "integer",
            "description": "Maximum number of lines to read",
            "nullable": True,
        },
    }

    def forward(  # type: ignore[override]
        self, path: str, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> str:
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise ToolError(f"File not found: {path}")

        with _declared_io_errors(path):
            data = file_path.read_bytes()
        if _is_binary(data):
            size = len(data)
            size_str = f"{size / 1024:.1f}KB" if size > 1024 else f"{size}B"
            return f"Read binary file ({size_str})"

        lines = data.decode("utf-8", errors="replace").splitlines(keepends=True)
        total = len(lines)
        start = max((offset or 1) - 1, 0)
        if total and start >= total:
            raise ToolError(f"Offset {offset} is beyond file length of {total} lines")

        count = min(total - start, DEFAULT_MAX_LINES)
        if limit is not None:
            count = min(count, max(limit, 0))
        text = "".join(lines[start : start + count])

        encoded = text.encode("utf-8")
        if len(encoded) > DEFAULT_MAX_BYTES:
            cut = encoded[:DEFAULT_MAX_BYTES]
            last_newline = cut.rfind(b"\n")
            if last_newline > 0:
                cut = cut[: last_newline + 1]
            text = cut.decode("utf-8", errors="ignore")
            count = text.count("\n") + (1 if text and not text.endswith("\n") else 0)

        shown = start + count
        if shown < total:
            text += (
                f"\n\n[Showing lines {start + 1}-{shown} of {total}. "
                f"{total - shown} more lines. Use offset={shown + 1} to continue.]"
            )
        return text


class WriteTool(FileSystemTool):
    """Create or overwrite a file."""

    name = "write"
    description = (
        "Write content to a file. Creates the file if it doesn't exist, overwrites it if it does. "
        "Parent directories are created automatically."
    )
    inputs = {
        "path": {"type": "string", "description": "Path to the file to write"},
        "content": {"type": "string", "description": "Content to write to the file"},
    }

    def forward(self, path: str, content: str) -> str:  # type: ignore[override]
        file_path = self._resolve(path)
        with _declared_io_errors(path):
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
        logger.debug("Wrote %d bytes to %s", len(content), file_path)
        return f"Successfully wrote {len(content.encode('utf-8'))} bytes to {path}"


class EditTool(FileSystemTool):
    """Replace one exact occurrence of a text in a file."""

    name = "edit"
    description = (
        "Edit a file by replacing exact text. old_text must match exactly (including whitespace) "
        "and only its first occurrence is replaced. Use this for precise, surgical edits."
    )
    inputs = {
        "path": {"type": "string", "description": "Path to the file to edit"},
        "old_text": {"type": "string", "description": "Exact text to find and replace"},
        "new_text": {"type": "string", "description": "New text to replace the old text with"},
    }

    def forward(self, path: str, old_text: str, new_text: str) -> str:  # type: ignore[override]
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise ToolError(f"File not found: {path}")
        if not old_text:
            raise ToolError("old_text must not be empty")

        with _declared_io_errors(path):
            content = file_path.read_text(encoding="utf-8")
            if old_text not in content:
                raise ToolError(f"Text not found in {path}: {old_text}")
            file_path.write_text(content.replace(old_text, new_text, 1), encoding="utf-8")
        return f"Successfully replaced text in {path}"


class FindTool(FileSystemTool):
    """Find files by glob pattern."""

    name = "find"
    description = (
        "Search for files by glob pattern. Returns matching file paths relative to the working "
        f"directory. Output is truncated to {FIND_DEFAULT_LIMIT} results."
    )
    inputs = {
        "pattern": {
            "type": "string",
            "description": (
                "Glob pattern to match files, e.g. '*.py', '**/*.json' or 'src/**/test_*.py'"
            ),
        },
        "path": {"type": "string", "description": "Directory to search in", "default": "."},
        "limit": {
            "type": "integer",
            "description": "Maximum number of results",
            "default": FIND_DEFAULT_LIMIT,
        },
    }

    def forward(  # type: ignore[override]
        self, pattern: str, path: str = ".", limit: int = FIND_DEFAULT_LIMIT
    ) -> str:
        _check_limit(limit)
        root = self._resolve(path)
        if not root.exists():
            raise ToolError(f"Directory not found: {path}")

        regex = _glob_to_regex(pattern)
        matches: List[str] = []
        for candidate in self._walk(root):
            relative = candidate.relative_to(root).as_posix() if root.is_dir() else candidate.name
            if _matches(relative, regex, pattern):
                matches.append(self._relative(candidate))
                if len(matches) >= limit:
                    break
        return "\n".join(matches) if matches else "No files found"


class GrepTool(FileSystemTool):
    """Search file contents."""

    name = "grep"
    description = (
        "Search file contents for a pattern. Returns matching lines as <path>:<line>: <text>. "
        f"Output is truncated to {GREP_DEFAULT_LIMIT} matches or {DEFAULT_MAX_BYTES // 1024}KB; "
        f"long lines are truncated to {GREP_MAX_LINE_LENGTH} chars."
    )
    inputs = {
        "pattern": {"type": "string", "description": "Search pattern (regex or literal string)"},
        "path": {
            "type": "string",
            "description": "Directory or file to search",
            "default": ".",
        },
        "glob": {
            "type": "string",
            "description": "Filter files by glob pattern, e.g. '*.py' or '**/test_*.py'",
            "nullable": True,
        },
        "ignore_case": {
            "type": "boolean",
            "description": "Case-insensitive search",
            "default": False,
        },
        "literal": {
            "type": "boolean",
            "description": "Treat pattern as a literal string instead of a regex",
            "default": False,
        },
        "context": {
            "type": "integer",
            "description": "Number of lines to show before and after each match",
            "default": 0,
        },
        "limit": {
            "type": "integer",
            "description": "Maximum number of matches to return",
            "default": GREP_DEFAULT_LIMIT,
        },
    }

    def forward(  # type: ignore[override]
        self,
        pattern: str,
        path: str = ".",
        glob: Optional[str] = None,
        ignore_case: bool = False,
        literal: bool = False,
        context: int = 0,
        limit: int = GREP_DEFAULT_LIMIT,
    ) -> str:
        _check_limit(limit)
        root = self._resolve(path)
        if not root.exists():
            raise ToolError(f"File not found: {path}")
        try:
            regex = re.compile(
                re.escape(pattern) if literal else pattern, re.IGNORECASE if ignore_case else 0
            )
        except re.error as exc:
            raise ToolError(f"Invalid regex pattern: {exc}") from exc
        glob_regex = _glob_to_regex(glob) if glob else None

        output: List[str] = []
        used_bytes = 0
        match_count = 0
        for candidate in self._walk(root):
            if match_count >= limit or used_bytes >= DEFAULT_MAX_BYTES:
                break
            relative = self._relative(candidate)
            if glob_regex is not None and not _matches(relative, glob_regex, glob or ""):
                continue
            lines = self._text_lines(candidate)
            if lines is None:
                continue

            emitted: set[int] = set()
            for index, line in enumerate(lines):
                if match_count >= limit:
                    break
                if not regex.search(line):
                    continue
                match_count += 1
                lo, hi = max(index - context, 0), min(index + context + 1, len(lines))
                for shown in range(lo, hi):
                    if shown in emitted:
                        continue
                    emitted.add(shown)
                    text = lines[shown]
                    if len(text) > GREP_MAX_LINE_LENGTH:
                        text = text[:GREP_MAX_LINE_LENGTH] + "..."
                    entry = f"{relative}:{shown + 1}: {text}"
                    used_bytes += len(entry.encode("utf-8")) + 1
                    if used_bytes > DEFAULT_MAX_BYTES:
                        break
                    output.append(entry)

        if not output:
            return "No matches found"
        text = "\n".join(output)
        if match_count >= limit:
            text += (
                f"\n\n[{limit} matches limit reached. Use limit={limit * 2} for more, "
                "or refine pattern]"
            )
        return text

    @staticmethod
    def _text_lines(path: Path) -> Optional[List[str]]:
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.debug("Skipping unreadable file %s: %s", path, exc)
            return None
        if _is_binary(data):
            return None
        try:
            return data.decode("utf-8").splitlines()
        except UnicodeDecodeError:
            return None


def default_tools(cwd: str | os.PathLike = ".") -> List[Tool]:
    """The six filesystem tools rooted at *cwd*."""
    return [
        LsTool(cwd),
        ReadTool(cwd),
        WriteTool(cwd),
        EditTool(cwd),
        FindTool(cwd),
        GrepTool(cwd),
    ]
