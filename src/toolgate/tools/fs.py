"""
Filesystem tools for Toolgate.

This module provides path-kind tools:
- read: Read file contents
- write: Write content to a file
- edit: Replace text in a file
- ls: List a directory
- glob: Find files by glob pattern
- grep: Search file contents with a regex

Security Note:
    Every tool resolves its path through the PolicyEngine and acts on the
    resolved path, so the path that was checked is the path that is touched.
    Denied calls return before any filesystem access.

    Tools that enumerate (glob, grep) re-check every entry they find and
    silently skip the ones the policy refuses.
"""

import os
import re
from pathlib import Path
from typing import Any

from toolgate.errors import PathDeniedError, ToolExecutionError
from toolgate.patterns import PatternKind
from toolgate.policy import PolicyEngine
from toolgate.tools.base import (
    ToolContext,
    ToolOutput,
    guarded,
    object_schema,
    require_string,
    string_param,
)

MAX_GREP_MATCHES = 1000


def describe_os_error(error: OSError) -> str:
    """
    Describe a filesystem failure without the word the denial contract reserves.

    Examples:
        FileNotFoundError -> "no such file or directory"
        PermissionError   -> "insufficient filesystem permissions"
    """
    if isinstance(error, PermissionError):
        return "insufficient filesystem permissions"
    if isinstance(error, FileNotFoundError):
        return "no such file or directory"
    if isinstance(error, IsADirectoryError):
        return "is a directory"
    if isinstance(error, NotADirectoryError):
        return "not a directory"
    return error.strerror or type(error).__name__


class _PathTool:
    """Shared plumbing for tools whose resource is a filesystem path."""

    name = ""
    description = ""
    kind = PatternKind.PATH
    parameters: dict[str, Any] = {}

    def __init__(self, engine: PolicyEngine) -> None:
        self.engine = engine

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        return require_string(args, "path")

    def _denial(self, path: str) -> Any:
        return lambda decision: PathDeniedError(
            tool=self.name,
            reason=decision.reason,
            rule=decision.rule_matched,
            path=path,
        )

    def _failure(self, args: dict[str, Any], what: str) -> ToolOutput:
        # caller-supplied values stay out of the message; see errors.py
        return ToolOutput.from_error(
            ToolExecutionError(tool=self.name, tool_args=args, underlying_error=what),
            args=args,
        )

    def _run(self, args: dict[str, Any], action: Any) -> ToolOutput:
        path = args.get("path")
        return guarded(
            self,
            args,
            check=lambda: self.engine.check_path(self.name, path),
            action=lambda: action(Path(self.engine.resolve_path(path))),
            denial=self._denial(path),
        )

    def __repr__(self) -> str:
        return f"<Tool: {self.name}>"


class ReadTool(_PathTool):
    """
    Read file contents.

    Arguments:
        path (str): Path to the file to read (required)
        encoding (str): Text encoding, default "utf-8"

    Returns:
        On success: File contents as string
        On failure: Error message describing what went wrong
    """

    name = "read"
    description = "Read the contents of a file at the given path."
    parameters = object_schema(
        {
            "path": string_param("Path to the file to read"),
            "encoding": string_param("Text encoding (default utf-8)"),
        },
        required=["path"],
    )

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors = require_string(args, "path")
        if "encoding" in args and not isinstance(args["encoding"], str):
            errors.append("'encoding' must be a string")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        return self._run(args, lambda path: self._read(args, path))

    def _read(self, args: dict[str, Any], path: Path) -> ToolOutput:
        encoding = args.get("encoding", "utf-8")
        if not path.is_file():
            return self._failure(args, "not a file")
        try:
            content = path.read_text(encoding=encoding)
        except UnicodeDecodeError as e:
            return self._failure(args, f"cannot decode file: {e.reason}")
        except LookupError:
            return self._failure(args, "unknown encoding")
        except OSError as e:
            return self._failure(args, f"reading file: {describe_os_error(e)}")
        return ToolOutput.ok(content, path=str(path), size=len(content))


class WriteTool(_PathTool):
    """
    Write content to a file, creating parent directories as needed.

    Arguments:
        path (str): Path to the file to write (required)
        content (str): Content to write (required, may be empty)

    Returns:
        On success: Number of bytes written
    """

    name = "write"
    description = "Write content to a file at the given path. Creates parent directories if needed."
    parameters = object_schema(
        {
            "path": string_param("Path to the file to write"),
            "content": string_param("Content to write to the file"),
        }
    )

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        return require_string(args, "path") + require_string(args, "content", allow_empty=True)

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        return self._run(args, lambda path: self._write(args, path))

    def _write(self, args: dict[str, Any], path: Path) -> ToolOutput:
        data = args["content"].encode("utf-8")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            return self._failure(args, f"writing file: {describe_os_error(e)}")
        return ToolOutput.ok(len(data), path=str(path))


class EditTool(_PathTool):
    """
    Replace the first exact occurrence of ``old`` with ``new`` in a file.

    Arguments:
        path (str): File to edit (required)
        old (str): Text to find, exact match (required, non-empty)
        new (str): Replacement text (required, may be empty)
    """

    name = "edit"
    description = "Find and replace text in a file. The old text must match exactly."
    parameters = object_schema(
        {
            "path": string_param("Path to the file to edit"),
            "old": string_param("Text to find (exact match)"),
            "new": string_param("Text to replace with"),
        }
    )

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors = require_string(args, "path")
        if not isinstance(args.get("old"), str) or args.get("old") == "":
            errors.append("'old' is required and must be a non-empty string")
        errors += require_string(args, "new", allow_empty=True)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        return self._run(args, lambda path: self._edit(args, path))

    def _edit(self, args: dict[str, Any], path: Path) -> ToolOutput:
        try:
            original = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            detail = describe_os_error(e) if isinstance(e, OSError) else "not valid utf-8"
            return self._failure(args, f"reading file: {detail}")

        if args["old"] not in original:
            return self._failure(args, "text not found in file")

        try:
            path.write_text(original.replace(args["old"], args["new"], 1), encoding="utf-8")
        except OSError as e:
            return self._failure(args, f"writing file: {describe_os_error(e)}")
        return ToolOutput.ok("ok", path=str(path))


class LsTool(_PathTool):
    """
    List directory contents.

    Returns:
        On success: List of {name, is_dir, size} sorted by name
    """

    name = "ls"
    description = "List directory contents."
    parameters = object_schema({"path": string_param("Directory path to list")})

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        return self._run(args, lambda path: self._list(args, path))

    def _list(self, args: dict[str, Any], path: Path) -> ToolOutput:
        entries = []
        try:
            for entry in sorted(os.scandir(path), key=lambda e: e.name):
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                    size = entry.stat(follow_symlinks=False).st_size
                except OSError:
                    continue
                entries.append({"name": entry.name, "is_dir": is_dir, "size": size})
        except OSError as e:
            return self._failure(args, f"listing directory: {describe_os_error(e)}")
        return ToolOutput.ok(entries, path=str(path), count=len(entries))


class GlobTool(_PathTool):
    """
    Find files matching a glob pattern relative to the workspace.

    The literal directory prefix of the pattern is checked against the
    policy; every match is then checked individually and dropped if denied.

    Arguments:
        pattern (str): Glob pattern, e.g. "src/**/*.py" (required)
    """

    name = "glob"
    description = "Find files matching a glob pattern (e.g. src/**/*.py) within the workspace."
    parameters = object_schema({"pattern": string_param("Glob pattern relative to the workspace")})

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors = require_string(args, "pattern")
        if errors:
            return errors
        pattern = args["pattern"]
        if os.path.isabs(pattern):
            errors.append("'pattern' must be relative to the workspace")
        elif ".." in Path(pattern).parts:
            errors.append("'pattern' cannot contain '..'")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        base = self._base(args.get("pattern"))
        return guarded(
            self,
            args,
            check=lambda: self.engine.check_path(self.name, base),
            action=lambda: self._glob(args, base),
            denial=self._denial(base),
        )

    @staticmethod
    def _base(pattern: Any) -> str:
        """
        Extract the non-glob directory prefix of a pattern.

        Examples:
            "src/**/*.py" -> "src"
            "**/*.md"     -> "."
        """
        if not isinstance(pattern, str):
            return "."
        literal = []
        for part in Path(pattern).parts:
            if "*" in part or "?" in part or "[" in part:
                break
            literal.append(part)
        return os.path.join(*literal) if literal else "."

    def _glob(self, args: dict[str, Any], base: str) -> ToolOutput:
        root = Path(self.engine.workspace)
        try:
            found = sorted(str(p) for p in root.glob(args["pattern"]))
        except (OSError, ValueError) as e:
            detail = describe_os_error(e) if isinstance(e, OSError) else "invalid glob pattern"
            return self._failure(args, f"expanding pattern: {detail}")
        allowed = [p for p in found if self.engine.check_path(self.name, p).allowed]
        return ToolOutput.ok(allowed, pattern=args["pattern"], skipped=len(found) - len(allowed))


class GrepTool(_PathTool):
    """
    Search for a regex in a file or directory tree.

    Returns:
        On success: List of {file, line, content}, at most MAX_GREP_MATCHES
    """

    name = "grep"
    description = "Search for a regex pattern in a file or directory."
    parameters = object_schema(
        {
            "pattern": string_param("Regex pattern to search for"),
            "path": string_param("File or directory to search"),
        }
    )

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors = require_string(args, "pattern", "path")
        if not errors:
            try:
                re.compile(args["pattern"])
            except re.error as e:
                errors.append(f"'pattern' is not a valid regex (position {e.pos})")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        return self._run(args, lambda path: self._grep(args, path))

    def _grep(self, args: dict[str, Any], path: Path) -> ToolOutput:
        regex = re.compile(args["pattern"])
        if path.is_dir():
            files = []
            for dirpath, dirnames, filenames in os.walk(path):
                dirnames.sort()
                files.extend(os.path.join(dirpath, f) for f in sorted(filenames))
        elif path.is_file():
            files = [str(path)]
        else:
            return self._failure(args, "no such file or directory")

        matches: list[dict[str, Any]] = []
        for file in files:
            if not self.engine.check_path(self.name, file).allowed:
                continue
            try:
                with open(file, encoding="utf-8", errors="replace") as f:
                    for number, line in enumerate(f, start=1):
                        if regex.search(line):
                            matches.append({"file": file, "line": number, "content": line.rstrip("\n")})
                            if len(matches) >= MAX_GREP_MATCHES:
                                return ToolOutput.ok(matches, truncated=True)
            except OSError:
                continue
        return ToolOutput.ok(matches, truncated=False)


def path_tools(engine: PolicyEngine) -> list[_PathTool]:
    """Instantiate every filesystem tool around ``engine``."""
    return [cls(engine) for cls in (ReadTool, WriteTool, EditTool, LsTool, GlobTool, GrepTool)]

