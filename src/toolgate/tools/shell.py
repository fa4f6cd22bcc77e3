"""
Shell tools for Toolgate.

This module provides the command-kind tool:
- bash: Run a command string with ``bash -c`` in the workspace

Security Note:
    The whole command string is checked against the policy's denylist and
    allowlist before anything is spawned. Matching is by glob, not by shell
    parsing: ``ls; rm -rf /`` is only refused when the denylist carries a
    separator pattern such as ``*;*``. Policies that enable bash should
    always deny ``*;*``, ``*&&*``, ``*|*``, ``*`*``, ``*$(*`` and a newline
    pattern (``"*\\n*"`` in YAML), since ``bash -c`` also splits on newlines.

    Additional protections:
    - Timeout enforcement to prevent runaway processes
    - Output size limits to prevent memory exhaustion
"""

import subprocess
from typing import Any

from toolgate.errors import CommandDeniedError, ToolExecutionError, ToolTimeoutError
from toolgate.patterns import PatternKind
from toolgate.policy import PolicyEngine
from toolgate.tools.base import ToolContext, ToolOutput, guarded, object_schema, string_param

DEFAULT_TIMEOUT_SECONDS = 60
MAX_OUTPUT_BYTES = 1024 * 1024


def _truncate(data: bytes, limit: int) -> str:
    """Decode process output, cutting it at ``limit`` bytes."""
    if len(data) > limit:
        marker = f"\n... [truncated, exceeded {limit} bytes]".encode()
        data = data[: max(limit - len(marker), 0)] + marker
    return data.decode("utf-8", errors="replace")


class BashTool:
    """
    Execute a shell command.

    Arguments:
        command (str): Command line passed to ``bash -c`` (required)
        timeout (number): Timeout in seconds (optional)

    Returns:
        On success: Dict with stdout, stderr and exit_code. A non-zero exit
        code is a successful tool call with that exit code.
        On failure: Error message describing what went wrong

    Example:
        args = {"command": "ls -la"}
        output = tool.execute(args, context)
        if output.success:
            print(output.data["stdout"])
    """

    name = "bash"
    description = "Execute a shell command in the workspace."
    kind = PatternKind.COMMAND
    parameters = object_schema(
        {
            "command": string_param("Shell command to execute"),
            "timeout": {"type": "number", "description": "Timeout in seconds"},
        },
        required=["command"],
    )

    def __init__(self, engine: PolicyEngine, max_output_bytes: int = MAX_OUTPUT_BYTES) -> None:
        self.engine = engine
        self.max_output_bytes = max_output_bytes

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        """Validate bash arguments."""
        errors = []

        if "command" not in args:
            errors.append("'command' is required")
        elif not isinstance(args["command"], str):
            errors.append("'command' must be a string")
        elif not args["command"].strip():
            errors.append("'command' cannot be empty")

        if "timeout" in args:
            timeout = args["timeout"]
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
                errors.append("'timeout' must be a number")
            elif timeout <= 0:
                errors.append("'timeout' must be positive")

        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        command = args.get("command")
        return guarded(
            self,
            args,
            check=lambda: self.engine.check_command(self.name, command),
            action=lambda: self._run(args, context),
            denial=lambda decision: CommandDeniedError(
                tool=self.name,
                reason=decision.reason,
                rule=decision.rule_matched,
                command=command,
            ),
        )

    def _run(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        command = args["command"]
        timeout = args.get("timeout") or context.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        cwd = self.engine.workspace or None

        try:
            result = subprocess.run(
                ["bash", "-c", command],
                cwd=cwd,
                capture_output=True,
                timeout=timeout,
                shell=False,
            )
        except subprocess.TimeoutExpired:
            return ToolOutput.from_error(
                ToolTimeoutError(tool=self.name, tool_args=args, timeout_seconds=timeout)
            )
        except FileNotFoundError:
            return ToolOutput.from_error(
                ToolExecutionError(tool=self.name, tool_args=args, underlying_error="bash executable not found")
            )
        except OSError as e:
            return ToolOutput.from_error(
                ToolExecutionError(
                    tool=self.name,
                    tool_args=args,
                    underlying_error=f"could not start bash ({type(e).__name__})",
                )
            )

        return ToolOutput.ok(
            {
                "stdout": _truncate(result.stdout, self.max_output_bytes),
                "stderr": _truncate(result.stderr, self.max_output_bytes),
                "exit_code": result.returncode,
            },
            command=command,
            cwd=cwd,
            exit_code=result.returncode,
        )

    def __repr__(self) -> str:
        return f"<Tool: {self.name}>"
