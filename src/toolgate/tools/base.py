"""
Tool capability contract.

This module defines the core abstractions for tools in Toolgate:
- Tool: Protocol that every tool capability satisfies
- ToolContext: Per-call context passed to tools during execution
- ToolOutput: Standardized result format from tool execution
- ToolDefinition: The planner-facing descriptor of a tool

Design Principles:
    - Tools receive the PolicyEngine at construction and check it themselves,
      because only the tool knows whether its resource is a path, a domain
      or a command
    - Tools validate arguments, then check policy, then act, in that order
    - Tools return ToolOutput - never raise exceptions for expected failures
    - Tools keep no state between calls

Why a Protocol?
    - Adding a tool means implementing name/description/kind/parameters and
      execute(), not inheriting from a base class
    - The registry only depends on the shape of a tool
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from toolgate.errors import PolicyDeniedError, ToolDisabledError, ToolgateError, ToolInvalidArgsError
from toolgate.patterns import PatternKind
from toolgate.schema import TOOL_DISABLED_RULE, PolicyDecision

# Substring that marks a policy denial in error text. Load-bearing.
DENIED_MARKER = "denied"


@dataclass(frozen=True)
class ToolOutput:
    """
    Standardized output from tool execution.

    Every tool returns a ToolOutput, whether successful or failed.

    Attributes:
        success: Whether the tool executed successfully
        data: The output data from the tool (type varies by tool)
        error: Error message if success is False
        metadata: Additional metadata about the execution
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolOutput":
        """Create a successful output."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolOutput":
        """Create a failed output."""
        return cls(success=False, error=error, metadata=metadata)

    @classmethod
    def from_error(cls, error: ToolgateError, **metadata: Any) -> "ToolOutput":
        """Create a failed output carrying a Toolgate error's message and code."""
        return cls.fail(
            error.message,
            error_type=type(error).__name__,
            code=error.code,
            **metadata,
        )

    @property
    def is_denied(self) -> bool:
        """Whether this output is a policy denial."""
        return not self.success and self.error is not None and DENIED_MARKER in self.error


@dataclass
class ToolContext:
    """
    Per-call context passed to tools during execution.

    Attributes:
        run_id: Identifier of the agent run making the call, for audit
        timeout_seconds: Upper bound for blocking actions (None = tool default)
        metadata: Additional caller-supplied metadata
    """

    run_id: str = ""
    timeout_seconds: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolDefinition:
    """
    What the agent's planner sees of a tool.

    Attributes:
        name: Tool name used for dispatch
        description: What the tool does
        parameters: JSON schema of the tool's arguments
    """

    name: str
    description: str
    parameters: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@runtime_checkable
class Tool(Protocol):
    """
    A named tool capability.

    Example:
        class EchoTool:
            name = "echo"
            description = "Echo a message"
            kind = PatternKind.COMMAND
            parameters = object_schema({"message": string_param("Text to echo")})

            def validate_args(self, args):
                return require_string(args, "message")

            def execute(self, args, context):
                return ToolOutput.ok(args["message"])
    """

    @property
    def name(self) -> str:
        """Unique identifier, e.g. "read", "bash", "web_fetch"."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description for the planner."""
        ...

    @property
    def kind(self) -> PatternKind:
        """Which resource this tool checks: path, domain or command."""
        ...

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of accepted arguments."""
        ...

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        """Return validation error messages (empty if valid)."""
        ...

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        """
        Check policy and perform the action.

        Must return a denial (error containing "denied") without any side
        effect when the policy refuses the resource.
        """
        ...


def definition_of(tool: Tool) -> ToolDefinition:
    """Build the planner-facing definition of a tool."""
    return ToolDefinition(name=tool.name, description=tool.description, parameters=tool.parameters)


# =============================================================================
# Helpers for tool implementations
# =============================================================================


def string_param(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def object_schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    """JSON schema for an object of named parameters."""
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties) if required is None else required,
    }


def require_string(args: dict[str, Any], *keys: str, allow_empty: bool = False) -> list[str]:
    """Validate that each of ``keys`` is present and a string."""
    errors = []
    for key in keys:
        if key not in args:
            errors.append(f"'{key}' is required")
        elif not isinstance(args[key], str):
            errors.append(f"'{key}' must be a string")
        elif not allow_empty and not args[key].strip():
            errors.append(f"'{key}' cannot be empty")
    return errors


def invalid_args(tool: Tool, args: dict[str, Any], errors: list[str]) -> ToolOutput:
    """Output for a call whose arguments failed validation."""
    return ToolOutput.from_error(
        ToolInvalidArgsError(tool=tool.name, tool_args=args, validation_error="; ".join(errors))
    )


def guarded(
    tool: Tool,
    args: dict[str, Any],
    check: Callable[[], PolicyDecision],
    action: Callable[[], ToolOutput],
    denial: Callable[[PolicyDecision], PolicyDeniedError],
) -> ToolOutput:
    """
    Run the validate -> check -> act sequence shared by every tool.

    Args:
        tool: The tool being executed
        args: Raw call arguments
        check: Asks the policy engine about this call's resource
        action: Performs the side effect; only called on approval
        denial: Builds the denial error from a refusing decision. A tool that
            is absent or disabled gets ToolDisabledError instead

    Returns:
        ToolOutput from the action, or a validation/denial failure
    """
    errors = tool.validate_args(args)
    if errors:
        return invalid_args(tool, args, errors)

    decision = check()
    if not decision.allowed:
        if decision.rule_matched == TOOL_DISABLED_RULE:
            error: PolicyDeniedError = ToolDisabledError(tool=tool.name, rule=decision.rule_matched)
        else:
            error = denial(decision)
        return ToolOutput.from_error(error, rule=decision.rule_matched)

    return action()
