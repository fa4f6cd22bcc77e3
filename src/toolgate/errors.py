"""
Exception hierarchy for Toolgate.

All Toolgate exceptions inherit from ToolgateError, allowing callers to catch
all Toolgate-specific exceptions with a single except clause.

Exception Categories:
    - ConfigError: Malformed policy, fatal at startup
    - PolicyDeniedError: Path/domain/command blocked by policy
    - ToolUnavailableError: Tool is not registered or not enabled
    - ToolInvalidArgsError: Missing or malformed tool arguments
    - ToolExecutionError: The underlying action failed after approval

Error Message Contract:
    Only PolicyDeniedError messages contain the word "denied". Callers that
    need to tell "blocked by policy" apart from "tool failed" match on that
    substring, so no other error category may use it. Other categories keep
    caller-supplied values (paths, tool names, URLs) out of their message
    and carry them in context instead.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_CONFIG_INVALID = 1001
ERROR_CONFIG_PATTERN = 1002
ERROR_CONFIG_WORKSPACE = 1003

# Policy errors: 2xxx
ERROR_POLICY_DENIED = 2001
ERROR_POLICY_PATH_DENIED = 2002
ERROR_POLICY_DOMAIN_DENIED = 2003
ERROR_POLICY_COMMAND_DENIED = 2004
ERROR_POLICY_TOOL_DISABLED = 2005

# Tool errors: 3xxx
ERROR_TOOL_UNAVAILABLE = 3001
ERROR_TOOL_INVALID_ARGS = 3002
ERROR_TOOL_EXECUTION_FAILED = 3003
ERROR_TOOL_TIMEOUT = 3004


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ToolgateError(Exception):
    """
    Base exception for all Toolgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigError(ToolgateError):
    """
    Raised when a policy cannot be constructed.

    Only ever raised while loading configuration at startup, never
    while serving a tool call.

    Attributes:
        field_name: The offending field, when known
    """

    field_name: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Invalid policy configuration"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["field"] = self.field_name


@dataclass
class PatternError(ConfigError):
    """Raised when a glob pattern has invalid syntax."""

    pattern: str = ""
    kind: str = ""
    problem: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid {self.kind} pattern {self.pattern!r}: {self.problem}"
        if self.code == 0:
            self.code = ERROR_CONFIG_PATTERN
        super().__post_init__()
        self.context.update({
            "pattern": self.pattern,
            "kind": self.kind,
        })


# =============================================================================
# Policy Errors
# =============================================================================


@dataclass
class PolicyDeniedError(ToolgateError):
    """
    Raised when a tool call is blocked by the policy.

    Callers must treat this as non-retryable with the same arguments.

    Attributes:
        tool: Name of the tool that was blocked
        reason: Why the policy denied this action
        rule: Which policy rule caused the denial
    """

    tool: str = ""
    reason: str = ""
    rule: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Policy denied {self.tool}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_POLICY_DENIED
        self.context.update({
            "tool": self.tool,
            "reason": self.reason,
            "rule": self.rule,
        })


@dataclass
class PathDeniedError(PolicyDeniedError):
    """Raised when a filesystem path is blocked by policy."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_POLICY_PATH_DENIED
        if not self.suggestion:
            self.suggestion = "Add a matching pattern to the tool's allow list"
        super().__post_init__()
        self.context["path"] = self.path


@dataclass
class DomainDeniedError(PolicyDeniedError):
    """Raised when a network domain is blocked by policy."""

    domain: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_POLICY_DOMAIN_DENIED
        if not self.suggestion:
            self.suggestion = "Add the domain to the tool's allow_domains"
        super().__post_init__()
        self.context["domain"] = self.domain


@dataclass
class CommandDeniedError(PolicyDeniedError):
    """Raised when a shell command is blocked by policy."""

    command: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_POLICY_COMMAND_DENIED
        super().__post_init__()
        self.context["command"] = self.command


@dataclass
class ToolDisabledError(PolicyDeniedError):
    """Raised when a tool is absent from the policy or not enabled."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.reason:
            self.reason = "tool disabled"
        if self.code == 0:
            self.code = ERROR_POLICY_TOOL_DISABLED
        if not self.suggestion:
            self.suggestion = f"Set enabled: true for {self.tool} in the policy"
        super().__post_init__()


# =============================================================================
# Tool Errors
# =============================================================================


@dataclass
class ToolError(ToolgateError):
    """
    Base class for tool errors that are not policy decisions.

    Attributes:
        tool: Name of the tool
        tool_args: Arguments that were provided
    """

    tool: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "tool": self.tool,
            "tool_args": self.tool_args,
        })


@dataclass
class ToolUnavailableError(ToolError):
    """Raised when a tool is unknown or not enabled for the agent."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Tool unavailable"
        if self.code == 0:
            self.code = ERROR_TOOL_UNAVAILABLE
        if not self.suggestion:
            self.suggestion = "Use one of the tools listed by definitions()"
        super().__post_init__()


@dataclass
class ToolInvalidArgsError(ToolError):
    """Raised when tool arguments are missing or malformed."""

    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid arguments for {self.tool}: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_TOOL_INVALID_ARGS
        super().__post_init__()
        self.context["validation_error"] = self.validation_error


@dataclass
class ToolExecutionError(ToolError):
    """Raised when the underlying action fails. May be retried by a caller."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool {self.tool} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_TOOL_EXECUTION_FAILED
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class ToolTimeoutError(ToolError):
    """Raised when a tool exceeds its timeout."""

    timeout_seconds: float = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool {self.tool} timed out after {self.timeout_seconds}s"
        if self.code == 0:
            self.code = ERROR_TOOL_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Pass a larger timeout or split the operation"
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds
