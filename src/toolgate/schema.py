"""
Schema definitions for Toolgate.

This module defines the Pydantic models shared by the policy engine and tools:
- Policy/ToolPolicy: What's allowed and what's denied, per tool
- PolicyDecision: The result of a single policy check

Design Decisions:
    - Models are immutable (frozen=True) and reject unknown keys
    - Every unset field defaults to the most restrictive behavior
    - Pattern syntax is checked once, at construction
    - A reload builds a new Policy; nothing is patched in place
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from toolgate.errors import ERROR_CONFIG_WORKSPACE, ConfigError
from toolgate.patterns import PatternKind, validate_pattern

# rule_matched of a decision refused because the tool is absent or disabled
TOOL_DISABLED_RULE = "enabled=false"


# =============================================================================
# Policy Models
# =============================================================================


class ToolPolicy(BaseModel):
    """
    Authorization rules for a single tool.

    Which lists apply depends on the tool's resource kind: path tools use
    allow/deny, shell tools use allowlist/denylist, network tools use
    allow_domains.

    Attributes:
        enabled: Whether the tool may be used at all. Default: False
        allow: Path globs that permit access
        deny: Path globs that forbid access (takes precedence over allow)
        allowlist: Command globs that permit execution
        denylist: Command globs that forbid execution (takes precedence)
        allow_domains: Domain globs that permit network access
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(
        default=False,
        description="Whether the tool may be used at all",
    )
    allow: list[str] = Field(
        default_factory=list,
        description="Path globs that permit access",
    )
    deny: list[str] = Field(
        default_factory=list,
        description="Path globs that forbid access (takes precedence)",
    )
    allowlist: list[str] = Field(
        default_factory=list,
        description="Command globs that permit execution",
    )
    denylist: list[str] = Field(
        default_factory=list,
        description="Command globs that forbid execution (takes precedence)",
    )
    allow_domains: list[str] = Field(
        default_factory=list,
        description="Domain globs that permit network access",
    )

    @field_validator("allow", "deny")
    @classmethod
    def validate_path_patterns(cls, v: list[str]) -> list[str]:
        """Check path pattern syntax."""
        return [validate_pattern(PatternKind.PATH, p) for p in v]

    @field_validator("allowlist", "denylist")
    @classmethod
    def validate_command_patterns(cls, v: list[str]) -> list[str]:
        """Check command pattern syntax."""
        return [validate_pattern(PatternKind.COMMAND, p) for p in v]

    @field_validator("allow_domains")
    @classmethod
    def validate_domain_patterns(cls, v: list[str]) -> list[str]:
        """Check domain pattern syntax."""
        return [validate_pattern(PatternKind.DOMAIN, p) for p in v]


class Policy(BaseModel):
    """
    Complete policy configuration.

    Built once at startup and shared read-only by the policy engine, the
    registry and every tool.

    Attributes:
        workspace: Absolute, normalized root that path tools are confined to
        default_deny: Deny paths with no explicit allow match. Default: True
        strict_symlinks: Canonicalize symlinks before path matching
        tools: Tool name -> ToolPolicy
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    workspace: str = Field(
        default="",
        description="Root directory that path tools are confined to",
    )
    default_deny: bool = Field(
        default=True,
        description="Deny paths that match no allow rule",
    )
    strict_symlinks: bool = Field(
        default=False,
        description="Resolve symlinks before matching paths",
    )
    tools: dict[str, ToolPolicy] = Field(
        default_factory=dict,
        description="Per-tool authorization rules",
    )

    @field_validator("workspace")
    @classmethod
    def normalize_workspace(cls, v: str) -> str:
        """Make the workspace absolute and collapse '..' segments."""
        if not v.strip():
            return ""
        if "\x00" in v:
            raise ConfigError(
                message="workspace contains a NUL byte",
                code=ERROR_CONFIG_WORKSPACE,
                field_name="workspace",
            )
        return os.path.abspath(os.path.expanduser(v))

    @field_validator("tools")
    @classmethod
    def validate_tool_names(cls, v: dict[str, ToolPolicy]) -> dict[str, ToolPolicy]:
        """Tool names are alphanumeric with dots/underscores."""
        for name in v:
            parts = name.split(".")
            if not all(part.replace("_", "").isalnum() for part in parts):
                raise ConfigError(message=f"Invalid tool name: {name!r}", field_name="tools")
        return v

    @model_validator(mode="after")
    def require_workspace_for_path_rules(self) -> "Policy":
        """Path rules are meaningless without a workspace to anchor them."""
        if self.workspace:
            return self
        for name, tool_policy in self.tools.items():
            if tool_policy.allow or tool_policy.deny:
                raise ConfigError(
                    message=f"Tool {name} has path rules but no workspace is configured",
                    code=ERROR_CONFIG_WORKSPACE,
                    field_name="workspace",
                    suggestion="Set workspace to an absolute directory",
                )
        return self

    def tool(self, name: str) -> ToolPolicy:
        """Return the rules for ``name``; an absent tool gets the disabled default."""
        return self.tools.get(name) or ToolPolicy()


# =============================================================================
# Runtime Models
# =============================================================================


class PolicyDecision(BaseModel):
    """
    Result of checking a resource against the policy.

    Attributes:
        allowed: Whether the action is permitted
        reason: Human-readable explanation, used in errors and audit
        rule_matched: Which policy rule caused this decision
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool = Field(
        ...,
        description="Whether the action is permitted",
    )
    reason: str = Field(
        ...,
        description="Human-readable explanation of the decision",
    )
    rule_matched: str | None = Field(
        default=None,
        description="Which policy rule caused this decision",
    )

    @classmethod
    def allow(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        """Create an ALLOW decision."""
        return cls(allowed=True, reason=reason, rule_matched=rule)

    @classmethod
    def deny(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        """Create a DENY decision."""
        return cls(allowed=False, reason=reason, rule_matched=rule)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def build_policy(data: dict[str, Any] | None, **overrides: Any) -> Policy:
    """
    Validate raw configuration data into a Policy.

    Args:
        data: Parsed configuration mapping (None is treated as empty)
        **overrides: Top-level fields that replace values from ``data``

    Returns:
        Validated Policy object

    Raises:
        ConfigError: If the data doesn't match the schema
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(message="Policy must be a mapping at the top level")

    merged = {**data, **{k: v for k, v in overrides.items() if v is not None}}
    try:
        return Policy.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(
            message=f"Invalid policy: {e.error_count()} validation error(s)",
            context={"errors": e.errors(include_url=False)},
        ) from e


def load_policy(path: Path | str, **overrides: Any) -> Policy:
    """
    Load a policy from a YAML file.

    Args:
        path: Path to the YAML file
        **overrides: Top-level fields that replace values from the file

    Returns:
        Validated Policy object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the YAML is malformed or doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        content = f.read()

    return load_policy_from_string(content, **overrides)


def load_policy_from_string(content: str, **overrides: Any) -> Policy:
    """Load a policy from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(message=f"Malformed policy YAML: {e}") from e
    return build_policy(data, **overrides)
