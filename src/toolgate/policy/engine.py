"""
Policy Engine for Toolgate.

The Policy Engine is the security boundary of Toolgate. Every tool must ask
it for a decision before performing any side-effecting action.

Design Principles:
    - Deny always wins: a deny match overrides any allow match
    - Default-deny: no allow match means no access
    - Predictable: same inputs always produce same decisions
    - Stateless: no counters, no caches, nothing mutated after __init__

How it works:
    1. Tool derives its resource (path, domain or command) from its args
    2. Engine checks the tool is enabled
    3. Engine evaluates deny rules, then allow rules, in declaration order
    4. Returns PolicyDecision (allow/deny with reason)

Security Note:
    Paths are resolved to an absolute form with '..' collapsed before any
    pattern is consulted, and containment is decided by matching against
    workspace-anchored globs rather than by string prefix comparison.

    Symlinks are NOT followed unless the policy sets strict_symlinks. In the
    default lexical mode, a link inside the workspace that points outside it
    is judged by where the link lives, not where it leads.
"""

import logging
import os
from typing import Any
from urllib.parse import urlparse

from toolgate.patterns import PatternKind, first_match
from toolgate.schema import TOOL_DISABLED_RULE, Policy, PolicyDecision, ToolPolicy

logger = logging.getLogger(__name__)


class PolicyEngine:
    """
    Central policy evaluator for Toolgate.

    Usage:
        engine = PolicyEngine(policy)
        decision = engine.check_path("read", "./notes.txt")
        if decision.allowed:
            # proceed with the action
        else:
            # surface decision.reason in a denial error

    Attributes:
        policy: The Policy configuration to enforce
    """

    def __init__(self, policy: Policy) -> None:
        """
        Initialize the policy engine.

        Relative path patterns are anchored to the workspace once, here,
        so every check works against absolute patterns.

        Args:
            policy: The policy configuration to enforce
        """
        self.policy = policy
        self._path_rules: dict[str, tuple[list[str], list[str]]] = {
            name: (
                [self._anchor(p) for p in rules.deny],
                [self._anchor(p) for p in rules.allow],
            )
            for name, rules in policy.tools.items()
        }
        # implicit allow rule when default_deny is off and a tool has no allow list
        self._workspace_rule = self._anchor(os.path.join(self.workspace, "**")) if self.workspace else ""

    @property
    def workspace(self) -> str:
        """The normalized workspace root."""
        return self.policy.workspace

    def is_tool_enabled(self, tool: str) -> bool:
        """
        Check if a tool may be used at all.

        A tool absent from the policy is disabled regardless of default_deny.
        """
        return self.policy.tool(tool).enabled

    def _rules(self, tool: str) -> ToolPolicy | None:
        """Return the tool's rules if it is enabled."""
        if not self.is_tool_enabled(tool):
            return None
        return self.policy.tools[tool]

    # =========================================================================
    # Filesystem
    # =========================================================================

    def _anchor(self, pattern: str) -> str:
        """
        Make a path pattern absolute.

        Examples (workspace=/ws):
            "/etc/**"  -> "/etc/**"
            "./src/**" -> "/ws/src/**"
            "**/*.pem" -> "**/*.pem" (floats, matches anywhere)
        """
        if pattern.startswith("**"):
            return os.path.normpath(pattern)
        if not pattern.startswith("/"):
            pattern = os.path.join(self.workspace, pattern)
        # drop "." segments and repeated slashes so the pattern compares against resolved paths
        pattern = "/" + os.path.normpath(pattern).lstrip("/")
        if self.policy.strict_symlinks:
            pattern = self._resolve_pattern_base(pattern)
        return pattern

    def _resolve_pattern_base(self, pattern: str) -> str:
        """
        Canonicalize the literal prefix of a pattern.

        Resolved paths have their symlinks followed, so the pattern base must
        be too (e.g. /var -> /private/var on macOS).

        Examples:
            "/home/user/**"  -> realpath("/home/user") + "/**"
            "/tmp/*.txt"     -> realpath("/tmp") + "/*.txt"
        """
        segments = pattern.split("/")
        for index, segment in enumerate(segments):
            if "*" in segment:
                base, rest = "/".join(segments[:index]) or "/", segments[index:]
                break
        else:
            base, rest = pattern, []
        base = os.path.realpath(base)
        return "/".join([base.rstrip("/"), *rest]) if rest else base

    def resolve_path(self, path: str) -> str:
        """
        Resolve a requested path to an absolute, traversal-free form.

        Relative paths are taken relative to the workspace. With
        strict_symlinks, symlinks are canonicalized as well.

        Examples (workspace=/ws):
            "notes.txt"          -> "/ws/notes.txt"
            "/ws/../secret.txt"  -> "/secret.txt"
            "a/b/../../../etc"   -> "/etc"
        """
        if not os.path.isabs(path):
            path = os.path.join(self.workspace, path)
        if self.policy.strict_symlinks:
            return os.path.realpath(path)
        resolved = os.path.normpath(path)
        # POSIX keeps a leading '//' through normpath
        if resolved.startswith("//"):
            resolved = "/" + resolved.lstrip("/")
        return resolved

    def check_path(self, tool: str, path: str) -> PolicyDecision:
        """
        Decide whether ``tool`` may access ``path``.

        Args:
            tool: The tool asking (e.g., "read")
            path: The path as requested, absolute or workspace-relative

        Returns:
            PolicyDecision indicating allow/deny with reason
        """
        decision = self._check_path(tool, path)
        self._log(tool, "path", path, decision)
        return decision

    def _check_path(self, tool: str, path: str) -> PolicyDecision:
        if not path or "\x00" in path:
            return PolicyDecision.deny(f"invalid path: {path!r}", rule="invalid_path")
        if not self.workspace and not os.path.isabs(path):
            return PolicyDecision.deny(
                "no workspace configured for relative path",
                rule="workspace",
            )

        try:
            resolved = self.resolve_path(path)
        except (ValueError, OSError) as e:
            return PolicyDecision.deny(f"invalid path: {e}", rule="invalid_path")

        if self._rules(tool) is None:
            return PolicyDecision.deny("tool disabled", rule=TOOL_DISABLED_RULE)

        deny_patterns, allow_patterns = self._path_rules[tool]

        # Deny takes precedence regardless of declaration order
        matched = first_match(PatternKind.PATH, deny_patterns, resolved)
        if matched is not None:
            return PolicyDecision.deny(
                f"denied by deny rule: {resolved} matches {matched}",
                rule=f"deny[{matched}]",
            )

        matched = first_match(PatternKind.PATH, allow_patterns, resolved)
        if matched is not None:
            return PolicyDecision.allow(
                f"allowed by rule: {matched}",
                rule=f"allow[{matched}]",
            )

        if not allow_patterns and not self.policy.default_deny and self.workspace:
            if first_match(PatternKind.PATH, [self._workspace_rule], resolved) is not None:
                return PolicyDecision.allow(
                    "inside workspace (default_deny=false)",
                    rule="workspace",
                )
            return PolicyDecision.deny(
                f"no matching allow rule: {resolved} is outside the workspace",
                rule="workspace",
            )

        return PolicyDecision.deny(
            f"no matching allow rule: {resolved}",
            rule="allow",
        )

    # =========================================================================
    # Network
    # =========================================================================

    def check_domain(self, tool: str, domain: str) -> PolicyDecision:
        """
        Decide whether ``tool`` may contact ``domain``.

        There is no deny list for domains: no allow_domains match is a denial.
        """
        decision = self._check_domain(tool, domain)
        self._log(tool, "domain", domain, decision)
        return decision

    def _check_domain(self, tool: str, domain: str) -> PolicyDecision:
        rules = self._rules(tool)
        if rules is None:
            return PolicyDecision.deny("tool disabled", rule=TOOL_DISABLED_RULE)
        if not domain:
            return PolicyDecision.deny("no domain provided", rule="invalid_domain")

        matched = first_match(PatternKind.DOMAIN, rules.allow_domains, domain)
        if matched is None:
            return PolicyDecision.deny(
                f"domain not in allow_domains: {domain}",
                rule="allow_domains",
            )
        return PolicyDecision.allow(
            f"domain allowed by rule: {matched}",
            rule=f"allow_domains[{matched}]",
        )

    def check_url(self, tool: str, url: str) -> PolicyDecision:
        """Extract the host from ``url`` and check it with check_domain."""
        try:
            host = urlparse(url).hostname
        except ValueError as e:
            decision = PolicyDecision.deny(f"invalid url: {e}", rule="invalid_url")
            self._log(tool, "url", url, decision)
            return decision
        return self.check_domain(tool, host or "")

    # =========================================================================
    # Commands
    # =========================================================================

    def check_command(self, tool: str, command: str) -> PolicyDecision:
        """
        Decide whether ``tool`` may run ``command``.

        The whole command string is matched; it is not tokenized. Denylist
        is evaluated first and overrides the allowlist.
        """
        decision = self._check_command(tool, command)
        self._log(tool, "command", command, decision)
        return decision

    def _check_command(self, tool: str, command: str) -> PolicyDecision:
        rules = self._rules(tool)
        if rules is None:
            return PolicyDecision.deny("tool disabled", rule=TOOL_DISABLED_RULE)
        if not command.strip():
            return PolicyDecision.deny("empty command", rule="invalid_command")

        matched = first_match(PatternKind.COMMAND, rules.denylist, command)
        if matched is not None:
            return PolicyDecision.deny(
                f"denied by denylist rule: {matched}",
                rule=f"denylist[{matched}]",
            )

        matched = first_match(PatternKind.COMMAND, rules.allowlist, command)
        if matched is not None:
            return PolicyDecision.allow(
                f"command allowed by rule: {matched}",
                rule=f"allowlist[{matched}]",
            )

        return PolicyDecision.deny("no matching allowlist rule", rule="allowlist")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _log(self, tool: str, kind: str, value: Any, decision: PolicyDecision) -> None:
        logger.debug(
            "%s %s %s=%r: %s",
            "ALLOW" if decision.allowed else "DENY",
            tool,
            kind,
            value,
            decision.reason,
        )

    def __repr__(self) -> str:
        enabled = sorted(n for n in self.policy.tools if self.is_tool_enabled(n))
        return f"<PolicyEngine workspace={self.workspace!r} enabled={enabled}>"
