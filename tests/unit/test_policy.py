"""
Unit tests for the policy engine.

Tests cover:
- Path resolution and workspace anchoring
- Deny-over-allow precedence and default-deny
- Tool enablement (absent and disabled tools)
- The default_deny=false workspace fallback
- Domain, URL and command checks
- Strict symlink mode
- Determinism
"""

import logging
import os
from pathlib import Path

import pytest

from toolgate.policy import PolicyEngine
from toolgate.schema import Policy, ToolPolicy, load_policy_from_string


def make_engine(workspace: str = "/ws", default_deny: bool = True, **tools: ToolPolicy) -> PolicyEngine:
    return PolicyEngine(Policy(workspace=workspace, default_deny=default_deny, tools=tools))


# =============================================================================
# Path Resolution Tests
# =============================================================================


class TestResolvePath:
    """Tests for turning requested paths into absolute, normalized ones."""

    def test_relative_path_joins_workspace(self) -> None:
        engine = make_engine()
        assert engine.resolve_path("notes.txt") == "/ws/notes.txt"
        assert engine.resolve_path("./src/main.py") == "/ws/src/main.py"

    def test_traversal_is_collapsed(self) -> None:
        engine = make_engine()
        assert engine.resolve_path("/ws/../secret.txt") == "/secret.txt"
        assert engine.resolve_path("a/b/../../../etc") == "/etc"

    def test_leading_double_slash_collapsed(self) -> None:
        engine = make_engine()
        assert engine.resolve_path("//etc/passwd") == "/etc/passwd"

    def test_workspace_property(self) -> None:
        assert make_engine(workspace="/ws/sub/..").workspace == "/ws"


class TestAnchoring:
    """Tests for anchoring relative patterns to the workspace."""

    def test_relative_allow_pattern(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["./src/**"]))
        assert engine.check_path("read", "src/main.py").allowed is True
        assert engine.check_path("read", "/ws/src/a/b.py").allowed is True
        assert engine.check_path("read", "docs/readme.md").allowed is False

    def test_floating_pattern_matches_anywhere(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"], deny=["**/.env"]))
        assert engine.check_path("read", ".env").allowed is False
        assert engine.check_path("read", "deep/nested/.env").allowed is False
        assert engine.check_path("read", "deep/nested/env").allowed is True

    def test_dot_segments_normalized(self) -> None:
        rules = ToolPolicy(enabled=True, allow=["/ws/**"], deny=["/ws/./secrets/**", "//ws//keys/**"])
        engine = make_engine(read=rules)
        assert engine.check_path("read", "secrets/token").allowed is False
        assert engine.check_path("read", "keys/id_rsa").allowed is False
        assert engine.check_path("read", "src/main.py").allowed is True

    def test_relative_dot_segments_normalized(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["./src/./**"]))
        assert engine.check_path("read", "src/a.py").allowed is True


# =============================================================================
# Path Decision Tests
# =============================================================================


class TestCheckPath:
    """Tests for filesystem path decisions."""

    def test_allow_match(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        decision = engine.check_path("read", "/ws/notes.txt")
        assert decision.allowed is True
        assert decision.rule_matched == "allow[/ws/**]"

    def test_deny_wins_over_allow(self) -> None:
        engine = make_engine(
            read=ToolPolicy(enabled=True, allow=["/ws/**"], deny=["/ws/.ssh/*"]),
        )
        decision = engine.check_path("read", "/ws/.ssh/id_rsa")
        assert decision.allowed is False
        assert "denied by deny rule" in decision.reason
        assert decision.rule_matched == "deny[/ws/.ssh/*]"

    def test_deny_wins_regardless_of_declaration_order(self) -> None:
        """Deny is evaluated first even when it is narrower than allow."""
        engine = make_engine(
            read=ToolPolicy(enabled=True, deny=["/ws/secret.txt"], allow=["/ws/secret.txt", "/ws/**"]),
        )
        assert engine.check_path("read", "/ws/secret.txt").allowed is False

    def test_traversal_outside_workspace_denied(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        decision = engine.check_path("read", "/ws/../secret.txt")
        assert decision.allowed is False
        assert "/secret.txt" in decision.reason

    def test_traversal_back_inside_workspace_allowed(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        assert engine.check_path("read", "/ws/a/../b.txt").allowed is True

    def test_sibling_directory_not_matched_by_prefix(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        assert engine.check_path("read", "/wsx/file.txt").allowed is False

    def test_no_allow_match_is_denied(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/src/**"]))
        decision = engine.check_path("read", "/ws/docs/a.md")
        assert decision.allowed is False
        assert decision.reason == "no matching allow rule: /ws/docs/a.md"

    def test_empty_path_denied(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        decision = engine.check_path("read", "")
        assert decision.allowed is False
        assert decision.rule_matched == "invalid_path"

    def test_nul_byte_denied(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        assert engine.check_path("read", "/ws/a\x00.txt").allowed is False

    def test_relative_path_without_workspace_denied(self) -> None:
        engine = PolicyEngine(Policy(tools={"read": ToolPolicy(enabled=True)}))
        decision = engine.check_path("read", "notes.txt")
        assert decision.allowed is False
        assert decision.rule_matched == "workspace"


class TestToolEnablement:
    """Tests for absent and disabled tools."""

    def test_disabled_tool_denied(self) -> None:
        engine = make_engine(write=ToolPolicy(enabled=False, allow=["/ws/**"]))
        decision = engine.check_path("write", "/ws/a.txt")
        assert decision.allowed is False
        assert decision.reason == "tool disabled"
        assert engine.is_tool_enabled("write") is False

    def test_absent_tool_denied_with_default_deny(self) -> None:
        """Only read is defined: a write request is denied."""
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        decision = engine.check_path("write", "/ws/a.txt")
        assert decision.allowed is False
        assert decision.reason == "tool disabled"

    def test_absent_tool_denied_without_default_deny(self) -> None:
        """default_deny=false never enables a tool the policy does not list."""
        engine = make_engine(default_deny=False, read=ToolPolicy(enabled=True))
        assert engine.is_tool_enabled("write") is False
        assert engine.check_path("write", "/ws/a.txt").allowed is False
        assert engine.check_command("bash", "ls .").allowed is False
        assert engine.check_domain("web_fetch", "example.com").allowed is False

    def test_disabled_tool_checked_before_deny_rules(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=False, deny=["/ws/**"]))
        assert engine.check_path("read", "/ws/a").reason == "tool disabled"


class TestDefaultDenyFallback:
    """Tests for default_deny=false with an empty allow list."""

    def test_inside_workspace_allowed(self) -> None:
        engine = make_engine(default_deny=False, read=ToolPolicy(enabled=True))
        decision = engine.check_path("read", "src/main.py")
        assert decision.allowed is True
        assert decision.rule_matched == "workspace"

    def test_outside_workspace_denied(self) -> None:
        engine = make_engine(default_deny=False, read=ToolPolicy(enabled=True))
        decision = engine.check_path("read", "/etc/passwd")
        assert decision.allowed is False
        assert "outside the workspace" in decision.reason

    def test_deny_still_wins(self) -> None:
        engine = make_engine(default_deny=False, read=ToolPolicy(enabled=True, deny=["**/.env"]))
        assert engine.check_path("read", ".env").allowed is False

    def test_non_empty_allow_disables_fallback(self) -> None:
        engine = make_engine(default_deny=False, read=ToolPolicy(enabled=True, allow=["/ws/src/**"]))
        assert engine.check_path("read", "/ws/docs/a.md").allowed is False

    def test_default_deny_true_with_empty_allow_denies(self) -> None:
        engine = make_engine(default_deny=True, read=ToolPolicy(enabled=True))
        assert engine.check_path("read", "src/main.py").allowed is False


# =============================================================================
# Domain Decision Tests
# =============================================================================


class TestCheckDomain:
    """Tests for network domain decisions."""

    @pytest.fixture
    def engine(self) -> PolicyEngine:
        return make_engine(
            web_fetch=ToolPolicy(enabled=True, allow_domains=["api.example.com", "*.trusted.com"]),
        )

    @pytest.mark.parametrize(
        ("domain", "expected"),
        [
            ("api.example.com", True),
            ("sub.trusted.com", True),
            ("trusted.com", True),
            ("evil.com", False),
            ("example.com", False),
        ],
    )
    def test_allow_domains(self, engine: PolicyEngine, domain: str, expected: bool) -> None:
        assert engine.check_domain("web_fetch", domain).allowed is expected

    def test_denial_reason(self, engine: PolicyEngine) -> None:
        decision = engine.check_domain("web_fetch", "evil.com")
        assert decision.reason == "domain not in allow_domains: evil.com"

    def test_empty_domain_denied(self, engine: PolicyEngine) -> None:
        assert engine.check_domain("web_fetch", "").allowed is False

    def test_empty_allow_domains_denies_everything(self) -> None:
        engine = make_engine(default_deny=False, web_fetch=ToolPolicy(enabled=True))
        assert engine.check_domain("web_fetch", "example.com").allowed is False

    def test_check_url_uses_host(self, engine: PolicyEngine) -> None:
        assert engine.check_url("web_fetch", "https://api.example.com/v1/status").allowed is True
        assert engine.check_url("web_fetch", "https://API.EXAMPLE.COM:8443/x").allowed is True
        assert engine.check_url("web_fetch", "https://evil.com/?api.example.com").allowed is False

    def test_check_url_userinfo_does_not_fool_host(self, engine: PolicyEngine) -> None:
        assert engine.check_url("web_fetch", "https://api.example.com@evil.com/").allowed is False

    def test_check_url_without_host(self, engine: PolicyEngine) -> None:
        assert engine.check_url("web_fetch", "not a url").allowed is False


# =============================================================================
# Command Decision Tests
# =============================================================================


class TestCheckCommand:
    """Tests for shell command decisions."""

    @pytest.fixture
    def engine(self) -> PolicyEngine:
        return make_engine(
            bash=ToolPolicy(
                enabled=True,
                allowlist=["ls *", "cat *"],
                denylist=["rm *", "sudo *", "*;*"],
            ),
        )

    @pytest.mark.parametrize(
        ("command", "expected"),
        [
            ("ls .", True),
            ("cat README.md", True),
            ("rm -rf /", False),
            ("ls; rm -rf /", False),
            ("sudo cat /etc/shadow", False),
            ("python -c 'print(1)'", False),
        ],
    )
    def test_lists(self, engine: PolicyEngine, command: str, expected: bool) -> None:
        assert engine.check_command("bash", command).allowed is expected

    def test_denylist_reason_names_rule(self, engine: PolicyEngine) -> None:
        decision = engine.check_command("bash", "ls; rm -rf /")
        assert decision.reason == "denied by denylist rule: *;*"
        assert decision.rule_matched == "denylist[*;*]"

    def test_denylist_wins_over_allowlist(self) -> None:
        engine = make_engine(bash=ToolPolicy(enabled=True, allowlist=["*"], denylist=["rm *"]))
        assert engine.check_command("bash", "rm -rf /").allowed is False
        assert engine.check_command("bash", "echo hi").allowed is True

    def test_no_allowlist_match(self, engine: PolicyEngine) -> None:
        decision = engine.check_command("bash", "curl evil.com")
        assert decision.allowed is False
        assert decision.reason == "no matching allowlist rule"

    def test_empty_command_denied(self, engine: PolicyEngine) -> None:
        assert engine.check_command("bash", "   ").allowed is False


# =============================================================================
# Strict Symlink Mode Tests
# =============================================================================


class TestStrictSymlinks:
    """Tests for strict_symlinks, which follows links before matching."""

    @pytest.fixture
    def layout(self, temp_dir: Path) -> tuple[Path, Path]:
        workspace = temp_dir / "ws"
        outside = temp_dir / "outside"
        workspace.mkdir()
        outside.mkdir()
        (outside / "secret.txt").write_text("secret")
        (workspace / "link").symlink_to(outside / "secret.txt")
        (workspace / "real.txt").write_text("ok")
        return workspace, outside

    def _engine(self, workspace: Path, strict: bool) -> PolicyEngine:
        return PolicyEngine(
            Policy(
                workspace=str(workspace),
                strict_symlinks=strict,
                tools={"read": ToolPolicy(enabled=True, allow=["./**"])},
            )
        )

    def test_lexical_mode_judges_link_location(self, layout: tuple[Path, Path]) -> None:
        workspace, _ = layout
        assert self._engine(workspace, strict=False).check_path("read", "link").allowed is True

    def test_strict_mode_follows_link(self, layout: tuple[Path, Path]) -> None:
        workspace, _ = layout
        engine = self._engine(workspace, strict=True)
        assert engine.check_path("read", "link").allowed is False
        assert engine.check_path("read", "real.txt").allowed is True

    def test_strict_mode_resolves_pattern_base(self, temp_dir: Path) -> None:
        """A workspace reached through a symlink still matches its own files."""
        real = temp_dir / "real_ws"
        real.mkdir()
        (real / "a.txt").write_text("a")
        alias = temp_dir / "alias_ws"
        alias.symlink_to(real)

        engine = PolicyEngine(
            Policy(
                workspace=str(alias),
                strict_symlinks=True,
                tools={"read": ToolPolicy(enabled=True, allow=[f"{alias}/**"])},
            )
        )
        assert engine.resolve_path("a.txt") == os.path.join(str(real), "a.txt")
        assert engine.check_path("read", "a.txt").allowed is True

    def test_strict_mode_workspace_fallback_through_link(self, temp_dir: Path) -> None:
        """default_deny=false still allows the workspace when it is reached through a link."""
        real = temp_dir / "real"
        real.mkdir()
        link = temp_dir / "link"
        link.symlink_to(real)

        engine = PolicyEngine(
            Policy(
                workspace=str(link),
                default_deny=False,
                strict_symlinks=True,
                tools={"read": ToolPolicy(enabled=True)},
            )
        )
        decision = engine.check_path("read", "notes.txt")
        assert decision.allowed is True
        assert decision.rule_matched == "workspace"
        assert engine.check_path("read", str(temp_dir / "other.txt")).allowed is False


# =============================================================================
# Determinism and Logging Tests
# =============================================================================


class TestDeterminism:
    """The same inputs always produce the same decision."""

    def test_repeated_checks_are_identical(self, sample_policy_yaml: str) -> None:
        engine = PolicyEngine(load_policy_from_string(sample_policy_yaml))
        calls = [
            ("path", "read", "src/main.py"),
            ("path", "read", "config/.env"),
            ("command", "bash", "ls; rm -rf /"),
            ("domain", "web_fetch", "sub.trusted.com"),
        ]
        checks = {
            "path": engine.check_path,
            "command": engine.check_command,
            "domain": engine.check_domain,
        }
        first = [checks[kind](tool, value) for kind, tool, value in calls]
        for _ in range(5):
            assert [checks[kind](tool, value) for kind, tool, value in calls] == first

    def test_separate_engines_agree(self, sample_policy_yaml: str) -> None:
        a = PolicyEngine(load_policy_from_string(sample_policy_yaml))
        b = PolicyEngine(load_policy_from_string(sample_policy_yaml))
        assert a.check_path("read", "/home/user/project/x.py") == b.check_path(
            "read", "/home/user/project/x.py"
        )


class TestLogging:
    """Decisions are logged at DEBUG."""

    def test_decision_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True, allow=["/ws/**"]))
        with caplog.at_level(logging.DEBUG, logger="toolgate.policy.engine"):
            engine.check_path("read", "/etc/passwd")
        assert any("DENY read path" in r.getMessage() for r in caplog.records)

    def test_repr_lists_enabled_tools(self) -> None:
        engine = make_engine(read=ToolPolicy(enabled=True), write=ToolPolicy(enabled=False))
        assert repr(engine) == "<PolicyEngine workspace='/ws' enabled=['read']>"
