"""
Pytest configuration and fixtures for Toolgate tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from toolgate.policy import PolicyEngine
from toolgate.schema import Policy, ToolPolicy
from toolgate.tools import ToolContext


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def context() -> ToolContext:
    """A fresh per-call context."""
    return ToolContext(run_id="test-run")


@pytest.fixture
def workspace_policy(temp_dir: Path) -> Policy:
    """Policy enabling every path tool inside temp_dir, with .ssh denied."""
    rules = ToolPolicy(
        enabled=True,
        allow=[f"{temp_dir}/**"],
        deny=[f"{temp_dir}/.ssh/**"],
    )
    return Policy(
        workspace=str(temp_dir),
        default_deny=True,
        tools={name: rules for name in ("read", "write", "edit", "ls", "glob", "grep")},
    )


@pytest.fixture
def workspace_engine(workspace_policy: Policy) -> PolicyEngine:
    return PolicyEngine(workspace_policy)


@pytest.fixture
def sample_policy_yaml() -> str:
    """Return a simple policy YAML for testing."""
    return """
workspace: /home/user/project
default_deny: true
tools:
  read:
    enabled: true
    allow:
      - "./**"
    deny:
      - "**/.env"
  bash:
    enabled: true
    allowlist: ["ls *", "cat *"]
    denylist: ["rm *", "sudo *", "*;*"]
  web_fetch:
    enabled: true
    allow_domains: ["api.example.com", "*.trusted.com"]
  write:
    enabled: false
"""


@pytest.fixture
def strict_policy_yaml() -> str:
    """Return a strict policy YAML that denies everything."""
    return """
workspace: /srv/agent
default_deny: true
tools: {}
"""
