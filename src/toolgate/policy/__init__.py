"""
Policy Engine module for Toolgate.

This module implements the core security model: every tool action is checked
against a per-tool rule set before it runs.

Key concepts:
    - Deny wins: a deny/denylist match overrides any allow match
    - Default-deny: no allow match means no access
    - PolicyDecision: The result of a check (allowed + reason)
    - PolicyEngine: Evaluates paths, domains and commands for a tool

The policy engine must be:
    - Fail-closed: Invalid input results in denial
    - Predictable: Same inputs always produce same decisions
    - Auditable: All decisions carry a reason and are logged at DEBUG
"""

from toolgate.policy.engine import PolicyEngine

__all__ = [
    "PolicyEngine",
]
