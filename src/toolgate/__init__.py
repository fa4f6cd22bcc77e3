"""
Toolgate - Policy gate for the tools of an autonomous agent.

Every action an agent's tools may perform (reading or writing files, running
shell commands, fetching URLs) is checked against a per-tool policy first.
It provides:
- Deny-wins, default-deny decisions for paths, domains and commands
- Segment-aware path globs with traversal normalization
- A tool registry that only advertises enabled tools

This is an application-level gate, not an OS sandbox.

Example usage:
    $ toolgate check path read ./notes.txt --policy policy.yaml
    $ toolgate tools --policy policy.yaml
    $ toolgate run bash --arg command="ls -la" --policy policy.yaml
"""

__version__ = "0.1.0"
__author__ = "Toolgate Contributors"

__all__ = [
    "__version__",
    "__author__",
]
