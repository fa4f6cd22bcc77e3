"""
Tools module for Toolgate.

This module provides the tool capability contract and built-in tools.
Each tool extracts its resource from the call arguments and asks the
PolicyEngine before acting.

Built-in tools:
    - read, write, edit, ls, glob, grep: path-kind
    - bash: command-kind
    - web_fetch: domain-kind

Architecture:
    - Tool: Protocol every capability satisfies
    - ToolRegistry: Name -> tool lookup plus the planner-facing listing
    - ToolContext: Per-call context passed to tools
    - ToolOutput: Standardized result format from tool execution

Each tool is responsible for:
    1. Validating its arguments
    2. Checking its resource against the policy
    3. Executing the operation only when allowed
    4. Returning a standardized ToolOutput
"""

from toolgate.tools.base import Tool, ToolContext, ToolDefinition, ToolOutput
from toolgate.tools.fs import EditTool, GlobTool, GrepTool, LsTool, ReadTool, WriteTool
from toolgate.tools.registry import ToolRegistry, build_registry, builtin_tools
from toolgate.tools.shell import BashTool
from toolgate.tools.web import WebFetchTool

__all__ = [
    "Tool",
    "ToolContext",
    "ToolDefinition",
    "ToolOutput",
    "ToolRegistry",
    "build_registry",
    "builtin_tools",
    "ReadTool",
    "WriteTool",
    "EditTool",
    "LsTool",
    "GlobTool",
    "GrepTool",
    "BashTool",
    "WebFetchTool",
]
