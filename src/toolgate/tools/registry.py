"""
Tool registry for Toolgate.

The registry maps tool names to tool capabilities and hands the planner
the definitions of the tools it may use. It makes no policy decision of
its own: each tool checks its own resource.

Design:
    - One registry per Policy, built once at startup by build_registry()
    - Frozen after construction; a policy reload builds a new registry
    - No global default registry: callers pass the instance around
    - "Unavailable" (unknown or disabled) is distinct from "denied"

Usage:
    registry = build_registry(policy)
    for definition in registry.definitions():
        ...
    output = registry.execute("read", {"path": "notes.txt"}, ToolContext())
"""

import logging
from collections.abc import Callable
from typing import Any, Iterator

from toolgate.errors import ERROR_CONFIG_WORKSPACE, ConfigError, ToolUnavailableError
from toolgate.patterns import PatternKind
from toolgate.policy import PolicyEngine
from toolgate.schema import Policy
from toolgate.tools.base import Tool, ToolContext, ToolDefinition, ToolOutput, definition_of
from toolgate.tools.fs import path_tools
from toolgate.tools.shell import BashTool
from toolgate.tools.web import WebFetchTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry for looking up tools by name.

    Attributes:
        engine: The PolicyEngine shared by every registered tool
        _tools: Internal mapping of tool names to tool instances
    """

    def __init__(self, engine: PolicyEngine) -> None:
        """Initialize an empty, unfrozen registry."""
        self.engine = engine
        self._tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool) -> None:
        """
        Register a tool in the registry.

        Args:
            tool: The tool instance to register

        Raises:
            ValueError: If tool is None, has an empty name or a duplicate name
            RuntimeError: If the registry has been frozen
        """
        if self._frozen:
            msg = "Cannot register tools after the registry is frozen"
            raise RuntimeError(msg)

        if tool is None:
            msg = "Cannot register None as a tool"
            raise ValueError(msg)

        name = tool.name
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)

        if name in self._tools:
            msg = f"Tool already registered: {name}"
            raise ValueError(msg)

        self._tools[name] = tool

    def freeze(self) -> "ToolRegistry":
        """Stop accepting registrations. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool | None:
        """
        Look up a tool by name.

        Args:
            name: The tool's unique identifier

        Returns:
            The registered tool instance, or None if not registered
        """
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        """
        Look up a tool that is registered and enabled.

        Raises:
            ToolUnavailableError: If the tool is unknown or disabled
        """
        tool = self._tools.get(name)
        if tool is None or not self.engine.is_tool_enabled(name):
            raise ToolUnavailableError(tool=name)
        return tool

    def definitions(self) -> list[ToolDefinition]:
        """
        Definitions of enabled tools, sorted by name.

        Disabled tools never appear, so the planner cannot plan around a tool
        it is not allowed to use.
        """
        return [
            definition_of(self._tools[name])
            for name in self.list_tools()
            if self.engine.is_tool_enabled(name)
        ]

    def execute(
        self,
        name: str,
        args: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolOutput:
        """
        Dispatch a call to a tool.

        Unknown and disabled tools yield a ToolUnavailable failure. The tool
        itself performs the policy check for its resource.

        Args:
            name: Tool to call
            args: Call arguments
            context: Per-call context (a fresh one if omitted)

        Returns:
            ToolOutput from the tool, or an unavailable failure
        """
        try:
            tool = self.require(name)
        except ToolUnavailableError as e:
            logger.info("tool unavailable: %s", name)
            return ToolOutput.from_error(e, tool=name)

        output = tool.execute(args, context or ToolContext())
        if output.is_denied:
            logger.info("%s denied: %s", name, output.error)
        elif not output.success:
            logger.debug("%s failed: %s", name, output.error)
        return output

    def list_tools(self) -> list[str]:
        """
        List all registered tool names.

        Returns:
            List of tool names in sorted order
        """
        return sorted(self._tools.keys())

    def __len__(self) -> int:
        """Return the number of registered tools."""
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        """Iterate over all registered tools."""
        return iter(self._tools.values())

    def __contains__(self, name: str) -> bool:
        """Check if a tool is registered using 'in' operator."""
        return name in self._tools

    def __repr__(self) -> str:
        """String representation of the registry."""
        tools = ", ".join(self.list_tools())
        return f"<ToolRegistry: [{tools}]>"


def builtin_tools(engine: PolicyEngine) -> list[Tool]:
    """Instantiate every built-in tool around ``engine``."""
    return [*path_tools(engine), BashTool(engine), WebFetchTool(engine)]


def build_registry(
    policy: Policy,
    extra_tools: list[Callable[[PolicyEngine], Tool]] | None = None,
) -> ToolRegistry:
    """
    Build and freeze the registry for a policy.

    Args:
        policy: The policy every tool will enforce
        extra_tools: Factories for additional tools, called with the shared engine

    Returns:
        A frozen ToolRegistry with the built-in tools registered

    Raises:
        ConfigError: If a path tool is enabled but no workspace is configured
    """
    engine = PolicyEngine(policy)
    registry = ToolRegistry(engine)
    for tool in [*builtin_tools(engine), *(factory(engine) for factory in extra_tools or [])]:
        registry.register(tool)

    if not policy.workspace:
        for tool in registry:
            if tool.kind is PatternKind.PATH and engine.is_tool_enabled(tool.name):
                raise ConfigError(
                    message=f"Tool {tool.name} is enabled but no workspace is configured",
                    code=ERROR_CONFIG_WORKSPACE,
                    field_name="workspace",
                    suggestion="Set workspace to an absolute directory",
                )

    return registry.freeze()
