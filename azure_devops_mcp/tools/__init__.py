"""
Tool families. Each module owns a name table (CORE_TOOLS, REPO_TOOLS, ...)
and a configure_* function registering the tools that are not disabled.
"""
from __future__ import annotations

from typing import AbstractSet, Any, Callable, Optional, TypeVar

from mcp.server.fastmcp import FastMCP

F = TypeVar("F", bound=Callable[..., Any])


class ToolRegistrar:
    """
    Registers a family's handlers unless their name is disabled.

    Used as a decorator factory so handler definitions read like plain
    @mcp.tool(...) registrations:

        register = ToolRegistrar(mcp, disabled_tools)

        @register(REPO_TOOLS["get_branch_by_name"], "Get a branch by its name.")
        async def get_branch_by_name(...): ...
    """

    def __init__(self, mcp: FastMCP, disabled_tools: AbstractSet[str]) -> None:
        self.mcp = mcp
        self.disabled_tools = disabled_tools
        self.registered: list[str] = []

    def is_enabled(self, name: str) -> bool:
        return name not in self.disabled_tools

    def __call__(self, name: str, description: str, title: Optional[str] = None) -> Callable[[F], F]:
        def decorator(fn: F) -> F:
            if self.is_enabled(name):
                self.mcp.add_tool(fn, name=name, title=title, description=description, structured_output=False)
                self.registered.append(name)
            return fn

        return decorator
