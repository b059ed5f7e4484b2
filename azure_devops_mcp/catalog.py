"""
Tool catalog and enablement gate.

The catalog is the explicit table of every tool name grouped by category.
Which tools get registered is decided once, before any family is configured:

- allow mode (default): everything is disabled except DEFAULT_ENABLED_TOOLS
  and whatever ADO_MCP_ENABLED_TOOLS names.
- deny mode: everything is enabled except what ADO_MCP_DISABLED_TOOLS names.

Override tokens are comma separated, trimmed, and name either a category
(e.g. "category_repo") or a single tool. Unknown tokens are ignored.
"""
from __future__ import annotations

import logging
from typing import AbstractSet, Callable, Dict, FrozenSet, Iterable, List, Literal, Mapping, Optional

from mcp.server.fastmcp import FastMCP

from .client import AzureDevOpsClientManager
from .env_utils import split_tokens, tool_override
from .errors import ToolConfigurationError
from .tools.core import CORE_TOOLS, configure_core_tools
from .tools.repos import REPO_TOOLS, configure_repo_tools
from .tools.search import SEARCH_TOOLS, configure_search_tools

logger = logging.getLogger("azure_devops_mcp.catalog")

EnablementMode = Literal["allow", "deny"]

ConfigureFamily = Callable[[FastMCP, AzureDevOpsClientManager, AbstractSet[str]], List[str]]

TOOLS_CATEGORY_MAP: Dict[str, Mapping[str, str]] = {
    "category_core": CORE_TOOLS,
    "category_repo": REPO_TOOLS,
    "category_search": SEARCH_TOOLS,
}

# registration order; categories map 1:1 onto families
FAMILIES: List[ConfigureFamily] = [
    configure_core_tools,
    configure_repo_tools,
    configure_search_tools,
]

DEFAULT_ENABLED_TOOLS: List[str] = [
    CORE_TOOLS["list_azure_devops_projects"],
    CORE_TOOLS["get_azure_devops_identity_ids"],
    SEARCH_TOOLS["search_azure_devops_code"],
    REPO_TOOLS["get_azure_devops_repositories"],
    REPO_TOOLS["get_azure_devops_pull_request_by_id"],
    REPO_TOOLS["get_azure_devops_changes_by_commit"],
    REPO_TOOLS["get_azure_devops_content_by_objectid"],
    REPO_TOOLS["get_azure_devops_item_content_by_commit"],
    REPO_TOOLS["list_azure_devops_pull_request_threads"],
    REPO_TOOLS["list_azure_devops_pull_request_comments_by_thread"],
]


def category_tool_names(categories: Mapping[str, Mapping[str, str]]) -> List[str]:
    return [name for tools in categories.values() for name in tools.values()]


def assert_unique_tool_names(categories: Mapping[str, Mapping[str, str]]) -> None:
    """Fail fast when a tool name is declared more than once."""
    owners: Dict[str, str] = {}
    for category, tools in categories.items():
        for name in tools.values():
            if name in owners:
                raise ToolConfigurationError(
                    f"Tool '{name}' is declared by both {owners[name]} and {category}"
                )
            owners[name] = category


def resolve_tokens(tokens: Iterable[str], categories: Mapping[str, Mapping[str, str]]) -> set[str]:
    """Expand category tokens into their tool names; other tokens stand for themselves."""
    names: set[str] = set()
    for token in tokens:
        token = token.strip()
        if not token:
            continue
        category = categories.get(token)
        if category is not None:
            names.update(category.values())
        else:
            names.add(token)
    return names


def compute_disabled_tools(
    categories: Mapping[str, Mapping[str, str]],
    default_enabled: Iterable[str],
    override: str,
    mode: EnablementMode = "allow",
) -> FrozenSet[str]:
    tokens = resolve_tokens(split_tokens(override), categories)
    if mode == "deny":
        return frozenset(tokens)

    disabled = set(category_tool_names(categories))
    disabled.difference_update(tokens)
    disabled.difference_update(default_enabled)
    return frozenset(disabled)


def configure_all_tools(
    mcp: FastMCP,
    manager: AzureDevOpsClientManager,
    mode: EnablementMode = "allow",
    override: Optional[str] = None,
) -> List[str]:
    """
    Compute the disabled set and let every family register its remaining
    tools. Returns the registered names in registration order.
    """
    assert_unique_tool_names(TOOLS_CATEGORY_MAP)
    if mode not in ("allow", "deny"):
        raise ToolConfigurationError(f"Unknown tool enablement mode: {mode}")
    if override is None:
        override = tool_override(mode)

    disabled_tools = compute_disabled_tools(TOOLS_CATEGORY_MAP, DEFAULT_ENABLED_TOOLS, override, mode)

    registered: List[str] = []
    for configure in FAMILIES:
        registered.extend(configure(mcp, manager, disabled_tools))

    logger.info(
        f"Registered {len(registered)} tools ({mode} mode, {len(disabled_tools)} disabled)"
    )
    return registered
