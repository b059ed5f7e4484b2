from __future__ import annotations

import json
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from mcp.server.fastmcp import FastMCP

from azure_devops_mcp.catalog import configure_all_tools


@pytest.fixture(autouse=True)
def clean_tool_env(monkeypatch):
    """Keep the developer's shell overrides out of the tests."""
    for name in ("ADO_MCP_ENABLED_TOOLS", "ADO_MCP_DISABLED_TOOLS", "ADO_MCP_AUTH_TOKEN", "ADO_MCP_PAT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def manager(client) -> MagicMock:
    manager = MagicMock()
    manager.get_client = AsyncMock(return_value=client)
    manager.get_current_user_id = AsyncMock(return_value="user-1")
    manager.aclose = AsyncMock()
    return manager


def build_mcp(manager: Any, override: Optional[str] = None, mode: str = "deny") -> FastMCP:
    """Server with the requested tools; deny mode with no override registers everything."""
    mcp = FastMCP("test")
    configure_all_tools(mcp, manager, mode=mode, override=override or "")
    return mcp


def get_tool(mcp: FastMCP, name: str):
    tool = mcp._tool_manager._tools.get(name)
    assert tool is not None, f"{name} not registered"
    return tool


def result_text(result) -> str:
    assert len(result.content) == 1
    return result.content[0].text


def result_json(result) -> Any:
    assert result.isError is False, result_text(result)
    return json.loads(result_text(result))
