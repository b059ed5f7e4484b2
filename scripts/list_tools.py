"""
Print the tools the server would register for the current environment.

Honours ADO_MCP_CONFIG and ADO_MCP_ENABLED_TOOLS / ADO_MCP_DISABLED_TOOLS;
does not contact Azure DevOps.
"""
from __future__ import annotations

import asyncio
import sys

from azure_devops_mcp.config import resolve_config
from azure_devops_mcp.server import create_server


async def main() -> None:
    organization = sys.argv[1] if len(sys.argv) > 1 else "example-org"
    bundle = create_server(resolve_config(), organization=organization)
    tools = await bundle.mcp.list_tools()
    print("Available tools:")
    for tool in tools:
        print(f"- {tool.name}: {tool.description}")


if __name__ == "__main__":
    asyncio.run(main())
