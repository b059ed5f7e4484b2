from __future__ import annotations

from typing import AbstractSet, Annotated, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult
from pydantic import Field

from ..client import AzureDevOpsClientManager
from ..projections import to_identity_search_result, to_team_project_result
from ..results import run_tool
from . import ToolRegistrar

CORE_TOOLS = {
    "list_azure_devops_projects": "list_azure_devops_projects",
    "get_azure_devops_identity_ids": "get_azure_devops_identity_ids",
}


def configure_core_tools(
    mcp: FastMCP,
    manager: AzureDevOpsClientManager,
    disabled_tools: AbstractSet[str],
) -> list[str]:
    register = ToolRegistrar(mcp, disabled_tools)

    @register(
        CORE_TOOLS["list_azure_devops_projects"],
        "[Azure DevOps] Retrieve a list of projects in your Azure DevOps organization.",
    )
    async def list_azure_devops_projects(
        stateFilter: Annotated[
            Literal["all", "wellFormed", "createPending", "deleted"],
            Field(description="Filter projects by their state. Defaults to 'wellFormed'."),
        ] = "wellFormed",
        top: Annotated[int, Field(ge=0, description="The maximum number of projects to return.")] = 100,
        skip: Annotated[int, Field(ge=0, description="The number of projects to skip for pagination.")] = 0,
        continuationToken: Annotated[
            Optional[int], Field(description="Continuation token for pagination. Used to fetch the next set of results.")
        ] = None,
        projectNameFilter: Annotated[
            Optional[str], Field(description="Filter projects by name. Supports partial matches.")
        ] = None,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            projects = await client.get_projects(stateFilter, top, skip, continuationToken)
            if projectNameFilter:
                needle = projectNameFilter.lower()
                projects = [p for p in projects if needle in (p.get("name") or "").lower()]
            return [to_team_project_result(p) for p in projects]

        return await run_tool(
            CORE_TOOLS["list_azure_devops_projects"], operation, "Failed to list projects."
        )

    @register(
        CORE_TOOLS["get_azure_devops_identity_ids"],
        "[Azure DevOps] Retrieve Azure DevOps identity IDs for a provided search filter.",
    )
    async def get_azure_devops_identity_ids(
        searchFilter: Annotated[
            str, Field(description="Search filter (unique name, display name or email) to look up identities.")
        ],
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            identities = await client.search_identities(searchFilter)
            return [to_identity_search_result(identity) for identity in identities]

        return await run_tool(
            CORE_TOOLS["get_azure_devops_identity_ids"], operation, "Failed to get identity ids."
        )

    return register.registered
