from __future__ import annotations

import json
import logging
import uuid
from typing import AbstractSet, Annotated, Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult
from pydantic import BaseModel, ConfigDict, Field

from ..client import AzureDevOpsClient, AzureDevOpsClientManager
from ..pagination import paginate
from ..results import run_tool
from . import ToolRegistrar

logger = logging.getLogger("azure_devops_mcp.tools.search")

SEARCH_TOOLS = {
    "search_azure_devops_code": "search_azure_devops_code",
    "search_azure_devops_wiki": "search_azure_devops_wiki",
    "search_azure_devops_workitem": "search_azure_devops_workitem",
}


class WikiSearchFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    Project: Optional[List[str]] = Field(default=None, description="Filter in these projects")
    Wiki: Optional[List[str]] = Field(default=None, description="Filter in these wiki names")


class WikiSearchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    searchText: str = Field(description="Search text to find in wikis")
    skip: int = Field(default=0, ge=0, alias="$skip", description="Number of results to skip (for pagination)")
    top: int = Field(default=10, ge=0, alias="$top", description="Number of results to return (for pagination)")
    filters: Optional[WikiSearchFilters] = Field(default=None, description="Filters to apply to the search text")
    includeFacets: Optional[bool] = None


class WorkItemSearchFilters(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    team_project: Optional[List[str]] = Field(
        default=None, alias="System.TeamProject", description="Filter by team project"
    )
    area_path: Optional[List[str]] = Field(default=None, alias="System.AreaPath", description="Filter by area path")
    work_item_type: Optional[List[str]] = Field(
        default=None,
        alias="System.WorkItemType",
        description="Filter by work item type like Bug, Task, User Story",
    )
    state: Optional[List[str]] = Field(default=None, alias="System.State", description="Filter by state")
    assigned_to: Optional[List[str]] = Field(
        default=None, alias="System.AssignedTo", description="Filter by assigned to"
    )


class WorkItemSearchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    searchText: str = Field(description="Search text to find in work items")
    skip: int = Field(default=0, ge=0, alias="$skip", description="Number of results to skip for pagination")
    top: int = Field(default=10, ge=0, alias="$top", description="Number of results to return")
    filters: Optional[WorkItemSearchFilters] = None
    includeFacets: Optional[bool] = None


def _is_guid(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


async def _fetch_git_items(client: AzureDevOpsClient, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Fetch the indexed version of each hit. A failing hit yields an error
    entry instead of failing the whole search.
    """
    combined: List[Dict[str, Any]] = []
    for result in results:
        project_id = (result.get("project") or {}).get("id")
        repository_id = (result.get("repository") or {}).get("id")
        file_path = result.get("path")
        versions = result.get("versions") or []
        change_id = versions[0].get("changeId") if versions else None
        if not project_id or not repository_id or not file_path or not change_id:
            combined.append(
                {
                    "error": "Missing projectId, repositoryId, filePath, or changeId in the result: "
                    + json.dumps(result, default=str)
                }
            )
            continue
        try:
            item = await client.get_item(repository_id, file_path, project=project_id, commit_id=change_id)
        except Exception as exc:
            logger.debug(f"Could not fetch {file_path} from {repository_id}: {exc}")
            combined.append({"error": str(exc)})
            continue
        combined.append({"gitItem": item})
    return combined


async def perform_code_search(
    manager: AzureDevOpsClientManager,
    search_text: str,
    skip: int,
    top: int,
    project_filter: Optional[str] = None,
    repo_filter: Optional[str] = None,
    path_filter: Optional[str] = None,
) -> Dict[str, Any]:
    client = await manager.get_client()

    if _is_guid(project_filter):
        project = await client.get_project(project_filter)
        project_filter = project.get("name")

    if _is_guid(repo_filter):
        repo = await client.get_repository(repo_filter)
        repo_filter = repo.get("name")
        # the repository knows its project, which beats any caller-supplied one
        if repo.get("project"):
            project_filter = repo["project"].get("name")

    if repo_filter and not project_filter:
        raise ValueError("Project filter is required when repository filter is used.")
    if path_filter and (not repo_filter or not project_filter):
        raise ValueError("Both project and repository filters are required when path filter is used.")

    search_request: Dict[str, Any] = {"searchText": search_text, "$skip": skip, "$top": top}
    if project_filter or repo_filter or path_filter:
        filters = {
            "Project": [project_filter] if project_filter else None,
            "Repository": [repo_filter] if repo_filter else None,
            "Path": [path_filter] if path_filter else None,
        }
        search_request["filters"] = {k: v for k, v in filters.items() if v is not None}

    search_results = await client.search("code", search_request)
    hits = search_results.get("results")
    top_hits = paginate(hits, 0, top) if isinstance(hits, list) else []
    git_items = await _fetch_git_items(client, top_hits)
    return {"searchResults": search_results, "gitItems": git_items}


def configure_search_tools(
    mcp: FastMCP,
    manager: AzureDevOpsClientManager,
    disabled_tools: AbstractSet[str],
) -> list[str]:
    register = ToolRegistrar(mcp, disabled_tools)

    @register(SEARCH_TOOLS["search_azure_devops_code"], "Get the code search results for a given search text.")
    async def search_azure_devops_code(
        searchText: Annotated[str, Field(description="Search text to find in code")],
        skip: Annotated[int, Field(ge=0, description="Number of results to skip (for pagination)")] = 0,
        top: Annotated[int, Field(ge=0, description="Number of results to return (for pagination)")] = 5,
        projectName: Annotated[Optional[str], Field(description="Filter search results in this project name.")] = None,
        repositoryName: Annotated[
            Optional[str], Field(description="Filter search results in this repository name.")
        ] = None,
        path: Annotated[Optional[str], Field(description="Filter search results under this item path.")] = None,
    ) -> CallToolResult:
        async def operation():
            return await perform_code_search(manager, searchText, skip, top, projectName, repositoryName, path)

        return await run_tool(SEARCH_TOOLS["search_azure_devops_code"], operation, "Code search failed.")

    @register(SEARCH_TOOLS["search_azure_devops_wiki"], "Get wiki search results for a given search text.")
    async def search_azure_devops_wiki(searchRequest: WikiSearchRequest) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            return await client.search("wiki", searchRequest.model_dump(by_alias=True, exclude_none=True))

        return await run_tool(SEARCH_TOOLS["search_azure_devops_wiki"], operation, "Wiki search failed.")

    @register(SEARCH_TOOLS["search_azure_devops_workitem"], "Get work item search results for a given search text.")
    async def search_azure_devops_workitem(searchRequest: WorkItemSearchRequest) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            return await client.search("workitem", searchRequest.model_dump(by_alias=True, exclude_none=True))

        return await run_tool(SEARCH_TOOLS["search_azure_devops_workitem"], operation, "Work item search failed.")

    return register.registered
