from __future__ import annotations

from typing import AbstractSet, Annotated, Any, Dict, List, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult
from pydantic import Field

from ..client import AzureDevOpsClientManager
from ..errors import NotFoundError
from ..pagination import BRANCH_REFS_PREFIX, branch_names, paginate, sort_by_id, sort_by_name, strip_branch_prefix
from ..projections import (
    CommentThreadStatus,
    GitPullRequestQueryType,
    GitVersionType,
    PullRequestResult,
    RepositoryResult,
    pull_request_status_to_int,
    to_git_commit_changes_result,
    to_git_commit_diffs_result,
    to_git_commit_result,
    to_pull_request_result,
    to_repository_result,
)
from ..results import run_tool
from . import ToolRegistrar

REPO_TOOLS = {
    "get_azure_devops_repositories": "get_azure_devops_repositories",
    "get_azure_devops_pull_request_by_id": "get_azure_devops_pull_request_by_id",
    "get_azure_devops_changes_by_commit": "get_azure_devops_changes_by_commit",
    "get_azure_devops_item_content_by_commit": "get_azure_devops_item_content_by_commit",
    "get_azure_devops_content_by_objectid": "get_azure_devops_content_by_objectid",
    "list_azure_devops_pull_request_threads": "list_azure_devops_pull_request_threads",
    "list_azure_devops_pull_request_comments_by_thread": "list_azure_devops_pull_request_comments_by_thread",
    "list_pull_requests_by_repo": "repo_list_pull_requests_by_repo",
    "list_pull_requests_by_project": "repo_list_pull_requests_by_project",
    "list_branches_by_repo": "repo_list_branches_by_repo",
    "list_my_branches_by_repo": "repo_list_my_branches_by_repo",
    "get_branch_by_name": "repo_get_branch_by_name",
    "create_pull_request": "repo_create_pull_request",
    "update_pull_request_status": "repo_update_pull_request_status",
    "update_pull_request_reviewers": "repo_update_pull_request_reviewers",
    "reply_to_comment": "repo_reply_to_comment",
    "resolve_comment": "repo_resolve_comment",
    "search_commits": "repo_search_commits",
    "list_pull_requests_by_commits": "repo_list_pull_requests_by_commits",
}

PullRequestStatusToken = Literal["abandoned", "active", "all", "completed", "notSet"]

DIFF_TOP = 100


async def get_repositories_result(
    manager: AzureDevOpsClientManager,
    project: str,
    repository_name_or_id: Optional[str] = None,
) -> List[RepositoryResult]:
    client = await manager.get_client()
    repositories = await client.get_repositories(project)

    needle = (repository_name_or_id or "").lower()
    if needle:
        repositories = [
            repo
            for repo in repositories
            if needle in (repo.get("name") or "").lower() or (repo.get("id") or "").lower() == needle
        ]
        if not repositories:
            raise NotFoundError(f"Repository {repository_name_or_id} not found in project {project}")

    return [to_repository_result(repo) for repo in repositories]


async def get_pull_request_result(
    manager: AzureDevOpsClientManager,
    repository_id: str,
    pull_request_id: int,
) -> PullRequestResult:
    """
    Pull request with its commits and the diff of the latest commit against
    the target branch. Any failing step fails the whole lookup.
    """
    client = await manager.get_client()
    pull_request = await client.get_pull_request(repository_id, pull_request_id)
    if not pull_request:
        raise NotFoundError(f"Pull request {pull_request_id} not found in repository {repository_id}.")

    result = to_pull_request_result(pull_request)
    commits = await client.get_pull_request_commits(repository_id, pull_request_id)
    result["commits"] = [to_git_commit_result(commit) for commit in commits]

    if commits:
        # upstream lists the newest commit first
        latest_commit_id = commits[0].get("commitId")
        target_branch = strip_branch_prefix(pull_request.get("targetRefName") or "") or "main"
        diffs = await client.get_commit_diffs(
            repository_id,
            base_version=target_branch,
            base_version_type=GitVersionType.Branch.name.lower(),
            target_version=latest_commit_id,
            target_version_type=GitVersionType.Commit.name.lower(),
            top=DIFF_TOP,
        )
        if diffs:
            result["pullRequestChanges"] = to_git_commit_diffs_result(diffs)
    return result


async def get_item_content_by_commit(
    manager: AzureDevOpsClientManager, repository_id: str, commit_id: str, item_path: str
) -> str:
    client = await manager.get_client()
    return await client.get_item_content(repository_id, item_path, commit_id)


async def get_content_by_object_id(manager: AzureDevOpsClientManager, repository_id: str, object_id: str) -> str:
    client = await manager.get_client()
    return await client.get_blob_content(repository_id, object_id)


async def _pull_request_criteria(
    manager: AzureDevOpsClientManager,
    status: str,
    created_by_me: bool,
    i_am_reviewer: bool,
) -> Dict[str, Any]:
    criteria: Dict[str, Any] = {"status": pull_request_status_to_int(status)}
    if created_by_me or i_am_reviewer:
        user_id = await manager.get_current_user_id()
        if created_by_me:
            criteria["creatorId"] = user_id
        if i_am_reviewer:
            criteria["reviewerId"] = user_id
    return criteria


def configure_repo_tools(
    mcp: FastMCP,
    manager: AzureDevOpsClientManager,
    disabled_tools: AbstractSet[str],
) -> list[str]:
    register = ToolRegistrar(mcp, disabled_tools)

    @register(
        REPO_TOOLS["get_azure_devops_repositories"],
        "[Azure DevOps] Get repositories for a given project with optional repository name filter.",
    )
    async def get_azure_devops_repositories(
        project: Annotated[str, Field(description="The name or ID of the Azure DevOps project.")],
        top: Annotated[int, Field(ge=0, description="The maximum number of repositories to return.")] = 100,
        skip: Annotated[int, Field(ge=0, description="The number of repositories to skip. Defaults to 0.")] = 0,
        repositoryNameOrId: Annotated[
            Optional[str], Field(description="Optional filter to search for repositories by name or ID.")
        ] = None,
    ) -> CallToolResult:
        async def operation():
            repositories = await get_repositories_result(manager, project, repositoryNameOrId)
            return paginate(sort_by_name(repositories), skip, top)

        return await run_tool(
            REPO_TOOLS["get_azure_devops_repositories"], operation, "Failed to get repositories."
        )

    @register(REPO_TOOLS["get_azure_devops_pull_request_by_id"], "[Azure DevOps] Get a pull request by its ID.")
    async def get_azure_devops_pull_request_by_id(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request is located.")],
        pullRequestId: Annotated[int, Field(description="The ID of the pull request to retrieve.")],
    ) -> CallToolResult:
        async def operation():
            return await get_pull_request_result(manager, repositoryId, pullRequestId)

        return await run_tool(
            REPO_TOOLS["get_azure_devops_pull_request_by_id"], operation, "Failed to get pull request."
        )

    @register(REPO_TOOLS["get_azure_devops_changes_by_commit"], "[Azure DevOps] Get a list of changes by a commit ID.")
    async def get_azure_devops_changes_by_commit(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the commit is located.")],
        commitId: Annotated[str, Field(description="The ID of the commit to retrieve.")],
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            changes = await client.get_changes(repositoryId, commitId)
            if not changes:
                raise NotFoundError(f"No changes found for commit {commitId}.")
            return to_git_commit_changes_result(changes)

        return await run_tool(
            REPO_TOOLS["get_azure_devops_changes_by_commit"], operation, "Failed to get changes."
        )

    @register(REPO_TOOLS["get_azure_devops_item_content_by_commit"], "[Azure DevOps] Get content of an item by commit ID.")
    async def get_azure_devops_item_content_by_commit(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the item is located.")],
        commitId: Annotated[str, Field(description="The ID of the commit.")],
        itemPath: Annotated[str, Field(description="Item's path.")],
    ) -> CallToolResult:
        async def operation():
            return await get_item_content_by_commit(manager, repositoryId, commitId, itemPath)

        return await run_tool(
            REPO_TOOLS["get_azure_devops_item_content_by_commit"],
            operation,
            "Failed to get item content.",
            context=f"Error getting content for item {itemPath} at commit {commitId}",
        )

    @register(
        REPO_TOOLS["get_azure_devops_content_by_objectid"],
        "[Azure DevOps] Get item content directly by Git object ID (SHA-1 hash) for item with blob gitObjectType.",
    )
    async def get_azure_devops_content_by_objectid(
        repositoryId: Annotated[str, Field(description="The ID of the repository.")],
        objectId: Annotated[str, Field(description="The SHA-1 hash of the Git object (blob).")],
    ) -> CallToolResult:
        async def operation():
            return await get_content_by_object_id(manager, repositoryId, objectId)

        return await run_tool(
            REPO_TOOLS["get_azure_devops_content_by_objectid"],
            operation,
            "Failed to get object content.",
            context=f"Error getting content for object {objectId}",
        )

    @register(
        REPO_TOOLS["list_azure_devops_pull_request_threads"],
        "[Azure DevOps] Retrieve a list of comment threads for a pull request.",
    )
    async def list_azure_devops_pull_request_threads(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request is located.")],
        pullRequestId: Annotated[int, Field(description="The ID of the pull request for which to retrieve threads.")],
        project: Annotated[Optional[str], Field(description="Project ID or project name (optional)")] = None,
        iteration: Annotated[
            Optional[int],
            Field(description="The iteration ID for which to retrieve threads. Optional, defaults to the latest iteration."),
        ] = None,
        baseIteration: Annotated[
            Optional[int],
            Field(description="The base iteration ID for which to retrieve threads. Optional, defaults to the latest base iteration."),
        ] = None,
        top: Annotated[int, Field(ge=0, description="The maximum number of threads to return.")] = 100,
        skip: Annotated[int, Field(ge=0, description="The number of threads to skip.")] = 0,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            threads = await client.get_threads(repositoryId, pullRequestId, project, iteration, baseIteration)
            return paginate(sort_by_id(threads), skip, top)

        return await run_tool(
            REPO_TOOLS["list_azure_devops_pull_request_threads"], operation, "Failed to list threads.", indent=2
        )

    @register(
        REPO_TOOLS["list_azure_devops_pull_request_comments_by_thread"],
        "[Azure DevOps] Retrieve a list of comments in a pull request thread.",
    )
    async def list_azure_devops_pull_request_comments_by_thread(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request is located.")],
        pullRequestId: Annotated[
            int, Field(description="The ID of the pull request for which to retrieve thread comments.")
        ],
        threadId: Annotated[int, Field(description="The ID of the thread for which to retrieve comments.")],
        project: Annotated[Optional[str], Field(description="Project ID or project name (optional)")] = None,
        top: Annotated[int, Field(ge=0, description="The maximum number of comments to return.")] = 100,
        skip: Annotated[int, Field(ge=0, description="The number of comments to skip.")] = 0,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            comments = await client.get_comments(repositoryId, pullRequestId, threadId, project)
            return paginate(sort_by_id(comments), skip, top)

        return await run_tool(
            REPO_TOOLS["list_azure_devops_pull_request_comments_by_thread"],
            operation,
            "Failed to list thread comments.",
            indent=2,
        )

    @register(REPO_TOOLS["create_pull_request"], "Create a new pull request.")
    async def create_pull_request(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request will be created.")],
        sourceRefName: Annotated[
            str, Field(description="The source branch name for the pull request, e.g., 'refs/heads/feature-branch'.")
        ],
        targetRefName: Annotated[
            str, Field(description="The target branch name for the pull request, e.g., 'refs/heads/main'.")
        ],
        title: Annotated[str, Field(description="The title of the pull request.")],
        description: Annotated[Optional[str], Field(description="The description of the pull request. Optional.")] = None,
        isDraft: Annotated[
            bool, Field(description="Indicates whether the pull request is a draft. Defaults to false.")
        ] = False,
        workItems: Annotated[
            Optional[str], Field(description="Work item IDs to associate with the pull request, space-separated.")
        ] = None,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            work_item_refs = [{"id": item.strip()} for item in (workItems or "").split() if item.strip()]
            pull_request = {
                "sourceRefName": sourceRefName,
                "targetRefName": targetRefName,
                "title": title,
                "isDraft": isDraft,
                "workItemRefs": work_item_refs,
            }
            if description is not None:
                pull_request["description"] = description
            return await client.create_pull_request(repositoryId, pull_request)

        return await run_tool(
            REPO_TOOLS["create_pull_request"], operation, "Failed to create pull request.", indent=2
        )

    @register(
        REPO_TOOLS["update_pull_request_status"],
        "Update status of an existing pull request to active or abandoned.",
    )
    async def update_pull_request_status(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request exists.")],
        pullRequestId: Annotated[int, Field(description="The ID of the pull request to be updated.")],
        status: Annotated[
            Literal["active", "abandoned"],
            Field(description="The new status of the pull request. Can be 'active' or 'abandoned'."),
        ],
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            update = {"status": pull_request_status_to_int(status)}
            return await client.update_pull_request(repositoryId, pullRequestId, update)

        return await run_tool(
            REPO_TOOLS["update_pull_request_status"], operation, "Failed to update pull request status.", indent=2
        )

    @register(REPO_TOOLS["update_pull_request_reviewers"], "Add or remove reviewers for an existing pull request.")
    async def update_pull_request_reviewers(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request exists.")],
        pullRequestId: Annotated[int, Field(description="The ID of the pull request to update.")],
        reviewerIds: Annotated[
            List[str], Field(description="List of reviewer ids to add or remove from the pull request.")
        ],
        action: Annotated[
            Literal["add", "remove"],
            Field(description="Action to perform on the reviewers. Can be 'add' or 'remove'."),
        ],
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            if action == "add":
                return await client.create_pull_request_reviewers(repositoryId, pullRequestId, reviewerIds)
            for reviewer_id in reviewerIds:
                await client.delete_pull_request_reviewer(repositoryId, pullRequestId, reviewer_id)
            return f"Reviewers with IDs {', '.join(reviewerIds)} removed from pull request {pullRequestId}."

        return await run_tool(
            REPO_TOOLS["update_pull_request_reviewers"], operation, "Failed to update reviewers.", indent=2
        )

    @register(REPO_TOOLS["list_pull_requests_by_repo"], "Retrieve a list of pull requests for a given repository.")
    async def list_pull_requests_by_repo(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull requests are located.")],
        top: Annotated[int, Field(ge=0, description="The maximum number of pull requests to return.")] = 100,
        skip: Annotated[int, Field(ge=0, description="The number of pull requests to skip.")] = 0,
        created_by_me: Annotated[bool, Field(description="Filter pull requests created by the current user.")] = False,
        i_am_reviewer: Annotated[
            bool, Field(description="Filter pull requests where the current user is a reviewer.")
        ] = False,
        status: Annotated[
            PullRequestStatusToken, Field(description="Filter pull requests by status. Defaults to 'active'.")
        ] = "active",
    ) -> CallToolResult:
        async def operation():
            criteria = await _pull_request_criteria(manager, status, created_by_me, i_am_reviewer)
            criteria["repositoryId"] = repositoryId
            client = await manager.get_client()
            pull_requests = await client.get_pull_requests(repositoryId, criteria, skip, top)
            return [to_pull_request_result(pr) for pr in pull_requests]

        return await run_tool(
            REPO_TOOLS["list_pull_requests_by_repo"], operation, "Failed to list pull requests."
        )

    @register(
        REPO_TOOLS["list_pull_requests_by_project"],
        "Retrieve a list of pull requests for a given project Id or Name.",
    )
    async def list_pull_requests_by_project(
        project: Annotated[str, Field(description="The name or ID of the Azure DevOps project.")],
        top: Annotated[int, Field(ge=0, description="The maximum number of pull requests to return.")] = 100,
        skip: Annotated[int, Field(ge=0, description="The number of pull requests to skip.")] = 0,
        created_by_me: Annotated[bool, Field(description="Filter pull requests created by the current user.")] = False,
        i_am_reviewer: Annotated[
            bool, Field(description="Filter pull requests where the current user is a reviewer.")
        ] = False,
        status: Annotated[
            PullRequestStatusToken, Field(description="Filter pull requests by status. Defaults to 'active'.")
        ] = "active",
    ) -> CallToolResult:
        async def operation():
            criteria = await _pull_request_criteria(manager, status, created_by_me, i_am_reviewer)
            client = await manager.get_client()
            pull_requests = await client.get_pull_requests_by_project(project, criteria, skip, top)
            return [to_pull_request_result(pr) for pr in pull_requests]

        return await run_tool(
            REPO_TOOLS["list_pull_requests_by_project"], operation, "Failed to list pull requests."
        )

    @register(REPO_TOOLS["list_branches_by_repo"], "Retrieve a list of branches for a given repository.")
    async def list_branches_by_repo(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the branches are located.")],
        top: Annotated[
            int, Field(ge=0, description="The maximum number of branches to return. Defaults to 100.")
        ] = 100,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            refs = await client.get_refs(repositoryId)
            return branch_names(refs, top)

        return await run_tool(
            REPO_TOOLS["list_branches_by_repo"], operation, "Failed to list branches.", indent=2
        )

    @register(REPO_TOOLS["list_my_branches_by_repo"], "Retrieve a list of my branches for a given repository Id.")
    async def list_my_branches_by_repo(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the branches are located.")],
        top: Annotated[int, Field(ge=0, description="The maximum number of branches to return.")] = 100,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            refs = await client.get_refs(repositoryId, include_my_branches=True)
            return branch_names(refs, top)

        return await run_tool(
            REPO_TOOLS["list_my_branches_by_repo"], operation, "Failed to list branches.", indent=2
        )

    @register(REPO_TOOLS["get_branch_by_name"], "Get a branch by its name.")
    async def get_branch_by_name(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the branch is located.")],
        branchName: Annotated[
            str, Field(description="The name of the branch to retrieve, e.g., 'main' or 'feature-branch'.")
        ],
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            refs = await client.get_refs(repositoryId)
            wanted = f"{BRANCH_REFS_PREFIX}{branchName}"
            for ref in refs:
                if ref.get("name") == wanted:
                    return ref
            raise NotFoundError(f"Branch {branchName} not found in repository {repositoryId}")

        return await run_tool(REPO_TOOLS["get_branch_by_name"], operation, "Failed to get branch.", indent=2)

    @register(REPO_TOOLS["reply_to_comment"], "Replies to a specific comment on a pull request.")
    async def reply_to_comment(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request is located.")],
        pullRequestId: Annotated[int, Field(description="The ID of the pull request where the comment thread exists.")],
        threadId: Annotated[int, Field(description="The ID of the thread to which the comment will be added.")],
        content: Annotated[str, Field(description="The content of the comment to be added.")],
        project: Annotated[Optional[str], Field(description="Project ID or project name (optional)")] = None,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            return await client.create_comment(repositoryId, pullRequestId, threadId, content, project)

        return await run_tool(REPO_TOOLS["reply_to_comment"], operation, "Failed to reply to comment.", indent=2)

    @register(REPO_TOOLS["resolve_comment"], "Resolves a specific comment thread on a pull request.")
    async def resolve_comment(
        repositoryId: Annotated[str, Field(description="The ID of the repository where the pull request is located.")],
        pullRequestId: Annotated[int, Field(description="The ID of the pull request where the comment thread exists.")],
        threadId: Annotated[int, Field(description="The ID of the thread to be resolved.")],
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            update = {"status": int(CommentThreadStatus.Fixed)}
            return await client.update_thread(repositoryId, pullRequestId, threadId, update)

        return await run_tool(REPO_TOOLS["resolve_comment"], operation, "Failed to resolve comment.", indent=2)

    @register(REPO_TOOLS["search_commits"], "Searches for commits in a repository")
    async def search_commits(
        project: Annotated[str, Field(description="Project name or ID")],
        repository: Annotated[str, Field(description="Repository name or ID")],
        fromCommit: Annotated[Optional[str], Field(description="Starting commit ID")] = None,
        toCommit: Annotated[Optional[str], Field(description="Ending commit ID")] = None,
        version: Annotated[
            Optional[str], Field(description="The name of the branch, tag or commit to filter commits by")
        ] = None,
        versionType: Annotated[
            Literal["Branch", "Tag", "Commit"],
            Field(description="The meaning of the version parameter, e.g., branch, tag or commit"),
        ] = "Branch",
        skip: Annotated[int, Field(ge=0, description="Number of commits to skip")] = 0,
        top: Annotated[int, Field(ge=0, description="Maximum number of commits to return")] = 10,
        includeLinks: Annotated[bool, Field(description="Include commit links")] = False,
        includeWorkItems: Annotated[bool, Field(description="Include associated work items")] = False,
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            criteria: Dict[str, Any] = {
                "fromCommitId": fromCommit,
                "toCommitId": toCommit,
                "includeLinks": includeLinks,
                "includeWorkItems": includeWorkItems,
            }
            if version:
                criteria["itemVersion.version"] = version
                criteria["itemVersion.versionType"] = GitVersionType[versionType].name.lower()
            return await client.get_commits(repository, project, criteria, skip, top)

        return await run_tool(
            REPO_TOOLS["search_commits"],
            operation,
            "Failed to search commits.",
            context="Error searching commits",
            indent=2,
        )

    @register(
        REPO_TOOLS["list_pull_requests_by_commits"],
        "Lists pull requests by commit IDs to find which pull requests contain specific commits",
    )
    async def list_pull_requests_by_commits(
        project: Annotated[str, Field(description="Project name or ID")],
        repository: Annotated[str, Field(description="Repository name or ID")],
        commits: Annotated[List[str], Field(description="Array of commit IDs to query for")],
        queryType: Annotated[
            Literal["NotSet", "LastMergeCommit", "Commit"],
            Field(description="Type of query to perform"),
        ] = "LastMergeCommit",
    ) -> CallToolResult:
        async def operation():
            client = await manager.get_client()
            query = {"queries": [{"items": commits, "type": int(GitPullRequestQueryType[queryType])}]}
            return await client.get_pull_request_query(repository, project, query)

        return await run_tool(
            REPO_TOOLS["list_pull_requests_by_commits"],
            operation,
            "Failed to query pull requests by commits.",
            context="Error querying pull requests by commits",
            indent=2,
        )

    return register.registered
