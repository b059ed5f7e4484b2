"""
Tests for the repository and pull request tools.

Handlers are invoked directly with a mocked client; the envelope checks make
sure every outcome is a single text block and every failure is flagged.
TestProtocolDispatch goes through the server's tools/call handler to check
that the envelope survives FastMCP's own result conversion.
"""
from __future__ import annotations

import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import CallToolRequest, CallToolRequestParams

from azure_devops_mcp.errors import UpstreamError
from azure_devops_mcp.tools.repos import REPO_TOOLS, get_pull_request_result

from conftest import build_mcp, get_tool, result_json, result_text


@pytest.fixture
def mcp(manager):
    return build_mcp(manager)


async def call(mcp, key, **kwargs):
    return await get_tool(mcp, REPO_TOOLS[key]).fn(**kwargs)


async def call_over_protocol(mcp, key, arguments):
    """Dispatch through the server's tools/call handler, as a connected client would."""
    handler = mcp._mcp_server.request_handlers[CallToolRequest]
    request = CallToolRequest(
        method="tools/call",
        params=CallToolRequestParams(name=REPO_TOOLS[key], arguments=arguments),
    )
    response = await handler(request)
    return response.root


class TestRepositories:
    @pytest.mark.asyncio
    async def test_sorted_then_paginated(self, mcp, client):
        client.get_repositories.return_value = [
            {"id": "3", "name": "web", "remoteUrl": "x"},
            {"id": "1", "name": "api"},
            {"id": "2", "name": "core"},
        ]

        result = await call(mcp, "get_azure_devops_repositories", project="p", top=2, skip=1)

        assert result_json(result) == [{"id": "2", "name": "core"}, {"id": "3", "name": "web"}]
        client.get_repositories.assert_awaited_once_with("p")

    @pytest.mark.asyncio
    async def test_filter_matches_name_or_id(self, mcp, client):
        client.get_repositories.return_value = [
            {"id": "ABC-1", "name": "frontend"},
            {"id": "def-2", "name": "backend"},
        ]

        by_name = await call(mcp, "get_azure_devops_repositories", project="p", repositoryNameOrId="FRONT")
        by_id = await call(mcp, "get_azure_devops_repositories", project="p", repositoryNameOrId="abc-1")

        assert [r["name"] for r in result_json(by_name)] == ["frontend"]
        assert [r["name"] for r in result_json(by_id)] == ["frontend"]

    @pytest.mark.asyncio
    async def test_filter_without_match_is_an_error(self, mcp, client):
        client.get_repositories.return_value = [{"id": "1", "name": "api"}]

        result = await call(mcp, "get_azure_devops_repositories", project="p", repositoryNameOrId="nope")

        assert result.isError is True
        assert result_text(result) == "Repository nope not found in project p"

    @pytest.mark.asyncio
    async def test_negative_top_rejected_before_handler(self, mcp, client):
        with pytest.raises(ToolError):
            await mcp.call_tool(REPO_TOOLS["get_azure_devops_repositories"], {"project": "p", "top": -1})

        client.get_repositories.assert_not_awaited()


class TestPullRequestById:
    PULL_REQUEST = {
        "pullRequestId": 7,
        "title": "Add feature",
        "status": 1,
        "targetRefName": "refs/heads/develop",
        "url": "https://dev.azure.com/org/_apis/7",
    }

    @pytest.mark.asyncio
    async def test_composite_result(self, manager, client):
        client.get_pull_request.return_value = dict(self.PULL_REQUEST)
        client.get_pull_request_commits.return_value = [
            {"commitId": "newest", "comment": "second", "url": "x"},
            {"commitId": "older", "comment": "first"},
        ]
        client.get_commit_diffs.return_value = {
            "allChangesIncluded": True,
            "changes": [{"changeType": 2, "item": {"path": "/src/app.py"}}],
        }

        result = await get_pull_request_result(manager, "repo", 7)

        assert [c["commitId"] for c in result["commits"]] == ["newest", "older"]
        assert result["pullRequestChanges"]["changes"] == [{"changeType": "Edit", "item": {"path": "/src/app.py"}}]
        assert "url" not in result
        kwargs = client.get_commit_diffs.await_args.kwargs
        assert kwargs["base_version"] == "develop"
        assert kwargs["base_version_type"] == "branch"
        assert kwargs["target_version"] == "newest"
        assert kwargs["target_version_type"] == "commit"

    @pytest.mark.asyncio
    async def test_missing_target_defaults_to_main(self, manager, client):
        client.get_pull_request.return_value = {"pullRequestId": 7}
        client.get_pull_request_commits.return_value = [{"commitId": "c1"}]
        client.get_commit_diffs.return_value = {}

        result = await get_pull_request_result(manager, "repo", 7)

        assert client.get_commit_diffs.await_args.kwargs["base_version"] == "main"
        assert "pullRequestChanges" not in result

    @pytest.mark.asyncio
    async def test_no_commits_skips_diff(self, manager, client):
        client.get_pull_request.return_value = {"pullRequestId": 7}
        client.get_pull_request_commits.return_value = []

        result = await get_pull_request_result(manager, "repo", 7)

        assert result["commits"] == []
        client.get_commit_diffs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_diff_fails_whole_call(self, mcp, client):
        client.get_pull_request.return_value = dict(self.PULL_REQUEST)
        client.get_pull_request_commits.return_value = [{"commitId": "c1"}]
        client.get_commit_diffs.side_effect = UpstreamError("Azure DevOps API error: 500 Server Error", 500)

        result = await call(mcp, "get_azure_devops_pull_request_by_id", repositoryId="repo", pullRequestId=7)

        assert result.isError is True
        assert result_text(result) == "Azure DevOps API error: 500 Server Error"

    @pytest.mark.asyncio
    async def test_missing_pull_request(self, mcp, client):
        client.get_pull_request.return_value = None

        result = await call(mcp, "get_azure_devops_pull_request_by_id", repositoryId="repo", pullRequestId=9)

        assert result.isError is True
        assert "9" in result_text(result)
        client.get_pull_request_commits.assert_not_awaited()


class TestContentTools:
    @pytest.mark.asyncio
    async def test_changes_by_commit(self, mcp, client):
        client.get_changes.return_value = {
            "changeCounts": {"Edit": 1},
            "changes": [{"changeType": "edit", "item": {"path": "/a", "objectId": "o1", "url": "x"}}],
        }

        result = await call(mcp, "get_azure_devops_changes_by_commit", repositoryId="r", commitId="c")

        assert result_json(result) == {"changes": [{"changeType": "Edit", "item": {"path": "/a", "objectId": "o1"}}]}

    @pytest.mark.asyncio
    async def test_changes_by_commit_empty_is_error(self, mcp, client):
        client.get_changes.return_value = None

        result = await call(mcp, "get_azure_devops_changes_by_commit", repositoryId="r", commitId="c")

        assert result.isError is True

    @pytest.mark.asyncio
    async def test_item_content_is_raw_text(self, mcp, client):
        client.get_item_content.return_value = "print('hi')\n"

        result = await call(
            mcp, "get_azure_devops_item_content_by_commit", repositoryId="r", commitId="c", itemPath="/a.py"
        )

        assert result.isError is False
        assert result_text(result) == "print('hi')\n"
        client.get_item_content.assert_awaited_once_with("r", "/a.py", "c")

    @pytest.mark.asyncio
    async def test_item_content_error_names_the_item(self, mcp, client):
        client.get_item_content.side_effect = UpstreamError("Azure DevOps API error: 404 Not Found", 404)

        result = await call(
            mcp, "get_azure_devops_item_content_by_commit", repositoryId="r", commitId="c", itemPath="/a.py"
        )

        assert result.isError is True
        assert result_text(result).startswith("Error getting content for item /a.py at commit c: ")

    @pytest.mark.asyncio
    async def test_content_by_object_id(self, mcp, client):
        client.get_blob_content.return_value = "blob text"

        result = await call(mcp, "get_azure_devops_content_by_objectid", repositoryId="r", objectId="sha")

        assert result_text(result) == "blob text"
        client.get_blob_content.assert_awaited_once_with("r", "sha")


class TestThreadsAndComments:
    @pytest.mark.asyncio
    async def test_threads_sorted_by_id_and_indented(self, mcp, client):
        client.get_threads.return_value = [{"id": 3}, {"id": 1}, {"id": 2}]

        result = await call(
            mcp, "list_azure_devops_pull_request_threads", repositoryId="r", pullRequestId=1, top=2
        )

        assert result_json(result) == [{"id": 1}, {"id": 2}]
        assert "\n  " in result_text(result)

    @pytest.mark.asyncio
    async def test_comments_skip(self, mcp, client):
        client.get_comments.return_value = [{"id": 2, "content": "b"}, {"id": 1, "content": "a"}]

        result = await call(
            mcp,
            "list_azure_devops_pull_request_comments_by_thread",
            repositoryId="r",
            pullRequestId=1,
            threadId=5,
            skip=1,
        )

        assert result_json(result) == [{"id": 2, "content": "b"}]
        client.get_comments.assert_awaited_once_with("r", 1, 5, None)

    @pytest.mark.asyncio
    async def test_reply_to_comment(self, mcp, client):
        client.create_comment.return_value = {"id": 4, "content": "thanks"}

        result = await call(
            mcp, "reply_to_comment", repositoryId="r", pullRequestId=1, threadId=5, content="thanks"
        )

        assert result_json(result) == {"id": 4, "content": "thanks"}
        client.create_comment.assert_awaited_once_with("r", 1, 5, "thanks", None)

    @pytest.mark.asyncio
    async def test_resolve_comment_sets_fixed(self, mcp, client):
        client.update_thread.return_value = {"id": 5, "status": 2}

        await call(mcp, "resolve_comment", repositoryId="r", pullRequestId=1, threadId=5)

        client.update_thread.assert_awaited_once_with("r", 1, 5, {"status": 2})


class TestPullRequestLists:
    @pytest.mark.asyncio
    async def test_by_repo_with_identity_filters(self, mcp, client, manager):
        client.get_pull_requests.return_value = [{"pullRequestId": 1, "title": "t", "url": "x"}]

        result = await call(
            mcp, "list_pull_requests_by_repo", repositoryId="r", created_by_me=True, i_am_reviewer=True
        )

        assert result_json(result) == [{"pullRequestId": 1, "title": "t"}]
        manager.get_current_user_id.assert_awaited_once()
        client.get_pull_requests.assert_awaited_once_with(
            "r",
            {"status": 1, "creatorId": "user-1", "reviewerId": "user-1", "repositoryId": "r"},
            0,
            100,
        )

    @pytest.mark.asyncio
    async def test_by_project_status_translated(self, mcp, client, manager):
        client.get_pull_requests_by_project.return_value = []

        result = await call(mcp, "list_pull_requests_by_project", project="p", status="completed", top=5)

        assert result_json(result) == []
        manager.get_current_user_id.assert_not_awaited()
        client.get_pull_requests_by_project.assert_awaited_once_with("p", {"status": 3}, 0, 5)

    @pytest.mark.asyncio
    async def test_unknown_status_rejected_by_schema(self, mcp, client):
        with pytest.raises(ToolError):
            await mcp.call_tool(REPO_TOOLS["list_pull_requests_by_project"], {"project": "p", "status": "merged"})

        client.get_pull_requests_by_project.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_by_commits_sends_numeric_query_type(self, mcp, client):
        client.get_pull_request_query.return_value = {"results": []}

        await call(mcp, "list_pull_requests_by_commits", project="p", repository="r", commits=["a", "b"])

        client.get_pull_request_query.assert_awaited_once_with(
            "r", "p", {"queries": [{"items": ["a", "b"], "type": 1}]}
        )


class TestBranches:
    REFS = [
        {"name": "refs/heads/main", "objectId": "1"},
        {"name": "refs/tags/v1", "objectId": "2"},
        {"name": "refs/heads/feature/x", "objectId": "3"},
    ]

    @pytest.mark.asyncio
    async def test_list_branches(self, mcp, client):
        client.get_refs.return_value = list(self.REFS)

        result = await call(mcp, "list_branches_by_repo", repositoryId="r")

        assert result_json(result) == ["main", "feature/x"]
        client.get_refs.assert_awaited_once_with("r")

    @pytest.mark.asyncio
    async def test_list_my_branches(self, mcp, client):
        client.get_refs.return_value = list(self.REFS)

        result = await call(mcp, "list_my_branches_by_repo", repositoryId="r", top=1)

        assert result_json(result) == ["main"]
        client.get_refs.assert_awaited_once_with("r", include_my_branches=True)

    @pytest.mark.asyncio
    async def test_get_branch_by_name(self, mcp, client):
        client.get_refs.return_value = list(self.REFS)

        found = await call(mcp, "get_branch_by_name", repositoryId="r", branchName="feature/x")
        missing = await call(mcp, "get_branch_by_name", repositoryId="r", branchName="v1")

        assert result_json(found)["objectId"] == "3"
        assert missing.isError is True
        assert result_text(missing) == "Branch v1 not found in repository r"


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_pull_request(self, mcp, client):
        client.create_pull_request.return_value = {"pullRequestId": 11}

        result = await call(
            mcp,
            "create_pull_request",
            repositoryId="r",
            sourceRefName="refs/heads/feature",
            targetRefName="refs/heads/main",
            title="Feature",
            workItems="12  34",
        )

        assert result_json(result) == {"pullRequestId": 11}
        payload = client.create_pull_request.await_args.args[1]
        assert payload["workItemRefs"] == [{"id": "12"}, {"id": "34"}]
        assert payload["isDraft"] is False
        assert "description" not in payload

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,code", [("active", 1), ("abandoned", 2)])
    async def test_update_status_uses_translated_code(self, mcp, client, status, code):
        client.update_pull_request.return_value = {"pullRequestId": 1, "status": code}

        await call(mcp, "update_pull_request_status", repositoryId="r", pullRequestId=1, status=status)

        client.update_pull_request.assert_awaited_once_with("r", 1, {"status": code})

    @pytest.mark.asyncio
    async def test_add_reviewers(self, mcp, client):
        client.create_pull_request_reviewers.return_value = [{"id": "u1"}]

        result = await call(
            mcp, "update_pull_request_reviewers", repositoryId="r", pullRequestId=1, reviewerIds=["u1"], action="add"
        )

        assert result_json(result) == [{"id": "u1"}]

    @pytest.mark.asyncio
    async def test_remove_reviewers(self, mcp, client):
        result = await call(
            mcp,
            "update_pull_request_reviewers",
            repositoryId="r",
            pullRequestId=1,
            reviewerIds=["u1", "u2"],
            action="remove",
        )

        assert result_text(result) == "Reviewers with IDs u1, u2 removed from pull request 1."
        assert client.delete_pull_request_reviewer.await_count == 2


class TestSearchCommits:
    @pytest.mark.asyncio
    async def test_version_criteria(self, mcp, client):
        client.get_commits.return_value = [{"commitId": "c1"}]

        result = await call(
            mcp, "search_commits", project="p", repository="r", version="v1.0", versionType="Tag", top=3
        )

        assert json.loads(result_text(result)) == [{"commitId": "c1"}]
        repository, project, criteria, skip, top = client.get_commits.await_args.args
        assert (repository, project, skip, top) == ("r", "p", 0, 3)
        assert criteria["itemVersion.version"] == "v1.0"
        assert criteria["itemVersion.versionType"] == "tag"

    @pytest.mark.asyncio
    async def test_error_is_prefixed(self, mcp, client):
        client.get_commits.side_effect = UpstreamError("Azure DevOps API error: 400 Bad Request", 400)

        result = await call(mcp, "search_commits", project="p", repository="r")

        assert result.isError is True
        assert result_text(result) == "Error searching commits: Azure DevOps API error: 400 Bad Request"


class TestProtocolDispatch:
    @pytest.mark.asyncio
    async def test_error_envelope_reaches_the_caller(self, mcp, client):
        client.get_pull_request.return_value = {"pullRequestId": 7, "targetRefName": "refs/heads/main"}
        client.get_pull_request_commits.return_value = [{"commitId": "c1"}]
        client.get_commit_diffs.side_effect = UpstreamError("Azure DevOps API error: 500 Server Error", 500)

        result = await call_over_protocol(
            mcp, "get_azure_devops_pull_request_by_id", {"repositoryId": "repo", "pullRequestId": 7}
        )

        assert result.isError is True
        assert result_text(result) == "Azure DevOps API error: 500 Server Error"

    @pytest.mark.asyncio
    async def test_success_is_one_text_block(self, mcp, client):
        client.get_refs.return_value = [
            {"name": "refs/heads/main"},
            {"name": "refs/heads/feature/x"},
            {"name": "refs/tags/v1"},
        ]

        result = await call_over_protocol(mcp, "list_branches_by_repo", {"repositoryId": "r"})

        assert result.isError is False
        assert json.loads(result_text(result)) == ["main", "feature/x"]

    @pytest.mark.asyncio
    async def test_unknown_status_is_rejected(self, mcp, client):
        result = await call_over_protocol(
            mcp, "list_pull_requests_by_project", {"project": "p", "status": "merged"}
        )

        assert result.isError is True
        client.get_pull_requests_by_project.assert_not_awaited()
