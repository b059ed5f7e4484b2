from __future__ import annotations

import base64
import logging
import os
import platform
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from . import __version__
from .errors import AuthenticationError, UpstreamError

logger = logging.getLogger("azure_devops_mcp.client")

DEFAULT_API_VERSION = "7.2-preview.1"
DEVOPS_HOST = "https://dev.azure.com"
SEARCH_HOST = "https://almsearch.dev.azure.com"
IDENTITY_HOST = "https://vssps.dev.azure.com"

SEARCH_KINDS = ("code", "wiki", "workitem")


@dataclass(frozen=True)
class AccessToken:
    token: str
    scheme: str = "Bearer"

    def authorization_header(self) -> str:
        if self.scheme == "Basic":
            encoded = base64.b64encode(f":{self.token}".encode("utf-8")).decode("ascii")
            return f"Basic {encoded}"
        return f"Bearer {self.token}"


def build_user_agent(product_version: str = __version__) -> str:
    return (
        f"AzureDevOps.MCP/{product_version} "
        f"(Python {platform.python_version()}; httpx {httpx.__version__})"
    )


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def _clean(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (params or {}).items() if v is not None}


def _error_message(response: httpx.Response) -> str:
    detail = ""
    try:
        data = response.json()
        if isinstance(data, dict):
            detail = str(data.get("message") or "")
    except ValueError:
        detail = response.text[:500]
    base = f"Azure DevOps API error: {response.status_code} {response.reason_phrase}"
    return f"{base}: {detail}" if detail else base


class AzureDevOpsClient:
    """
    Thin async wrapper over the Azure DevOps REST API.

    One instance is handed to a tool invocation; it shares the manager's
    connection pool and carries the credential acquired for that call.
    Non-2xx responses raise UpstreamError. Nothing is retried.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        org_name: str,
        token: AccessToken,
        user_agent: str,
        api_version: str = DEFAULT_API_VERSION,
    ) -> None:
        self.http_client = http_client
        self.org_name = org_name
        self.token = token
        self.user_agent = user_agent
        self.api_version = api_version
        self.base_url = f"{DEVOPS_HOST}/{_segment(org_name)}"

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Any = None,
        text: bool = False,
    ) -> Any:
        query = _clean(params)
        query.setdefault("api-version", self.api_version)
        headers = {
            "Authorization": self.token.authorization_header(),
            "User-Agent": self.user_agent,
            "Accept": "text/plain" if text else "application/json",
        }
        response = await self.http_client.request(
            method=method.upper(),
            url=url,
            params=query,
            json=payload,
            headers=headers,
        )
        if response.status_code >= 400:
            raise UpstreamError(_error_message(response), status_code=response.status_code)
        if text:
            return response.text
        if not response.content:
            return None
        return response.json()

    async def _list(self, url: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        data = await self.request("GET", url, params=params)
        if isinstance(data, dict):
            return list(data.get("value") or [])
        return list(data or [])

    def _git_url(self, repository_id: str, *parts: Any, project: Optional[str] = None) -> str:
        prefix = f"{self.base_url}/{_segment(project)}" if project else self.base_url
        url = f"{prefix}/_apis/git/repositories/{_segment(repository_id)}"
        for part in parts:
            url += f"/{_segment(part)}"
        return url

    # core

    async def get_connection_data(self) -> Dict[str, Any]:
        return await self.request("GET", f"{self.base_url}/_apis/connectionData") or {}

    async def get_projects(
        self,
        state_filter: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        continuation_token: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {
            "stateFilter": state_filter,
            "$top": top,
            "$skip": skip,
            "continuationToken": continuation_token,
        }
        return await self._list(f"{self.base_url}/_apis/projects", params)

    async def get_project(self, project_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"{self.base_url}/_apis/projects/{_segment(project_id)}")

    async def search_identities(self, filter_value: str) -> List[Dict[str, Any]]:
        url = f"{IDENTITY_HOST}/{_segment(self.org_name)}/_apis/identities"
        return await self._list(url, {"searchFilter": "General", "filterValue": filter_value})

    # git

    async def get_repositories(self, project: str) -> List[Dict[str, Any]]:
        return await self._list(f"{self.base_url}/{_segment(project)}/_apis/git/repositories")

    async def get_repository(self, repository_id: str) -> Dict[str, Any]:
        return await self.request("GET", self._git_url(repository_id))

    async def get_pull_request(self, repository_id: str, pull_request_id: int) -> Optional[Dict[str, Any]]:
        return await self.request("GET", self._git_url(repository_id, "pullrequests", pull_request_id))

    async def get_pull_request_commits(self, repository_id: str, pull_request_id: int) -> List[Dict[str, Any]]:
        return await self._list(self._git_url(repository_id, "pullRequests", pull_request_id, "commits"))

    async def get_commit_diffs(
        self,
        repository_id: str,
        base_version: str,
        base_version_type: str,
        target_version: str,
        target_version_type: str,
        top: int = 100,
        diff_common_commit: bool = False,
    ) -> Optional[Dict[str, Any]]:
        params = {
            "diffCommonCommit": diff_common_commit,
            "$top": top,
            "baseVersion": base_version,
            "baseVersionType": base_version_type,
            "targetVersion": target_version,
            "targetVersionType": target_version_type,
        }
        return await self.request("GET", self._git_url(repository_id, "diffs", "commits"), params=params)

    async def get_changes(self, repository_id: str, commit_id: str) -> Optional[Dict[str, Any]]:
        return await self.request("GET", self._git_url(repository_id, "commits", commit_id, "changes"))

    async def get_item_content(self, repository_id: str, path: str, commit_id: str) -> str:
        params = {
            "path": path,
            "includeContent": True,
            "download": False,
            "resolveLfs": True,
            "versionDescriptor.version": commit_id,
            "versionDescriptor.versionType": "commit",
        }
        return await self.request("GET", self._git_url(repository_id, "items"), params=params, text=True)

    async def get_item(
        self,
        repository_id: str,
        path: str,
        project: Optional[str] = None,
        commit_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "path": path,
            "recursionLevel": "none",
            "includeContentMetadata": True,
            "latestProcessedChange": False,
            "download": False,
            "includeContent": True,
            "resolveLfs": True,
            "sanitize": True,
            "versionDescriptor.version": commit_id,
            "versionDescriptor.versionType": "commit" if commit_id else None,
        }
        return await self.request("GET", self._git_url(repository_id, "items", project=project), params=params)

    async def get_blob_content(self, repository_id: str, object_id: str) -> str:
        return await self.request(
            "GET",
            self._git_url(repository_id, "blobs", object_id),
            params={"$format": "text"},
            text=True,
        )

    async def get_threads(
        self,
        repository_id: str,
        pull_request_id: int,
        project: Optional[str] = None,
        iteration: Optional[int] = None,
        base_iteration: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        url = self._git_url(repository_id, "pullRequests", pull_request_id, "threads", project=project)
        return await self._list(url, {"$iteration": iteration, "$baseIteration": base_iteration})

    async def get_comments(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        project: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        url = self._git_url(
            repository_id, "pullRequests", pull_request_id, "threads", thread_id, "comments", project=project
        )
        return await self._list(url)

    async def get_pull_requests(
        self,
        repository_id: str,
        search_criteria: Dict[str, Any],
        skip: Optional[int] = None,
        top: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {f"searchCriteria.{k}": v for k, v in search_criteria.items()}
        params.update({"$skip": skip, "$top": top})
        return await self._list(self._git_url(repository_id, "pullrequests"), params)

    async def get_pull_requests_by_project(
        self,
        project: str,
        search_criteria: Dict[str, Any],
        skip: Optional[int] = None,
        top: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {f"searchCriteria.{k}": v for k, v in search_criteria.items()}
        params.update({"$skip": skip, "$top": top})
        return await self._list(f"{self.base_url}/{_segment(project)}/_apis/git/pullrequests", params)

    async def get_refs(self, repository_id: str, include_my_branches: bool = False) -> List[Dict[str, Any]]:
        params = {"includeMyBranches": True} if include_my_branches else None
        return await self._list(self._git_url(repository_id, "refs"), params)

    async def create_pull_request(self, repository_id: str, pull_request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", self._git_url(repository_id, "pullrequests"), payload=pull_request)

    async def update_pull_request(
        self, repository_id: str, pull_request_id: int, update: Dict[str, Any]
    ) -> Dict[str, Any]:
        url = self._git_url(repository_id, "pullrequests", pull_request_id)
        return await self.request("PATCH", url, payload=update)

    async def create_pull_request_reviewers(
        self, repository_id: str, pull_request_id: int, reviewer_ids: List[str]
    ) -> List[Dict[str, Any]]:
        url = self._git_url(repository_id, "pullRequests", pull_request_id, "reviewers")
        data = await self.request("POST", url, payload=[{"id": reviewer_id} for reviewer_id in reviewer_ids])
        if isinstance(data, dict):
            return list(data.get("value") or [])
        return list(data or [])

    async def delete_pull_request_reviewer(self, repository_id: str, pull_request_id: int, reviewer_id: str) -> None:
        url = self._git_url(repository_id, "pullRequests", pull_request_id, "reviewers", reviewer_id)
        await self.request("DELETE", url)

    async def create_comment(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        content: str,
        project: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = self._git_url(
            repository_id, "pullRequests", pull_request_id, "threads", thread_id, "comments", project=project
        )
        return await self.request("POST", url, payload={"content": content})

    async def update_thread(
        self, repository_id: str, pull_request_id: int, thread_id: int, update: Dict[str, Any]
    ) -> Dict[str, Any]:
        url = self._git_url(repository_id, "pullRequests", pull_request_id, "threads", thread_id)
        return await self.request("PATCH", url, payload=update)

    async def get_commits(
        self,
        repository_id: str,
        project: str,
        search_criteria: Dict[str, Any],
        skip: Optional[int] = None,
        top: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {f"searchCriteria.{k}": v for k, v in search_criteria.items()}
        params.update({"searchCriteria.$skip": skip, "searchCriteria.$top": top})
        return await self._list(self._git_url(repository_id, "commits", project=project), params)

    async def get_pull_request_query(
        self, repository_id: str, project: str, query: Dict[str, Any]
    ) -> Dict[str, Any]:
        url = self._git_url(repository_id, "pullrequestquery", project=project)
        return await self.request("POST", url, payload=query)

    # search

    async def search(self, kind: str, search_request: Dict[str, Any]) -> Dict[str, Any]:
        if kind not in SEARCH_KINDS:
            raise ValueError(f"Unsupported search kind: {kind}")
        url = f"{SEARCH_HOST}/{_segment(self.org_name)}/_apis/search/{kind}searchresults"
        return await self.request("POST", url, payload=search_request) or {}


class AzureDevOpsClientManager:
    """
    Owns the organization, credential lookup and the shared connection pool.

    Tool families receive the manager and call get_token(), get_client() and
    get_user_agent() per invocation.
    """

    def __init__(
        self,
        org_name: str,
        config: Optional[Dict[str, Any]] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self._org_name = org_name
        self._config = config or {}
        self._user_agent = user_agent or build_user_agent()
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def api_version(self) -> str:
        return str(self._config.get("api_version") or DEFAULT_API_VERSION)

    async def get_org_name(self) -> str:
        return self._org_name

    def get_user_agent(self) -> str:
        return self._user_agent

    async def get_token(self) -> AccessToken:
        """
        Credential from the environment.

        ADO_MCP_AUTH_TOKEN holds an Entra ID bearer token, ADO_MCP_PAT a
        personal access token sent with basic auth.
        """
        bearer = os.getenv("ADO_MCP_AUTH_TOKEN", "").strip()
        if bearer:
            return AccessToken(bearer, "Bearer")
        pat = os.getenv("ADO_MCP_PAT", "").strip()
        if pat:
            return AccessToken(pat, "Basic")
        raise AuthenticationError(
            "No Azure DevOps credential configured. Set ADO_MCP_AUTH_TOKEN or ADO_MCP_PAT."
        )

    def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            http_limits = self._config.get("http_limits", {})
            self._http_client = httpx.AsyncClient(
                limits=httpx.Limits(
                    max_connections=int(http_limits.get("max_connections", 100)),
                    max_keepalive_connections=int(http_limits.get("max_keepalive_connections", 20)),
                ),
                timeout=httpx.Timeout(
                    connect=float(http_limits.get("connect_timeout", 5.0)),
                    read=float(http_limits.get("read_timeout", 30.0)),
                    write=float(http_limits.get("write_timeout", 10.0)),
                    pool=float(http_limits.get("pool_timeout", 5.0)),
                ),
                follow_redirects=False,
            )
        return self._http_client

    async def get_client(self) -> AzureDevOpsClient:
        token = await self.get_token()
        return AzureDevOpsClient(
            http_client=self._ensure_http_client(),
            org_name=await self.get_org_name(),
            token=token,
            user_agent=self.get_user_agent(),
            api_version=self.api_version,
        )

    async def get_current_user_id(self) -> str:
        client = await self.get_client()
        data = await client.get_connection_data()
        user = data.get("authenticatedUser") or {}
        if not user.get("id"):
            raise AuthenticationError("Could not resolve the authenticated Azure DevOps user.")
        return user["id"]

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            logger.debug("Closed Azure DevOps HTTP client")
