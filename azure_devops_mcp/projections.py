"""
Compact result shapes for Azure DevOps entities.

Upstream payloads carry links, avatars, URLs and deeply nested graphs that are
of no use to a caller. Every mapper here is pure and total: it accepts a
possibly partial upstream dict and returns a dict holding only the retained
fields. Fields missing upstream are omitted rather than emitted as null, and
nested entities are projected recursively.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, TypedDict, Union

from .errors import UnknownStatusError


class PullRequestStatus(IntEnum):
    NotSet = 0
    Active = 1
    Abandoned = 2
    Completed = 3
    All = 4


class VersionControlChangeType(IntEnum):
    NoChange = 0
    Add = 1
    Edit = 2
    Encoding = 4
    Rename = 8
    Delete = 16
    Undelete = 32
    Branch = 64
    Merge = 128
    Lock = 256
    Rollback = 512
    SourceRename = 1024
    TargetRename = 2048
    Property = 4096
    All = 8191


class GitVersionType(IntEnum):
    Branch = 0
    Tag = 1
    Commit = 2


class GitPullRequestQueryType(IntEnum):
    NotSet = 0
    LastMergeCommit = 1
    Commit = 2


class CommentThreadStatus(IntEnum):
    Unknown = 0
    Active = 1
    Fixed = 2
    WontFix = 3
    Closed = 4
    ByDesign = 5
    Pending = 6


PULL_REQUEST_STATUS_TOKENS = ("abandoned", "active", "all", "completed", "notSet")

_STATUS_BY_TOKEN = {
    "abandoned": PullRequestStatus.Abandoned,
    "active": PullRequestStatus.Active,
    "all": PullRequestStatus.All,
    "completed": PullRequestStatus.Completed,
    "notSet": PullRequestStatus.NotSet,
}

_CHANGE_TYPE_BY_LOWER = {
    member.name.lower(): member.name for member in VersionControlChangeType if member.value
}


class IdentityResult(TypedDict, total=False):
    id: str
    displayName: str
    uniqueName: str


class IdentityWithVoteResult(IdentityResult, total=False):
    vote: int
    hasDeclined: bool
    isRequired: bool


class ProjectResult(TypedDict, total=False):
    id: str
    description: str
    name: str


class TeamProjectResult(ProjectResult, total=False):
    state: str
    visibility: str
    lastUpdateTime: str


class RepositoryResult(TypedDict, total=False):
    id: str
    defaultBranch: str
    name: str
    isFork: bool
    project: ProjectResult


class GitUserDateResult(TypedDict, total=False):
    email: str
    date: str


class GitCommitResult(TypedDict, total=False):
    commitId: str
    comment: str
    commentTruncated: bool
    author: GitUserDateResult
    committer: GitUserDateResult


class GitItemResult(TypedDict, total=False):
    gitObjectType: Union[int, str]
    objectId: str
    originalObjectId: str
    isFolder: bool
    isSymLink: bool
    path: str


class GitChangeResult(TypedDict, total=False):
    changeId: int
    originalPath: str
    changeType: str
    item: GitItemResult


class GitCommitChangesResult(TypedDict, total=False):
    changes: List[GitChangeResult]


class GitCommitDiffsResult(TypedDict, total=False):
    allChangesIncluded: bool
    baseCommit: str
    commonCommit: str
    targetCommit: str
    changes: List[GitChangeResult]


class PullRequestResult(TypedDict, total=False):
    pullRequestId: int
    title: str
    description: str
    status: Union[int, str]
    isDraft: bool
    creationDate: str
    closedDate: str
    sourceRefName: str
    targetRefName: str
    workItemRefs: List[Dict[str, Any]]
    createdBy: IdentityResult
    closedBy: IdentityResult
    reviewers: List[IdentityWithVoteResult]
    commits: List[GitCommitResult]
    pullRequestChanges: GitCommitDiffsResult


class IdentitySearchResult(TypedDict, total=False):
    id: str
    displayName: str
    descriptor: str


def _pick(source: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    return {field: source[field] for field in fields if source.get(field) is not None}


def _nested(result: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        result[key] = value


def _project_list(items: Optional[Iterable[Dict[str, Any]]], mapper) -> Optional[List[Any]]:
    if items is None:
        return None
    return [mapper(item) for item in items]


def pull_request_status_to_int(status: str) -> int:
    """Translate a caller status token into the upstream numeric code."""
    try:
        return int(_STATUS_BY_TOKEN[status])
    except KeyError:
        raise UnknownStatusError(status) from None


def change_type_name(change_type: Union[int, str, None]) -> Optional[str]:
    """
    Render a change type as its symbolic label ("Edit", "Add", ...).

    Numeric codes map only when they name a single member; zero and flag
    combinations yield None. REST strings such as "edit, rename" are
    normalized member by member.
    """
    if change_type is None or isinstance(change_type, bool):
        return None
    if isinstance(change_type, int):
        if not change_type:
            return None
        try:
            return VersionControlChangeType(change_type).name
        except ValueError:
            return None
    parts = [part.strip() for part in str(change_type).split(",") if part.strip()]
    names = [_CHANGE_TYPE_BY_LOWER.get(part.lower()) for part in parts]
    if not names or None in names:
        return None
    return ", ".join(names)


def to_identity_result(identity: Dict[str, Any]) -> IdentityResult:
    return _pick(identity, "id", "displayName", "uniqueName")


def to_identity_with_vote_result(identity: Dict[str, Any]) -> IdentityWithVoteResult:
    return _pick(identity, "id", "displayName", "uniqueName", "vote", "hasDeclined", "isRequired")


def to_project_result(project: Dict[str, Any]) -> ProjectResult:
    return _pick(project, "id", "description", "name")


def to_team_project_result(project: Dict[str, Any]) -> TeamProjectResult:
    return _pick(project, "id", "name", "description", "state", "visibility", "lastUpdateTime")


def to_repository_result(repo: Dict[str, Any]) -> RepositoryResult:
    result = _pick(repo, "id", "defaultBranch", "name", "isFork")
    _nested(result, "project", repo.get("project") and to_project_result(repo["project"]))
    return result


def to_git_user_date_result(user: Dict[str, Any]) -> GitUserDateResult:
    return _pick(user, "email", "date")


def to_git_commit_result(commit: Dict[str, Any]) -> GitCommitResult:
    result = _pick(commit, "commitId", "comment", "commentTruncated")
    _nested(result, "author", commit.get("author") and to_git_user_date_result(commit["author"]))
    _nested(result, "committer", commit.get("committer") and to_git_user_date_result(commit["committer"]))
    return result


def to_pull_request_result(pr: Dict[str, Any]) -> PullRequestResult:
    result = _pick(
        pr,
        "pullRequestId",
        "title",
        "description",
        "status",
        "isDraft",
        "creationDate",
        "closedDate",
        "sourceRefName",
        "targetRefName",
        "workItemRefs",
    )
    _nested(result, "createdBy", pr.get("createdBy") and to_identity_result(pr["createdBy"]))
    _nested(result, "closedBy", pr.get("closedBy") and to_identity_result(pr["closedBy"]))
    _nested(result, "reviewers", _project_list(pr.get("reviewers"), to_identity_with_vote_result))
    _nested(result, "commits", _project_list(pr.get("commits"), to_git_commit_result))
    return result


def to_git_item_result(item: Dict[str, Any]) -> GitItemResult:
    return _pick(item, "gitObjectType", "objectId", "originalObjectId", "isFolder", "isSymLink", "path")


def to_git_change_result(change: Dict[str, Any]) -> GitChangeResult:
    result = _pick(change, "changeId", "originalPath")
    _nested(result, "changeType", change_type_name(change.get("changeType")))
    _nested(result, "item", change.get("item") and to_git_item_result(change["item"]))
    return result


def to_git_commit_changes_result(changes: Dict[str, Any]) -> GitCommitChangesResult:
    result: GitCommitChangesResult = {}
    _nested(result, "changes", _project_list(changes.get("changes"), to_git_change_result))
    return result


def to_git_commit_diffs_result(diffs: Dict[str, Any]) -> GitCommitDiffsResult:
    result = _pick(diffs, "allChangesIncluded", "baseCommit", "commonCommit", "targetCommit")
    _nested(result, "changes", _project_list(diffs.get("changes"), to_git_change_result))
    return result


def to_identity_search_result(identity: Dict[str, Any]) -> IdentitySearchResult:
    # identity search returns providerDisplayName rather than displayName
    result = _pick(identity, "id", "descriptor")
    display_name = identity.get("providerDisplayName") or identity.get("displayName")
    _nested(result, "displayName", display_name)
    return result
