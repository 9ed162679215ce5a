"""VCS provider interface and the records it exchanges."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable


class VcsProvider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET_SERVER = "bitbucketserver"
    AZURE_REPOS = "azurerepos"


class PullRequestState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class BranchInfo:
    name: str
    repository: str = ""
    owner: str = ""


@dataclass
class PullRequestInfo:
    id: int
    title: str
    body: str
    source: BranchInfo
    target: BranchInfo
    url: str = ""


@dataclass
class RepositoryInfo:
    clone_url: str
    default_branch: str
    private: bool = False


@runtime_checkable
class VcsClient(Protocol):
    """Pull-request and repository operations used by the fix lifecycle.

    All calls are synchronous; transport errors propagate as ``httpx.HTTPError``.
    """

    provider: VcsProvider

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        source_branch: str,
        target_branch: str,
        title: str,
        body: str,
    ) -> PullRequestInfo: ...

    def update_pull_request(
        self,
        owner: str,
        repo: str,
        pr_id: int,
        *,
        title: str,
        body: str,
        target_branch: str = "",
        state: PullRequestState | None = None,
    ) -> None: ...

    def list_open_pull_requests_with_body(self, owner: str, repo: str) -> list[PullRequestInfo]: ...

    def add_pull_request_comment(self, owner: str, repo: str, pr_id: int, content: str) -> None: ...

    def download_repository(self, owner: str, repo: str, branch: str, local_path: Path) -> None: ...

    def get_repository_info(self, owner: str, repo: str) -> RepositoryInfo: ...
