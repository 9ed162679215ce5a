"""VCS provider clients."""

from vulnfixer.vcs.base import (
    BranchInfo,
    PullRequestInfo,
    PullRequestState,
    RepositoryInfo,
    VcsClient,
    VcsProvider,
)
from vulnfixer.vcs.github_client import GitHubClient

__all__ = [
    "BranchInfo",
    "GitHubClient",
    "PullRequestInfo",
    "PullRequestState",
    "RepositoryInfo",
    "VcsClient",
    "VcsProvider",
]
