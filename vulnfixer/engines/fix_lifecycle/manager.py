"""FixBranchLifecycle: branch, commit, push and pull request for one fix at a time."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from vulnfixer.core.git import GitManager
from vulnfixer.engines.fix_lifecycle.checksum import (
    compute_fix_checksum,
    deserialize_checksum,
    embed_checksum,
)
from vulnfixer.engines.fix_lifecycle.naming import NamingTemplates
from vulnfixer.engines.fix_lifecycle.pr_body import render_pull_request_body
from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.exceptions import PackageHandlerError
from vulnfixer.vcs.base import PullRequestInfo, VcsClient, VcsProvider

log = structlog.get_logger("vulnfixer.engine")


class FixBranchState(str, Enum):
    ABSENT = "absent"
    CREATED = "created"
    COMMITTED = "committed"
    PUSHED = "pushed"
    PR_OPENED = "pr_opened"
    PR_UPDATED = "pr_updated"
    PR_UP_TO_DATE = "pr_up_to_date"


_TRANSITIONS: dict[FixBranchState, frozenset[FixBranchState]] = {
    FixBranchState.ABSENT: frozenset({FixBranchState.CREATED}),
    FixBranchState.CREATED: frozenset({FixBranchState.COMMITTED, FixBranchState.PR_UP_TO_DATE}),
    FixBranchState.COMMITTED: frozenset({FixBranchState.PUSHED}),
    FixBranchState.PUSHED: frozenset({FixBranchState.PR_OPENED, FixBranchState.PR_UPDATED}),
}


@dataclass
class FixBranch:
    name: str
    state: FixBranchState = FixBranchState.ABSENT
    pull_request: PullRequestInfo | None = None

    def advance(self, state: FixBranchState) -> None:
        if state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(f"fix branch {self.name}: illegal transition {self.state} -> {state}")
        self.state = state


class FixBranchLifecycle:
    """Drive fix branches of one repository clone through to a pull request.

    Git failures surface as ``GitError`` and VCS failures as
    ``httpx.HTTPError``; callers decide whether they are fatal.
    """

    def __init__(
        self,
        git: GitManager,
        client: VcsClient | None,
        *,
        repo_owner: str,
        repo_name: str,
        base_branch: str,
        templates: NamingTemplates | None = None,
        dry_run: bool = False,
    ) -> None:
        self.git = git
        self.client = client
        self.repo_owner = repo_owner
        self.repo_name = repo_name
        self.base_branch = base_branch
        self.templates = templates or NamingTemplates()
        self.dry_run = dry_run

    # ── Git side ─────────────────────────────────────────────────────────

    def branch_exists_in_remote(self, name: str) -> bool:
        return self.git.branch_exists_in_remote(name)

    def create_and_checkout(self, name: str) -> FixBranch:
        branch = FixBranch(name)
        self.git.create_branch_and_checkout(name)
        branch.advance(FixBranchState.CREATED)
        log.debug("fix.branch_created", branch=name)
        return branch

    def commit_all(self, branch: FixBranch, message: str) -> None:
        if self.git.is_clean():
            raise PackageHandlerError(
                "there were no changes to commit after fixing the package"
            )
        self.git.add_all_and_commit(message)
        branch.advance(FixBranchState.COMMITTED)

    def push(self, branch: FixBranch, *, force: bool = False) -> None:
        self.git.push(branch.name, force=force)
        branch.advance(FixBranchState.PUSHED)

    def checkout_base(self) -> None:
        self.git.checkout(self.base_branch)

    # ── Pull requests ────────────────────────────────────────────────────

    def find_open_pull_request(self, source_branch: str) -> PullRequestInfo | None:
        if self.client is None:
            return None
        for pr in self.client.list_open_pull_requests_with_body(self.repo_owner, self.repo_name):
            if pr.source.name == source_branch:
                return pr
        return None

    def open_fix_pull_request(self, branch: FixBranch, candidate: FixCandidate) -> FixBranch:
        """Commit, push and open a pull request for a single package upgrade."""
        package, version = candidate.package_name, candidate.suggested_fixed_version
        self.commit_all(branch, self.templates.commit_message(package, version))
        self.push(branch, force=False)
        title = self.templates.pull_request_title(package, version)
        body = render_pull_request_body([candidate], self._provider)
        branch.pull_request = self._create_pull_request(branch.name, title, body)
        branch.advance(FixBranchState.PR_OPENED)
        return branch

    def open_or_update_aggregated_pull_request(
        self,
        branch: FixBranch,
        candidates: Sequence[FixCandidate],
        existing: PullRequestInfo | None,
    ) -> FixBranch:
        """Publish the aggregated fix set unless the open PR already carries it.

        The checksum of *candidates* is compared with the one embedded in the
        existing PR body; equal means nothing is pushed or updated.
        """
        checksum = compute_fix_checksum(candidates)
        if existing is not None and deserialize_checksum(existing.body) == checksum:
            log.info("fix.pr_in_sync", branch=branch.name, pr=existing.id)
            branch.pull_request = existing
            branch.advance(FixBranchState.PR_UP_TO_DATE)
            return branch

        technologies = [c.technology for c in candidates]
        self.commit_all(branch, self.templates.aggregated_commit_message(technologies))
        self.push(branch, force=True)
        title = self.templates.aggregated_pull_request_title(technologies)
        body = embed_checksum(render_pull_request_body(candidates, self._provider), checksum)

        if existing is None:
            branch.pull_request = self._create_pull_request(branch.name, title, body)
            branch.advance(FixBranchState.PR_OPENED)
            return branch

        if self.dry_run or self.client is None:
            log.info("fix.pr_update_skipped", branch=branch.name, pr=existing.id, reason="dry_run")
        else:
            self.client.update_pull_request(
                self.repo_owner,
                self.repo_name,
                existing.id,
                title=title,
                body=body,
                target_branch=self.base_branch,
            )
            log.info("fix.pr_updated", branch=branch.name, pr=existing.id)
        branch.pull_request = existing
        branch.advance(FixBranchState.PR_UPDATED)
        return branch

    # ── internal ─────────────────────────────────────────────────────────

    @property
    def _provider(self) -> VcsProvider | None:
        return getattr(self.client, "provider", None)

    def _create_pull_request(self, source: str, title: str, body: str) -> PullRequestInfo | None:
        if self.dry_run or self.client is None:
            log.info("fix.pr_create_skipped", branch=source, title=title, reason="dry_run")
            return None
        pr = self.client.create_pull_request(
            self.repo_owner, self.repo_name, source, self.base_branch, title, body
        )
        log.info("fix.pr_opened", branch=source, pr=pr.id, title=title)
        return pr
