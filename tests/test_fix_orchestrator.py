"""Tests for the fix orchestrator: real lifecycle over a mocked git and VCS client."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
from conftest import make_finding

from vulnfixer.core.git import GitManager
from vulnfixer.engines.fix_lifecycle.checksum import compute_fix_checksum, embed_checksum
from vulnfixer.engines.fix_lifecycle.manager import FixBranchLifecycle, FixBranchState
from vulnfixer.engines.fix_orchestrator.models import FixRunResult, ProjectTarget, SkipReason
from vulnfixer.engines.fix_orchestrator.orchestrator import FixOrchestrator
from vulnfixer.engines.package_handlers.registry import HandlerCache
from vulnfixer.exceptions import (
    FixRunError,
    GitError,
    PackageHandlerError,
    ScanError,
    UnsupportedFixError,
    UnsupportedReason,
)
from vulnfixer.vcs.base import BranchInfo, PullRequestInfo, VcsProvider
from vulnfixer.vcs.github_client import GitHubClient


class FakeScanner:
    def __init__(self, findings_by_dir: dict[str, list] | list) -> None:
        self.findings_by_dir = findings_by_dir
        self.scanned: list[Path] = []

    def scan(self, working_dir: Path):
        self.scanned.append(working_dir)
        if isinstance(self.findings_by_dir, list):
            return list(self.findings_by_dir)
        return list(self.findings_by_dir.get(working_dir.name, []))


class FakeHandler:
    """Touches nothing; fails or refuses for configured packages."""

    def __init__(self, technology, context, fail_on=(), unsupported=()) -> None:
        self.technology = technology
        self.context = context
        self.fail_on = set(fail_on)
        self.unsupported = set(unsupported)
        self.calls: list[tuple[str, str, str]] = []

    def update_dependency(self, candidate) -> None:
        self.calls.append((candidate.package_name, candidate.suggested_fixed_version, os.getcwd()))
        if candidate.package_name in self.unsupported:
            raise UnsupportedFixError(
                candidate.package_name,
                candidate.suggested_fixed_version,
                UnsupportedReason.INDIRECT_DEPENDENCY,
            )
        if candidate.package_name in self.fail_on:
            raise PackageHandlerError(f"'npm install {candidate.package_name}' command failed")


class FakeRemote:
    """A mocked GitManager whose pushes land in an in-memory set of remote branches."""

    def __init__(self) -> None:
        self.branches: set[str] = set()
        self.git = MagicMock(spec=GitManager)
        self.git.is_clean.return_value = False
        self.git.branch_exists_in_remote.side_effect = lambda name: name in self.branches
        self.git.push.side_effect = lambda name, force=False: self.branches.add(name)


def _client(open_prs: list[PullRequestInfo] | None = None) -> MagicMock:
    client = MagicMock()
    client.provider = VcsProvider.GITHUB
    client.list_open_pull_requests_with_body.return_value = open_prs or []
    counter = iter(range(1, 1000))
    client.create_pull_request.side_effect = lambda owner, repo, src, dst, title, body: (
        PullRequestInfo(next(counter), title, body, BranchInfo(src), BranchInfo(dst))
    )
    return client


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def repo_root(tmp_path) -> Path:
    (tmp_path / "frontend").mkdir()
    (tmp_path / "backend").mkdir()
    return tmp_path


def _orchestrator(remote, repo_root, scanner, client=None, handler_kwargs=None):
    handlers: list[FakeHandler] = []

    def factory(technology, context):
        handler = FakeHandler(technology, context, **(handler_kwargs or {}))
        handlers.append(handler)
        return handler

    lifecycle = FixBranchLifecycle(
        remote.git,
        client if client is not None else _client(),
        repo_owner="acme",
        repo_name="shop",
        base_branch="main",
    )
    orchestrator = FixOrchestrator(lifecycle, scanner, repo_root, handlers=HandlerCache(factory))
    return orchestrator, handlers


THREE = [make_finding(name, "1.0.0", ("1.0.1",)) for name in ("alpha", "beta", "gamma")]


# ── Per-package mode ─────────────────────────────────────────────────────


class TestPerPackage:
    def test_opens_one_pr_per_package(self, remote, repo_root):
        client = _client()
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        result = orch.run([ProjectTarget()])
        assert result.ok
        assert [call[0] for call in handlers[0].calls] == ["alpha", "beta", "gamma"]
        assert [c.package_name for c in result.fixed] == ["alpha", "beta", "gamma"]
        assert client.create_pull_request.call_count == 3
        assert all(b.state is FixBranchState.PR_OPENED for b in result.pull_requests)
        assert remote.git.push.call_args.kwargs == {"force": False}

    def test_partial_failure_isolated(self, remote, repo_root):
        orch, handlers = _orchestrator(
            remote, repo_root, FakeScanner(THREE), handler_kwargs={"fail_on": {"beta"}}
        )
        result = orch.run([ProjectTarget()])
        assert [c.package_name for c in result.fixed] == ["alpha", "gamma"]
        assert [(f.package_name, f.fix_version) for f in result.failed] == [("beta", "1.0.1")]
        assert "command failed" in result.failed[0].error
        assert [call[0] for call in handlers[0].calls] == ["alpha", "beta", "gamma"]
        assert remote.git.checkout.call_count == 3
        assert not result.ok
        with pytest.raises(FixRunError, match="beta"):
            result.raise_for_failures()

    def test_unsupported_is_not_a_failure(self, remote, repo_root):
        orch, handlers = _orchestrator(
            remote, repo_root, FakeScanner(THREE), handler_kwargs={"unsupported": {"alpha"}}
        )
        result = orch.run([ProjectTarget()])
        assert result.ok
        assert len(handlers[0].calls) == 3
        assert [(s.package_name, s.reason) for s in result.skipped] == [
            ("alpha", SkipReason.UNSUPPORTED)
        ]
        assert len(result.fixed) == 2

    def test_second_run_skips_existing_branches(self, remote, repo_root):
        client = _client()
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        orch.run([ProjectTarget()])
        again = orch.run([ProjectTarget()])
        assert again.fixed == []
        assert {s.reason for s in again.skipped} == {SkipReason.BRANCH_EXISTS}
        assert client.create_pull_request.call_count == 3
        assert len(handlers[0].calls) == 3

    def test_lifecycle_error_isolated(self, remote, repo_root):
        remote.git.add_all_and_commit.side_effect = [
            None,
            GitError(["git", "commit"], 1, "boom"),
            None,
        ]
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE))
        result = orch.run([ProjectTarget()])
        assert [f.package_name for f in result.failed] == ["beta"]
        assert len(result.fixed) == 2
        assert len(handlers[0].calls) == 3

    def test_vcs_error_isolated(self, remote, repo_root):
        client = _client()
        request = httpx.Request("POST", "https://api.github.com/repos/acme/shop/pulls")
        client.create_pull_request.side_effect = [
            httpx.HTTPStatusError("422", request=request, response=httpx.Response(422)),
            PullRequestInfo(2, "t", "b", BranchInfo("x"), BranchInfo("main")),
            PullRequestInfo(3, "t", "b", BranchInfo("y"), BranchInfo("main")),
        ]
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        result = orch.run([ProjectTarget()])
        assert [f.package_name for f in result.failed] == ["alpha"]
        assert [f.package_name for f in result.fixed] == ["beta", "gamma"]
        assert len(handlers[0].calls) == 3

    def test_no_changes_is_failure(self, remote, repo_root):
        remote.git.is_clean.return_value = True
        orch, _ = _orchestrator(remote, repo_root, FakeScanner(THREE[:1]))
        result = orch.run([ProjectTarget()])
        assert "no changes" in result.failed[0].error

    def test_checkout_failure_aborts(self, remote, repo_root):
        remote.git.checkout.side_effect = GitError(["git", "checkout", "main"], 1, "locked")
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE))
        with pytest.raises(GitError):
            orch.run([ProjectTarget()])
        assert len(handlers[0].calls) == 1

    def test_scan_error_propagates(self, remote, repo_root):
        scanner = MagicMock()
        scanner.scan.side_effect = ScanError("audit failed")
        orch, _ = _orchestrator(remote, repo_root, scanner)
        with pytest.raises(ScanError):
            orch.run([ProjectTarget()])

    def test_handler_runs_in_project_dir_and_cwd_restored(self, remote, repo_root):
        before = os.getcwd()
        scanner = FakeScanner({"frontend": THREE[:1], "backend": THREE[1:2]})
        orch, handlers = _orchestrator(
            remote, repo_root, scanner, handler_kwargs={"fail_on": {"beta"}}
        )
        orch.run([ProjectTarget(working_dirs=["frontend", "backend"])])
        assert os.getcwd() == before
        cwds = {Path(call[2]).name for h in handlers for call in h.calls}
        assert cwds == {"frontend", "backend"}
        # one handler per (technology, project dir)
        assert len(handlers) == 2

    def test_failure_records_working_dir(self, remote, repo_root):
        scanner = FakeScanner({"backend": THREE[:1]})
        orch, _ = _orchestrator(remote, repo_root, scanner, handler_kwargs={"fail_on": {"alpha"}})
        result = orch.run([ProjectTarget(working_dirs=["backend"])])
        assert result.failed[0].working_dir == "backend"

    def test_unknown_technology_uses_fallback(self, remote, repo_root):
        lifecycle = FixBranchLifecycle(
            remote.git, _client(), repo_owner="acme", repo_name="shop", base_branch="main"
        )
        finding = make_finding("AFNetworking", technology="cocoapods")
        orch = FixOrchestrator(lifecycle, FakeScanner([finding]), repo_root)
        result = orch.run([ProjectTarget()])
        assert result.ok
        assert result.skipped[0].reason is SkipReason.UNSUPPORTED

    def test_nothing_to_fix(self, remote, repo_root):
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner([]))
        result = orch.run([ProjectTarget()])
        assert result == FixRunResult()
        assert handlers == []

    def test_injected_handler_cache_is_used(self, remote, repo_root):
        built: list[FakeHandler] = []

        def factory(technology, context):
            built.append(FakeHandler(technology, context))
            return built[-1]

        cache = HandlerCache(factory)
        lifecycle = FixBranchLifecycle(
            remote.git, _client(), repo_owner="acme", repo_name="shop", base_branch="main"
        )
        orch = FixOrchestrator(lifecycle, FakeScanner(THREE), repo_root, handlers=cache)
        assert orch.handlers is cache
        result = orch.run([ProjectTarget()])
        assert result.ok
        assert len(cache) == 1
        assert [call[0] for call in built[0].calls] == ["alpha", "beta", "gamma"]

    def test_rate_limit_exhaustion_isolated(self, remote, repo_root):
        posts = []

        def handler(request: httpx.Request) -> httpx.Response:
            posts.append(request.url.path)
            if len(posts) <= 3:
                return httpx.Response(403, headers={"Retry-After": "1"})
            head = json.loads(request.content)["head"]
            return httpx.Response(
                201,
                json={"number": len(posts), "head": {"ref": head}, "base": {"ref": "main"}},
            )

        client = GitHubClient(token="t", transport=httpx.MockTransport(handler))
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        with patch("vulnfixer.vcs.github_client.time.sleep"):
            result = orch.run([ProjectTarget()])

        assert [f.package_name for f in result.failed] == ["alpha"]
        assert "rate limit" in result.failed[0].error
        assert [c.package_name for c in result.fixed] == ["beta", "gamma"]
        assert len(handlers[0].calls) == 3


# ── Aggregated mode ──────────────────────────────────────────────────────


class TestAggregated:
    def _branch_name(self, orch, technologies=("npm",)):
        return orch.lifecycle.templates.aggregated_branch_name("main", technologies)

    def test_creates_single_pr(self, remote, repo_root):
        client = _client()
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        result = orch.run([ProjectTarget()], aggregate=True)
        assert client.create_pull_request.call_count == 1
        assert len(result.fixed) == 3
        assert result.pull_requests[0].state is FixBranchState.PR_OPENED
        assert remote.git.push.call_args.kwargs == {"force": True}
        assert remote.git.checkout.call_count == 1
        assert [call[0] for call in handlers[0].calls] == ["alpha", "beta", "gamma"]

    def test_failed_package_excluded_from_checksum(self, remote, repo_root):
        client = _client()
        orch, _ = _orchestrator(
            remote, repo_root, FakeScanner(THREE), client, {"fail_on": {"beta"}}
        )
        result = orch.run([ProjectTarget()], aggregate=True)
        assert [c.package_name for c in result.fixed] == ["alpha", "gamma"]
        assert [f.package_name for f in result.failed] == ["beta"]
        body = client.create_pull_request.call_args.args[5]
        assert compute_fix_checksum(result.fixed) in body

    def test_in_sync_pr_left_alone(self, remote, repo_root):
        first_client = _client()
        orch, _ = _orchestrator(remote, repo_root, FakeScanner(THREE), first_client)
        first = orch.run([ProjectTarget()], aggregate=True)
        existing = PullRequestInfo(
            1,
            "title",
            embed_checksum("body", compute_fix_checksum(first.fixed)),
            BranchInfo(self._branch_name(orch)),
            BranchInfo("main"),
        )
        client = _client([existing])
        orch, _ = _orchestrator(FakeRemote(), repo_root, FakeScanner(THREE), client)
        result = orch.run([ProjectTarget()], aggregate=True)
        assert result.pull_requests[0].state is FixBranchState.PR_UP_TO_DATE
        client.create_pull_request.assert_not_called()
        client.update_pull_request.assert_not_called()

    def test_changed_fix_set_updates_pr(self, remote, repo_root):
        orch, _ = _orchestrator(remote, repo_root, FakeScanner(THREE))
        existing = PullRequestInfo(
            9,
            "title",
            embed_checksum("body", "f" * 32),
            BranchInfo(self._branch_name(orch)),
            BranchInfo("main"),
        )
        client = _client([existing])
        orch, _ = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        result = orch.run([ProjectTarget()], aggregate=True)
        assert result.pull_requests[0].state is FixBranchState.PR_UPDATED
        assert client.update_pull_request.call_args.args[:3] == ("acme", "shop", 9)

    def test_all_failed_opens_nothing(self, remote, repo_root):
        client = _client()
        orch, _ = _orchestrator(
            remote, repo_root, FakeScanner(THREE), client,
            {"unsupported": {"alpha", "beta", "gamma"}},
        )
        result = orch.run([ProjectTarget()], aggregate=True)
        assert result.ok
        assert result.pull_requests == []
        client.create_pull_request.assert_not_called()
        assert remote.git.checkout.call_count == 1

    def test_vcs_error_aborts_aggregated_attempt(self, remote, repo_root):
        client = _client()
        client.list_open_pull_requests_with_body.side_effect = httpx.ConnectError("down")
        orch, handlers = _orchestrator(remote, repo_root, FakeScanner(THREE), client)
        result = orch.run([ProjectTarget()], aggregate=True)
        assert not result.ok
        assert handlers == []
        assert remote.git.checkout.call_count == 1

    def test_spans_working_dirs(self, remote, repo_root):
        client = _client()
        scanner = FakeScanner(
            {
                "frontend": [make_finding("minimist", technology="npm")],
                "backend": [make_finding("requests", technology="pip")],
            }
        )
        orch, _ = _orchestrator(remote, repo_root, scanner, client)
        result = orch.run([ProjectTarget(working_dirs=["frontend", "backend"])], aggregate=True)
        assert len(result.fixed) == 2
        source = client.create_pull_request.call_args.args[2]
        assert source == self._branch_name(orch, ("npm", "pip"))
        assert client.create_pull_request.call_args.args[4] == "[VulnFixer] Update npm, pip dependencies"
