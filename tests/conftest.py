"""Shared pytest fixtures and builders for VulnFixer tests."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from vulnfixer.core.git import GitManager
from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.scanner.models import VulnerabilityFinding

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def make_finding(
    name: str,
    version: str = "1.0.0",
    fixed_versions: tuple[str, ...] = ("[1.0.1]",),
    *,
    technology: str = "npm",
    direct: bool = True,
    cves: tuple[str, ...] = ("CVE-2024-0001",),
    severity: str = "High",
    issue_id: str = "",
    summary: str = "",
) -> VulnerabilityFinding:
    """Build a finding the way the simple-json report spells it."""
    path = [{"name": "root-project"}, {"name": name, "version": version}]
    if not direct:
        path.insert(1, {"name": "parent-lib", "version": "2.0.0"})
    return VulnerabilityFinding.model_validate(
        {
            "impactedPackageName": name,
            "impactedPackageVersion": version,
            "fixedVersions": list(fixed_versions),
            "severity": severity,
            "cves": [{"id": cve} for cve in cves],
            "technology": technology,
            "impactPaths": [path],
            "issueId": issue_id,
            "summary": summary,
        }
    )


def make_candidate(
    name: str,
    fix_version: str = "1.0.1",
    *,
    version: str = "1.0.0",
    technology: str = "npm",
    direct: bool = True,
    cves: tuple[str, ...] = ("CVE-2024-0001",),
) -> FixCandidate:
    finding = make_finding(
        name, version, (fix_version,), technology=technology, direct=direct, cves=cves
    )
    return FixCandidate(
        finding=finding,
        suggested_fixed_version=fix_version,
        is_direct_dependency=direct,
        findings=[finding],
    )


def _git(*args: str, cwd: Path | None = None) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout


@pytest.fixture
def git_remote(tmp_path: Path) -> Path:
    """A bare repository with one commit on ``main``."""
    remote = tmp_path / "remote.git"
    seed = tmp_path / "seed"
    _git("init", "--bare", "--initial-branch=main", str(remote))
    _git("init", "--initial-branch=main", str(seed))
    (seed / "package.json").write_text('{"dependencies": {"minimist": "1.2.5"}}\n')
    (seed / "requirements.txt").write_text("requests==2.25.1\nflask>=1.0\n")
    _git("add", "--all", cwd=seed)
    _git(
        "-c", "user.name=seed", "-c", "user.email=seed@example.com",
        "commit", "-m", "initial", cwd=seed,
    )
    _git("remote", "add", "origin", str(remote), cwd=seed)
    _git("push", "origin", "main", cwd=seed)
    return remote


@pytest.fixture
def git_clone(git_remote: Path, tmp_path: Path) -> GitManager:
    """A GitManager over a fresh clone of ``git_remote`` on ``main``."""
    return GitManager.clone(str(git_remote), tmp_path / "clone", branch="main")


def remote_branches(remote: Path) -> set[str]:
    out = _git("for-each-ref", "--format=%(refname:short)", "refs/heads", cwd=remote)
    return set(out.split())


def remote_file(remote: Path, branch: str, path: str) -> str:
    return _git("show", f"{branch}:{path}", cwd=remote)
