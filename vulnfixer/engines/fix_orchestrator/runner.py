"""Repository runner: clone each base branch, then scan and fix it."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

import structlog

from vulnfixer.core.config import ProjectConfig, VulnFixerConfig
from vulnfixer.core.git import GitManager, authenticated_url
from vulnfixer.engines.fix_lifecycle.manager import FixBranchLifecycle
from vulnfixer.engines.fix_orchestrator.models import FixRunResult, ProjectTarget
from vulnfixer.engines.fix_orchestrator.orchestrator import FixOrchestrator
from vulnfixer.exceptions import ConfigError
from vulnfixer.scanner.models import VulnerabilityFinding
from vulnfixer.scanner.simple_json import CommandScanner, ReportFileScanner, Scanner
from vulnfixer.vcs.base import VcsClient, VcsProvider
from vulnfixer.vcs.github_client import GitHubClient

log = structlog.get_logger("vulnfixer.engine")


def create_vcs_client(config: VulnFixerConfig) -> VcsClient:
    if config.git.provider is VcsProvider.GITHUB:
        return GitHubClient(config.git.token, config.git.api_endpoint)
    raise ConfigError(f"unsupported git provider: {config.git.provider.value}")


def build_scanner(project: ProjectConfig) -> Scanner:
    if project.report_file:
        return ReportFileScanner(project.report_file)
    return CommandScanner(project.scan_command)


class _ProjectScanner:
    """Route each working directory to the scanner configured for its project."""

    def __init__(self, scanners: dict[Path, Scanner], default: Scanner) -> None:
        self._scanners = scanners
        self._default = default

    def scan(self, working_dir: Path) -> list[VulnerabilityFinding]:
        return self._scanners.get(working_dir.resolve(), self._default).scan(working_dir)


def _project_scanner(config: VulnFixerConfig, repo_root: Path) -> Scanner:
    if not config.scan.projects:
        raise ConfigError("no projects configured")
    scanners: dict[Path, Scanner] = {}
    for project in config.scan.projects:
        scanner = build_scanner(project)
        for working_dir in project.working_dirs or ["."]:
            scanners[(repo_root / working_dir).resolve()] = scanner
    return _ProjectScanner(scanners, build_scanner(config.scan.projects[0]))


def scan_and_fix_repository(
    config: VulnFixerConfig,
    client: VcsClient | None = None,
    *,
    aggregate: bool | None = None,
    scanner: Scanner | None = None,
) -> FixRunResult:
    """Fix every configured base branch of the repository.

    Each branch gets a fresh clone in a temporary directory, removed
    afterwards unless running dry.
    """
    owned_client = client is None
    client = client or create_vcs_client(config)
    aggregate = config.git.aggregate_fixes if aggregate is None else aggregate
    try:
        return _fix_repository(config, client, aggregate, scanner)
    finally:
        if owned_client and isinstance(client, GitHubClient):
            client.close()


def _fix_repository(
    config: VulnFixerConfig,
    client: VcsClient,
    aggregate: bool,
    scanner: Scanner | None,
) -> FixRunResult:
    owner, repo = config.git.repo_owner, config.git.repo_name
    clone_url = config.git.clone_url
    branches = list(config.git.branches)
    if not clone_url or not branches:
        info = client.get_repository_info(owner, repo)
        clone_url = clone_url or info.clone_url
        branches = branches or [info.default_branch]

    result = FixRunResult()
    for base_branch in branches:
        result.merge(_fix_branch(config, client, clone_url, base_branch, aggregate, scanner))
    return result


def _fix_branch(
    config: VulnFixerConfig,
    client: VcsClient,
    clone_url: str,
    base_branch: str,
    aggregate: bool,
    scanner: Scanner | None,
) -> FixRunResult:
    workdir = Path(tempfile.mkdtemp(prefix="vulnfixer-"))
    log.info("fix.branch_run_start", base_branch=base_branch, workdir=str(workdir))
    try:
        git = GitManager.clone(
            authenticated_url(clone_url, config.git.username, config.git.token),
            workdir / "repo",
            branch=base_branch,
            author_name=config.git.author_name,
            author_email=config.git.author_email,
            dry_run=config.dry_run,
        )
        lifecycle = FixBranchLifecycle(
            git,
            client,
            repo_owner=config.git.repo_owner,
            repo_name=config.git.repo_name,
            base_branch=base_branch,
            templates=config.naming_templates(),
            dry_run=config.dry_run,
        )
        orchestrator = FixOrchestrator(
            lifecycle,
            scanner or _project_scanner(config, git.repo_path),
            git.repo_path,
            allow_major_upgrades=config.scan.allow_major_upgrades,
            min_severity=config.scan.min_severity,
        )
        projects = [
            ProjectTarget(p.working_dirs, p.pip_requirements_file) for p in config.scan.projects
        ]
        return orchestrator.run(projects, aggregate=aggregate)
    finally:
        if config.dry_run:
            log.info("fix.workdir_kept", workdir=str(workdir))
        else:
            shutil.rmtree(workdir, ignore_errors=True)
