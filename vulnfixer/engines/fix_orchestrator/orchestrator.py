"""FixOrchestrator: scan, aggregate, and turn each fix into a branch and pull request."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

import httpx
import structlog

# Ensure handlers are registered before any fix runs.
import vulnfixer.engines.package_handlers  # noqa: F401
from vulnfixer.core.fsutil import working_directory
from vulnfixer.engines.fix_lifecycle.manager import FixBranchLifecycle
from vulnfixer.engines.fix_orchestrator.models import (
    FixFailure,
    FixRunResult,
    ProjectTarget,
    SkippedFix,
    SkipReason,
)
from vulnfixer.engines.fix_versions.aggregator import build_fix_versions_map
from vulnfixer.engines.fix_versions.models import FixCandidate, FixVersionsMap
from vulnfixer.engines.package_handlers.registry import HandlerCache, HandlerContext
from vulnfixer.exceptions import PackageFixError, UnsupportedFixError, VulnFixerError
from vulnfixer.scanner.simple_json import Scanner

log = structlog.get_logger("vulnfixer.engine")

# Failures that cost one package, never the run.
_PACKAGE_ERRORS = (VulnFixerError, OSError, httpx.HTTPError)


class FixOrchestrator:
    """Fix every vulnerable package of a checked-out repository.

    Per-package mode opens one pull request per package and isolates
    failures; aggregated mode folds every successful fix into a single
    branch whose pull request is created, updated or left alone depending
    on its embedded checksum. The working tree is returned to the base
    branch after each unit of work.
    """

    def __init__(
        self,
        lifecycle: FixBranchLifecycle,
        scanner: Scanner,
        repo_root: Path,
        *,
        allow_major_upgrades: bool = True,
        min_severity: str | None = None,
        handlers: HandlerCache | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.scanner = scanner
        self.repo_root = Path(repo_root)
        self.allow_major_upgrades = allow_major_upgrades
        self.min_severity = min_severity
        self.handlers = handlers if handlers is not None else HandlerCache()

    @property
    def base_branch(self) -> str:
        return self.lifecycle.base_branch

    # ── public ───────────────────────────────────────────────────────────

    def run(self, projects: Sequence[ProjectTarget], aggregate: bool = False) -> FixRunResult:
        """Scan every working directory of *projects* and fix what is fixable.

        Scanner and aggregation errors propagate; per-package errors are
        recorded on the returned :class:`FixRunResult`.
        """
        result = FixRunResult()
        maps: list[tuple[HandlerContext, FixVersionsMap]] = []
        for project in projects:
            for working_dir in project.working_dirs or ["."]:
                context = HandlerContext(
                    project_dir=(self.repo_root / working_dir).resolve(),
                    pip_requirements_file=project.pip_requirements_file,
                )
                fix_map = self.build_fix_map(context)
                if not fix_map:
                    log.info("fix.nothing_to_fix", working_dir=working_dir)
                    continue
                if aggregate:
                    maps.append((context, fix_map))
                else:
                    self._fix_packages_separately(context, fix_map, result)
        if aggregate and maps:
            self._fix_packages_aggregated(maps, result)
        log.info(
            "fix.run_done",
            aggregate=aggregate,
            fixed=len(result.fixed),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    def build_fix_map(self, context: HandlerContext) -> FixVersionsMap:
        findings = self.scanner.scan(context.project_dir)
        fix_map = build_fix_versions_map(
            findings,
            allow_major_upgrades=self.allow_major_upgrades,
            min_severity=self.min_severity,
        )
        log.info(
            "fix.map_built",
            project=str(context.project_dir),
            findings=len(findings),
            packages=len(fix_map),
        )
        return fix_map

    # ── per-package ──────────────────────────────────────────────────────

    def _fix_packages_separately(
        self, context: HandlerContext, fix_map: FixVersionsMap, result: FixRunResult
    ) -> None:
        for candidate in fix_map.values():
            package, version = candidate.package_name, candidate.suggested_fixed_version
            try:
                self._fix_single_package(candidate, context, result)
            except UnsupportedFixError as exc:
                self._record_unsupported(exc, result)
            except _PACKAGE_ERRORS as exc:
                self._record_failure(PackageFixError(package, version, exc), context, result)
            finally:
                # GitError here aborts the run: the next package cannot start from base.
                self.lifecycle.checkout_base()

    def _fix_single_package(
        self, candidate: FixCandidate, context: HandlerContext, result: FixRunResult
    ) -> None:
        package, version = candidate.package_name, candidate.suggested_fixed_version
        branch_name = self.lifecycle.templates.fix_branch_name(self.base_branch, package, version)
        if self.lifecycle.branch_exists_in_remote(branch_name):
            log.info("fix.branch_exists", package=package, fix_version=version, branch=branch_name)
            result.skipped.append(
                SkippedFix(package, version, SkipReason.BRANCH_EXISTS, detail=branch_name)
            )
            return

        log.info("fix.package_start", package=package, fix_version=version, branch=branch_name)
        branch = self.lifecycle.create_and_checkout(branch_name)
        self._update_package(candidate, context)
        self.lifecycle.open_fix_pull_request(branch, candidate)
        result.fixed.append(candidate)
        result.pull_requests.append(branch)

    # ── aggregated ───────────────────────────────────────────────────────

    def _fix_packages_aggregated(
        self, maps: list[tuple[HandlerContext, FixVersionsMap]], result: FixRunResult
    ) -> None:
        technologies = {tech for _, fix_map in maps for tech in fix_map.by_technology()}
        branch_name = self.lifecycle.templates.aggregated_branch_name(
            self.base_branch, technologies
        )
        try:
            existing = self.lifecycle.find_open_pull_request(branch_name)
            branch = self.lifecycle.create_and_checkout(branch_name)
            fixed: list[FixCandidate] = []
            for context, fix_map in maps:
                for candidate in fix_map.values():
                    if self._try_update_package(candidate, context, result):
                        fixed.append(candidate)
            if not fixed:
                log.info("fix.aggregated_nothing_fixed", branch=branch_name)
                return
            self.lifecycle.open_or_update_aggregated_pull_request(branch, fixed, existing)
            result.fixed.extend(fixed)
            result.pull_requests.append(branch)
        except _PACKAGE_ERRORS as exc:
            log.error("fix.aggregated_failed", branch=branch_name, error=str(exc))
            result.failed.append(FixFailure(branch_name, "", str(exc)))
        finally:
            self.lifecycle.checkout_base()

    def _try_update_package(
        self, candidate: FixCandidate, context: HandlerContext, result: FixRunResult
    ) -> bool:
        try:
            self._update_package(candidate, context)
        except UnsupportedFixError as exc:
            self._record_unsupported(exc, result)
            return False
        except (VulnFixerError, OSError) as exc:
            error = PackageFixError(candidate.package_name, candidate.suggested_fixed_version, exc)
            self._record_failure(error, context, result)
            return False
        return True

    # ── internal ─────────────────────────────────────────────────────────

    def _update_package(self, candidate: FixCandidate, context: HandlerContext) -> None:
        handler = self.handlers.get(candidate.technology, context)
        with working_directory(context.project_dir):
            handler.update_dependency(candidate)

    @staticmethod
    def _record_unsupported(exc: UnsupportedFixError, result: FixRunResult) -> None:
        log.debug(
            "fix.unsupported",
            package=exc.package_name,
            fix_version=exc.fixed_version,
            reason=exc.reason.value,
            detail=str(exc),
        )
        result.skipped.append(
            SkippedFix(exc.package_name, exc.fixed_version, SkipReason.UNSUPPORTED, str(exc))
        )

    def _record_failure(
        self, error: PackageFixError, context: HandlerContext, result: FixRunResult
    ) -> None:
        working_dir = os.path.relpath(context.project_dir, self.repo_root.resolve())
        log.error(
            "fix.package_failed",
            package=error.package_name,
            fix_version=error.fix_version,
            working_dir=working_dir,
            error=str(error.cause),
        )
        result.failed.append(
            FixFailure(error.package_name, error.fix_version, str(error.cause), working_dir)
        )
