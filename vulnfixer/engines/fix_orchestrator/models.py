"""Data models for the fix orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from vulnfixer.engines.fix_lifecycle.manager import FixBranch
from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.exceptions import FixRunError


@dataclass
class ProjectTarget:
    """A project inside the repository: its working directories and handler settings."""

    working_dirs: list[str] = field(default_factory=lambda: ["."])
    pip_requirements_file: str | None = None


class SkipReason(str, Enum):
    BRANCH_EXISTS = "branch_exists"
    UNSUPPORTED = "unsupported"


@dataclass
class SkippedFix:
    package_name: str
    fix_version: str
    reason: SkipReason
    detail: str = ""


@dataclass
class FixFailure:
    package_name: str
    fix_version: str
    error: str
    working_dir: str = ""


@dataclass
class FixRunResult:
    """Outcome of one orchestrator run."""

    fixed: list[FixCandidate] = field(default_factory=list)
    skipped: list[SkippedFix] = field(default_factory=list)
    failed: list[FixFailure] = field(default_factory=list)
    pull_requests: list[FixBranch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: FixRunResult) -> FixRunResult:
        self.fixed.extend(other.fixed)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)
        self.pull_requests.extend(other.pull_requests)
        return self

    def raise_for_failures(self) -> None:
        if self.failed:
            raise FixRunError(self.failed)
