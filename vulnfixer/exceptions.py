"""Custom exceptions for VulnFixer."""

from __future__ import annotations

from enum import Enum


class VulnFixerError(Exception):
    """Base exception for all VulnFixer errors."""


class ConfigError(VulnFixerError):
    """Raised when the configuration is invalid or incomplete."""


class ScanError(VulnFixerError):
    """Raised when the dependency scanner fails or its report is unreadable."""


class AggregationError(VulnFixerError):
    """Raised when scan findings cannot be folded into a fix versions map."""


class GitError(VulnFixerError):
    """Raised when a git command exits with a non-zero status."""

    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"'{' '.join(command)}' failed (exit {returncode}): {stderr.strip()}"
        )


class PackageHandlerError(VulnFixerError):
    """Raised when a package manager command fails or a manifest edit finds nothing."""


class UnsupportedReason(str, Enum):
    INDIRECT_DEPENDENCY = "IndirectDependencyFixNotSupported"
    BUILD_TOOLS_DEPENDENCY = "BuildToolsDependencyFixNotSupported"
    UNSUPPORTED_TECHNOLOGY = "TechnologyFixNotSupported"


_INDIRECT_MSG = (
    "{package} is an indirect dependency that will not be updated to version {version}.\n"
    "Fixing indirect dependencies can potentially cause conflicts with other dependencies "
    "that depend on the previous version.\n"
    "VulnFixer skips this to avoid potential incompatibilities and breaking changes."
)
_BUILD_TOOLS_MSG = (
    "Skipping vulnerable package {package} since it is not defined in your package "
    "descriptor file. Update {package} version to {version} to fix this vulnerability."
)
_TECHNOLOGY_MSG = (
    "Skipping vulnerable package {package}: automatic fixes are not supported for "
    "{technology} projects. Update it to version {version} manually."
)


class UnsupportedFixError(VulnFixerError):
    """A package that cannot be fixed automatically.

    Recoverable by definition: the orchestrator logs it at debug level and
    moves on, it never counts as a failure.
    """

    def __init__(
        self,
        package_name: str,
        fixed_version: str,
        reason: UnsupportedReason,
        technology: str = "",
    ) -> None:
        self.package_name = package_name
        self.fixed_version = fixed_version
        self.reason = reason
        self.technology = technology
        if reason is UnsupportedReason.INDIRECT_DEPENDENCY:
            msg = _INDIRECT_MSG.format(package=package_name, version=fixed_version)
        elif reason is UnsupportedReason.BUILD_TOOLS_DEPENDENCY:
            msg = _BUILD_TOOLS_MSG.format(package=package_name, version=fixed_version)
        else:
            msg = _TECHNOLOGY_MSG.format(
                package=package_name, version=fixed_version, technology=technology or "this"
            )
        super().__init__(msg)


class PackageFixError(VulnFixerError):
    """Wraps a handler or branch lifecycle failure with the package it was fixing."""

    def __init__(self, package_name: str, fix_version: str, cause: BaseException) -> None:
        self.package_name = package_name
        self.fix_version = fix_version
        self.cause = cause
        super().__init__(
            f"failed while fixing {package_name} with version {fix_version}: {cause}"
        )


class FixRunError(VulnFixerError):
    """Raised by FixRunResult.raise_for_failures() when any package failed."""

    def __init__(self, failures: list) -> None:
        self.failures = failures
        lines = "\n".join(f"  - {f.package_name} ({f.fix_version}): {f.error}" for f in failures)
        super().__init__(f"{len(failures)} fix attempt(s) failed:\n{lines}")
