"""Shared pieces for package handlers: command runner, build-tools guard, base class."""

from __future__ import annotations

import subprocess
from pathlib import Path

import structlog

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.engines.package_handlers.registry import HandlerContext
from vulnfixer.exceptions import PackageHandlerError, UnsupportedFixError, UnsupportedReason

log = structlog.get_logger("vulnfixer.engine")

_PYTHON_BUILD_TOOLS = frozenset({"pip", "setuptools", "wheel"})

# Packages reported by the scanner that belong to the toolchain, not the manifest.
BUILD_TOOLS_DEPENDENCIES: dict[str, frozenset[str]] = {
    "go": frozenset({"github.com/golang/go"}),
    "pip": _PYTHON_BUILD_TOOLS,
    "pipenv": _PYTHON_BUILD_TOOLS,
    "poetry": _PYTHON_BUILD_TOOLS,
}


def is_build_tools_dependency(candidate: FixCandidate) -> bool:
    tools = BUILD_TOOLS_DEPENDENCIES.get(candidate.technology, frozenset())
    return candidate.package_name.lower() in tools


def check_build_tools_dependency(candidate: FixCandidate) -> None:
    if is_build_tools_dependency(candidate):
        raise UnsupportedFixError(
            candidate.package_name,
            candidate.suggested_fixed_version,
            UnsupportedReason.BUILD_TOOLS_DEPENDENCY,
            technology=candidate.technology,
        )


def run_package_manager_command(command: list[str], cwd: Path | None = None) -> str:
    """Run a package manager command and return its combined output.

    Raises ``PackageHandlerError`` on a non-zero exit or a missing executable.
    """
    full_command = " ".join(command)
    log.debug("handler.run_command", command=full_command)
    try:
        proc = subprocess.run(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise PackageHandlerError(f"{command[0]} executable not found") from exc
    if proc.returncode != 0:
        raise PackageHandlerError(
            f"'{full_command}' command failed (exit {proc.returncode}):\n{proc.stdout.strip()}"
        )
    return proc.stdout


class CommonPackageHandler:
    """Upgrade via ``<executable> <install args> <package><operator><version>``.

    Subclasses set the command shape; only direct dependencies are fixed
    unless ``supports_indirect`` is set.
    """

    executable: str = ""
    install_args: tuple[str, ...] = ()
    operator: str = "@"
    supports_indirect: bool = False

    def __init__(self, technology: str, context: HandlerContext) -> None:
        self.technology = technology
        self.context = context

    def update_dependency(self, candidate: FixCandidate) -> None:
        check_build_tools_dependency(candidate)
        if not candidate.is_direct_dependency and not self.supports_indirect:
            raise UnsupportedFixError(
                candidate.package_name,
                candidate.suggested_fixed_version,
                UnsupportedReason.INDIRECT_DEPENDENCY,
                technology=self.technology,
            )
        self.update_direct_dependency(candidate)

    def update_direct_dependency(self, candidate: FixCandidate) -> None:
        run_package_manager_command(self.install_command(candidate))

    def install_command(self, candidate: FixCandidate) -> list[str]:
        package = candidate.package_name.strip().lower()
        target = f"{package}{self.operator}{candidate.suggested_fixed_version}"
        return [self.executable, *self.install_args, target]
