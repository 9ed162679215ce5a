"""Python package managers: pip (manifest rewrite), pipenv and poetry."""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.engines.package_handlers.common import (
    CommonPackageHandler,
    run_package_manager_command,
)
from vulnfixer.engines.package_handlers.registry import register_handler
from vulnfixer.exceptions import PackageHandlerError

log = structlog.get_logger("vulnfixer.engine")

DEFAULT_PIP_REQUIREMENTS_FILE = "setup.py"

# operator and version, optionally followed by a second bound: ">=1.0, <2.0"
_PIN_SUFFIX = (
    r"\s*(?:[=<>~!]=|[<>])\s*[\w.*+!-]*\d[\w.*+!-]*"
    r"(?:\s*,\s*(?:[=<>~!]=|[<>])\s*[\w.*+!-]*\d[\w.*+!-]*)*"
)


def pinned_version_pattern(package_name: str) -> re.Pattern[str]:
    """Case-insensitive pattern for ``<package><op><version>`` not preceded by a name char."""
    return re.compile(
        r"(?<![\w.-])" + re.escape(package_name) + _PIN_SUFFIX,
        re.IGNORECASE,
    )


def rewrite_pinned_version(content: str, package_name: str, fix_version: str) -> str | None:
    """Replace the first pin of *package_name* with ``==fix_version``.

    Returns None when the package is not pinned in *content*. The package
    name keeps the spelling found in the file.
    """
    match = pinned_version_pattern(package_name).search(content)
    if match is None:
        return None
    spelled = content[match.start() : match.start() + len(package_name)]
    return f"{content[: match.start()]}{spelled}=={fix_version}{content[match.end():]}"


class PipPackageHandler(CommonPackageHandler):
    """Edit the pinned version straight in the requirements/setup file."""

    def update_direct_dependency(self, candidate: FixCandidate) -> None:
        file_name = self.context.pip_requirements_file or DEFAULT_PIP_REQUIREMENTS_FILE
        path = self._resolve_requirements_file(file_name)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PackageHandlerError(f"cannot read {file_name}: {exc}") from exc

        fixed = rewrite_pinned_version(
            content, candidate.package_name, candidate.suggested_fixed_version
        )
        if fixed is None:
            raise PackageHandlerError(
                f"impacted package {candidate.package_name} not found in {file_name}, fix failed"
            )
        path.write_text(fixed, encoding="utf-8")
        log.debug(
            "handler.pip_rewritten",
            file=file_name,
            package=candidate.package_name,
            version=candidate.suggested_fixed_version,
        )

    @staticmethod
    def _resolve_requirements_file(file_name: str) -> Path:
        root = Path.cwd().resolve()
        path = (root / file_name).resolve()
        if path != root and root not in path.parents:
            raise PackageHandlerError(f"requirements file {file_name} is outside the project")
        return path


class PipenvPackageHandler(CommonPackageHandler):
    executable = "pipenv"
    install_args = ("install",)
    operator = "=="


class PoetryPackageHandler(CommonPackageHandler):
    executable = "poetry"
    install_args = ("add",)
    operator = "=="

    def update_direct_dependency(self, candidate: FixCandidate) -> None:
        run_package_manager_command(self.install_command(candidate))
        # refresh the lock file for the new constraint
        run_package_manager_command([self.executable, "update"])


register_handler("pip", PipPackageHandler)
register_handler("pipenv", PipenvPackageHandler)
register_handler("poetry", PoetryPackageHandler)
