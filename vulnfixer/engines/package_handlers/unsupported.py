"""Fallback handler for technologies without an upgrade strategy."""

from __future__ import annotations

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.engines.package_handlers.registry import HandlerContext
from vulnfixer.exceptions import UnsupportedFixError, UnsupportedReason


class UnsupportedPackageHandler:
    def __init__(self, technology: str, context: HandlerContext) -> None:
        self.technology = technology
        self.context = context

    def update_dependency(self, candidate: FixCandidate) -> None:
        raise UnsupportedFixError(
            candidate.package_name,
            candidate.suggested_fixed_version,
            UnsupportedReason.UNSUPPORTED_TECHNOLOGY,
            technology=self.technology,
        )
