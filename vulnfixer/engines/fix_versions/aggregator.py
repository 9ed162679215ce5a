"""Collapse scanner findings into one fix candidate per package."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from vulnfixer.engines.fix_versions.models import FixVersionsMap
from vulnfixer.engines.fix_versions.versions import get_minimal_fix_version
from vulnfixer.exceptions import AggregationError
from vulnfixer.scanner.models import ComponentRow, VulnerabilityFinding, severity_rank

log = structlog.get_logger("vulnfixer.engine")


def is_direct_dependency(impact_paths: Sequence[Sequence[ComponentRow]]) -> bool:
    """A package is direct when its first impact path is ``[root, package]``."""
    if not impact_paths:
        raise AggregationError("invalid impact path provided")
    return len(impact_paths[0]) < 3


def build_fix_versions_map(
    findings: Iterable[VulnerabilityFinding],
    *,
    allow_major_upgrades: bool = True,
    min_severity: str | None = None,
) -> FixVersionsMap:
    """Aggregate *findings* into a :class:`FixVersionsMap`.

    Rows without fixed versions, without a qualifying fix, or below
    *min_severity* are skipped. An empty impact path on a new package
    aborts the whole aggregation.
    """
    threshold = severity_rank(min_severity)
    fix_map = FixVersionsMap()
    for finding in findings:
        if not finding.fixed_versions:
            continue
        if threshold and finding.severity_rank < threshold:
            log.debug(
                "fix.below_min_severity",
                package=finding.impacted_package_name,
                severity=finding.severity,
            )
            continue
        fix_version = get_minimal_fix_version(
            finding.impacted_package_version,
            finding.fixed_versions,
            allow_major_upgrades=allow_major_upgrades,
        )
        if not fix_version:
            log.debug(
                "fix.no_qualifying_version",
                package=finding.impacted_package_name,
                version=finding.impacted_package_version,
            )
            continue
        if finding.impacted_package_name in fix_map:
            fix_map.upsert(finding, fix_version)
        else:
            fix_map.upsert(finding, fix_version, is_direct_dependency(finding.impact_paths))
    return fix_map
