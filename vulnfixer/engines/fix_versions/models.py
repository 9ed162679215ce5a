"""Data models for the fix-versions aggregation engine."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from vulnfixer.engines.fix_versions.versions import compare_versions
from vulnfixer.scanner.models import VulnerabilityFinding


@dataclass
class FixCandidate:
    """One package to upgrade: the highest minimal fix across all its findings."""

    finding: VulnerabilityFinding
    suggested_fixed_version: str
    is_direct_dependency: bool
    findings: list[VulnerabilityFinding] = field(default_factory=list)

    @property
    def package_name(self) -> str:
        return self.finding.impacted_package_name

    @property
    def impacted_version(self) -> str:
        return self.finding.impacted_package_version

    @property
    def technology(self) -> str:
        return self.finding.technology

    @property
    def cves(self) -> list[str]:
        seen: dict[str, None] = {}
        for row in self.findings:
            for cve in row.cves:
                seen.setdefault(cve, None)
        return list(seen)

    @property
    def severity(self) -> str:
        return max(self.findings, key=lambda row: row.severity_rank).severity

    def fix_keys(self) -> list[str]:
        return [f"{row.unique_key}|{self.suggested_fixed_version}" for row in self.findings]


class FixVersionsMap(Mapping[str, FixCandidate]):
    """Package name -> FixCandidate, in first-seen order.

    ``upsert`` is the only way candidates are created or changed.
    """

    def __init__(self) -> None:
        self._candidates: dict[str, FixCandidate] = {}

    def __getitem__(self, package_name: str) -> FixCandidate:
        return self._candidates[package_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def __repr__(self) -> str:
        pairs = ", ".join(
            f"{name}={c.suggested_fixed_version}" for name, c in self._candidates.items()
        )
        return f"FixVersionsMap({pairs})"

    def upsert(
        self,
        finding: VulnerabilityFinding,
        fix_version: str,
        is_direct_dependency: bool | None = None,
    ) -> FixCandidate:
        """Record *finding* with its minimal *fix_version*.

        A new package needs *is_direct_dependency*. For a known package the
        finding is accumulated and the suggested version only ever moves up.
        """
        candidate = self._candidates.get(finding.impacted_package_name)
        if candidate is None:
            if is_direct_dependency is None:
                raise ValueError("is_direct_dependency is required for a new package")
            candidate = FixCandidate(
                finding=finding,
                suggested_fixed_version=fix_version,
                is_direct_dependency=is_direct_dependency,
                findings=[finding],
            )
            self._candidates[finding.impacted_package_name] = candidate
            return candidate

        candidate.findings.append(finding)
        if compare_versions(fix_version, candidate.suggested_fixed_version) > 0:
            candidate.suggested_fixed_version = fix_version
        return candidate

    def by_technology(self) -> dict[str, list[FixCandidate]]:
        """Group candidates per technology, preserving insertion order."""
        grouped: dict[str, list[FixCandidate]] = {}
        for candidate in self._candidates.values():
            grouped.setdefault(candidate.technology, []).append(candidate)
        return grouped
