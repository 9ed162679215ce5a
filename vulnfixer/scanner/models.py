"""Scanner result rows: one vulnerable component occurrence each."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SEVERITY_RANK: dict[str, int] = {
    "unknown": 0,
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}


def severity_rank(severity: str | None) -> int:
    if not severity:
        return 0
    return SEVERITY_RANK.get(severity.strip().lower(), 0)


class ComponentRow(BaseModel):
    """A node of an impact path, or a direct dependency that pulls the package in."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""


class VulnerabilityFinding(BaseModel):
    """A vulnerable package occurrence as reported by the simple-json scanner format."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    impacted_package_name: str = Field(alias="impactedPackageName")
    impacted_package_version: str = Field(default="", alias="impactedPackageVersion")
    fixed_versions: tuple[str, ...] = Field(default=(), alias="fixedVersions")
    severity: str = "Unknown"
    cves: tuple[str, ...] = ()
    technology: str = ""
    impact_paths: tuple[tuple[ComponentRow, ...], ...] = Field(default=(), alias="impactPaths")
    components: tuple[ComponentRow, ...] = ()
    summary: str = ""
    issue_id: str = Field(default="", alias="issueId")

    @model_validator(mode="before")
    @classmethod
    def _flatten_null_lists(cls, data: Any) -> Any:
        # simple-json emits null for empty arrays
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("cves", mode="before")
    @classmethod
    def _cve_ids(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            ids = []
            for row in value:
                if isinstance(row, dict):
                    cve_id = row.get("id") or ""
                    if cve_id:
                        ids.append(cve_id)
                elif row:
                    ids.append(str(row))
            return tuple(ids)
        return value

    @field_validator("technology", mode="before")
    @classmethod
    def _normalize_technology(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def severity_rank(self) -> int:
        return severity_rank(self.severity)

    @property
    def unique_key(self) -> str:
        """Stable identity of the finding, used for fix-set checksums."""
        issue = self.issue_id or ",".join(sorted(self.cves))
        return f"{self.impacted_package_name}|{self.impacted_package_version}|{issue}"
