"""Markdown pull request descriptions for fix branches."""

from __future__ import annotations

from collections.abc import Sequence

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.vcs.base import VcsProvider

_TABLE_HEADER = (
    "| SEVERITY | DIRECT DEPENDENCIES | IMPACTED DEPENDENCY | FIXED VERSION | CVES |\n"
    "| :---: | :---: | :---: | :---: | :---: |"
)

FOOTER = "---\n<div align=\"center\">\n\nGenerated by VulnFixer\n\n</div>"


def _request_noun(provider: VcsProvider | None) -> str:
    return "merge request" if provider is VcsProvider.GITLAB else "pull request"


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ") if value else "-"


def _direct_dependencies(candidate: FixCandidate) -> str:
    names: dict[str, None] = {}
    for row in candidate.findings:
        for component in row.components:
            label = f"{component.name}:{component.version}" if component.version else component.name
            names.setdefault(label, None)
    return "<br>".join(names) if names else candidate.package_name


def _summary_row(candidate: FixCandidate) -> str:
    impacted = f"{candidate.package_name}:{candidate.impacted_version}"
    cves = "<br>".join(candidate.cves)
    return (
        f"| {_cell(candidate.severity)} | {_cell(_direct_dependencies(candidate))} "
        f"| {_cell(impacted)} | {_cell(candidate.suggested_fixed_version)} | {_cell(cves)} |"
    )


def _details_section(candidate: FixCandidate) -> str:
    lines = [
        "<details>",
        f"<summary><b>{candidate.package_name} {candidate.impacted_version}</b></summary>",
        "",
        f"- **Severity:** {candidate.severity}",
        f"- **Package Name:** {candidate.package_name}",
        f"- **Current Version:** {candidate.impacted_version}",
        f"- **Fixed Version:** {candidate.suggested_fixed_version}",
        f"- **CVEs:** {', '.join(candidate.cves) or '-'}",
    ]
    summaries = dict.fromkeys(row.summary for row in candidate.findings if row.summary)
    if summaries:
        lines += ["", *summaries]
    lines += ["", "</details>"]
    return "\n".join(lines)


def render_pull_request_body(
    candidates: Sequence[FixCandidate],
    provider: VcsProvider | None = None,
) -> str:
    """Describe the upgrades in *candidates*: a summary table, then per-package details."""
    noun = _request_noun(provider)
    parts = [
        f"This {noun} upgrades vulnerable dependencies to their minimal fixed versions.",
        "",
        "## Vulnerable Dependencies",
        "",
        _TABLE_HEADER,
        *(_summary_row(c) for c in candidates),
    ]
    if candidates:
        parts += ["", "## Details", "", *(_details_section(c) for c in candidates)]
    parts += ["", FOOTER]
    return "\n".join(parts)
