"""CLI entry point: vulnfixer.

Subcommands:
    vulnfixer scan-repository [--config PATH] [--aggregate/--no-aggregate] [--dry-run]
    vulnfixer fix-versions REPORT.json [--json]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import httpx

from vulnfixer.core.config import load_config
from vulnfixer.core.logging import setup_logging
from vulnfixer.engines.fix_orchestrator.models import FixRunResult
from vulnfixer.engines.fix_orchestrator.runner import scan_and_fix_repository
from vulnfixer.engines.fix_versions.aggregator import build_fix_versions_map
from vulnfixer.engines.fix_versions.models import FixVersionsMap
from vulnfixer.exceptions import VulnFixerError
from vulnfixer.scanner.simple_json import ReportFileScanner


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """VulnFixer: open pull requests that upgrade vulnerable dependencies."""
    setup_logging("DEBUG" if verbose else None)


@main.command("scan-repository")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: .vulnfixer/vulnfixer-config.yml, searched upward)",
)
@click.option(
    "--aggregate/--no-aggregate",
    default=None,
    help="One pull request for all fixes instead of one per package",
)
@click.option("--dry-run", is_flag=True, help="Fix locally; no push and no pull requests")
def scan_repository(config_path: Path | None, aggregate: bool | None, dry_run: bool) -> None:
    """Scan the configured repository and open fix pull requests."""
    try:
        config = load_config(config_path)
        if dry_run:
            config = config.model_copy(update={"dry_run": True})
        result = scan_and_fix_repository(config, aggregate=aggregate)
    except (VulnFixerError, httpx.HTTPError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _print_run_summary(result)
    if not result.ok:
        sys.exit(1)


@main.command("fix-versions")
@click.argument("report", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
@click.option(
    "--allow-major/--no-allow-major",
    default=True,
    show_default=True,
    help="Accept fix versions that bump the major version",
)
@click.option("--min-severity", default=None, help="Ignore findings below this severity")
def fix_versions(
    report: Path, as_json: bool, allow_major: bool, min_severity: str | None
) -> None:
    """Print the fix version chosen for each package of a simple-json REPORT."""
    try:
        findings = ReportFileScanner(report.resolve()).scan(report.parent)
        fix_map = build_fix_versions_map(
            findings, allow_major_upgrades=allow_major, min_severity=min_severity
        )
    except VulnFixerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(_fix_map_to_json(fix_map), indent=2))
        return
    if not fix_map:
        click.echo("No fixable vulnerabilities found.")
        return
    for candidate in fix_map.values():
        kind = "direct" if candidate.is_direct_dependency else "indirect"
        click.echo(
            f"  {candidate.package_name} {candidate.impacted_version} -> "
            f"{candidate.suggested_fixed_version} [{candidate.technology}, {kind}] "
            f"{', '.join(candidate.cves)}"
        )


def _fix_map_to_json(fix_map: FixVersionsMap) -> list[dict]:
    return [
        {
            "package": c.package_name,
            "technology": c.technology,
            "current_version": c.impacted_version,
            "fix_version": c.suggested_fixed_version,
            "direct": c.is_direct_dependency,
            "cves": c.cves,
        }
        for c in fix_map.values()
    ]


def _print_run_summary(result: FixRunResult) -> None:
    click.echo(
        f"Fixed: {len(result.fixed)}  Skipped: {len(result.skipped)}  "
        f"Failed: {len(result.failed)}"
    )
    for branch in result.pull_requests:
        pr = branch.pull_request
        target = f" ({pr.url or '#' + str(pr.id)})" if pr else ""
        click.echo(f"  [{branch.state.value}] {branch.name}{target}")
    for failure in result.failed:
        click.echo(
            f"  [failed] {failure.package_name} {failure.fix_version}: {failure.error}", err=True
        )


if __name__ == "__main__":
    main()
