"""Simple-json audit report adapter.

The audit tool prints a JSON object with ``vulnerabilities`` and
``securityViolations`` arrays; both share the row layout parsed by
:class:`VulnerabilityFinding`.
"""

from __future__ import annotations

import json
import shlex
import subprocess
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vulnfixer.exceptions import ScanError
from vulnfixer.scanner.models import VulnerabilityFinding

log = structlog.get_logger("vulnfixer.scanner")


@runtime_checkable
class Scanner(Protocol):
    """Produces findings for one project directory."""

    def scan(self, working_dir: Path) -> list[VulnerabilityFinding]: ...


class _SimpleJsonReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vulnerabilities: list[VulnerabilityFinding] | None = None
    security_violations: list[VulnerabilityFinding] | None = Field(
        default=None, alias="securityViolations"
    )


def parse_simple_json_report(payload: str | bytes | dict[str, Any]) -> list[VulnerabilityFinding]:
    """Parse a simple-json report into findings, vulnerabilities first."""
    try:
        data = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
    except json.JSONDecodeError as exc:
        raise ScanError(f"scanner output is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ScanError("scanner output must be a JSON object")
    try:
        report = _SimpleJsonReport.model_validate(data)
    except ValidationError as exc:
        raise ScanError(f"malformed scanner report: {exc}") from exc
    return [*(report.vulnerabilities or []), *(report.security_violations or [])]


class CommandScanner:
    """Run the audit command inside the project directory and parse its stdout."""

    def __init__(self, command: str | list[str]) -> None:
        self._command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self._command:
            raise ScanError("empty scan command")

    def scan(self, working_dir: Path) -> list[VulnerabilityFinding]:
        log.info("scan.start", command=" ".join(self._command), working_dir=str(working_dir))
        try:
            proc = subprocess.run(
                self._command,
                cwd=working_dir,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ScanError(f"scan executable not found: {self._command[0]}") from exc
        if proc.returncode != 0:
            raise ScanError(
                f"scan command failed (exit {proc.returncode}): {proc.stderr.strip()}"
            )
        findings = parse_simple_json_report(proc.stdout)
        log.info("scan.done", working_dir=str(working_dir), findings=len(findings))
        return findings


class ReportFileScanner:
    """Read a previously produced report; relative paths resolve against the project."""

    def __init__(self, report_file: str | Path) -> None:
        self._report_file = Path(report_file)

    def scan(self, working_dir: Path) -> list[VulnerabilityFinding]:
        path = self._report_file
        if not path.is_absolute():
            path = working_dir / path
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ScanError(f"cannot read scan report {path}: {exc}") from exc
        findings = parse_simple_json_report(content)
        log.info("scan.report_loaded", path=str(path), findings=len(findings))
        return findings
