"""Scanner adapters: turn audit reports into VulnerabilityFinding rows."""

from vulnfixer.scanner.models import ComponentRow, VulnerabilityFinding, severity_rank
from vulnfixer.scanner.simple_json import (
    CommandScanner,
    ReportFileScanner,
    Scanner,
    parse_simple_json_report,
)

__all__ = [
    "CommandScanner",
    "ComponentRow",
    "ReportFileScanner",
    "Scanner",
    "VulnerabilityFinding",
    "parse_simple_json_report",
    "severity_rank",
]
