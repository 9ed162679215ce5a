"""Tests for the simple-json scanner adapter."""

from __future__ import annotations

import json
import sys

import pytest

from vulnfixer.exceptions import ScanError
from vulnfixer.scanner.models import severity_rank
from vulnfixer.scanner.simple_json import (
    CommandScanner,
    ReportFileScanner,
    parse_simple_json_report,
)

REPORT = {
    "vulnerabilities": [
        {
            "severity": "High",
            "impactedPackageName": "minimist",
            "impactedPackageVersion": "1.2.5",
            "impactedPackageType": "npm",
            "components": [{"name": "mkdirp", "version": "0.5.5"}],
            "summary": "Prototype pollution in minimist",
            "fixedVersions": ["[1.2.6]"],
            "cves": [{"id": "CVE-2021-44906", "cvssV3": "9.8"}],
            "issueId": "XRAY-209002",
            "technology": "npm",
            "impactPaths": [
                [
                    {"name": "shop", "version": "1.0.0"},
                    {"name": "mkdirp", "version": "0.5.5"},
                    {"name": "minimist", "version": "1.2.5"},
                ]
            ],
            "jfrogResearchInformation": None,
        }
    ],
    "securityViolations": [
        {
            "severity": "Critical",
            "impactedPackageName": "requests",
            "impactedPackageVersion": "2.25.1",
            "fixedVersions": ["2.31.0"],
            "cves": None,
            "issueId": "XRAY-500",
            "technology": "Pip",
            "impactPaths": [[{"name": "shop"}, {"name": "requests", "version": "2.25.1"}]],
        }
    ],
    "licensesViolations": None,
}


class TestParseReport:
    def test_rows_from_both_sections(self):
        findings = parse_simple_json_report(json.dumps(REPORT))
        assert [f.impacted_package_name for f in findings] == ["minimist", "requests"]

    def test_fields_mapped(self):
        minimist = parse_simple_json_report(REPORT)[0]
        assert minimist.impacted_package_version == "1.2.5"
        assert minimist.fixed_versions == ("[1.2.6]",)
        assert minimist.cves == ("CVE-2021-44906",)
        assert minimist.issue_id == "XRAY-209002"
        assert len(minimist.impact_paths[0]) == 3
        assert minimist.components[0].name == "mkdirp"
        assert minimist.summary.startswith("Prototype")

    def test_nulls_and_technology_normalized(self):
        requests = parse_simple_json_report(REPORT)[1]
        assert requests.cves == ()
        assert requests.technology == "pip"

    def test_findings_are_frozen(self):
        finding = parse_simple_json_report(REPORT)[0]
        with pytest.raises(Exception):
            finding.severity = "Low"

    def test_unique_key(self):
        finding = parse_simple_json_report(REPORT)[0]
        assert finding.unique_key == "minimist|1.2.5|XRAY-209002"

    def test_empty_report(self):
        assert parse_simple_json_report("{}") == []

    def test_not_json(self):
        with pytest.raises(ScanError, match="not valid JSON"):
            parse_simple_json_report("Scanning...")

    def test_not_object(self):
        with pytest.raises(ScanError):
            parse_simple_json_report("[]")

    def test_missing_package_name(self):
        with pytest.raises(ScanError, match="malformed"):
            parse_simple_json_report({"vulnerabilities": [{"severity": "High"}]})


class TestSeverityRank:
    def test_order(self):
        ranks = [severity_rank(s) for s in ("Unknown", "Low", "Medium", "High", "Critical")]
        assert ranks == sorted(ranks)
        assert severity_rank(None) == 0
        assert severity_rank("weird") == 0


class TestScanners:
    def test_report_file_relative_to_project(self, tmp_path):
        (tmp_path / "audit.json").write_text(json.dumps(REPORT))
        findings = ReportFileScanner("audit.json").scan(tmp_path)
        assert len(findings) == 2

    def test_report_file_missing(self, tmp_path):
        with pytest.raises(ScanError, match="cannot read"):
            ReportFileScanner("audit.json").scan(tmp_path)

    def test_command_stdout_parsed(self, tmp_path):
        (tmp_path / "audit.json").write_text(json.dumps(REPORT))
        code = "import sys; sys.stdout.write(open('audit.json').read())"
        findings = CommandScanner([sys.executable, "-c", code]).scan(tmp_path)
        assert len(findings) == 2

    def test_command_failure(self, tmp_path):
        code = "import sys; sys.stderr.write('no server'); sys.exit(2)"
        with pytest.raises(ScanError, match="exit 2"):
            CommandScanner([sys.executable, "-c", code]).scan(tmp_path)

    def test_command_missing_executable(self, tmp_path):
        with pytest.raises(ScanError, match="not found"):
            CommandScanner("no-such-audit-tool --format=simple-json").scan(tmp_path)

    def test_empty_command(self):
        with pytest.raises(ScanError):
            CommandScanner("")
