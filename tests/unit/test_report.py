"""
Unit tests for run report generation and export.
"""

import csv
import json
from decimal import Decimal

import pytest

from fieldcompare.errors import ConfigurationError
from fieldcompare.models import ComparisonResult, Difference, DifferenceType
from fieldcompare.report import (
    ReportStatus,
    export_differences_csv,
    export_results_json,
    format_report_console,
    generate_report,
    load_results_json,
)
from fieldcompare.report.formatters import CSV_HEADER


def _completed(name, differences=(), source_count=10, target_count=10):
    result = ComparisonResult(rule_name=name)
    result.complete(list(differences), source_count, target_count, "direct")
    return result


def _failed(name, message="Connection refused"):
    result = ComparisonResult(rule_name=name)
    result.fail(message)
    return result


MISMATCH = Difference(7, DifferenceType.VALUE_MISMATCH, "email", "a@x", "b@x")
SOURCE_ONLY = Difference(8, DifferenceType.SOURCE_ONLY, "email", "c@x", None)


class TestGenerateReport:
    """Test generate_report"""

    def test_no_results(self):
        report = generate_report([])
        assert report["status"] == ReportStatus.NO_DATA
        assert report["total_rules"] == 0
        assert report["differences"]["total"] == 0

    def test_all_matched(self):
        report = generate_report([_completed("a"), _completed("b")])

        assert report["status"] == ReportStatus.PASS
        assert report["rules_matched"] == 2
        assert report["summary"] == "All 2 rules matched. Compared fields are consistent."
        assert report["source_total_rows"] == 20

    def test_differences(self):
        report = generate_report([_completed("a", [MISMATCH, SOURCE_ONLY]), _completed("b")])

        assert report["status"] == ReportStatus.FAIL
        assert report["rules_with_differences"] == 1
        assert report["rules_matched"] == 1
        assert report["differences"] == {
            "source_only": 1,
            "target_only": 0,
            "value_mismatch": 1,
            "total": 2,
        }
        assert "1 of 2 rules found differences" in report["summary"]
        assert "differences" not in report["rules"][0]

    def test_failure_wins(self):
        report = generate_report([_completed("a", [MISMATCH]), _failed("b")])

        assert report["status"] == ReportStatus.ERROR
        assert report["rules_failed"] == 1
        assert report["summary"] == (
            "1 of 2 rules found differences; 1 of 2 rules failed. 0 rules matched."
        )


class TestJsonExport:
    """Test export_results_json and load_results_json"""

    def test_round_trip(self, tmp_path):
        results = [_completed("a", [MISMATCH])]
        path = tmp_path / "run.json"

        export_results_json(results, path, report=generate_report(results))
        document = load_results_json(path)

        assert document["report"]["status"] == "FAIL"
        assert document["results"][0]["differences"][0]["key"] == 7

    def test_non_json_values_stringified(self, tmp_path):
        result = _completed("a", [Difference(1, DifferenceType.VALUE_MISMATCH, "amount", Decimal("1.10"), Decimal("1.20"))])
        path = tmp_path / "run.json"

        export_results_json([result], path)

        difference = json.loads(path.read_text())["results"][0]["differences"][0]
        assert difference["source_value"] == "1.10"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_results_json(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_results_json(path)

    def test_not_a_run(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text('{"something": 1}')
        with pytest.raises(ConfigurationError, match="Not a saved comparison run"):
            load_results_json(path)


class TestCsvExport:
    """Test export_differences_csv"""

    def test_rows(self, tmp_path):
        path = tmp_path / "diffs.csv"

        rows = export_differences_csv([_completed("emails", [MISMATCH, SOURCE_ONLY]), _failed("x")], path)

        with open(path, newline="") as f:
            lines = list(csv.reader(f))
        assert rows == 2
        assert lines[0] == CSV_HEADER
        assert lines[1] == ["emails", "7", "VALUE_MISMATCH", "email", "a@x", "b@x"]
        assert lines[2] == ["emails", "8", "SOURCE_ONLY", "email", "c@x", ""]

    def test_from_saved_dicts(self, tmp_path):
        saved = [_completed("emails", [MISMATCH]).to_dict()]
        path = tmp_path / "diffs.csv"

        assert export_differences_csv(saved, path) == 1

    def test_header_only_when_no_differences(self, tmp_path):
        path = tmp_path / "diffs.csv"
        assert export_differences_csv([_completed("a")], path) == 0
        assert path.read_text().strip() == ",".join(CSV_HEADER)


class TestConsoleFormat:
    """Test format_report_console"""

    def test_sections(self):
        report = generate_report([_completed("emails", [MISMATCH]), _failed("phones", "timeout")])

        output = format_report_console(report)

        assert "FIELD COMPARISON REPORT" in output
        assert "Status: ERROR" in output
        assert "DIFFERENCES" in output
        assert "Value mismatch: 1" in output
        assert "Rule: emails" in output
        assert "  Strategy: direct" in output
        assert "  Error: timeout" in output

    def test_no_differences_section_when_clean(self):
        output = format_report_console(generate_report([_completed("a")]))
        assert "DIFFERENCES" not in output
        assert "Status: PASS" in output
