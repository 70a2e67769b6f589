"""
Report formatting and export utilities.

This module writes run results as JSON (report plus full results) or as a
CSV of individual differences, renders reports for the console and reads
saved JSON runs back.
"""

import csv
import json
from pathlib import Path
from typing import Any

from ..errors import ConfigurationError
from ..models import ComparisonResult

CSV_HEADER = [
    "Rule",
    "Key",
    "Kind",
    "Field",
    "Source Value",
    "Target Value",
]


def _as_dict(result: ComparisonResult | dict[str, Any]) -> dict[str, Any]:
    if isinstance(result, ComparisonResult):
        return result.to_dict()
    return result


def export_results_json(
    results: list[ComparisonResult],
    output_path: str | Path,
    report: dict[str, Any] | None = None,
) -> None:
    """
    Export a run to a JSON file

    Args:
        results: Results of the run
        output_path: Path to output file
        report: Report generated from the results, stored alongside them
    """
    document = {
        "report": report,
        "results": [r.to_dict() for r in results],
    }
    with open(output_path, 'w') as f:
        # Column values may be Decimal, datetime or bytes
        json.dump(document, f, indent=2, default=str)


def load_results_json(input_path: str | Path) -> dict[str, Any]:
    """
    Read a run written by export_results_json

    Returns:
        Dictionary with "report" and "results" keys

    Raises:
        ConfigurationError: If the file is missing or not a saved run
    """
    try:
        with open(input_path) as f:
            document = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Report file not found: {input_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in report file {input_path}: {e}") from e

    if not isinstance(document, dict) or "results" not in document:
        raise ConfigurationError(f"Not a saved comparison run: {input_path}")
    return document


def export_differences_csv(
    results: list[ComparisonResult | dict[str, Any]],
    output_path: str | Path,
) -> int:
    """
    Export every difference to a CSV file, one row per difference

    Args:
        results: Results, as objects or as dictionaries read from a saved run
        output_path: Path to output file

    Returns:
        Number of rows written
    """
    rows = 0
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)

        for result in results:
            data = _as_dict(result)
            for difference in data.get("differences", []):
                writer.writerow([
                    data["rule_name"],
                    difference.get("key", ""),
                    difference.get("kind", ""),
                    difference.get("field_name", ""),
                    _csv_value(difference.get("source_value")),
                    _csv_value(difference.get("target_value")),
                ])
                rows += 1
    return rows


def _csv_value(value: Any) -> str:
    return "" if value is None else str(value)


def format_report_console(report: dict[str, Any]) -> str:
    """
    Format report for console output

    Args:
        report: Report dictionary from generate_report

    Returns:
        Formatted string for console display
    """
    lines = []

    lines.append("=" * 80)
    lines.append("FIELD COMPARISON REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {report['status']}")
    lines.append(f"Timestamp: {report['timestamp']}")
    lines.append(f"Total Rules: {report['total_rules']}")
    lines.append(f"Rules Matched: {report['rules_matched']}")
    lines.append(f"Rules With Differences: {report['rules_with_differences']}")
    lines.append(f"Rules Failed: {report['rules_failed']}")
    lines.append(f"Source Total Rows: {report['source_total_rows']:,}")
    lines.append(f"Target Total Rows: {report['target_total_rows']:,}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report['summary'])
    lines.append("")

    totals = report['differences']
    if totals['total']:
        lines.append("DIFFERENCES")
        lines.append("-" * 80)
        lines.append(f"Source only: {totals['source_only']:,}")
        lines.append(f"Target only: {totals['target_only']:,}")
        lines.append(f"Value mismatch: {totals['value_mismatch']:,}")
        lines.append("")

    if report['rules']:
        lines.append("RULES")
        lines.append("-" * 80)
        for rule in report['rules']:
            lines.append(f"Rule: {rule['rule_name']}")
            lines.append(f"  Status: {rule['status']}")
            if rule.get('error_message'):
                lines.append(f"  Error: {rule['error_message']}")
            else:
                lines.append(f"  Strategy: {rule.get('strategy')}")
                lines.append(f"  Total Records: {rule['total_records']:,}")
                lines.append(f"  Differences: {rule['difference_count']:,}")
            lines.append(f"  Execution Time: {rule['execution_time_ms']}ms")
            lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)
