"""
Report generation for comparison runs.

This module summarizes the results of a run: overall status, rule counts,
difference totals by kind and a per-rule summary.
"""

from datetime import UTC, datetime
from typing import Any

from ..models import ComparisonResult


class ReportStatus:
    """Constants for overall run status."""

    PASS = "PASS"
    FAIL = "FAIL"
    ERROR = "ERROR"
    NO_DATA = "NO_DATA"


def format_timestamp(timestamp: datetime) -> str:
    """
    Format timestamp for reports

    Args:
        timestamp: DateTime object

    Returns:
        ISO 8601 formatted timestamp string
    """
    return timestamp.isoformat()


def generate_report(results: list[ComparisonResult]) -> dict[str, Any]:
    """
    Generate a run report from comparison results

    Args:
        results: Results returned by the orchestrator

    Returns:
        Dictionary containing:
        - status: PASS, FAIL, ERROR, or NO_DATA
        - total_rules: Number of rules executed
        - rules_matched: Rules that succeeded with no differences
        - rules_with_differences: Rules that succeeded with differences
        - rules_failed: Rules that failed
        - differences: Totals by kind plus overall total
        - rules: Per-rule summaries without individual differences
        - summary: Human-readable summary
        - timestamp: Report generation timestamp
        - source_total_rows / target_total_rows: Row counts across rules
    """
    timestamp = format_timestamp(datetime.now(UTC))

    if not results:
        return {
            "status": ReportStatus.NO_DATA,
            "total_rules": 0,
            "rules_matched": 0,
            "rules_with_differences": 0,
            "rules_failed": 0,
            "differences": _difference_totals([]),
            "rules": [],
            "summary": "No comparison results available",
            "timestamp": timestamp,
            "source_total_rows": 0,
            "target_total_rows": 0,
        }

    failed = [r for r in results if not r.succeeded]
    with_differences = [r for r in results if r.succeeded and r.difference_count]
    matched = len(results) - len(failed) - len(with_differences)

    if failed:
        status = ReportStatus.ERROR
    elif with_differences:
        status = ReportStatus.FAIL
    else:
        status = ReportStatus.PASS

    return {
        "status": status,
        "total_rules": len(results),
        "rules_matched": matched,
        "rules_with_differences": len(with_differences),
        "rules_failed": len(failed),
        "differences": _difference_totals(results),
        "rules": [r.to_dict(include_differences=False) for r in results],
        "summary": _generate_summary(len(results), matched, len(with_differences), len(failed)),
        "timestamp": timestamp,
        "source_total_rows": sum(r.source_count for r in results),
        "target_total_rows": sum(r.target_count for r in results),
    }


def _difference_totals(results: list[ComparisonResult]) -> dict[str, int]:
    totals = {
        "source_only": sum(r.source_only_count for r in results),
        "target_only": sum(r.target_only_count for r in results),
        "value_mismatch": sum(r.value_mismatch_count for r in results),
    }
    totals["total"] = sum(totals.values())
    return totals


def _generate_summary(total: int, matched: int, with_differences: int, failed: int) -> str:
    """
    Generate human-readable summary

    Args:
        total: Number of rules executed
        matched: Rules without differences
        with_differences: Rules that found differences
        failed: Rules that failed

    Returns:
        Summary string
    """
    if matched == total:
        return f"All {total} rules matched. Compared fields are consistent."

    parts = []
    if with_differences:
        parts.append(f"{with_differences} of {total} rules found differences")
    if failed:
        parts.append(f"{failed} of {total} rules failed")
    return "; ".join(parts) + f". {matched} rules matched."
