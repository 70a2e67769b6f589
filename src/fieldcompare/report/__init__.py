"""
Run report generation and formatting.

This submodule summarizes comparison results and exports them as JSON,
CSV or console text.
"""

from .formatters import (
    export_differences_csv,
    export_results_json,
    format_report_console,
    load_results_json,
)
from .generator import ReportStatus, format_timestamp, generate_report

__all__ = [
    'generate_report',
    'format_timestamp',
    'ReportStatus',
    'export_results_json',
    'load_results_json',
    'export_differences_csv',
    'format_report_console',
]
