"""
Command-line argument parser configuration.

This module sets up the argument parser for the fieldcompare CLI tool,
defining all commands and their options.
"""

import argparse
import os

DEFAULT_CONFIG = "fieldcompare.yaml"
DEFAULT_REPORT_DIR = "./fieldcompare_reports"


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="fieldcompare",
        description="Compare one field of a source table with a target table, keyed by a shared identifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every enabled rule and print a console report
  fieldcompare --config rules.yaml run

  # Run selected rules sequentially and save the full run as JSON
  fieldcompare --config rules.yaml run --rules customer_email,order_total \\
      --sequential --output run.json --format json

  # Export every difference of a run as CSV
  fieldcompare --config rules.yaml run --output differences.csv --format csv

  # List configured rules
  fieldcompare --config rules.yaml rules

  # Check that every configured database is reachable
  fieldcompare --config rules.yaml validate-connections

  # Show server version and time of one connection
  fieldcompare --config rules.yaml stats --connection source

  # Run all rules every 6 hours, writing a JSON report per run
  fieldcompare --config rules.yaml schedule --cron "0 */6 * * *"

  # Re-render a saved run
  fieldcompare report --input run.json --format console
        """
    )

    parser.add_argument(
        '--config',
        default=os.getenv("FIELDCOMPARE_CONFIG", DEFAULT_CONFIG),
        help=f'YAML configuration file (default: $FIELDCOMPARE_CONFIG or {DEFAULT_CONFIG})'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )
    parser.add_argument(
        '--log-json',
        action='store_true',
        help='Emit logs as JSON lines'
    )
    parser.add_argument(
        '--log-file',
        help='Also write logs to this file (rotated)'
    )
    parser.add_argument(
        '--metrics-port',
        type=int,
        help='Expose Prometheus metrics on this port'
    )
    parser.add_argument(
        '--otlp-endpoint',
        help='Export traces to this OTLP gRPC endpoint (e.g., localhost:4317)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Run command ==========
    run_parser = subparsers.add_parser('run', help='Run comparison rules once')
    run_parser.add_argument(
        '--rules',
        help='Comma-separated list of rule names (default: all enabled rules)'
    )
    mode = run_parser.add_mutually_exclusive_group()
    mode.add_argument(
        '--parallel',
        dest='parallel',
        action='store_const',
        const=True,
        help='Run rules concurrently'
    )
    mode.add_argument(
        '--sequential',
        dest='parallel',
        action='store_const',
        const=False,
        help='Run rules one after another'
    )
    run_parser.add_argument(
        '--workers',
        type=_positive_int,
        help='Number of parallel workers (overrides thread_pool_size)'
    )
    run_parser.add_argument(
        '--batch-size',
        type=_positive_int,
        help='Rows per page for batched comparison (overrides batch_size)'
    )
    run_parser.add_argument(
        '--output',
        help='Output file path'
    )
    run_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console; csv requires --output)'
    )

    # ========== Rules command ==========
    rules_parser = subparsers.add_parser('rules', help='List configured rules')
    rules_parser.add_argument(
        '--format',
        choices=['console', 'json'],
        default='console',
        help='Output format (default: console)'
    )

    # ========== Validate connections command ==========
    subparsers.add_parser(
        'validate-connections',
        help='Check that every configured connection is reachable'
    )

    # ========== Stats command ==========
    stats_parser = subparsers.add_parser(
        'stats',
        help='Show server version and time for configured connections'
    )
    stats_parser.add_argument(
        '--connection',
        help='Only this connection (default: all)'
    )
    stats_parser.add_argument(
        '--format',
        choices=['console', 'json'],
        default='console',
        help='Output format (default: console)'
    )

    # ========== Schedule command ==========
    schedule_parser = subparsers.add_parser('schedule', help='Run all enabled rules periodically')
    trigger = schedule_parser.add_mutually_exclusive_group(required=True)
    trigger.add_argument(
        '--cron',
        help='Cron expression (e.g., "0 */6 * * *" for every 6 hours)'
    )
    trigger.add_argument(
        '--interval',
        type=_positive_int,
        help='Interval in seconds'
    )
    schedule_parser.add_argument(
        '--output-dir',
        default=DEFAULT_REPORT_DIR,
        help=f'Directory to save run reports (default: {DEFAULT_REPORT_DIR})'
    )

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Render a saved JSON run')
    report_parser.add_argument(
        '--input',
        required=True,
        help='JSON file written by "run --format json"'
    )
    report_parser.add_argument(
        '--format',
        choices=['console', 'csv'],
        default='console',
        help='Output format (default: console; csv requires --output)'
    )
    report_parser.add_argument(
        '--output',
        help='Output file path for csv'
    )

    return parser
