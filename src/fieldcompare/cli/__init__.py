"""
Command-line interface for field comparison.

Available commands:
- run: Execute comparison rules once
- rules: List configured rules
- validate-connections: Check that every database is reachable
- stats: Show server version and time per connection
- schedule: Run all enabled rules periodically
- report: Render a saved run
"""

import logging
import sys

from ..errors import ComparatorError, ConfigurationError
from ..utils.logging import setup_logging
from ..utils.metrics import MetricsPublisher
from ..utils.tracing import initialize_tracing, shutdown_tracing
from .commands import (
    COMMANDS,
    EXIT_CONFIG_ERROR,
    EXIT_DIFFERENCES,
    cmd_report,
    cmd_rules,
    cmd_run,
    cmd_schedule,
    cmd_stats,
    cmd_validate_connections,
)
from .parser import create_parser

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the fieldcompare CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_CONFIG_ERROR)

    if getattr(args, "format", None) == "csv" and not getattr(args, "output", None):
        parser.error("--output is required for csv format")

    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        json_format=args.log_json,
    )

    try:
        if args.metrics_port:
            MetricsPublisher(port=args.metrics_port).start()
        if args.otlp_endpoint:
            initialize_tracing(otlp_endpoint=args.otlp_endpoint)

        exit_code = COMMANDS[args.command](args)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        exit_code = EXIT_CONFIG_ERROR
    except (ComparatorError, RuntimeError) as e:
        logger.error(f"{args.command} failed: {e}")
        exit_code = EXIT_DIFFERENCES
    finally:
        if args.otlp_endpoint:
            shutdown_tracing()

    sys.exit(exit_code)


__all__ = [
    'main',
    'create_parser',
    'cmd_run',
    'cmd_rules',
    'cmd_validate_connections',
    'cmd_stats',
    'cmd_schedule',
    'cmd_report',
]


if __name__ == '__main__':
    main()
