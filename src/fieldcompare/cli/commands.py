"""
CLI command implementations.

Each command takes the parsed arguments and returns a process exit code:
0 when everything compared equal (or succeeded), 1 when differences or
failures were found, 2 for configuration and not-found errors.
"""

import argparse
import json
import logging
from pathlib import Path

from ..config import load_config
from ..errors import ConfigurationError
from ..orchestrator import ComparisonOrchestrator
from ..report import (
    export_differences_csv,
    export_results_json,
    format_report_console,
    generate_report,
    load_results_json,
)
from ..scheduler import ComparisonScheduler, scheduled_run_job

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DIFFERENCES = 1
EXIT_CONFIG_ERROR = 2


def _build_orchestrator(args: argparse.Namespace) -> ComparisonOrchestrator:
    config = load_config(args.config)

    overrides = {}
    if getattr(args, "parallel", None) is not None:
        overrides["parallel"] = args.parallel
    if getattr(args, "workers", None):
        overrides["thread_pool_size"] = args.workers
    if getattr(args, "batch_size", None):
        overrides["batch_size"] = args.batch_size

    if overrides:
        logger.debug(f"Command-line setting overrides: {overrides}")
        try:
            config = config.with_settings(**overrides)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    return ComparisonOrchestrator(config)


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run comparison rules once and report the results

    Args:
        args: Parsed command-line arguments

    Returns:
        0 if every rule succeeded without differences, 1 otherwise
    """
    with _build_orchestrator(args) as orchestrator:
        if args.rules:
            names = [name.strip() for name in args.rules.split(',') if name.strip()]
            for name in names:
                # Raises RuleNotFoundError before anything runs
                orchestrator.config.get_rule(name)
            logger.info(f"Running {len(names)} selected rule(s): {', '.join(names)}")
            results = orchestrator.run_many(names)
        else:
            results = orchestrator.run_all()

    report = generate_report(results)

    if args.format == "json":
        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            export_results_json(results, output_path, report=report)
            logger.info(f"Run saved to {output_path}")
        else:
            print(json.dumps(
                {"report": report, "results": [r.to_dict() for r in results]},
                indent=2,
                default=str,
            ))
    elif args.format == "csv":
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        rows = export_differences_csv(results, output_path)
        logger.info(f"{rows} difference(s) exported to {output_path}")
    else:
        text = format_report_console(report)
        if args.output:
            Path(args.output).write_text(text + "\n")
            logger.info(f"Report saved to {args.output}")
        else:
            print(text)

    if all(r.succeeded and r.difference_count == 0 for r in results):
        logger.info("Comparison completed without differences")
        return EXIT_OK

    logger.warning(f"Comparison finished with status {report['status']}")
    return EXIT_DIFFERENCES


def cmd_rules(args: argparse.Namespace) -> int:
    """
    List configured rules

    Args:
        args: Parsed command-line arguments
    """
    with _build_orchestrator(args) as orchestrator:
        rules = orchestrator.list_rules()

    if args.format == "json":
        print(json.dumps(rules, indent=2))
        return EXIT_OK

    if not rules:
        print("No rules configured")
        return EXIT_OK

    for rule in rules:
        state = "enabled" if rule["enabled"] else "disabled"
        print(
            f"{rule['name']} [{state}]: {rule['source_table']}.{rule['compare_field']} "
            f"-> {rule['target_table']}.{rule['compare_field']} (key {rule['key_field']})"
        )
        if rule.get("description"):
            print(f"    {rule['description']}")
    return EXIT_OK


def cmd_validate_connections(args: argparse.Namespace) -> int:
    """
    Health-check every configured connection

    Returns:
        0 if all connections are reachable, 1 otherwise
    """
    with _build_orchestrator(args) as orchestrator:
        status = orchestrator.validate_connections()

    for name, healthy in status.items():
        print(f"{name}: {'OK' if healthy else 'FAILED'}")

    if all(status.values()):
        return EXIT_OK

    failed = [name for name, healthy in status.items() if not healthy]
    logger.error(f"Unreachable connection(s): {', '.join(failed)}")
    return EXIT_DIFFERENCES


def cmd_stats(args: argparse.Namespace) -> int:
    """
    Print server version and time for configured connections

    Returns:
        0 if every reported connection answered, 1 otherwise
    """
    with _build_orchestrator(args) as orchestrator:
        stats = orchestrator.database_statistics(args.connection)

    if args.format == "json":
        print(json.dumps(stats, indent=2))
    else:
        for name, entry in stats.items():
            if entry["connected"]:
                print(f"{name}: connected ({entry['dialect']})")
                print(f"    Version: {entry['version'] or 'unknown'}")
                print(f"    Server time: {entry['current_time']}")
            else:
                print(f"{name}: FAILED")
                print(f"    Error: {entry['error']}")

    if all(entry["connected"] for entry in stats.values()):
        return EXIT_OK
    return EXIT_DIFFERENCES


def cmd_schedule(args: argparse.Namespace) -> int:
    """
    Run all enabled rules periodically until interrupted

    Args:
        args: Parsed command-line arguments
    """
    logger.info("Setting up comparison scheduler")

    orchestrator = _build_orchestrator(args)
    try:
        scheduler = ComparisonScheduler()

        if args.cron:
            try:
                scheduler.add_cron_job(
                    scheduled_run_job,
                    args.cron,
                    "fieldcompare_run",
                    orchestrator=orchestrator,
                    output_dir=args.output_dir,
                )
            except ValueError as e:
                raise ConfigurationError(f"Invalid cron expression '{args.cron}': {e}") from e
        else:
            scheduler.add_interval_job(
                scheduled_run_job,
                args.interval,
                "fieldcompare_run",
                orchestrator=orchestrator,
                output_dir=args.output_dir,
            )

        logger.info("Starting scheduler (press Ctrl+C to stop)")
        scheduler.start()
    finally:
        orchestrator.close()

    return EXIT_OK


def cmd_report(args: argparse.Namespace) -> int:
    """
    Render a run saved by "run --format json"

    Args:
        args: Parsed command-line arguments
    """
    logger.info(f"Loading comparison run from {args.input}")
    document = load_results_json(args.input)

    if args.format == "csv":
        rows = export_differences_csv(document["results"], args.output)
        logger.info(f"{rows} difference(s) exported to {args.output}")
        return EXIT_OK

    report = document.get("report")
    if not report:
        raise ConfigurationError(f"Saved run has no report section: {args.input}")
    print(format_report_console(report))
    return EXIT_OK


COMMANDS = {
    'run': cmd_run,
    'rules': cmd_rules,
    'validate-connections': cmd_validate_connections,
    'stats': cmd_stats,
    'schedule': cmd_schedule,
    'report': cmd_report,
}
