"""
APScheduler-based comparison scheduler.

This module provides the ComparisonScheduler class for running all enabled
rules periodically on an interval or cron trigger, and the job function
that writes a JSON report per run.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .orchestrator import ComparisonOrchestrator
from .report import export_results_json, generate_report

logger = logging.getLogger(__name__)


def scheduled_run_job(orchestrator: ComparisonOrchestrator, output_dir: str) -> Path:
    """
    Run every enabled rule and save the run as JSON

    Args:
        orchestrator: Orchestrator shared across runs
        output_dir: Directory receiving one fieldcompare_<timestamp>.json per run

    Returns:
        Path of the written report
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S_%f")
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    output_path = directory / f"fieldcompare_{timestamp}.json"

    logger.info(f"Starting scheduled comparison run at {timestamp}")

    results = orchestrator.run_all()
    report = generate_report(results)
    export_results_json(results, output_path, report=report)

    logger.info(
        f"Scheduled comparison run finished with status {report['status']}: "
        f"{report['differences']['total']} difference(s), "
        f"{report['rules_failed']} failed rule(s). Report saved to {output_path}"
    )
    return output_path


def parse_cron_expression(cron_expression: str) -> CronTrigger:
    """
    Build a trigger from a five-field cron expression

    Example cron expressions:
        "0 */6 * * *"  - Every 6 hours
        "0 0 * * *"    - Daily at midnight
        "*/30 * * * *" - Every 30 minutes

    Raises:
        ValueError: If the expression does not have five fields
    """
    parts = cron_expression.split()

    if len(parts) != 5:
        raise ValueError(
            "Cron expression must have 5 parts: minute hour day month day_of_week"
        )

    minute, hour, day, month, day_of_week = parts

    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
    )


class ComparisonScheduler:
    """
    Scheduler for periodic comparison runs

    Jobs never overlap: a run that is still in progress when its next fire
    time arrives causes that fire time to be skipped.
    """

    def __init__(self, scheduler: BlockingScheduler | None = None):
        self.scheduler = scheduler or BlockingScheduler(timezone=UTC)
        self.jobs = []

    def _add_job(self, job_func: Callable, trigger: Any, job_id: str, **kwargs: Any) -> None:
        job = self.scheduler.add_job(
            job_func,
            trigger=trigger,
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.jobs.append(job)

    def add_interval_job(
        self,
        job_func: Callable,
        interval_seconds: int,
        job_id: str,
        **kwargs: Any,
    ) -> None:
        """
        Add a job that runs at fixed intervals

        Args:
            job_func: Function to execute
            interval_seconds: Interval in seconds
            job_id: Unique identifier for the job
            **kwargs: Additional arguments to pass to job_func
        """
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive, got {interval_seconds}")

        self._add_job(job_func, IntervalTrigger(seconds=interval_seconds), job_id, **kwargs)
        logger.info(f"Added interval job '{job_id}' with {interval_seconds}s interval")

    def add_cron_job(
        self,
        job_func: Callable,
        cron_expression: str,
        job_id: str,
        **kwargs: Any,
    ) -> None:
        """
        Add a job that runs on a cron schedule

        Args:
            job_func: Function to execute
            cron_expression: Five-field cron expression
            job_id: Unique identifier for the job
            **kwargs: Additional arguments to pass to job_func
        """
        self._add_job(job_func, parse_cron_expression(cron_expression), job_id, **kwargs)
        logger.info(f"Added cron job '{job_id}' with schedule '{cron_expression}'")

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        self.jobs = [job for job in self.jobs if job.id != job_id]
        logger.info(f"Removed job '{job_id}'")

    def start(self) -> None:
        """
        Start the scheduler

        Blocks the current thread and runs scheduled jobs until interrupted.
        """
        logger.info(f"Starting comparison scheduler with {len(self.jobs)} job(s)")

        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped by user")
            self.stop()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Scheduler stopped")

    def list_jobs(self) -> list[dict[str, Any]]:
        """
        List all scheduled jobs

        Returns:
            List of job information dictionaries
        """
        job_list = []

        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            job_list.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run_time.isoformat() if next_run_time else None,
                "trigger": str(job.trigger),
            })

        return job_list
