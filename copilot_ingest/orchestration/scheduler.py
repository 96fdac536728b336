"""Interval scheduler and command line entry point."""

import argparse
import json
import signal
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..ingestion.github_client import GitHubClient
from ..shared.cloud_monitoring import get_cloud_monitoring
from ..shared.config import ConfigurationError, Settings
from ..shared.logging_setup import get_logger, setup_logging
from ..storage.repository import Repository, StorageError, create_repository
from .ingestion_jobs import (
    IngestionJob,
    IngestionResult,
    MetricsIngestionJob,
    SeatsIngestionJob,
    UsageIngestionJob,
)

JOB_NAMES = ("metrics", "seats", "usage")


@dataclass
class ScheduledJob:
    job: IngestionJob
    interval_seconds: int
    next_run: float = 0.0


class IngestionScheduler:
    """
    Runs each job on its own fixed interval.

    All jobs run once at start. Runs are sequential; a stop request lets the
    job in flight finish and then returns from ``run_forever``.
    """

    def __init__(self, entries: Sequence[ScheduledJob]):
        self.entries = list(entries)
        self.logger = get_logger("scheduler")
        self._stop_event = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    def install_signal_handlers(self) -> None:
        def handle_signal(signum, frame):
            self.logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
            self.stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def run_once(self) -> List[IngestionResult]:
        results = []
        for entry in self.entries:
            if self.stopped:
                break
            results.append(entry.job.run())
        return results

    def run_forever(self) -> None:
        now = time.monotonic()
        for entry in self.entries:
            entry.next_run = now

        self.logger.info(
            "Scheduler started",
            extra={"jobs": {entry.job.job_name: entry.interval_seconds for entry in self.entries}}
        )

        while not self.stopped:
            for entry in self.entries:
                if self.stopped:
                    break
                if time.monotonic() >= entry.next_run:
                    entry.job.run()
                    entry.next_run = time.monotonic() + entry.interval_seconds

            if not self.entries:
                break
            wait_seconds = max(0.0, min(entry.next_run for entry in self.entries) - time.monotonic())
            self._stop_event.wait(wait_seconds)

        self.logger.info("Scheduler stopped")


def build_jobs(settings: Settings, repository: Optional[Repository],
               github_client: Optional[GitHubClient], job_names: Sequence[str] = JOB_NAMES) -> List[ScheduledJob]:
    """Create the requested jobs with their configured intervals."""
    monitoring = get_cloud_monitoring(settings)
    factories = {
        "metrics": (MetricsIngestionJob, settings.metrics_schedule_seconds),
        "seats": (SeatsIngestionJob, settings.seats_schedule_seconds),
        "usage": (UsageIngestionJob, settings.usage_schedule_seconds),
    }

    entries = []
    for name in job_names:
        job_class, interval = factories[name]
        entries.append(ScheduledJob(job_class(settings, repository, github_client, monitoring), interval))
    return entries


def build_github_client(settings: Settings) -> Optional[GitHubClient]:
    if settings.use_test_data:
        return None
    return GitHubClient(
        token=settings.github_token,
        base_url=settings.github_api_base_url,
        api_version=settings.github_api_version,
        max_pages=settings.max_pages,
    )


def open_repository(settings: Settings) -> Optional[Repository]:
    """Create the configured repository, or None to collect without saving."""
    logger = get_logger("scheduler")
    try:
        repository = create_repository(settings)
    except (ConfigurationError, StorageError) as e:
        logger.error(f"Storage unavailable, data will not be persisted: {e}")
        return None

    if repository is None:
        logger.warning("STORAGE_TYPE is 'none', data will not be persisted")
    return repository


def health_check(settings: Settings, github_client: Optional[GitHubClient],
                 repository: Optional[Repository]) -> Dict[str, Any]:
    health_status = {
        "overall_status": "healthy",
        "components": {},
        "timestamp": time.time()
    }

    if github_client is None:
        health_status["components"]["github_api"] = {"status": "skipped", "details": "Using test data"}
    elif github_client.health_check():
        health_status["components"]["github_api"] = {"status": "healthy", "details": "GitHub API connectivity"}
    else:
        health_status["components"]["github_api"] = {"status": "unhealthy", "details": "GitHub API connectivity"}
        health_status["overall_status"] = "degraded"

    if repository is None:
        status = "skipped" if settings.storage_type == "none" else "unhealthy"
        health_status["components"]["storage"] = {"status": status, "details": settings.storage_type}
        if status == "unhealthy":
            health_status["overall_status"] = "degraded"
    else:
        health_status["components"]["storage"] = {"status": "healthy", "details": repository.name}

    return health_status


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ingestion service."""
    parser = argparse.ArgumentParser(description="GitHub Copilot metrics ingestion")
    parser.add_argument("--once", action="store_true", help="Run the selected jobs once and exit")
    parser.add_argument("--job", choices=list(JOB_NAMES) + ["all"], default="all",
                        help="Job to run (default: all)")
    parser.add_argument("--health-check", action="store_true", help="Run health check only")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logger = setup_logging(settings)

    github_client = build_github_client(settings)
    repository = open_repository(settings)

    try:
        if args.health_check:
            result = health_check(settings, github_client, repository)
            print(json.dumps(result, indent=2))
            return 0 if result["overall_status"] == "healthy" else 1

        job_names = JOB_NAMES if args.job == "all" else (args.job,)
        scheduler = IngestionScheduler(build_jobs(settings, repository, github_client, job_names))

        if args.once:
            results = scheduler.run_once()
            for result in results:
                print(f"{result.job_name}: {'succeeded' if result.success else 'failed'} "
                      f"({result.records_fetched} fetched, {result.records_saved} saved, "
                      f"{len(result.errors)} errors)")
            return 0 if all(result.success for result in results) else 1

        scheduler.install_signal_handlers()
        scheduler.run_forever()
        return 0
    finally:
        if repository is not None:
            repository.close()
        if github_client is not None:
            github_client.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    raise SystemExit(main())
