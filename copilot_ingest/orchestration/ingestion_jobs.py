"""Ingestion jobs: fetch, decode, aggregate, resolve ids and persist."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..ingestion.fixture_data import FixtureDataError
from ..ingestion.github_client import GitHubAPIError, GitHubClient
from ..ingestion.metrics_client import CopilotMetricsClient
from ..ingestion.seats_client import CopilotSeatsClient
from ..ingestion.usage_client import CopilotUsageClient
from ..processing.identity import assign_id
from ..processing.usage_aggregator import aggregate_usage
from ..shared.cloud_monitoring import CloudMonitoringClient
from ..shared.config import ConfigurationError, Settings
from ..shared.logging_setup import RequestContextLogger, generate_request_id
from ..shared.models import DecodeError, MetricsRecord
from ..storage.repository import Repository, SaveReport, StorageError

FETCH_ERRORS = (GitHubAPIError, DecodeError, FixtureDataError)

SAVE_METHODS = {
    "metrics": "save_metrics",
    "seats": "save_seats",
    "usage": "save_usage",
}


@dataclass
class PipelineError:
    """Structured pipeline error information."""
    error_code: str
    message: str
    component: str
    exception: Optional[Exception] = None
    recoverable: bool = True


@dataclass
class IngestionResult:
    """Outcome of one job run."""
    job_name: str
    request_id: str
    start_time: float
    end_time: Optional[float] = None
    success: bool = False
    skipped: bool = False

    records_fetched: int = 0
    records_saved: int = 0
    records_failed: int = 0
    usage_summaries: int = 0

    errors: List[PipelineError] = field(default_factory=list)

    @property
    def processing_time(self) -> float:
        if self.end_time:
            return self.end_time - self.start_time
        return time.time() - self.start_time

    @property
    def has_critical_errors(self) -> bool:
        return any(not error.recoverable for error in self.errors)

    def absorb(self, report: SaveReport, table: str) -> None:
        """Add a repository save report to the run totals."""
        self.records_saved += report.saved
        self.records_failed += report.failed
        if report.first_error is not None:
            self.errors.append(PipelineError(
                error_code="RECORD_SAVE_ERROR",
                message=f"{report.failed} records failed to save to {table}: {report.first_error}",
                component="repository",
                exception=report.first_error,
                recoverable=True
            ))

    def to_summary(self) -> Dict[str, Any]:
        return {
            "job_name": self.job_name,
            "request_id": self.request_id,
            "success": self.success,
            "skipped": self.skipped,
            "processing_time_seconds": self.processing_time,
            "records_fetched": self.records_fetched,
            "records_saved": self.records_saved,
            "records_failed": self.records_failed,
            "usage_summaries": self.usage_summaries,
            "error_summary": {
                "total_errors": len(self.errors),
                "critical_errors": sum(1 for e in self.errors if not e.recoverable),
                "error_codes": sorted(set(e.error_code for e in self.errors)),
            },
        }


class IngestionJob(ABC):
    """
    Base class for the scheduled jobs.

    ``run`` never raises: every failure ends up as a ``PipelineError`` on the
    returned ``IngestionResult`` and the scheduler tries again next tick.
    Without a repository the job still fetches and processes but skips saving.
    """

    job_name = "ingestion"

    def __init__(self, settings: Settings, repository: Optional[Repository] = None,
                 github_client: Optional[GitHubClient] = None,
                 monitoring: Optional[CloudMonitoringClient] = None):
        self.settings = settings
        self.scope = settings.scope
        self.repository = repository
        self.github_client = github_client
        self.monitoring = monitoring

    @abstractmethod
    def _execute(self, result: IngestionResult, ctx: RequestContextLogger) -> None:
        """Run the job body, updating ``result`` in place."""

    def run(self) -> IngestionResult:
        result = IngestionResult(
            job_name=self.job_name,
            request_id=generate_request_id(),
            start_time=time.time()
        )
        ctx = RequestContextLogger(f"{self.job_name}_job", result.request_id)
        ctx.log_operation_start(f"{self.job_name} ingestion", scope=self.scope.name)

        try:
            self._execute(result, ctx)
        except FETCH_ERRORS as e:
            result.errors.append(PipelineError(
                error_code="FETCH_ERROR",
                message=f"Failed to fetch {self.job_name} data: {e}",
                component="github_client",
                exception=e,
                recoverable=False
            ))
            ctx.log_operation_error(error=e, status_code=getattr(e, "status_code", None))
        except ConfigurationError as e:
            result.errors.append(PipelineError(
                error_code="CONFIGURATION_ERROR",
                message=f"Invalid configuration: {e}",
                component="config",
                exception=e,
                recoverable=False
            ))
            ctx.log_operation_error(error=e)
        except StorageError as e:
            result.errors.append(PipelineError(
                error_code="STORAGE_ERROR",
                message=f"Repository unavailable: {e}",
                component="repository",
                exception=e,
                recoverable=False
            ))
            ctx.log_operation_error(error=e)
        except Exception as e:
            result.errors.append(PipelineError(
                error_code="PIPELINE_UNEXPECTED_ERROR",
                message=f"{self.job_name} job failed: {e}",
                component="orchestrator",
                exception=e,
                recoverable=False
            ))
            ctx.log_operation_error(error=e)

        return self._finalize(result, ctx)

    def _finalize(self, result: IngestionResult, ctx: RequestContextLogger) -> IngestionResult:
        result.end_time = time.time()
        result.success = not result.has_critical_errors

        if result.success:
            ctx.log_operation_complete(
                records_fetched=result.records_fetched,
                records_saved=result.records_saved,
                records_failed=result.records_failed
            )
        ctx.info(f"Final metrics: {result.to_summary()}")

        self._record_monitoring(result, ctx)
        return result

    def _record_monitoring(self, result: IngestionResult, ctx: RequestContextLogger) -> None:
        if self.monitoring is None:
            return
        try:
            self.monitoring.record_job_health(self.job_name, result.success)
            self.monitoring.record_records_processed(self.job_name, result.records_saved)
        except Exception as e:
            ctx.warning(f"Failed to record Cloud Monitoring metrics: {e}")

    def _timed_fetch(self, ctx: RequestContextLogger, endpoint: str, fetch: Callable[[], Any]) -> Any:
        start = time.time()
        data = fetch()
        response_time_ms = (time.time() - start) * 1000
        count = len(data) if isinstance(data, list) else None
        ctx.log_api_call(endpoint, response_time_ms, record_count=count)
        if self.monitoring is not None:
            try:
                self.monitoring.record_api_response_time(self.job_name, response_time_ms)
            except Exception as e:
                ctx.warning(f"Failed to record API response time: {e}")
        return data

    def _persist(self, result: IngestionResult, ctx: RequestContextLogger, table: str,
                 records: Any, count: int) -> None:
        if self.repository is None:
            ctx.info(f"No repository configured, not saving {count} {table} records")
            return

        save: Callable[[Any], SaveReport] = getattr(self.repository, SAVE_METHODS[table])
        start = time.time()
        report = save(records)
        write_time = time.time() - start
        result.absorb(report, table)
        ctx.info(
            f"Saved {report.saved}/{count} {table} records in {write_time:.2f}s",
            table=table, saved=report.saved, failed=report.failed
        )
        if self.monitoring is not None:
            try:
                self.monitoring.record_storage_write_time(self.job_name, write_time)
            except Exception as e:
                ctx.warning(f"Failed to record storage write time: {e}")


class MetricsIngestionJob(IngestionJob):
    """Collects daily metrics for the scope and each team, then derives usage summaries."""

    job_name = "metrics"

    def __init__(self, settings: Settings, repository: Optional[Repository] = None,
                 github_client: Optional[GitHubClient] = None,
                 monitoring: Optional[CloudMonitoringClient] = None):
        super().__init__(settings, repository, github_client, monitoring)
        self.client = CopilotMetricsClient(github_client, settings.testdata_dir)

    def _fetch(self, ctx: RequestContextLogger, team: Optional[str] = None) -> List[MetricsRecord]:
        if self.settings.use_test_data:
            return self.client.load_test_metrics(team)
        endpoint = self.client.metrics_path(self.scope, team)
        return self._timed_fetch(ctx, endpoint, lambda: self.client.get_metrics(self.scope, team))

    def _execute(self, result: IngestionResult, ctx: RequestContextLogger) -> None:
        # A failure for the scope itself aborts the run
        metrics = self._fetch(ctx)

        for team in self.settings.teams:
            try:
                metrics.extend(self._fetch(ctx, team))
            except FETCH_ERRORS as e:
                result.errors.append(PipelineError(
                    error_code="TEAM_FETCH_ERROR",
                    message=f"Failed to fetch metrics for team {team}: {e}",
                    component="metrics_client",
                    exception=e,
                    recoverable=True
                ))
                ctx.warning(f"Skipping team {team}: {e}", team=team)

        result.records_fetched = len(metrics)
        for record in metrics:
            assign_id(record)
        self._persist(result, ctx, "metrics", metrics, len(metrics))

        summaries = aggregate_usage(metrics)
        ctx.log_data_processing("aggregate_usage", len(metrics), len(summaries))
        result.usage_summaries = len(summaries)
        self._persist(result, ctx, "usage", summaries, len(summaries))


class SeatsIngestionJob(IngestionJob):
    """Snapshots the current seat assignments."""

    job_name = "seats"

    def __init__(self, settings: Settings, repository: Optional[Repository] = None,
                 github_client: Optional[GitHubClient] = None,
                 monitoring: Optional[CloudMonitoringClient] = None):
        super().__init__(settings, repository, github_client, monitoring)
        self.client = CopilotSeatsClient(github_client, settings.testdata_dir)

    def _execute(self, result: IngestionResult, ctx: RequestContextLogger) -> None:
        if not self.settings.enable_seats_ingestion:
            result.skipped = True
            ctx.info("Seats ingestion is disabled")
            return

        if self.settings.use_test_data:
            snapshot = self.client.load_test_seats(self.scope.is_enterprise)
        else:
            snapshot = self._timed_fetch(
                ctx, f"{self.scope.base_path()}/copilot/billing/seats",
                lambda: self.client.get_assigned_seats(self.scope)
            )

        result.records_fetched = snapshot.total_seats
        assign_id(snapshot)
        self._persist(result, ctx, "seats", snapshot, 1)


class UsageIngestionJob(IngestionJob):
    """Stores the daily summaries from the usage endpoint."""

    job_name = "usage"

    def __init__(self, settings: Settings, repository: Optional[Repository] = None,
                 github_client: Optional[GitHubClient] = None,
                 monitoring: Optional[CloudMonitoringClient] = None):
        super().__init__(settings, repository, github_client, monitoring)
        self.client = CopilotUsageClient(github_client, settings.testdata_dir)

    def _execute(self, result: IngestionResult, ctx: RequestContextLogger) -> None:
        if self.settings.use_test_data:
            summaries = self.client.load_test_usage()
        else:
            summaries = self._timed_fetch(
                ctx, f"{self.scope.base_path()}/copilot/usage",
                lambda: self.client.get_usage(self.scope)
            )

        result.records_fetched = len(summaries)
        for summary in summaries:
            assign_id(summary)
        self._persist(result, ctx, "usage", summaries, len(summaries))

