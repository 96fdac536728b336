"""Integration tests for the scheduler and command line entry point."""

import logging
import threading

import pytest
from unittest.mock import Mock, patch

from copilot_ingest.orchestration.ingestion_jobs import (
    IngestionResult,
    MetricsIngestionJob,
    SeatsIngestionJob,
    UsageIngestionJob,
)
from copilot_ingest.orchestration.scheduler import (
    IngestionScheduler,
    ScheduledJob,
    build_jobs,
    health_check,
    main,
    open_repository,
)
from copilot_ingest.shared.config import Settings
from copilot_ingest.shared.logging_setup import ROOT_LOGGER_NAME
from copilot_ingest.storage.repository import StorageError


def fake_job(name, success=True):
    job = Mock()
    job.job_name = name
    job.run.return_value = IngestionResult(job_name=name, request_id="r", start_time=0.0, success=success)
    return job


@pytest.fixture
def fixture_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_METRICS_USE_TESTDATA", "true")
    monkeypatch.setenv("STORAGE_TYPE", "sqlite")
    monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "copilot-metrics.db"))
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.delenv("GITHUB_METRICS_TEAMS", raising=False)
    monkeypatch.delenv("ENABLE_CLOUD_MONITORING", raising=False)
    monkeypatch.delenv("ENABLE_SEATS_INGESTION", raising=False)
    with patch('copilot_ingest.shared.config.load_dotenv'):
        yield tmp_path
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()


class TestIngestionScheduler:
    """Test cases for IngestionScheduler."""

    def test_run_once_runs_every_job_in_order(self):
        jobs = [fake_job("metrics"), fake_job("seats"), fake_job("usage")]
        scheduler = IngestionScheduler([ScheduledJob(job, 60) for job in jobs])

        results = scheduler.run_once()

        assert [result.job_name for result in results] == ["metrics", "seats", "usage"]

    def test_run_forever_runs_all_at_start_and_stops(self):
        metrics, seats = fake_job("metrics"), fake_job("seats")
        scheduler = IngestionScheduler([ScheduledJob(metrics, 3600), ScheduledJob(seats, 3600)])
        seats.run.side_effect = lambda: scheduler.stop()

        thread = threading.Thread(target=scheduler.run_forever)
        thread.start()
        thread.join(timeout=5)

        assert not thread.is_alive()
        metrics.run.assert_called_once()
        seats.run.assert_called_once()

    def test_short_interval_reruns_job(self):
        job = fake_job("usage")
        scheduler = IngestionScheduler([ScheduledJob(job, 0)])

        def run():
            if job.run.call_count >= 3:
                scheduler.stop()

        job.run.side_effect = run
        thread = threading.Thread(target=scheduler.run_forever)
        thread.start()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert job.run.call_count == 3

    def test_stop_before_start(self):
        job = fake_job("metrics")
        scheduler = IngestionScheduler([ScheduledJob(job, 1)])
        scheduler.stop()

        scheduler.run_forever()

        job.run.assert_not_called()


class TestBuildJobs:
    """Test cases for build_jobs."""

    def test_intervals_and_types(self):
        settings = Settings(metrics_schedule_seconds=60, seats_schedule_seconds=120, usage_schedule_seconds=180)

        entries = build_jobs(settings, None, None)

        assert [type(entry.job) for entry in entries] == [MetricsIngestionJob, SeatsIngestionJob, UsageIngestionJob]
        assert [entry.interval_seconds for entry in entries] == [60, 120, 180]

    def test_subset(self):
        entries = build_jobs(Settings(), None, None, job_names=("seats",))
        assert [entry.job.job_name for entry in entries] == ["seats"]


class TestOpenRepository:
    """Test cases for open_repository."""

    def test_storage_failure_degrades_to_none(self):
        with patch('copilot_ingest.orchestration.scheduler.create_repository',
                   side_effect=StorageError("disk full")):
            assert open_repository(Settings(storage_type="sqlite")) is None

    def test_none_storage(self):
        assert open_repository(Settings(storage_type="none")) is None


class TestHealthCheck:
    """Test cases for health_check."""

    def test_degraded_when_github_unreachable(self):
        github_client = Mock()
        github_client.health_check.return_value = False

        status = health_check(Settings(), github_client, None)

        assert status["overall_status"] == "degraded"
        assert status["components"]["github_api"]["status"] == "unhealthy"
        assert status["components"]["storage"]["status"] == "skipped"

    def test_healthy(self):
        github_client = Mock()
        github_client.health_check.return_value = True
        repository = Mock()
        repository.name = "sqlite"

        status = health_check(Settings(storage_type="sqlite"), github_client, repository)

        assert status["overall_status"] == "healthy"


class TestMain:
    """Test cases for the command line entry point."""

    def test_once_with_fixtures(self, fixture_env, capsys):
        exit_code = main(["--once"])

        assert exit_code == 0
        output = capsys.readouterr().out
        assert "metrics: succeeded" in output
        assert "seats: succeeded" in output
        assert "usage: succeeded" in output
        assert (fixture_env / "copilot-metrics.db").exists()

    def test_single_job(self, fixture_env, capsys):
        exit_code = main(["--once", "--job", "usage"])

        assert exit_code == 0
        output = capsys.readouterr().out
        assert "usage: succeeded" in output
        assert "metrics: succeeded" not in output

    def test_health_check_in_fixture_mode(self, fixture_env, capsys):
        exit_code = main(["--health-check"])

        assert exit_code == 0
        assert '"overall_status": "healthy"' in capsys.readouterr().out
