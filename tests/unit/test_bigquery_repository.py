"""Unit tests for the BigQuery repository."""

import pytest
import requests
from unittest.mock import Mock, patch
from google.api_core.exceptions import BadRequest, Forbidden

from copilot_ingest.shared.config import ConfigurationError, Settings
from copilot_ingest.shared.models import MetricsRecord, SeatAssignment, UsageSummary
from copilot_ingest.storage.bigquery_repository import BigQueryRepository
from copilot_ingest.storage.repository import StorageError


@pytest.fixture
def mock_bigquery_client():
    """Mock BigQuery client."""
    with patch('copilot_ingest.storage.bigquery_repository.bigquery.Client') as mock_client_class:
        mock_client = Mock()
        mock_client_class.return_value = mock_client
        yield mock_client


@pytest.fixture
def repository(mock_bigquery_client):
    repo = BigQueryRepository("test-project", "test_dataset")
    repo.initialize()
    return repo


def query_parameters(call):
    job_config = call.kwargs["job_config"]
    return {param.name: param.value for param in job_config.query_parameters}


class TestBigQueryRepository:
    """Test cases for BigQueryRepository."""

    def test_initialize_creates_dataset_and_tables(self, repository, mock_bigquery_client):
        mock_bigquery_client.create_dataset.assert_called_once()
        dataset = mock_bigquery_client.create_dataset.call_args.args[0]
        assert dataset.dataset_id == "test_dataset"
        assert mock_bigquery_client.create_dataset.call_args.kwargs["exists_ok"] is True

        tables = [call.args[0].table_id for call in mock_bigquery_client.create_table.call_args_list]
        assert tables == ["metrics_history", "seats_history", "usage_history"]

    def test_initialize_failure(self, mock_bigquery_client):
        mock_bigquery_client.create_dataset.side_effect = Forbidden("Permission denied")

        with pytest.raises(StorageError):
            BigQueryRepository("test-project", "test_dataset").initialize()

    def test_save_metrics_issues_merge_per_record(self, repository, mock_bigquery_client):
        records = [
            MetricsRecord(date="2024-01-01", organization="acme"),
            MetricsRecord(date="2024-01-02", organization="acme"),
        ]

        report = repository.save_metrics(records)

        assert report.saved == 2
        assert mock_bigquery_client.query.call_count == 2
        first_call = mock_bigquery_client.query.call_args_list[0]
        assert "MERGE `test-project.test_dataset.metrics_history`" in first_call.args[0]
        params = query_parameters(first_call)
        assert params["id"] == "2024-01-01-ORG-acme"
        assert params["date"] == "2024-01-01"
        assert '"organization": "acme"' in params["data"]

    def test_save_usage_targets_day_column(self, repository, mock_bigquery_client):
        repository.save_usage([UsageSummary(day="2024-01-01", enterprise="megacorp")])

        sql = mock_bigquery_client.query.call_args.args[0]
        assert "usage_history" in sql
        assert "@date AS day" in sql
        assert query_parameters(mock_bigquery_client.query.call_args)["id"] == "2024-01-01-ENT-megacorp"

    def test_save_seats(self, repository, mock_bigquery_client):
        report = repository.save_seats(SeatAssignment(date="2024-01-01", organization="acme"))

        assert report.saved == 1
        assert "seats_history" in mock_bigquery_client.query.call_args.args[0]

    def test_failed_merge_continues(self, repository, mock_bigquery_client):
        failing_job = Mock()
        failing_job.result.side_effect = BadRequest("Invalid query")
        ok_job = Mock()
        mock_bigquery_client.query.side_effect = [failing_job, ok_job]

        report = repository.save_metrics([
            MetricsRecord(date="2024-01-01", organization="acme"),
            MetricsRecord(date="2024-01-02", organization="acme"),
        ])

        assert (report.saved, report.failed) == (1, 1)
        assert isinstance(report.first_error, BadRequest)

    def test_transport_error_does_not_stop_batch(self, repository, mock_bigquery_client):
        failing_job = Mock()
        failing_job.result.side_effect = requests.exceptions.ConnectionError("Connection aborted")
        mock_bigquery_client.query.side_effect = [failing_job, Mock(), Mock()]

        report = repository.save_metrics([
            MetricsRecord(date="2024-01-01", organization="acme"),
            MetricsRecord(date="2024-01-02", organization="acme"),
            MetricsRecord(date="2024-01-03", organization="acme"),
        ])

        assert (report.saved, report.failed) == (2, 1)
        assert isinstance(report.first_error, requests.exceptions.ConnectionError)
        attempted = [query_parameters(call)["id"] for call in mock_bigquery_client.query.call_args_list]
        assert attempted == ["2024-01-01-ORG-acme", "2024-01-02-ORG-acme", "2024-01-03-ORG-acme"]

    def test_save_before_initialize(self):
        with pytest.raises(StorageError):
            BigQueryRepository("p", "d", client=Mock()).save_usage([])

    def test_close_twice(self, repository, mock_bigquery_client):
        repository.close()
        repository.close()
        mock_bigquery_client.close.assert_called_once()

    def test_from_settings_requires_project(self):
        with pytest.raises(ConfigurationError):
            BigQueryRepository.from_settings(Settings(storage_type="bigquery"))

    def test_from_settings(self):
        repo = BigQueryRepository.from_settings(Settings(storage_type="bigquery", project_id="p", dataset="d"))
        assert (repo.project_id, repo.dataset_id) == ("p", "d")
