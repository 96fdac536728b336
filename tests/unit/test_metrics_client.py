"""Unit tests for the Copilot metrics client."""

import pytest
from unittest.mock import Mock

from copilot_ingest.ingestion.github_client import GitHubAPIError, GitHubNotFoundError
from copilot_ingest.ingestion.metrics_client import CopilotMetricsClient
from copilot_ingest.shared.config import IngestionScope
from copilot_ingest.shared.models import DecodeError


@pytest.fixture
def github_client():
    return Mock()


@pytest.fixture
def metrics_client(github_client):
    return CopilotMetricsClient(github_client)


@pytest.fixture
def org_scope():
    return IngestionScope(organization="acme")


class TestCopilotMetricsClient:
    """Test cases for CopilotMetricsClient."""

    def test_paths(self, org_scope):
        assert CopilotMetricsClient.metrics_path(org_scope) == "/orgs/acme/copilot/metrics"
        assert CopilotMetricsClient.metrics_path(org_scope, "web") == "/orgs/acme/team/web/copilot/metrics"
        enterprise = IngestionScope(enterprise="megacorp")
        assert CopilotMetricsClient.metrics_path(enterprise) == "/enterprises/megacorp/copilot/metrics"

    def test_get_metrics_stamps_scope(self, metrics_client, github_client, org_scope):
        github_client.get_paginated.return_value = [
            {"date": "2024-01-01", "total_engaged_users": 3},
            {"date": "2024-01-02", "total_engaged_users": 4},
        ]

        metrics = metrics_client.get_metrics(org_scope)

        github_client.get_paginated.assert_called_once_with("/orgs/acme/copilot/metrics")
        assert [record.date for record in metrics] == ["2024-01-01", "2024-01-02"]
        assert all(record.organization == "acme" for record in metrics)
        assert all(record.team is None for record in metrics)
        assert all(record.last_update is not None for record in metrics)

    def test_get_metrics_for_team(self, metrics_client, github_client, org_scope):
        github_client.get_paginated.return_value = [{"date": "2024-01-01"}]

        metrics = metrics_client.get_metrics(org_scope, "web")

        github_client.get_paginated.assert_called_once_with("/orgs/acme/team/web/copilot/metrics")
        assert metrics[0].team == "web"

    def test_team_not_found_is_empty(self, metrics_client, github_client, org_scope):
        github_client.get_paginated.side_effect = GitHubNotFoundError("Resource not found", status_code=404)

        assert metrics_client.get_metrics(org_scope, "ghost") == []

    def test_scope_not_found_raises(self, metrics_client, github_client, org_scope):
        github_client.get_paginated.side_effect = GitHubNotFoundError("Resource not found", status_code=404)

        with pytest.raises(GitHubNotFoundError):
            metrics_client.get_metrics(org_scope)

    def test_team_server_error_raises(self, metrics_client, github_client, org_scope):
        github_client.get_paginated.side_effect = GitHubAPIError("boom", status_code=502)

        with pytest.raises(GitHubAPIError):
            metrics_client.get_metrics(org_scope, "web")

    def test_malformed_document(self, metrics_client, github_client, org_scope):
        github_client.get_paginated.return_value = [{"total_engaged_users": 3}]

        with pytest.raises(DecodeError):
            metrics_client.get_metrics(org_scope)

    def test_load_test_metrics(self):
        metrics = CopilotMetricsClient(None).load_test_metrics("web")

        assert len(metrics) == 2
        assert all(record.organization == "test" for record in metrics)
        assert all(record.team == "web" for record in metrics)
        assert all(record.enterprise is None for record in metrics)

    def test_load_test_metrics_custom_directory(self, tmp_path):
        (tmp_path / "metrics.json").write_text('[{"date": "2030-01-01"}]')

        metrics = CopilotMetricsClient(None, str(tmp_path)).load_test_metrics()

        assert [record.date for record in metrics] == ["2030-01-01"]
        assert metrics[0].team is None
