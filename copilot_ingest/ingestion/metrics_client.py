"""Copilot metrics API client."""

from datetime import datetime, timezone
from typing import Any, List, Optional

from ..shared.config import IngestionScope
from ..shared.logging_setup import get_logger
from ..shared.models import DecodeError, MetricsRecord
from .fixture_data import load_fixture
from .github_client import GitHubClient, GitHubNotFoundError

TEST_ORGANIZATION = "test"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def decode_metrics(items: List[Any]) -> List[MetricsRecord]:
    """Decode raw metrics documents, failing on the first malformed one."""
    if not isinstance(items, list):
        raise DecodeError(f"Expected a list of metrics documents, got {type(items).__name__}")
    return [MetricsRecord.from_dict(item) for item in items]


class CopilotMetricsClient:
    """Fetches daily Copilot metrics for an organization, enterprise or team."""

    def __init__(self, github_client: Optional[GitHubClient], testdata_dir: Optional[str] = None):
        self.github_client = github_client
        self.testdata_dir = testdata_dir
        self.logger = get_logger("metrics_client")

    @staticmethod
    def metrics_path(scope: IngestionScope, team: Optional[str] = None) -> str:
        base = scope.team_path(team) if team else scope.base_path()
        return f"{base}/copilot/metrics"

    def get_metrics(self, scope: IngestionScope, team: Optional[str] = None) -> List[MetricsRecord]:
        """
        Fetch metrics for the scope, or for one team inside it.

        A 404 for a team means the team doesn't exist or has no Copilot
        data, and yields an empty list. A 404 for the scope itself raises.
        """
        path = self.metrics_path(scope, team)
        self.logger.info(f"Fetching Copilot metrics from {path}")

        try:
            items = self.github_client.get_paginated(path)
        except GitHubNotFoundError:
            if team:
                self.logger.warning(f"Team not found or has no metrics: {team}", extra={"team": team})
                return []
            raise

        metrics = decode_metrics(items)
        now = _utcnow()
        for record in metrics:
            record.organization = scope.organization
            record.enterprise = scope.enterprise
            record.team = team or None
            record.last_update = now

        self.logger.info(f"Fetched {len(metrics)} metrics documents from {path}")
        return metrics

    def load_test_metrics(self, team: Optional[str] = None) -> List[MetricsRecord]:
        """Load metrics from the fixture file instead of the API."""
        metrics = decode_metrics(load_fixture("metrics.json", self.testdata_dir))
        now = _utcnow()
        for record in metrics:
            record.organization = TEST_ORGANIZATION
            record.enterprise = None
            record.team = team or None
            record.last_update = now
        return metrics
