"""Copilot usage summary API client."""

from typing import Any, List, Optional

from ..shared.config import IngestionScope
from ..shared.logging_setup import get_logger
from ..shared.models import DecodeError, UsageSummary
from .fixture_data import load_fixture
from .github_client import GitHubClient

TEST_ORGANIZATION = "test"


def decode_usage(items: List[Any]) -> List[UsageSummary]:
    if not isinstance(items, list):
        raise DecodeError(f"Expected a list of usage summaries, got {type(items).__name__}")
    return [UsageSummary.from_dict(item) for item in items]


def stamp_scope(summaries: List[UsageSummary], organization: Optional[str],
                enterprise: Optional[str]) -> List[UsageSummary]:
    """Copy the scope onto each summary and its breakdown rows."""
    for summary in summaries:
        summary.organization = organization
        summary.enterprise = enterprise
        for row in summary.breakdown:
            row.organization = organization
            row.enterprise = enterprise
    return summaries


class CopilotUsageClient:
    """Fetches daily usage summaries from the ``/copilot/usage`` endpoint."""

    def __init__(self, github_client: Optional[GitHubClient], testdata_dir: Optional[str] = None):
        self.github_client = github_client
        self.testdata_dir = testdata_dir
        self.logger = get_logger("usage_client")

    def get_usage(self, scope: IngestionScope) -> List[UsageSummary]:
        path = f"{scope.base_path()}/copilot/usage"
        self.logger.info(f"Fetching Copilot usage from {path}")

        usage = decode_usage(self.github_client.get_paginated(path))
        return stamp_scope(usage, scope.organization, scope.enterprise)

    def load_test_usage(self) -> List[UsageSummary]:
        usage = decode_usage(load_fixture("usage.json", self.testdata_dir))
        return stamp_scope(usage, TEST_ORGANIZATION, None)
