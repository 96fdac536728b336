"""Copilot seat assignment API client."""

from datetime import datetime, timezone
from typing import Any, List, Optional

from ..shared.config import IngestionScope
from ..shared.logging_setup import get_logger
from ..shared.models import DecodeError, Seat, SeatAssignment
from .fixture_data import load_fixture
from .github_client import GitHubClient

TEST_ORGANIZATION = "test-organization"
TEST_ENTERPRISE = "test-enterprise"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _decode_seats(items: List[Any]) -> List[Seat]:
    return [Seat.from_dict(item) for item in items]


class CopilotSeatsClient:
    """Fetches the current Copilot seat assignments for a scope."""

    def __init__(self, github_client: Optional[GitHubClient], testdata_dir: Optional[str] = None):
        self.github_client = github_client
        self.testdata_dir = testdata_dir
        self.logger = get_logger("seats_client")

    def get_assigned_seats(self, scope: IngestionScope) -> SeatAssignment:
        """Fetch every page of ``/copilot/billing/seats`` into one snapshot."""
        path = f"{scope.base_path()}/copilot/billing/seats"
        self.logger.info(f"Fetching Copilot seats from {path}")

        seats = _decode_seats(self.github_client.get_paginated(path, items_key="seats"))

        now = _utcnow()
        return SeatAssignment(
            date=now.strftime("%Y-%m-%d"),
            seats=seats,
            total_seats=len(seats),
            organization=scope.organization,
            enterprise=scope.enterprise,
            last_update=now,
        )

    def load_test_seats(self, is_enterprise: bool) -> SeatAssignment:
        """Load a seat snapshot from the fixture file instead of the API."""
        data = load_fixture("seats.json", self.testdata_dir)
        if not isinstance(data, dict):
            raise DecodeError("Seats fixture must be an object with a 'seats' list")

        snapshot = SeatAssignment.from_dict(data)
        now = _utcnow()
        snapshot.date = now.strftime("%Y-%m-%d")
        snapshot.last_update = now
        snapshot.total_seats = len(snapshot.seats)
        snapshot.id = None
        if is_enterprise:
            snapshot.enterprise = TEST_ENTERPRISE
            snapshot.organization = None
        else:
            snapshot.organization = TEST_ORGANIZATION
            snapshot.enterprise = None
        return snapshot
