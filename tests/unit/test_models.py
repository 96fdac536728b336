"""Unit tests for payload decoding and serialization."""

import json
from datetime import datetime, timezone

import pytest

from copilot_ingest.ingestion.fixture_data import load_fixture
from copilot_ingest.shared.models import (
    DecodeError,
    MetricsRecord,
    SeatAssignment,
    UsageSummary,
    to_json,
)


@pytest.fixture
def metrics_payload():
    return load_fixture("metrics.json")[0]


class TestMetricsRecord:
    """Test cases for MetricsRecord decoding."""

    def test_from_dict_nested_sections(self, metrics_payload):
        record = MetricsRecord.from_dict(metrics_payload)

        assert record.date == "2024-06-24"
        assert record.total_active_users == 24
        completions = record.copilot_ide_code_completions
        assert [editor.name for editor in completions.editors] == ["vscode", "neovim"]
        assert completions.editors[1].models[0].is_custom_model is True
        assert completions.editors[0].models[0].languages[0].total_code_suggestions == 249
        assert record.copilot_ide_chat.editors[0].models[0].total_chat_copy_events == 16
        assert record.copilot_dotcom_chat.models[0].total_chats == 38
        assert record.copilot_dotcom_pull_requests.repositories[1].models[0].total_pr_summaries_created == 10

    def test_missing_sections_are_none(self):
        record = MetricsRecord.from_dict({"date": "2024-01-01", "total_engaged_users": 3})
        assert record.copilot_ide_code_completions is None
        assert record.copilot_dotcom_pull_requests is None

    def test_missing_date(self):
        with pytest.raises(DecodeError, match="date"):
            MetricsRecord.from_dict({"total_active_users": 1})

    def test_wrong_type(self):
        with pytest.raises(DecodeError):
            MetricsRecord.from_dict({"date": "2024-01-01", "total_active_users": "many"})

    def test_not_an_object(self):
        with pytest.raises(DecodeError):
            MetricsRecord.from_dict(["2024-01-01"])

    def test_to_json_drops_unset_fields(self):
        record = MetricsRecord(date="2024-01-01", organization="acme", id="2024-01-01-ORG-acme",
                               last_update=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        document = json.loads(to_json(record))

        assert document["id"] == "2024-01-01-ORG-acme"
        assert document["last_update"] == "2024-01-02T03:04:05+00:00"
        assert "team" not in document
        assert "copilot_ide_chat" not in document


class TestUsageSummary:
    """Test cases for UsageSummary decoding."""

    def test_breakdown_inherits_day(self):
        summary = UsageSummary.from_dict({
            "day": "2023-10-15",
            "total_suggestions_count": 5,
            "breakdown": [{"language": "python", "editor": "vscode", "suggestions_count": 5}],
        })
        assert summary.breakdown[0].day == "2023-10-15"
        assert summary.total_suggestions_count == 5

    def test_missing_day(self):
        with pytest.raises(DecodeError):
            UsageSummary.from_dict({"total_suggestions_count": 5})


class TestSeatAssignment:
    """Test cases for seat decoding."""

    def test_fixture_seats(self):
        snapshot = SeatAssignment.from_dict(load_fixture("seats.json"))

        assert snapshot.total_seats == 2
        first, second = snapshot.seats
        assert first.assignee.login == "octocat"
        assert first.assigning_team.slug == "justice-league"
        assert first.last_activity_at.year == 2021
        assert second.assigning_team is None
        assert second.pending_cancellation_date == "2021-11-01"

    def test_seat_without_assignee(self):
        with pytest.raises(DecodeError, match="assignee"):
            SeatAssignment.from_dict({"seats": [{"plan_type": "business"}]})

    def test_invalid_timestamp(self):
        with pytest.raises(DecodeError, match="timestamp"):
            SeatAssignment.from_dict({"seats": [{"assignee": {"login": "x"}, "created_at": "yesterday"}]})

    def test_to_json_serializes_seat_timestamps(self):
        snapshot = SeatAssignment.from_dict(load_fixture("seats.json"))
        snapshot.date = "2024-01-01"
        document = json.loads(to_json(snapshot))

        assert document["seats"][0]["created_at"] == "2021-08-03T18:00:00-06:00"
        assert document["seats"][0]["assignee"]["login"] == "octocat"
