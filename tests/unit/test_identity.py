"""Unit tests for record identifiers."""

import logging

import pytest

from copilot_ingest.processing.identity import assign_id, is_degenerate_id, record_id
from copilot_ingest.shared.models import MetricsRecord, SeatAssignment, UsageSummary


class TestRecordId:
    """Test cases for record_id."""

    @pytest.mark.parametrize("kwargs,expected", [
        ({"organization": "acme"}, "2024-01-01-ORG-acme"),
        ({"organization": "acme", "team": "platform"}, "2024-01-01-ORG-acme-platform"),
        ({"enterprise": "megacorp"}, "2024-01-01-ENT-megacorp"),
        ({"enterprise": "megacorp", "team": "platform"}, "2024-01-01-ENT-megacorp-platform"),
        ({}, "2024-01-01-XXX"),
        ({"team": "platform"}, "2024-01-01-XXX"),
    ])
    def test_branches(self, kwargs, expected):
        assert record_id("2024-01-01", **kwargs) == expected

    def test_organization_wins_over_enterprise(self):
        assert record_id("2024-01-01", organization="acme", enterprise="megacorp") == "2024-01-01-ORG-acme"

    def test_empty_team_adds_no_suffix(self):
        assert record_id("2024-01-01", organization="acme", team="") == "2024-01-01-ORG-acme"

    def test_same_inputs_same_id(self):
        assert record_id("2024-02-02", "acme", None, "t") == record_id("2024-02-02", "acme", None, "t")

    def test_is_degenerate_id(self):
        assert is_degenerate_id("2024-01-01-XXX")
        assert not is_degenerate_id("2024-01-01-ORG-acme")


class TestAssignId:
    """Test cases for assign_id."""

    def test_metrics_record_with_team(self):
        record = MetricsRecord(date="2024-03-01", organization="acme", team="web")
        assert assign_id(record) == "2024-03-01-ORG-acme-web"
        assert record.id == "2024-03-01-ORG-acme-web"

    def test_usage_summary_uses_day(self):
        summary = UsageSummary(day="2024-03-02", enterprise="megacorp")
        assert assign_id(summary) == "2024-03-02-ENT-megacorp"

    def test_seat_assignment_ignores_team(self):
        snapshot = SeatAssignment(date="2024-03-03", organization="acme")
        assert assign_id(snapshot) == "2024-03-03-ORG-acme"

    def test_existing_id_is_kept(self):
        record = MetricsRecord(date="2024-03-01", organization="acme", id="custom")
        assert assign_id(record) == "custom"

    def test_degenerate_id_logs_warning(self, caplog):
        record = MetricsRecord(date="2024-03-01")
        with caplog.at_level(logging.WARNING, logger="copilot_ingest"):
            assert assign_id(record) == "2024-03-01-XXX"
        assert any("neither organization nor enterprise" in message for message in caplog.messages)
