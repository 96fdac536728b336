"""Natural-key identifiers for persisted records."""

from typing import Optional, Union

from ..shared.models import MetricsRecord, SeatAssignment, UsageSummary
from ..shared.logging_setup import get_logger

DEGENERATE_SUFFIX = "-XXX"

logger = get_logger("identity")


def record_id(date: str, organization: Optional[str] = None,
              enterprise: Optional[str] = None, team: Optional[str] = None) -> str:
    """
    Build the upsert key for a record.

    Organization scope wins over enterprise scope. The team suffix is only
    appended when a team is set.

    Examples:
        2024-01-01-ORG-acme
        2024-01-01-ENT-megacorp-platform
        2024-01-01-XXX
    """
    team_suffix = f"-{team}" if team else ""
    if organization:
        return f"{date}-ORG-{organization}{team_suffix}"
    if enterprise:
        return f"{date}-ENT-{enterprise}{team_suffix}"
    return f"{date}{DEGENERATE_SUFFIX}"


def is_degenerate_id(identifier: str) -> bool:
    return identifier.endswith(DEGENERATE_SUFFIX)


def assign_id(record: Union[MetricsRecord, SeatAssignment, UsageSummary]) -> str:
    """Set ``record.id`` from its date and scope unless it already has one."""
    if not record.id:
        if isinstance(record, UsageSummary):
            record.id = record_id(record.day, record.organization, record.enterprise, record.team)
        elif isinstance(record, SeatAssignment):
            record.id = record_id(record.date, record.organization, record.enterprise)
        else:
            record.id = record_id(record.date, record.organization, record.enterprise, record.team)

    if is_degenerate_id(record.id):
        logger.warning(
            f"Record {record.id} has neither organization nor enterprise scope",
            extra={"record_type": type(record).__name__}
        )
    return record.id
