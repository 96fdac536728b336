"""Persistence contract shared by every storage backend."""

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Type, Union

from ..processing.identity import assign_id
from ..shared.config import ConfigurationError, Settings, STORAGE_NONE
from ..shared.logging_setup import get_logger
from ..shared.models import MetricsRecord, SeatAssignment, UsageSummary, to_json

METRICS_TABLE = "metrics_history"
SEATS_TABLE = "seats_history"
USAGE_TABLE = "usage_history"

# Table name -> name of its date column
TABLE_DATE_COLUMNS = {
    METRICS_TABLE: "date",
    SEATS_TABLE: "date",
    USAGE_TABLE: "day",
}

BACKEND_MODULES = (
    "copilot_ingest.storage.sqlite_repository",
    "copilot_ingest.storage.bigquery_repository",
)

Record = Union[MetricsRecord, SeatAssignment, UsageSummary]


class StorageError(Exception):
    """Storage backend could not be created, initialized or used."""
    pass


@dataclass
class SaveReport:
    """Outcome of one save call."""
    saved: int = 0
    failed: int = 0
    first_error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def record_failure(self, error: Exception) -> None:
        self.failed += 1
        if self.first_error is None:
            self.first_error = error


class Repository(ABC):
    """
    Upserts records keyed by their natural ``id``.

    Each record is written in its own transaction. A record that fails to
    write is logged and counted in the returned ``SaveReport``; the rest of
    the batch is still attempted.
    """

    name = "repository"

    def __init__(self):
        self.logger = get_logger(f"{self.name}_repository")

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings) -> "Repository":
        """Build the backend from runtime settings."""

    @abstractmethod
    def initialize(self) -> None:
        """Create tables if needed. Safe to call more than once."""

    @abstractmethod
    def close(self) -> None:
        """Release connections. Safe to call more than once."""

    @abstractmethod
    def _upsert(self, table: str, identifier: str, date: str, document: str) -> None:
        """Insert or replace the row with this ``identifier``."""

    @abstractmethod
    def _ensure_ready(self) -> None:
        """Raise StorageError if ``initialize`` has not succeeded."""

    def save_metrics(self, records: Iterable[MetricsRecord]) -> SaveReport:
        return self._save_all(METRICS_TABLE, records)

    def save_seats(self, snapshot: Optional[SeatAssignment]) -> SaveReport:
        if snapshot is None:
            return SaveReport()
        return self._save_all(SEATS_TABLE, [snapshot])

    def save_usage(self, summaries: Iterable[UsageSummary]) -> SaveReport:
        return self._save_all(USAGE_TABLE, summaries)

    def _save_all(self, table: str, records: Iterable[Record]) -> SaveReport:
        self._ensure_ready()
        report = SaveReport()

        for record in records:
            identifier = assign_id(record)
            date = record.day if isinstance(record, UsageSummary) else record.date
            try:
                self._upsert(table, identifier, date, to_json(record))
            except StorageError:
                raise
            except Exception as e:
                report.record_failure(e)
                self.logger.error(
                    f"Failed to save {identifier} to {table}: {e}",
                    extra={"table": table, "record_id": identifier, "error_type": type(e).__name__}
                )
            else:
                report.saved += 1

        if report.failed:
            self.logger.warning(f"Saved {report.saved} records to {table}, {report.failed} failed")
        else:
            self.logger.info(f"Saved {report.saved} records to {table}")
        return report


_REGISTRY: Dict[str, Type[Repository]] = {}


def register_repository(storage_type: str) -> Callable[[Type[Repository]], Type[Repository]]:
    """Class decorator registering a backend under a ``STORAGE_TYPE`` value."""
    def decorator(cls: Type[Repository]) -> Type[Repository]:
        _REGISTRY[storage_type] = cls
        return cls
    return decorator


def registered_backends() -> Dict[str, Type[Repository]]:
    _load_backends()
    return dict(_REGISTRY)


def _load_backends() -> None:
    for module_name in BACKEND_MODULES:
        importlib.import_module(module_name)


def create_repository(settings: Settings) -> Optional[Repository]:
    """
    Build and initialize the configured backend.

    Returns:
        The repository, or None when ``STORAGE_TYPE`` is ``none``

    Raises:
        ConfigurationError: Unknown storage type or missing settings
        StorageError: Backend failed to initialize
    """
    if settings.storage_type == STORAGE_NONE:
        return None

    backend = registered_backends().get(settings.storage_type)
    if backend is None:
        raise ConfigurationError(f"Unknown storage type: {settings.storage_type}")

    repository = backend.from_settings(settings)
    repository.initialize()
    return repository
