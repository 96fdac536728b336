"""SQLite storage backend (idempotent upserts by record id)."""

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..shared.config import Settings, STORAGE_SQLITE
from .repository import Repository, StorageError, TABLE_DATE_COLUMNS, register_repository

MEMORY_PATH = ":memory:"


@register_repository(STORAGE_SQLITE)
class SQLiteRepository(Repository):
    """Stores each record as a JSON document in a local SQLite file."""

    name = "sqlite"

    def __init__(self, db_path: str):
        super().__init__()
        self.db_path = db_path
        self.engine: Optional[Engine] = None
        # SQLite allows a single writer
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SQLiteRepository":
        return cls(settings.sqlite_path)

    def initialize(self) -> None:
        try:
            if self.engine is None:
                if self.db_path != MEMORY_PATH:
                    Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                    url = f"sqlite:///{Path(self.db_path).expanduser()}"
                else:
                    url = "sqlite://"
                self.engine = create_engine(url, echo=False)

            with self._lock, self.engine.begin() as conn:
                for table, date_column in TABLE_DATE_COLUMNS.items():
                    conn.execute(text(
                        f"""
                        CREATE TABLE IF NOT EXISTS {table} (
                          id TEXT PRIMARY KEY,
                          {date_column} TEXT NOT NULL,
                          data TEXT NOT NULL,
                          created_at TEXT NOT NULL
                        )
                        """
                    ))
                    conn.execute(text(
                        f"CREATE INDEX IF NOT EXISTS idx_{table}_{date_column} ON {table} ({date_column})"
                    ))
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Failed to initialize SQLite database {self.db_path}: {e}") from e

        self.logger.info(f"SQLite database ready at {self.db_path}")

    def _ensure_ready(self) -> None:
        if self.engine is None:
            raise StorageError("SQLite repository is not initialized")

    def _upsert(self, table: str, identifier: str, date: str, document: str) -> None:
        date_column = TABLE_DATE_COLUMNS[table]
        stmt = text(
            f"""
            INSERT INTO {table} (id, {date_column}, data, created_at)
            VALUES (:id, :date, :data, :created_at)
            ON CONFLICT(id) DO UPDATE SET
              {date_column}=excluded.{date_column},
              data=excluded.data
            """
        )
        params = {
            "id": identifier,
            "date": date,
            "data": document,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock, self.engine.begin() as conn:
            conn.execute(stmt, params)

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
