"""BigQuery storage backend."""

from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

from ..shared.config import ConfigurationError, Settings, STORAGE_BIGQUERY
from .repository import Repository, StorageError, TABLE_DATE_COLUMNS, register_repository


def _table_schema(date_column: str):
    return [
        bigquery.SchemaField("id", "STRING", mode="REQUIRED"),
        bigquery.SchemaField(date_column, "STRING", mode="REQUIRED"),
        bigquery.SchemaField("data", "STRING", mode="REQUIRED"),
        bigquery.SchemaField("created_at", "TIMESTAMP", mode="REQUIRED"),
    ]


@register_repository(STORAGE_BIGQUERY)
class BigQueryRepository(Repository):
    """Upserts records into BigQuery tables with a parameterized MERGE per record."""

    name = "bigquery"

    def __init__(self, project_id: str, dataset_id: str, location: str = "US",
                 client: Optional[bigquery.Client] = None):
        super().__init__()
        self.project_id = project_id
        self.dataset_id = dataset_id
        self.location = location
        self.client = client
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "BigQueryRepository":
        if not settings.project_id:
            raise ConfigurationError("GOOGLE_CLOUD_PROJECT is required for BigQuery storage")
        return cls(settings.project_id, settings.dataset)

    def _table_id(self, table: str) -> str:
        return f"{self.project_id}.{self.dataset_id}.{table}"

    def initialize(self) -> None:
        """Create the dataset and history tables if they don't exist."""
        try:
            if self.client is None:
                self.client = bigquery.Client(project=self.project_id)

            dataset = bigquery.Dataset(f"{self.project_id}.{self.dataset_id}")
            dataset.location = self.location
            dataset.description = "GitHub Copilot metrics, seats and usage history"
            self.client.create_dataset(dataset, exists_ok=True, timeout=30)

            for table, date_column in TABLE_DATE_COLUMNS.items():
                self.client.create_table(
                    bigquery.Table(self._table_id(table), schema=_table_schema(date_column)),
                    exists_ok=True,
                )
        except GoogleAPIError as e:
            raise StorageError(f"Failed to initialize BigQuery dataset {self.dataset_id}: {e}") from e

        self._initialized = True
        self.logger.info(f"BigQuery dataset {self.project_id}.{self.dataset_id} ready")

    def _ensure_ready(self) -> None:
        if not self._initialized or self.client is None:
            raise StorageError("BigQuery repository is not initialized")

    def _upsert(self, table: str, identifier: str, date: str, document: str) -> None:
        date_column = TABLE_DATE_COLUMNS[table]
        query = f"""
            MERGE `{self._table_id(table)}` AS target
            USING (SELECT @id AS id, @date AS {date_column}, @data AS data) AS source
            ON target.id = source.id
            WHEN MATCHED THEN
              UPDATE SET {date_column} = source.{date_column}, data = source.data
            WHEN NOT MATCHED THEN
              INSERT (id, {date_column}, data, created_at)
              VALUES (source.id, source.{date_column}, source.data, CURRENT_TIMESTAMP())
        """
        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("id", "STRING", identifier),
                bigquery.ScalarQueryParameter("date", "STRING", date),
                bigquery.ScalarQueryParameter("data", "STRING", document),
            ]
        )
        self.client.query(query, job_config=job_config).result()

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
        self._initialized = False
