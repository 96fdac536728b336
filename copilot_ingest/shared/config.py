"""Configuration management for Copilot metrics ingestion."""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from google.cloud import secretmanager
from google.api_core.exceptions import GoogleAPIError

logger = logging.getLogger("copilot_ingest.config")

DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_API_VERSION = "2022-11-28"
DEFAULT_SCHEDULE_SECONDS = 3600
DEFAULT_MAX_PAGES = 1000

STORAGE_SQLITE = "sqlite"
STORAGE_BIGQUERY = "bigquery"
STORAGE_NONE = "none"


class ConfigurationError(Exception):
    """Invalid or incomplete configuration."""
    pass


@dataclass(frozen=True)
class IngestionScope:
    """Which organization or enterprise the pipeline collects for."""
    organization: Optional[str] = None
    enterprise: Optional[str] = None

    @property
    def is_enterprise(self) -> bool:
        return bool(self.enterprise) and not self.organization

    @property
    def name(self) -> str:
        return (self.organization or self.enterprise or "")

    def base_path(self) -> str:
        """
        URL prefix of the scope, e.g. ``/orgs/acme``.

        Raises:
            ConfigurationError: Neither an organization nor an enterprise is set
        """
        if not self.name:
            raise ConfigurationError(
                "No organization or enterprise configured, set GITHUB_ORGANIZATION or GITHUB_ENTERPRISE"
            )
        if self.is_enterprise:
            return f"/enterprises/{self.enterprise}"
        return f"/orgs/{self.organization}"

    def team_path(self, team: str) -> str:
        return f"{self.base_path()}/team/{team}"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_positive_int(name: str, default: int = DEFAULT_SCHEDULE_SECONDS) -> int:
    """Parse a positive integer, falling back to the default."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, using default {default}")
        return default
    return value


def _parse_teams(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(team.strip() for team in raw.split(",") if team.strip())


def _default_sqlite_path() -> str:
    return str(Path.home() / ".copilot-metrics" / "copilot-metrics.db")


def read_secret(project_id: str, secret_name: str, version: str = "latest") -> Optional[str]:
    """
    Read a secret from Google Secret Manager.

    Args:
        project_id: Google Cloud project holding the secret
        secret_name: Name of the secret
        version: Secret version (default: "latest")

    Returns:
        Secret value, or None if it could not be accessed
    """
    try:
        client = secretmanager.SecretManagerServiceClient()
        secret_path = f"projects/{project_id}/secrets/{secret_name}/versions/{version}"
        response = client.access_secret_version(request={"name": secret_path})
        return response.payload.data.decode("UTF-8")
    except GoogleAPIError as e:
        logger.warning(f"Failed to access secret {secret_name}: {e}")
        return None


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings, built once and passed to every component."""
    github_token: str = ""
    github_api_base_url: str = DEFAULT_BASE_URL
    github_api_version: str = DEFAULT_API_VERSION
    github_api_scope: str = "organization"
    github_organization: Optional[str] = None
    github_enterprise: Optional[str] = None
    teams: Tuple[str, ...] = ()
    use_test_data: bool = False
    testdata_dir: Optional[str] = None
    max_pages: int = DEFAULT_MAX_PAGES

    storage_type: str = STORAGE_NONE
    sqlite_path: str = field(default_factory=_default_sqlite_path)
    project_id: Optional[str] = None
    dataset: str = "copilot_metrics"

    metrics_schedule_seconds: int = DEFAULT_SCHEDULE_SECONDS
    seats_schedule_seconds: int = DEFAULT_SCHEDULE_SECONDS
    usage_schedule_seconds: int = DEFAULT_SCHEDULE_SECONDS
    enable_seats_ingestion: bool = True

    env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    enable_cloud_monitoring: bool = False

    @property
    def scope(self) -> IngestionScope:
        if self.github_api_scope.lower() == "enterprise":
            return IngestionScope(enterprise=self.github_enterprise)
        return IngestionScope(organization=self.github_organization)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from environment variables (and a .env file if present)."""
        if dotenv:
            load_dotenv()

        env = os.getenv("ENV", "development")
        project_id = os.getenv("GOOGLE_CLOUD_PROJECT")

        token = os.getenv("GITHUB_TOKEN", "")
        token_secret = os.getenv("GITHUB_TOKEN_SECRET")
        if token_secret and project_id and (env == "production" or not token):
            token = read_secret(project_id, token_secret) or token

        storage_type = (os.getenv("STORAGE_TYPE") or STORAGE_NONE).strip().lower()
        if storage_type not in (STORAGE_SQLITE, STORAGE_BIGQUERY, STORAGE_NONE):
            logger.warning(f"Unknown STORAGE_TYPE {storage_type!r}, data will not be persisted")
            storage_type = STORAGE_NONE

        settings = cls(
            github_token=token,
            github_api_base_url=(os.getenv("GITHUB_API_BASEURL") or DEFAULT_BASE_URL).rstrip("/"),
            github_api_version=os.getenv("GITHUB_API_VERSION") or DEFAULT_API_VERSION,
            github_api_scope=(os.getenv("GITHUB_API_SCOPE") or "organization").strip().lower(),
            github_organization=os.getenv("GITHUB_ORGANIZATION") or None,
            github_enterprise=os.getenv("GITHUB_ENTERPRISE") or None,
            teams=_parse_teams(os.getenv("GITHUB_METRICS_TEAMS")),
            use_test_data=_env_bool("GITHUB_METRICS_USE_TESTDATA", False),
            testdata_dir=os.getenv("GITHUB_TESTDATA_DIR") or None,
            max_pages=_env_positive_int("GITHUB_MAX_PAGES", DEFAULT_MAX_PAGES),
            storage_type=storage_type,
            sqlite_path=os.getenv("SQLITE_DB_PATH") or _default_sqlite_path(),
            project_id=project_id,
            dataset=os.getenv("BIGQUERY_DATASET", "copilot_metrics"),
            metrics_schedule_seconds=_env_positive_int("METRICS_SCHEDULE_SECONDS"),
            seats_schedule_seconds=_env_positive_int("SEATS_SCHEDULE_SECONDS"),
            usage_schedule_seconds=_env_positive_int("USAGE_SCHEDULE_SECONDS"),
            enable_seats_ingestion=_env_bool("ENABLE_SEATS_INGESTION", True),
            env=env,
            debug=_env_bool("DEBUG", False),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            enable_cloud_monitoring=_env_bool("ENABLE_CLOUD_MONITORING", False),
        )
        settings.warn_if_incomplete()
        return settings

    def warn_if_incomplete(self) -> None:
        """Log missing values that will make live ingestion fail."""
        if not self.github_token and not self.use_test_data:
            logger.warning("GITHUB_TOKEN not set")
        if self.github_api_scope == "enterprise" and not self.github_enterprise:
            logger.warning("GITHUB_ENTERPRISE not set but GITHUB_API_SCOPE is 'enterprise'")
        if self.github_api_scope != "enterprise" and not self.github_organization:
            logger.warning("GITHUB_ORGANIZATION not set and GITHUB_API_SCOPE is not 'enterprise'")
        if self.storage_type == STORAGE_BIGQUERY and not self.project_id:
            logger.warning("GOOGLE_CLOUD_PROJECT not set for BigQuery storage")
