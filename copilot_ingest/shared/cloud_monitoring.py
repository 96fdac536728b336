"""Google Cloud Monitoring integration for Copilot metrics ingestion."""

from datetime import datetime, timezone
from typing import Dict, Optional, Union
from dataclasses import dataclass, field
from enum import Enum

from google.api import label_pb2 as ga_label
from google.api import metric_pb2 as ga_metric
from google.cloud import monitoring_v3
from google.cloud.monitoring_v3 import TimeSeries, Point, TimeInterval
from google.api_core.exceptions import GoogleAPIError
import google.protobuf.timestamp_pb2 as timestamp_pb2

from .config import Settings
from .logging_setup import get_logger

logger = get_logger("cloud_monitoring")


class MetricType(Enum):
    """Supported custom metric types."""
    JOB_HEALTH = "custom.googleapis.com/copilot_ingest/job_health"
    API_RESPONSE_TIME = "custom.googleapis.com/copilot_ingest/api_response_time"
    RECORDS_PROCESSED = "custom.googleapis.com/copilot_ingest/records_processed"
    STORAGE_WRITE_TIME = "custom.googleapis.com/copilot_ingest/storage_write_time"


@dataclass
class MetricPoint:
    """Single metric data point."""
    value: Union[int, float]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: Dict[str, str] = field(default_factory=dict)


class CloudMonitoringClient:
    """Google Cloud Monitoring client for custom metrics."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client = monitoring_v3.MetricServiceClient()
        self.project_name = f"projects/{settings.project_id}"
        self._metric_descriptors_created = set()

        logger.info("Initialized Cloud Monitoring client", extra={
            "project_id": settings.project_id
        })

    def _create_metric_descriptor(self, metric_type: MetricType, description: str,
                                  unit: str = "1") -> None:
        """Create metric descriptor if it doesn't exist."""
        if metric_type.value in self._metric_descriptors_created:
            return

        descriptor = ga_metric.MetricDescriptor()
        descriptor.type = metric_type.value
        descriptor.metric_kind = ga_metric.MetricDescriptor.MetricKind.GAUGE
        descriptor.value_type = ga_metric.MetricDescriptor.ValueType.DOUBLE
        descriptor.description = description
        descriptor.unit = unit
        descriptor.display_name = metric_type.name.replace('_', ' ').title()
        for key, label_description in (
            ("environment", "Environment (dev/staging/prod)"),
            ("job_name", "Ingestion job (metrics/seats/usage)"),
        ):
            label = ga_label.LabelDescriptor()
            label.key = key
            label.value_type = ga_label.LabelDescriptor.ValueType.STRING
            label.description = label_description
            descriptor.labels.append(label)

        try:
            self.client.create_metric_descriptor(
                name=self.project_name,
                metric_descriptor=descriptor
            )
            self._metric_descriptors_created.add(metric_type.value)
        except GoogleAPIError as e:
            if "already exists" in str(e).lower():
                self._metric_descriptors_created.add(metric_type.value)
            else:
                logger.error("Failed to create metric descriptor", extra={
                    "metric_type": metric_type.value,
                    "error": str(e)
                })
                raise

    def _create_time_series(self, metric_type: MetricType, point: MetricPoint) -> TimeSeries:
        series = TimeSeries()
        series.metric.type = metric_type.value
        series.metric.labels["environment"] = self.settings.env
        for key, value in point.labels.items():
            series.metric.labels[key] = str(value)

        series.resource.type = "generic_node"
        series.resource.labels["location"] = "global"
        series.resource.labels["namespace"] = "copilot-metrics-ingestion"
        series.resource.labels["node_id"] = f"{self.settings.env}-ingestion"

        end_time = timestamp_pb2.Timestamp()
        end_time.FromDatetime(point.timestamp)
        interval = TimeInterval()
        interval.end_time = end_time

        metric_point = Point()
        metric_point.value.double_value = float(point.value)
        metric_point.interval = interval

        series.points = [metric_point]
        return series

    def _write_time_series(self, metric_type: MetricType, point: MetricPoint) -> None:
        try:
            series = self._create_time_series(metric_type, point)
            self.client.create_time_series(name=self.project_name, time_series=[series])
        except GoogleAPIError as e:
            logger.error("Failed to write time series", extra={
                "metric_type": metric_type.value,
                "error": str(e)
            })
            raise

    def record_job_health(self, job_name: str, success: bool) -> None:
        """Record 100 for a successful run, 0 for a failed one."""
        self._create_metric_descriptor(MetricType.JOB_HEALTH, "Ingestion job success", "%")
        self._write_time_series(
            MetricType.JOB_HEALTH,
            MetricPoint(value=100.0 if success else 0.0, labels={"job_name": job_name})
        )

    def record_api_response_time(self, job_name: str, response_time_ms: float) -> None:
        self._create_metric_descriptor(MetricType.API_RESPONSE_TIME, "GitHub API fetch time", "ms")
        self._write_time_series(
            MetricType.API_RESPONSE_TIME,
            MetricPoint(value=response_time_ms, labels={"job_name": job_name})
        )

    def record_records_processed(self, job_name: str, record_count: int) -> None:
        self._create_metric_descriptor(MetricType.RECORDS_PROCESSED, "Records persisted per run")
        self._write_time_series(
            MetricType.RECORDS_PROCESSED,
            MetricPoint(value=record_count, labels={"job_name": job_name})
        )

    def record_storage_write_time(self, job_name: str, write_time_seconds: float) -> None:
        self._create_metric_descriptor(MetricType.STORAGE_WRITE_TIME, "Repository write time", "s")
        self._write_time_series(
            MetricType.STORAGE_WRITE_TIME,
            MetricPoint(value=write_time_seconds, labels={"job_name": job_name})
        )


_cloud_monitoring: Optional[CloudMonitoringClient] = None


def get_cloud_monitoring(settings: Settings) -> Optional[CloudMonitoringClient]:
    """Get the shared monitoring client, or None when monitoring is disabled."""
    global _cloud_monitoring
    if not settings.enable_cloud_monitoring or not settings.project_id:
        return None
    if _cloud_monitoring is None:
        _cloud_monitoring = CloudMonitoringClient(settings)
    return _cloud_monitoring
