"""Logging configuration for Copilot metrics ingestion."""

import logging
import json
import sys
import uuid
import time
from datetime import datetime, timezone
from typing import Optional

from google.cloud import logging as cloud_logging

from .config import Settings

ROOT_LOGGER_NAME = "copilot_ingest"
SERVICE_NAME = "copilot-metrics-ingestion"

_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "exc_info", "exc_text",
    "stack_info", "getMessage", "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, environment: str = "development"):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source_location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName
            },
            "environment": self.environment,
            "service_name": SERVICE_NAME,
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack_trace": self.formatException(record.exc_info)
            }

        if hasattr(record, "http_method"):
            log_entry["http_request"] = {
                "method": record.http_method,
                "url": getattr(record, "http_url", None),
                "status": getattr(record, "http_status", None),
            }

        # Anything passed via ``extra``
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_") or key.startswith("http_"):
                continue
            if key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(settings: Settings) -> logging.Logger:
    """Setup structured logging with Cloud Logging integration."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter(settings.env))
    logger.addHandler(console_handler)

    # Cloud Logging only outside debug mode
    if not settings.debug:
        try:
            client = cloud_logging.Client(project=settings.project_id)
            cloud_handler = client.get_default_handler()
            cloud_handler.setFormatter(StructuredFormatter(settings.env))
            logger.addHandler(cloud_handler)
        except Exception as e:
            logger.warning(f"Could not setup Cloud Logging: {e}")

    return logger


def generate_request_id() -> str:
    """Generate a unique request ID for tracing."""
    return str(uuid.uuid4())


def get_logger(component: str = None, request_id: str = None) -> logging.Logger:
    """Get logger instance with optional component and request_id context."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    extra = {}
    if component:
        extra["component"] = component
    if request_id:
        extra["request_id"] = request_id

    if extra:
        return logging.LoggerAdapter(logger, extra)

    return logger


class RequestContextLogger:
    """Logger with persistent request context for multi-step operations."""

    def __init__(self, component: str, request_id: Optional[str] = None, operation: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self.component = component
        self.operation = operation
        self.start_time = time.time()

        self.context = {
            "request_id": self.request_id,
            "component": component
        }
        if operation:
            self.context["operation"] = operation

        self.logger = logging.LoggerAdapter(
            logging.getLogger(ROOT_LOGGER_NAME),
            self.context
        )

    def info(self, message: str, **kwargs):
        self.logger.info(message, extra=kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, extra=kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, error: Exception = None, **kwargs):
        """Log error message with request context and optional exception."""
        if error:
            kwargs.update({
                "error_type": type(error).__name__,
                "error_message": str(error)
            })
        self.logger.error(message, extra=kwargs, exc_info=error)

    def log_operation_start(self, operation: str, **metadata):
        """Log the start of an operation."""
        self.operation = operation
        self.context["operation"] = operation
        self.start_time = time.time()

        self.info(f"Starting operation: {operation}", **metadata)

    def log_operation_complete(self, operation: str = None, **metadata):
        """Log the completion of an operation with timing."""
        op_name = operation or self.operation or "operation"
        duration_ms = (time.time() - self.start_time) * 1000

        self.info(
            f"Completed operation: {op_name}",
            duration_ms=duration_ms,
            **metadata
        )

    def log_operation_error(self, operation: str = None, error: Exception = None, **metadata):
        """Log an operation error with timing."""
        op_name = operation or self.operation or "operation"
        duration_ms = (time.time() - self.start_time) * 1000

        self.error(
            f"Operation failed: {op_name}",
            error=error,
            duration_ms=duration_ms,
            **metadata
        )

    def log_api_call(self, endpoint: str, response_time_ms: float,
                     record_count: int = None, status_code: int = None):
        """Log API call with performance metrics."""
        self.info(
            f"API call completed: {endpoint}",
            endpoint=endpoint,
            duration_ms=response_time_ms,
            record_count=record_count,
            status_code=status_code
        )

    def log_data_processing(self, stage: str, input_count: int, output_count: int):
        """Log data processing stage with counts."""
        self.info(
            f"Data processing stage: {stage} ({input_count} -> {output_count})",
            stage=stage,
            input_count=input_count,
            output_count=output_count
        )
