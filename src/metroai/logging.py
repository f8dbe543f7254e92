"""Structured JSON logging for the MetroAI uploader.

Provides audit-friendly logging with contextual fields for upload attempts,
status transitions, and queue repairs. Tokens and image bytes are never logged.

Usage:
    import logging

    from metroai.logging import log_upload_success, setup_logging

    setup_logging("INFO", device_id="tablet-7")
    log_upload_success(logging.getLogger(__name__), record_id, points, duration_ms)
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

from metroai import __version__

# Optional device identifier added to every record
_device_id: str | None = None


class MetroJsonFormatter(JsonFormatter):
    """JSON formatter that adds app context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        log_record["app_version"] = __version__
        if _device_id:
            log_record["device_id"] = _device_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    device_id: str | None = None,
    max_bytes: int = 5_000_000,  # 5MB
    backup_count: int = 3,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        device_id: Identifier for this device, added to every record
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    global _device_id
    if device_id:
        _device_id = device_id

    formatter = MetroJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


# --- Audit Event Functions ---


def log_upload_success(
    logger: logging.Logger,
    record_id: str,
    points: int,
    duration_ms: float,
) -> None:
    """Log a successful upload.

    Args:
        logger: Logger instance
        record_id: Capture record identifier
        points: Point total reported by the server
        duration_ms: Time spent in the upload call in milliseconds
    """
    logger.info(
        "Upload successful",
        extra={
            "event": "upload_success",
            "record_id": record_id,
            "points": points,
            "duration_ms": round(duration_ms, 1),
        },
    )


def log_upload_failed(
    logger: logging.Logger,
    record_id: str,
    error: str,
    failure_class: str,
    retry_count: int,
) -> None:
    """Log a failed upload attempt.

    Args:
        logger: Logger instance
        record_id: Capture record identifier
        error: Error message (no credentials)
        failure_class: Classifier verdict (network_transient, application, ...)
        retry_count: Retry count after the failure was applied
    """
    logger.warning(
        "Upload failed",
        extra={
            "event": "upload_failed",
            "record_id": record_id,
            "error": error,
            "failure_class": failure_class,
            "retry_count": retry_count,
        },
    )


def log_status_change(
    logger: logging.Logger,
    record_id: str,
    old_status: str,
    new_status: str,
    trigger: str | None = None,
) -> None:
    """Log a record status transition.

    Args:
        logger: Logger instance
        record_id: Capture record identifier
        old_status: Previous status
        new_status: New status
        trigger: What caused the change
    """
    extra = {
        "event": "status_change",
        "record_id": record_id,
        "old_status": old_status,
        "new_status": new_status,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.debug("Status changed", extra=extra)


def log_stuck_reset(logger: logging.Logger, record_id: str) -> None:
    """Log a record recovered from an interrupted run.

    Args:
        logger: Logger instance
        record_id: Capture record identifier
    """
    logger.info(
        "Reset stuck upload",
        extra={"event": "stuck_reset", "record_id": record_id},
    )
