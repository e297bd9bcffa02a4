"""Structured JSON logging for mediaqueue.

Provides audit-friendly logging with contextual fields for queue events,
upload operations, and status changes. Payload bytes are never logged.

Usage:
    from mediaqueue.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("mediaqueue.sync")
    log.info("upload_queued", extra={"record_id": "abc123", "size": 50000})
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger import jsonlogger

from mediaqueue import __version__

# Device identifier added to every record when set
_device_id: str | None = None


class MediaQueueJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds queue context to all log records."""

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

        log_record["version"] = __version__
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
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
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

    formatter = MediaQueueJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr for easy parsing
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


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Get a named logger.

    Args:
        name: Logger name (e.g., 'mediaqueue.sync', 'mediaqueue.store')
    """
    return logging.getLogger(name)


def set_device_id(device_id: str | None) -> None:
    """Set the device identifier for log context."""
    global _device_id
    _device_id = device_id


def sync_logger() -> logging.Logger:
    """Get logger for upload/sync events."""
    return get_logger("mediaqueue.sync")


def store_logger() -> logging.Logger:
    """Get logger for record store events."""
    return get_logger("mediaqueue.store")


def config_logger() -> logging.Logger:
    """Get logger for configuration events."""
    return get_logger("mediaqueue.config")


# --- Audit Event Functions ---


def log_upload_success(
    logger: logging.Logger,
    record_id: str,
    media_id: str | None,
    elapsed_ms: float,
) -> None:
    """Log a delivered upload.

    Args:
        logger: Logger instance
        record_id: Queue record identifier
        media_id: Identifier assigned by the server, if any
        elapsed_ms: Time spent sending, including retries
    """
    extra = {
        "event": "upload_success",
        "record_id": record_id,
        "elapsed_ms": round(elapsed_ms, 1),
    }
    if media_id:
        extra["media_id"] = media_id
    logger.info("Upload successful", extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    record_id: str,
    error: str,
    retry_count: int,
) -> None:
    """Log a drain attempt that exhausted its retries.

    Args:
        logger: Logger instance
        record_id: Queue record identifier
        error: Error message (no payload data)
        retry_count: Record-level failure count after this attempt
    """
    logger.warning(
        "Upload failed",
        extra={
            "event": "upload_failed",
            "record_id": record_id,
            "error": error,
            "retry_count": retry_count,
        },
    )


def log_record_evicted(
    logger: logging.Logger,
    record_id: str,
    error: str,
    retry_count: int,
) -> None:
    """Log a record dropped after reaching the retry ceiling."""
    logger.warning(
        "Upload evicted after repeated failures",
        extra={
            "event": "upload_evicted",
            "record_id": record_id,
            "error": error,
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
    """Log a record status transition outside the normal drain flow.

    Args:
        logger: Logger instance
        record_id: Queue record identifier
        old_status: Previous status
        new_status: New status
        trigger: What triggered the change (retry, recovery)
    """
    extra = {
        "event": "status_change",
        "record_id": record_id,
        "old_status": old_status,
        "new_status": new_status,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("Upload status changed", extra=extra)


def log_config_change(
    logger: logging.Logger,
    key: str,
    old_value: str | None,
    new_value: str,
) -> None:
    """Log a configuration override.

    Note: Values are logged as strings. Do NOT pass sensitive values like tokens.
    """
    logger.info(
        "Configuration changed",
        extra={
            "event": "config_change",
            "key": key,
            "old_value": old_value,
            "new_value": new_value,
        },
    )
