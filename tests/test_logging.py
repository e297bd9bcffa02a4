"""Tests for structured JSON logging."""

import json
import logging

import pytest

from mediaqueue import __version__
from mediaqueue.logging import (
    MediaQueueJsonFormatter,
    log_record_evicted,
    log_status_change,
    log_upload_success,
    set_device_id,
    setup_logging,
    sync_logger,
)


@pytest.fixture
def log_file(tmp_path):
    root = logging.getLogger()
    saved_level = root.level

    path = tmp_path / "logs" / "mediaqueue.log"
    setup_logging("DEBUG", log_file=path, device_id="phone-1")
    yield path

    for handler in root.handlers[:]:
        if isinstance(handler.formatter, MediaQueueJsonFormatter):
            handler.close()
            root.removeHandler(handler)
    root.setLevel(saved_level)
    set_device_id(None)


def read_lines(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestJsonLogging:
    """Tests for setup_logging() and the audit helpers."""

    def test_records_carry_context(self, log_file):
        log_upload_success(sync_logger(), "rec-1", "m-9", 12.345)

        entry = read_lines(log_file)[-1]
        assert entry["message"] == "Upload successful"
        assert entry["event"] == "upload_success"
        assert entry["record_id"] == "rec-1"
        assert entry["media_id"] == "m-9"
        assert entry["elapsed_ms"] == 12.3
        assert entry["level"] == "INFO"
        assert entry["logger"] == "mediaqueue.sync"
        assert entry["version"] == __version__
        assert entry["device_id"] == "phone-1"
        assert "timestamp" in entry

    def test_eviction_logged_as_warning(self, log_file):
        log_record_evicted(sync_logger(), "rec-2", "Server error: 503", 5)

        entry = read_lines(log_file)[-1]
        assert entry["level"] == "WARNING"
        assert entry["event"] == "upload_evicted"
        assert entry["retry_count"] == 5

    def test_status_change_trigger_optional(self, log_file):
        log_status_change(sync_logger(), "rec-3", "failed", "pending")
        log_status_change(sync_logger(), "rec-3", "in_flight", "pending", trigger="recovery")

        first, second = read_lines(log_file)[-2:]
        assert "trigger" not in first
        assert second["trigger"] == "recovery"
