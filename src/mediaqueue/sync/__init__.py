"""Sync module for the offline upload queue and its collaborators."""

from mediaqueue.sync.backoff import RetryConfig, RetryResult, backoff_delay, retry_with_backoff, retry_with_result
from mediaqueue.sync.connectivity import ConnectivityMonitor, HeartbeatMonitor
from mediaqueue.sync.errors import DuplicateKey, NotConnected, NotFound, QueueError, TransferFailed
from mediaqueue.sync.manager import QueueManager
from mediaqueue.sync.records import (
    MAX_RETRY_COUNT,
    MediaKind,
    ProgressEvent,
    QueueEvent,
    QueueStatus,
    UploadPayload,
    UploadRecord,
    UploadStatus,
)
from mediaqueue.sync.store import MemoryRecordStore, RecordStore, SQLiteRecordStore
from mediaqueue.sync.uploader import HttpTransferClient, TransferClient

__all__ = [
    "MAX_RETRY_COUNT",
    "ConnectivityMonitor",
    "DuplicateKey",
    "HeartbeatMonitor",
    "HttpTransferClient",
    "MediaKind",
    "MemoryRecordStore",
    "NotConnected",
    "NotFound",
    "ProgressEvent",
    "QueueError",
    "QueueEvent",
    "QueueManager",
    "QueueStatus",
    "RecordStore",
    "RetryConfig",
    "RetryResult",
    "SQLiteRecordStore",
    "TransferClient",
    "TransferFailed",
    "UploadPayload",
    "UploadRecord",
    "UploadStatus",
    "backoff_delay",
    "retry_with_backoff",
    "retry_with_result",
]
