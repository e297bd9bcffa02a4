"""Upload queue records and the events published about them."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

# Records that fail this many outer attempts are evicted from the queue.
MAX_RETRY_COUNT = 5


class MediaKind(Enum):
    """Type of media carried by an upload."""

    IMAGE = "image"
    VIDEO = "video"


class UploadStatus(Enum):
    """Persisted state of a queued upload.

    There is no completed state: finished uploads are deleted.
    """

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


class QueueEvent(Enum):
    """What happened to a record when a ProgressEvent was published."""

    IN_FLIGHT = "in_flight"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EVICTED = "evicted"


@dataclass(frozen=True)
class UploadPayload:
    """Opaque content of an upload."""

    data: bytes
    kind: MediaKind
    filename: str

    @property
    def size(self) -> int:
        """Payload size in bytes."""
        return len(self.data)


@dataclass
class UploadRecord:
    """One upload waiting in the queue."""

    id: str
    payload: UploadPayload
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    retry_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_error: str | None = None

    @classmethod
    def new(cls, payload: UploadPayload) -> "UploadRecord":
        """Create a fresh pending record with a new UUID."""
        return cls(id=str(uuid.uuid4()), payload=payload)

    def with_changes(self, **changes) -> "UploadRecord":
        """Return a copy of this record with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ProgressEvent:
    """Snapshot of a record delivered to progress subscribers."""

    id: str
    event: QueueEvent
    status: UploadStatus
    progress: int
    retry_count: int
    last_error: str | None = None

    @classmethod
    def from_record(
        cls, record: UploadRecord, event: QueueEvent, **overrides
    ) -> "ProgressEvent":
        values = {
            "id": record.id,
            "event": event,
            "status": record.status,
            "progress": record.progress,
            "retry_count": record.retry_count,
            "last_error": record.last_error,
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class QueueStatus:
    """Point-in-time counts of queued uploads."""

    total: int = 0
    pending: int = 0
    in_flight: int = 0
    failed: int = 0

    @classmethod
    def from_records(cls, records: list[UploadRecord]) -> "QueueStatus":
        return cls(
            total=len(records),
            pending=sum(1 for r in records if r.status == UploadStatus.PENDING),
            in_flight=sum(1 for r in records if r.status == UploadStatus.IN_FLIGHT),
            failed=sum(1 for r in records if r.status == UploadStatus.FAILED),
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_flight": self.in_flight,
            "failed": self.failed,
        }
