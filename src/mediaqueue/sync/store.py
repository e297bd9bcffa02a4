"""Durable record storage for the offline upload queue."""

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

from mediaqueue.logging import store_logger
from mediaqueue.sync.errors import DuplicateKey, NotConnected
from mediaqueue.sync.records import MediaKind, UploadPayload, UploadRecord, UploadStatus

log = store_logger()


class RecordStore(Protocol):
    """Persistence contract consumed by the QueueManager.

    Every method raises NotConnected when the store has not been opened.
    Writes are durable once the call returns.
    """

    def put(self, record: UploadRecord) -> None: ...

    def upsert(self, record: UploadRecord) -> None: ...

    def update(self, record: UploadRecord) -> bool: ...

    def get(self, record_id: str) -> UploadRecord | None: ...

    def delete(self, record_id: str) -> None: ...

    def list_by_status(self, status: UploadStatus) -> list[UploadRecord]: ...

    def list_all(self) -> list[UploadRecord]: ...

    def count_by_status(self) -> dict[str, int]: ...

    def clear(self) -> None: ...


class SQLiteRecordStore:
    """SQLite-backed store for queued uploads.

    Uploads are kept locally while the server is unavailable and survive
    process restarts. Each write is committed before the method returns.

    Example:
        with SQLiteRecordStore(Path("~/.local/share/mediaqueue/queue.db")) as store:
            store.put(UploadRecord.new(payload))
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store without opening it.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open the database and create the schema if needed."""
        if self._conn is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_table()
        log.debug("Record store opened: path=%s", self.db_path)

    def _create_table(self) -> None:
        """Create the queue table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS upload_queue (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                filename TEXT NOT NULL,
                data BLOB NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                progress INTEGER NOT NULL DEFAULT 0,
                retry_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                last_error TEXT
            )
        """)
        # Index for status lookups
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_queue_status_created
            ON upload_queue (status, created_at)
        """)
        self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise NotConnected()
        return self._conn

    @staticmethod
    def _to_row(record: UploadRecord) -> tuple:
        return (
            record.id,
            record.payload.kind.value,
            record.payload.filename,
            record.payload.data,
            record.status.value,
            record.progress,
            record.retry_count,
            record.created_at.isoformat(),
            record.last_error,
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> UploadRecord:
        return UploadRecord(
            id=row["id"],
            payload=UploadPayload(
                data=bytes(row["data"]),
                kind=MediaKind(row["kind"]),
                filename=row["filename"],
            ),
            status=UploadStatus(row["status"]),
            progress=row["progress"],
            retry_count=row["retry_count"],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_error=row["last_error"],
        )

    def put(self, record: UploadRecord) -> None:
        """Insert a new record.

        Raises:
            DuplicateKey: If a record with the same id already exists
        """
        conn = self._connection()
        with self._lock:
            try:
                conn.execute(
                    """
                    INSERT INTO upload_queue
                        (id, kind, filename, data, status, progress,
                         retry_count, created_at, last_error)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    self._to_row(record),
                )
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateKey(record.id) from e
            conn.commit()

    def upsert(self, record: UploadRecord) -> None:
        """Insert a record or replace the existing one with the same id."""
        conn = self._connection()
        with self._lock:
            conn.execute(
                """
                INSERT OR REPLACE INTO upload_queue
                    (id, kind, filename, data, status, progress,
                     retry_count, created_at, last_error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._to_row(record),
            )
            conn.commit()

    def update(self, record: UploadRecord) -> bool:
        """Write the mutable fields of an existing record.

        Returns:
            False if the record no longer exists, True otherwise
        """
        conn = self._connection()
        with self._lock:
            cursor = conn.execute(
                """
                UPDATE upload_queue
                SET status = ?, progress = ?, retry_count = ?, last_error = ?
                WHERE id = ?
                """,
                (
                    record.status.value,
                    record.progress,
                    record.retry_count,
                    record.last_error,
                    record.id,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get(self, record_id: str) -> UploadRecord | None:
        conn = self._connection()
        with self._lock:
            row = conn.execute(
                "SELECT * FROM upload_queue WHERE id = ?",
                (record_id,),
            ).fetchone()
        return self._from_row(row) if row else None

    def delete(self, record_id: str) -> None:
        """Remove a record. Deleting a missing id is a no-op."""
        conn = self._connection()
        with self._lock:
            conn.execute("DELETE FROM upload_queue WHERE id = ?", (record_id,))
            conn.commit()

    def list_by_status(self, status: UploadStatus) -> list[UploadRecord]:
        """Get records in the given status, oldest first."""
        conn = self._connection()
        with self._lock:
            rows = conn.execute(
                """
                SELECT * FROM upload_queue
                WHERE status = ?
                ORDER BY created_at ASC
                """,
                (status.value,),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def list_all(self) -> list[UploadRecord]:
        conn = self._connection()
        with self._lock:
            rows = conn.execute(
                "SELECT * FROM upload_queue ORDER BY created_at ASC"
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with counts by status plus a total
        """
        conn = self._connection()
        with self._lock:
            rows = conn.execute(
                """
                SELECT status, COUNT(*) as count
                FROM upload_queue
                GROUP BY status
                """
            ).fetchall()

        stats = {status.value: 0 for status in UploadStatus}
        stats["total"] = 0
        for row in rows:
            stats[row["status"]] = row["count"]
            stats["total"] += row["count"]
        return stats

    def clear(self) -> None:
        """Remove every record."""
        conn = self._connection()
        with self._lock:
            conn.execute("DELETE FROM upload_queue")
            conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SQLiteRecordStore":
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MemoryRecordStore:
    """In-process store with the same contract as SQLiteRecordStore.

    Nothing survives the process; meant for tests and throwaway queues.
    """

    def __init__(self) -> None:
        self._records: dict[str, UploadRecord] | None = None

    @property
    def is_connected(self) -> bool:
        return self._records is not None

    def connect(self) -> None:
        if self._records is None:
            self._records = {}

    def _data(self) -> dict[str, UploadRecord]:
        if self._records is None:
            raise NotConnected()
        return self._records

    def put(self, record: UploadRecord) -> None:
        records = self._data()
        if record.id in records:
            raise DuplicateKey(record.id)
        records[record.id] = record.with_changes()

    def upsert(self, record: UploadRecord) -> None:
        self._data()[record.id] = record.with_changes()

    def update(self, record: UploadRecord) -> bool:
        records = self._data()
        if record.id not in records:
            return False
        records[record.id] = record.with_changes()
        return True

    def get(self, record_id: str) -> UploadRecord | None:
        record = self._data().get(record_id)
        return record.with_changes() if record else None

    def delete(self, record_id: str) -> None:
        self._data().pop(record_id, None)

    def list_by_status(self, status: UploadStatus) -> list[UploadRecord]:
        return [r for r in self.list_all() if r.status == status]

    def list_all(self) -> list[UploadRecord]:
        records = sorted(self._data().values(), key=lambda r: r.created_at)
        return [r.with_changes() for r in records]

    def count_by_status(self) -> dict[str, int]:
        stats = {status.value: 0 for status in UploadStatus}
        for record in self._data().values():
            stats[record.status.value] += 1
        stats["total"] = len(self._data())
        return stats

    def clear(self) -> None:
        self._data().clear()

    def close(self) -> None:
        self._records = None

    def __enter__(self) -> "MemoryRecordStore":
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
