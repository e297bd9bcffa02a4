"""Queue manager coordinating the record store, transfer client and connectivity."""

import asyncio
import logging
import time
from typing import Callable

from mediaqueue.logging import (
    log_record_evicted,
    log_status_change,
    log_upload_failed,
    log_upload_success,
    sync_logger,
)
from mediaqueue.sync.backoff import RetryConfig, SleepFunc, retry_with_backoff
from mediaqueue.sync.connectivity import ConnectivityMonitor
from mediaqueue.sync.errors import NotConnected, NotFound
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
from mediaqueue.sync.store import RecordStore
from mediaqueue.sync.uploader import TransferClient

logger = logging.getLogger(__name__)
audit_log = sync_logger()

ProgressSubscriber = Callable[[ProgressEvent], None]


async def _sleep_ms(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000.0)


class QueueManager:
    """Owns the lifecycle of queued uploads.

    Records are persisted as pending on enqueue and delivered by drain
    passes. Only one drain pass runs at a time; overlapping drain requests
    return immediately. Each record's send is retried with backoff inside a
    pass, and a record that exhausts those retries is marked failed with its
    retry_count incremented. After MAX_RETRY_COUNT failed passes the record
    is evicted.

    Example:
        manager = QueueManager(store, client, monitor)
        await manager.start()
        unsubscribe = manager.on_progress(lambda e: print(e.id, e.event))
        upload_id = await manager.enqueue(jpeg_bytes, "image", "photo.jpg")
        ...
        await manager.stop()
    """

    def __init__(
        self,
        store: RecordStore,
        client: TransferClient,
        monitor: ConnectivityMonitor,
        retry_config: RetryConfig | None = None,
        auto_requeue: bool = False,
        sleep: SleepFunc | None = None,
    ) -> None:
        """Initialize the queue manager.

        Args:
            store: Connected record store
            client: Transport performing single upload attempts
            monitor: Connectivity source; its reachable event triggers drains
            retry_config: Backoff settings for retries within one pass
            auto_requeue: Move failed records back to pending after a backoff
                delay instead of waiting for retry()/retry_all_failed()
            sleep: Coroutine taking a delay in milliseconds (tests pass a fake)
        """
        self._store = store
        self._client = client
        self._monitor = monitor
        self.retry_config = retry_config or RetryConfig()
        self.auto_requeue = auto_requeue
        self._sleep = sleep or _sleep_ms

        self._draining = False
        self._subscribers: list[ProgressSubscriber] = []
        self._tasks: set[asyncio.Task] = set()
        self._requeue_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe_reachable: Callable[[], None] | None = None

    @property
    def draining(self) -> bool:
        """True while a drain pass is running."""
        return self._draining

    # --- Lifecycle ---

    async def start(self) -> int:
        """Recover interrupted uploads and start listening for connectivity.

        Records left in_flight by a crash or an interrupted pass are moved
        back to pending. If the server is reachable a drain is scheduled.

        Returns:
            Number of recovered records
        """
        self._loop = asyncio.get_running_loop()
        recovered = self._recover_in_flight()

        if self._unsubscribe_reachable is None:
            self._unsubscribe_reachable = self._monitor.on_reachable(self._on_reachable)

        if self._monitor.is_reachable():
            self._schedule_drain()
        return recovered

    def _recover_in_flight(self) -> int:
        orphans = self._store.list_by_status(UploadStatus.IN_FLIGHT)
        for record in orphans:
            if self._store.update(record.with_changes(status=UploadStatus.PENDING, progress=0)):
                log_status_change(
                    audit_log, record.id, UploadStatus.IN_FLIGHT.value,
                    UploadStatus.PENDING.value, trigger="recovery",
                )
        if orphans:
            logger.info("Recovered interrupted uploads: count=%d", len(orphans))
        return len(orphans)

    async def stop(self) -> None:
        """Stop listening for connectivity and cancel background work.

        An upload cut off here stays in_flight in the store and is
        recovered by the next start().
        """
        if self._unsubscribe_reachable is not None:
            self._unsubscribe_reachable()
            self._unsubscribe_reachable = None

        tasks = list(self._tasks)
        if self._requeue_task is not None:
            tasks.append(self._requeue_task)
            self._requeue_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def join(self) -> None:
        """Wait for every background drain scheduled so far to finish."""
        # Let triggers queued with call_soon_threadsafe run first
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Subscribers ---

    def on_progress(self, callback: ProgressSubscriber) -> Callable[[], None]:
        """Register callback for record status and progress changes.

        Callbacks run synchronously in registration order. Exceptions they
        raise are logged and never reach the caller of the mutating operation.

        Returns:
            Function that removes the callback
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, event: ProgressEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Progress subscriber failed: id=%s", event.id)

    # --- Public operations ---

    async def enqueue(
        self,
        data: bytes,
        kind: MediaKind | str,
        filename: str = "upload",
    ) -> str:
        """Persist a new upload and start draining if the server is reachable.

        The payload is not validated here; callers check size and type first.

        Args:
            data: Raw media bytes
            kind: MediaKind or its value ("image" / "video")
            filename: Original filename sent to the server

        Returns:
            Queue record ID (UUID)
        """
        payload = UploadPayload(data=data, kind=MediaKind(kind), filename=filename)
        record = UploadRecord.new(payload)
        self._store.put(record)
        logger.info(
            "Upload queued: id=%s, kind=%s, size=%d",
            record.id, payload.kind.value, payload.size,
        )

        if self._monitor.is_reachable():
            self._schedule_drain()
        return record.id

    async def drain(self) -> None:
        """Attempt delivery of every pending record, one at a time.

        Returns immediately when another pass is running or the server is
        unreachable. A failure on one record never stops the rest of the pass,
        but NotConnected from a closed store ends it and propagates.
        """
        if self._draining:
            logger.debug("Drain already in progress, skipping")
            return
        if not self._monitor.is_reachable():
            logger.debug("Server unreachable, skipping drain")
            return

        self._draining = True
        failed: list[UploadRecord] = []
        try:
            pending = self._store.list_by_status(UploadStatus.PENDING)
            logger.info("Draining upload queue: pending=%d", len(pending))

            for record in pending:
                try:
                    result = await self._process(record)
                except NotConnected:
                    raise
                except Exception:
                    logger.exception("Upload processing error: id=%s", record.id)
                    continue
                if result is not None:
                    failed.append(result)
        finally:
            self._draining = False

        if failed and self.auto_requeue:
            self._schedule_requeue(failed)

    async def retry(self, record_id: str) -> None:
        """Move a record back to pending and trigger a drain.

        Raises:
            NotFound: If no record has this id
        """
        record = self._store.get(record_id)
        if record is None:
            raise NotFound(record_id)

        reset = record.with_changes(status=UploadStatus.PENDING, last_error=None, progress=0)
        if not self._store.update(reset):
            raise NotFound(record_id)
        log_status_change(
            audit_log, record_id, record.status.value, UploadStatus.PENDING.value,
            trigger="retry",
        )
        self._schedule_drain()

    async def retry_all_failed(self) -> int:
        """Move every failed record back to pending and trigger one drain.

        Returns:
            Number of records reset
        """
        failed = self._store.list_by_status(UploadStatus.FAILED)
        reset_count = 0
        for record in failed:
            reset = record.with_changes(status=UploadStatus.PENDING, last_error=None, progress=0)
            if self._store.update(reset):
                reset_count += 1

        logger.info("Failed uploads reset for retry: count=%d", reset_count)
        self._schedule_drain()
        return reset_count

    async def cancel(self, record_id: str) -> None:
        """Remove a record from the queue. Unknown ids are ignored."""
        self._store.delete(record_id)
        logger.info("Upload cancelled: id=%s", record_id)

    async def clear(self) -> None:
        """Remove every record from the queue."""
        self._store.clear()
        logger.info("Upload queue cleared")

    async def status(self) -> QueueStatus:
        """Get a snapshot of queue counts."""
        return QueueStatus.from_records(self._store.list_all())

    async def records(self, status: UploadStatus | None = None) -> list[UploadRecord]:
        """List queued records, optionally only those in one status."""
        if status is None:
            return self._store.list_all()
        return self._store.list_by_status(status)

    # --- Drain internals ---

    async def _process(self, record: UploadRecord) -> UploadRecord | None:
        """Send one record.

        Returns:
            The record as persisted in the failed state, or None when it was
            delivered, evicted or cancelled
        """
        record = record.with_changes(status=UploadStatus.IN_FLIGHT, progress=0)
        if not self._store.update(record):
            logger.debug("Upload cancelled before send: id=%s", record.id)
            return None
        self._notify(ProgressEvent.from_record(record, QueueEvent.IN_FLIGHT))

        def report_progress(percent: int) -> None:
            record.progress = max(0, min(100, int(percent)))
            self._notify(ProgressEvent.from_record(record, QueueEvent.PROGRESS))

        def still_queued(error: BaseException, attempt: int) -> bool:
            return self._store.get(record.id) is not None

        started = time.monotonic()
        try:
            media_id = await retry_with_backoff(
                lambda: self._client.send(record.payload, progress=report_progress),
                self.retry_config,
                should_retry=still_queued,
                sleep=self._sleep,
            )
        except Exception as e:
            return self._record_failure(record, e)

        self._store.delete(record.id)
        log_upload_success(
            audit_log, record.id, media_id, (time.monotonic() - started) * 1000.0
        )
        # Completion is reported to subscribers only; the record is already gone
        self._notify(ProgressEvent.from_record(record, QueueEvent.COMPLETED, progress=100))
        return None

    def _record_failure(self, record: UploadRecord, error: Exception) -> UploadRecord | None:
        current = self._store.get(record.id)
        if current is None:
            logger.info("Upload cancelled during transfer: id=%s", record.id)
            return None

        retry_count = current.retry_count + 1
        message = str(error) or type(error).__name__

        if retry_count >= MAX_RETRY_COUNT:
            self._store.delete(record.id)
            log_record_evicted(audit_log, record.id, message, retry_count)
            self._notify(
                ProgressEvent.from_record(
                    current,
                    QueueEvent.EVICTED,
                    progress=0,
                    retry_count=retry_count,
                    last_error=message,
                )
            )
            return None

        failed = current.with_changes(
            status=UploadStatus.FAILED,
            progress=0,
            retry_count=retry_count,
            last_error=message,
        )
        if not self._store.update(failed):
            return None
        log_upload_failed(audit_log, record.id, message, retry_count)
        self._notify(ProgressEvent.from_record(failed, QueueEvent.FAILED))
        return failed

    # --- Scheduling ---

    def _on_reachable(self) -> None:
        """Connectivity callback; may be invoked from another thread."""
        if self._loop is None or self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._schedule_drain()
        else:
            self._loop.call_soon_threadsafe(self._schedule_drain)

    def _schedule_drain(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._drain_in_background())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _drain_in_background(self) -> None:
        try:
            await self.drain()
        except Exception:
            logger.exception("Background drain failed")

    def _schedule_requeue(self, failed: list[UploadRecord]) -> None:
        if self._requeue_task is not None and not self._requeue_task.done():
            return
        attempt = max(record.retry_count for record in failed)
        delay = self.retry_config.delay(attempt)
        logger.info(
            "Requeue scheduled: failed=%d, delay_ms=%.0f", len(failed), delay
        )
        self._requeue_task = asyncio.get_running_loop().create_task(
            self._requeue_after(delay)
        )

    async def _requeue_after(self, delay_ms: float) -> None:
        await self._sleep(delay_ms)
        try:
            await self.retry_all_failed()
        except Exception:
            logger.exception("Scheduled requeue failed")
