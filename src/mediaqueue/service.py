"""Sync service wiring the record store, HTTP client, heartbeat and queue manager."""

import asyncio
import logging
from typing import Any

from mediaqueue.config import Settings
from mediaqueue.sync import (
    HeartbeatMonitor,
    HttpTransferClient,
    QueueManager,
    SQLiteRecordStore,
)

logger = logging.getLogger(__name__)


class SyncService:
    """High-level entry point for the upload queue.

    Builds the components from Settings and runs them together. This is
    what the CLI and embedding applications use.

    Example:
        async with SyncService(settings) as service:
            upload_id = await service.manager.enqueue(data, "image", "photo.jpg")
            ...
    """

    def __init__(
        self,
        config: Settings,
        client: HttpTransferClient | None = None,
    ) -> None:
        """Initialize the sync service.

        Args:
            config: Settings instance with all configuration
            client: Optional pre-built transfer client (tests inject one
                backed by httpx.MockTransport)
        """
        self.config = config

        self.store = SQLiteRecordStore(config.queue_db_path)
        self.client = client or HttpTransferClient(
            server_url=config.server_url,
            upload_path=config.upload_path,
            health_path=config.health_path,
            timeout=config.request_timeout,
        )
        self.monitor = HeartbeatMonitor(self.client, interval=config.heartbeat_interval)
        self.manager = QueueManager(
            self.store,
            self.client,
            self.monitor,
            retry_config=config.retry_config(),
            auto_requeue=config.auto_requeue,
        )

        self._running = False
        self._sweep_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    def open(self) -> None:
        """Open the record store without touching the network."""
        self.store.connect()

    async def start(self) -> None:
        """Start the service.

        Recovers interrupted uploads, starts the heartbeat (which triggers a
        drain as soon as the server is reachable) and a periodic sweep that
        picks up records queued by other processes.
        """
        if self._running:
            return

        self.open()
        self._running = True
        recovered = await self.manager.start()
        await self.monitor.start()
        self._sweep_task = asyncio.create_task(self._sweep_worker())

        logger.info(
            "Sync service started: data_dir=%s, server_url=%s, recovered=%d",
            self.config.data_path, self.config.server_url, recovered,
        )

    async def _sweep_worker(self) -> None:
        """Background worker that drains the queue on a fixed interval."""
        while self._running:
            await asyncio.sleep(self.config.sweep_interval)
            try:
                await self.manager.drain()
            except Exception as e:
                logger.error("Sweep drain failed: %s", e)

    async def sync_once(self) -> dict[str, Any]:
        """Run a single drain pass if the server is reachable.

        Does not recover in_flight records: another process (such as a
        running `mediaqueue queue serve`) may be sending them right now.
        Recovery belongs to start().

        Returns:
            Queue status after the pass
        """
        self.open()
        if await self.monitor.check():
            await self.manager.drain()
        await self.manager.join()
        return self.get_status()

    async def stop(self) -> None:
        """Stop the service gracefully and release resources."""
        self._running = False

        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None

        await self.monitor.stop()
        await self.manager.stop()
        await self.client.close()
        self.store.close()

        logger.info("Sync service stopped")

    def get_status(self) -> dict[str, Any]:
        """Get current service status.

        Returns:
            Dictionary with queue counts, connectivity and drain state
        """
        counts = self.store.count_by_status()
        return {
            "running": self._running,
            "reachable": self.monitor.is_reachable(),
            "draining": self.manager.draining,
            "queue": {
                "total": counts.get("total", 0),
                "pending": counts.get("pending", 0),
                "in_flight": counts.get("in_flight", 0),
                "failed": counts.get("failed", 0),
            },
            "server_url": self.config.server_url,
            "data_dir": str(self.config.data_path),
        }

    async def __aenter__(self) -> "SyncService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
