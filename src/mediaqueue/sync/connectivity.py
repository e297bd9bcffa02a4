"""Connectivity tracking with edge-triggered "became reachable" events."""

import asyncio
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

ReachableCallback = Callable[[], None]


class ConnectivityMonitor:
    """Tracks whether the upload server can be reached.

    Platform signals (OS reachability callbacks, browser online/offline
    events, a heartbeat) are fed in through set_reachable(). Subscribers
    registered with on_reachable() fire once per offline -> online edge,
    never while already online.

    Example:
        monitor = ConnectivityMonitor()
        unsubscribe = monitor.on_reachable(lambda: print("back online"))
        monitor.set_reachable(True)
    """

    def __init__(self, reachable: bool = False) -> None:
        self._reachable = reachable
        self._reachable_callbacks: list[ReachableCallback] = []

    def is_reachable(self) -> bool:
        return self._reachable

    def on_reachable(self, callback: ReachableCallback) -> Callable[[], None]:
        """Register callback for offline -> online transitions.

        Args:
            callback: Zero-argument function called on each transition

        Returns:
            Function that removes the callback
        """
        self._reachable_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._reachable_callbacks:
                self._reachable_callbacks.remove(callback)

        return unsubscribe

    def set_reachable(self, reachable: bool) -> None:
        """Record the current reachability and notify on an upward edge."""
        was_reachable = self._reachable
        self._reachable = reachable

        if reachable == was_reachable:
            return

        logger.info("Connectivity changed: reachable=%s", reachable)
        if reachable:
            self._notify_reachable()

    def _notify_reachable(self) -> None:
        for callback in list(self._reachable_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Reachable callback failed")


class HealthCheck(Protocol):
    async def check_server(self) -> bool: ...


class HeartbeatMonitor(ConnectivityMonitor):
    """ConnectivityMonitor driven by periodic health checks against the server.

    Runs a background task that calls ``client.check_server()`` every
    ``interval`` seconds and feeds the result into set_reachable().
    """

    def __init__(self, client: HealthCheck, interval: float = 15.0) -> None:
        """Initialize the heartbeat monitor.

        Args:
            client: Object exposing ``async check_server() -> bool``
            interval: Seconds between health checks
        """
        super().__init__(reachable=False)
        self._client = client
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check(self) -> bool:
        """Run one health check and update reachability."""
        try:
            reachable = await self._client.check_server()
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            reachable = False
        self.set_reachable(reachable)
        return reachable

    async def start(self) -> None:
        """Check once, then keep checking in the background."""
        if self.running:
            return
        await self.check()
        self._task = asyncio.create_task(self._heartbeat_loop())

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.check()

    async def stop(self) -> None:
        """Cancel the background health checks."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
