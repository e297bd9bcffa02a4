"""Tests for connectivity tracking."""

import asyncio

import pytest

from mediaqueue.sync import ConnectivityMonitor, HeartbeatMonitor


class FakeHealthClient:
    def __init__(self, results):
        self.results = list(results)
        self.checks = 0

    async def check_server(self):
        self.checks += 1
        result = self.results.pop(0) if self.results else True
        if isinstance(result, Exception):
            raise result
        return result


class TestConnectivityMonitor:
    """Tests for ConnectivityMonitor."""

    def test_starts_unreachable_by_default(self):
        assert ConnectivityMonitor().is_reachable() is False
        assert ConnectivityMonitor(reachable=True).is_reachable() is True

    def test_notifies_on_offline_to_online_edge(self):
        monitor = ConnectivityMonitor()
        events = []
        monitor.on_reachable(lambda: events.append("up"))

        monitor.set_reachable(True)

        assert events == ["up"]
        assert monitor.is_reachable() is True

    def test_no_notification_while_already_reachable(self):
        monitor = ConnectivityMonitor()
        events = []
        monitor.on_reachable(lambda: events.append("up"))

        monitor.set_reachable(True)
        monitor.set_reachable(True)
        monitor.set_reachable(True)

        assert events == ["up"]

    def test_going_offline_does_not_notify(self):
        monitor = ConnectivityMonitor(reachable=True)
        events = []
        monitor.on_reachable(lambda: events.append("up"))

        monitor.set_reachable(False)

        assert events == []
        assert monitor.is_reachable() is False

    def test_each_new_edge_notifies_again(self):
        monitor = ConnectivityMonitor()
        events = []
        monitor.on_reachable(lambda: events.append("up"))

        for _ in range(3):
            monitor.set_reachable(True)
            monitor.set_reachable(False)

        assert events == ["up", "up", "up"]

    def test_unsubscribe_stops_notifications(self):
        monitor = ConnectivityMonitor()
        events = []
        unsubscribe = monitor.on_reachable(lambda: events.append("up"))

        unsubscribe()
        unsubscribe()
        monitor.set_reachable(True)

        assert events == []

    def test_failing_callback_does_not_block_others(self):
        monitor = ConnectivityMonitor()
        events = []

        def broken():
            raise RuntimeError("subscriber bug")

        monitor.on_reachable(broken)
        monitor.on_reachable(lambda: events.append("up"))

        monitor.set_reachable(True)

        assert events == ["up"]
        assert monitor.is_reachable() is True


class TestHeartbeatMonitor:
    """Tests for HeartbeatMonitor."""

    @pytest.mark.asyncio
    async def test_check_updates_reachability(self):
        monitor = HeartbeatMonitor(FakeHealthClient([True, False]))
        events = []
        monitor.on_reachable(lambda: events.append("up"))

        assert await monitor.check() is True
        assert monitor.is_reachable() is True
        assert await monitor.check() is False
        assert monitor.is_reachable() is False
        assert events == ["up"]

    @pytest.mark.asyncio
    async def test_check_error_counts_as_unreachable(self):
        monitor = HeartbeatMonitor(FakeHealthClient([True, OSError("network down")]))

        await monitor.check()
        result = await monitor.check()

        assert result is False
        assert monitor.is_reachable() is False

    @pytest.mark.asyncio
    async def test_start_checks_immediately_and_stop_cancels(self):
        client = FakeHealthClient([True])
        monitor = HeartbeatMonitor(client, interval=3600)

        await monitor.start()

        assert client.checks == 1
        assert monitor.is_reachable() is True
        assert monitor.running is True

        await monitor.stop()

        assert monitor.running is False

    @pytest.mark.asyncio
    async def test_loop_keeps_checking(self):
        client = FakeHealthClient([False, False, True])
        monitor = HeartbeatMonitor(client, interval=0.01)
        became_reachable = asyncio.Event()
        monitor.on_reachable(became_reachable.set)

        await monitor.start()
        await asyncio.wait_for(became_reachable.wait(), timeout=2)
        await monitor.stop()

        assert client.checks >= 3
