"""Shared fixtures for mediaqueue tests.

Provides:
- store: connected in-memory record store
- sqlite_store: connected SQLite record store in a temp directory
- client: FakeTransferClient recording every send
- sleeps / fake_sleep: millisecond sleep that returns immediately
- make_record: factory for pending upload records
"""

import asyncio

import pytest

from mediaqueue.config import get_settings
from mediaqueue.sync import (
    ConnectivityMonitor,
    MediaKind,
    MemoryRecordStore,
    QueueManager,
    SQLiteRecordStore,
    TransferFailed,
    UploadPayload,
    UploadRecord,
)


class FakeTransferClient:
    """Transfer client double.

    Args:
        fail_times: Number of initial sends that fail; None fails every send
        fail_filenames: Filenames whose sends always fail
        gate: Optional event every send waits on before completing
        report_progress: Call the progress callback with 50 before finishing
    """

    def __init__(
        self,
        fail_times: int | None = 0,
        fail_filenames: set[str] | None = None,
        gate: asyncio.Event | None = None,
        report_progress: bool = False,
    ) -> None:
        self.fail_times = fail_times
        self.fail_filenames = fail_filenames or set()
        self.gate = gate
        self.report_progress = report_progress
        self.calls: list[UploadPayload] = []
        self.started = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def send(self, payload, progress=None):
        self.calls.append(payload)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.report_progress and progress:
                progress(50)
            if payload.filename in self.fail_filenames:
                raise TransferFailed("Server error: 500", status_code=500)
            if self.fail_times is None or len(self.calls) <= self.fail_times:
                raise TransferFailed("Server error: 503", status_code=503)
            return f"media-{len(self.calls)}"
        finally:
            self.active -= 1


@pytest.fixture
def store():
    store = MemoryRecordStore()
    store.connect()
    yield store
    store.close()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteRecordStore(tmp_path / "queue.db")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def client():
    return FakeTransferClient()


@pytest.fixture
def make_client():
    return FakeTransferClient


@pytest.fixture
def monitor():
    return ConnectivityMonitor(reachable=True)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def sleep(delay_ms: float) -> None:
        sleeps.append(delay_ms)

    return sleep


@pytest.fixture
def make_record():
    def factory(filename: str = "photo.jpg", kind: MediaKind = MediaKind.IMAGE, **changes):
        payload = UploadPayload(data=b"\xff\xd8\xff" + filename.encode(), kind=kind, filename=filename)
        return UploadRecord.new(payload).with_changes(**changes)

    return factory


@pytest.fixture
def make_manager(store, monitor, fake_sleep):
    def factory(client, **kwargs):
        kwargs.setdefault("sleep", fake_sleep)
        return QueueManager(store, client, kwargs.pop("monitor", monitor), **kwargs)

    return factory


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temp data dir with no config file."""
    monkeypatch.setenv("MEDIAQUEUE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MEDIAQUEUE_CONFIG_FILE", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("MEDIAQUEUE_SERVER_URL", "http://127.0.0.1:9")
    get_settings.cache_clear()
    yield tmp_path / "data"
    get_settings.cache_clear()
