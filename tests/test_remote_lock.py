# tests/test_remote_lock.py

from __future__ import annotations

import json

import pytest

from remindsync.errors import LockContention, TransportError
from remindsync.sync.remote_lock import LockInfo, RemoteLock

from .fakes import FakeWebDavServer

NOW_MS = 1_800_000_000_000


def _lock(server: FakeWebDavServer, device_id: str, now_ms: int = NOW_MS) -> RemoteLock:
    return RemoteLock(server.client(), device_id, now_ms=lambda: now_ms)


def test_acquire_writes_lock_with_ttl(server: FakeWebDavServer) -> None:
    lock = _lock(server, "device-a")
    assert lock.try_acquire()

    data = json.loads(server.get("remindsync.lock") or b"")
    assert data == {"deviceId": "device-a", "expiresAt": NOW_MS + 120_000}


def test_live_lock_of_other_device_blocks(server: FakeWebDavServer) -> None:
    server.put("remindsync.lock", LockInfo("device-b", NOW_MS + 60_000).to_json())
    lock = _lock(server, "device-a")

    assert not lock.try_acquire()
    with pytest.raises(LockContention) as excinfo:
        with lock.hold():
            pass
    assert excinfo.value.holder_device_id == "device-b"
    # The other device's lock is left alone.
    assert LockInfo.from_json(server.get("remindsync.lock") or b"") == LockInfo("device-b", NOW_MS + 60_000)


def test_expired_lock_is_reclaimed(server: FakeWebDavServer) -> None:
    server.put("remindsync.lock", LockInfo("device-b", NOW_MS - 1).to_json())
    assert _lock(server, "device-a").try_acquire()
    info = LockInfo.from_json(server.get("remindsync.lock") or b"")
    assert info is not None and info.device_id == "device-a"


def test_own_lock_is_refreshed(server: FakeWebDavServer) -> None:
    server.put("remindsync.lock", LockInfo("device-a", NOW_MS + 5_000).to_json())
    assert _lock(server, "device-a").try_acquire()


def test_unreadable_lock_counts_as_absent(server: FakeWebDavServer) -> None:
    server.put("remindsync.lock", b"not json")
    assert _lock(server, "device-a").try_acquire()


def test_failed_lock_read_never_overwrites_live_lock(server: FakeWebDavServer) -> None:
    held = LockInfo("device-b", NOW_MS + 60_000)
    server.put("remindsync.lock", held.to_json())
    server.fail_methods = {"GET"}
    lock = _lock(server, "device-a")

    with pytest.raises(TransportError):
        lock.try_acquire()
    with pytest.raises(TransportError):
        with lock.hold():
            pass

    assert "PUT" not in server.methods()
    assert LockInfo.from_json(server.get("remindsync.lock") or b"") == held


def test_hold_releases_on_exit_even_on_error(server: FakeWebDavServer) -> None:
    lock = _lock(server, "device-a")
    with pytest.raises(RuntimeError):
        with lock.hold():
            assert server.get("remindsync.lock") is not None
            raise RuntimeError("merge failed")
    assert server.get("remindsync.lock") is None


def test_release_failure_is_swallowed(server: FakeWebDavServer) -> None:
    lock = _lock(server, "device-a")
    assert lock.try_acquire()
    server.fail_methods = {"DELETE"}
    lock.release()
    assert server.get("remindsync.lock") is not None


def test_lock_info_accepts_seconds_and_snake_case() -> None:
    info = LockInfo.from_json(b'{"device_id": "x", "expires_at": 1800000000}')
    assert info == LockInfo("x", 1_800_000_000_000)
    assert LockInfo.from_json(b'{"deviceId": "x"}') is None
    assert LockInfo.from_json(b"[1, 2]") is None
