# src/remindsync/sync/remote_lock.py

"""
Advisory cross-device lock over a single remote JSON file.

The lock is honored by convention only: the storage cannot enforce it. A
holder that crashed is reclaimed once the TTL has passed.
"""

from __future__ import annotations

import contextlib
import json
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from ..errors import LockContention, TransportError
from .webdav import LOCK_FILE_NAME, WebDavClient

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = 120

# Values below this are epoch seconds, not milliseconds.
_MILLIS_THRESHOLD = 1_000_000_000_000


def _epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True, frozen=True)
class LockInfo:
    device_id: str
    expires_at: int  # epoch millis

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at <= now_ms

    def to_json(self) -> bytes:
        return json.dumps({"deviceId": self.device_id, "expiresAt": self.expires_at}).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> LockInfo | None:
        """Parse a lock file; anything unreadable counts as no lock."""
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        device_id = data.get("deviceId", data.get("device_id"))
        expires = data.get("expiresAt", data.get("expires_at"))
        if not isinstance(device_id, str) or isinstance(expires, bool):
            return None
        if not isinstance(expires, (int, float)):
            return None
        expires_ms = int(expires)
        if expires_ms < _MILLIS_THRESHOLD:
            expires_ms *= 1000
        return cls(device_id=device_id, expires_at=expires_ms)


class RemoteLock:
    def __init__(
        self,
        client: WebDavClient,
        device_id: str,
        *,
        ttl_seconds: int = LOCK_TTL_SECONDS,
        now_ms: Callable[[], int] = _epoch_millis,
    ) -> None:
        self._client = client
        self._device_id = device_id
        self._ttl_ms = int(ttl_seconds) * 1000
        self._now_ms = now_ms

    def read(self) -> LockInfo | None:
        """
        Current lock, or None if absent or unreadable.

        A failed GET raises TransportError: an unknown lock state is not an
        absent lock.
        """
        raw = self._client.get_bytes(LOCK_FILE_NAME)
        if raw is None:
            return None
        return LockInfo.from_json(raw)

    def try_acquire(self) -> bool:
        """
        False only when a live lock belongs to another device.
        Otherwise writes a fresh lock for this device. TransportError if the
        lock cannot be read or written; nothing is written after a failed read.
        """
        now = self._now_ms()
        existing = self.read()
        if existing is not None and not existing.is_expired(now) and existing.device_id != self._device_id:
            logger.info(
                "Remote lock held by %s until %s; skipping", existing.device_id, existing.expires_at
            )
            return False

        info = LockInfo(device_id=self._device_id, expires_at=now + self._ttl_ms)
        self._client.put_bytes(LOCK_FILE_NAME, info.to_json(), content_type="application/json")
        logger.debug("Remote lock acquired by %s", self._device_id)
        return True

    def release(self) -> None:
        """Best-effort delete; a missing lock file is fine."""
        try:
            self._client.delete(LOCK_FILE_NAME)
        except TransportError as e:
            logger.warning("Remote lock release failed (expires on its own): %s", e)

    @contextlib.contextmanager
    def hold(self) -> Iterator[None]:
        """Raise LockContention if another device holds the lock; release on exit."""
        if not self.try_acquire():
            existing = self.read()
            raise LockContention(existing.device_id if existing else "unknown")
        try:
            yield
        finally:
            self.release()
