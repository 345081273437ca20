# src/remindsync/sync/change_tracker.py

from __future__ import annotations

import threading

from ..reminders.models import AppSettings, SyncState


def dirty_from_settings(settings: AppSettings) -> bool:
    """
    Whether persisted state says there are unsynced local changes.

    Dirty iff a local change was recorded and either nothing ever synced
    successfully, the last attempt was not a success, or the change is newer
    than the last successful sync.
    """
    changed = settings.webdav_last_local_change_time
    if changed is None:
        return False
    try:
        last_ok = SyncState(settings.webdav_last_sync_status or "").is_success
    except ValueError:
        last_ok = False
    if not last_ok:
        return True
    success = settings.webdav_last_success_time
    if success is None:
        return True
    return changed > success


class ChangeTracker:
    """Dirty flag plus a monotonic local-change sequence number."""

    def __init__(self, dirty: bool = False) -> None:
        self._lock = threading.Lock()
        self._dirty = dirty
        self._seq = 0

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    @property
    def sequence(self) -> int:
        with self._lock:
            return self._seq

    def mark(self) -> int:
        """Record a local change; returns the new sequence number."""
        with self._lock:
            self._seq += 1
            self._dirty = True
            return self._seq

    def reset(self, dirty: bool) -> None:
        with self._lock:
            self._dirty = dirty

    def clear_if_unchanged(self, seq: int) -> bool:
        """Clear the dirty flag only if nothing changed since `seq` was read."""
        with self._lock:
            if self._seq != seq:
                return False
            self._dirty = False
            return True
