# src/remindsync/errors.py

"""
Error taxonomy.

- ValidationError: a recurrence spec or user input was rejected before persistence.
- StoreError: local SQLite failure; the operation is aborted, nothing changed.
- TransportError: WebDAV/HTTP failure (timeouts included); aborts the current sync attempt only.
- LockContention: the remote lock is held by another device; a normal "retry later" outcome.
"""

from __future__ import annotations


class RemindSyncError(Exception):
    """Base class for all application errors."""


class ValidationError(RemindSyncError, ValueError):
    pass


class StoreError(RemindSyncError):
    pass


class TransportError(RemindSyncError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LockContention(RemindSyncError):
    def __init__(self, holder_device_id: str) -> None:
        super().__init__(f"remote lock is held by device {holder_device_id}")
        self.holder_device_id = holder_device_id
