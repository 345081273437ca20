# src/remindsync/sync/merger.py

"""
Snapshot merge.

Runs only while the remote lock is held:
- no remote snapshot yet: upload the local one (first sync)
- otherwise: download, reconcile row by row, re-export, upload

Reconciliation is whole-row last-writer-wins per id. The compare timestamp of
a row is updated_at, else deleted_at, else a per-table fallback column;
ties and unparseable timestamps keep the local row.
"""

from __future__ import annotations

import functools
import logging
import tempfile
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.ports import SyncRepo
from ..reminders.models import SyncState
from ..reminders.store import SYNC_TABLES, read_snapshot_rows
from ..timeutil import parse_datetime_any
from .remote_lock import RemoteLock
from .webdav import REMOTE_DB_NAME, WebDavClient

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

FALLBACK_TIME_COLUMNS: dict[str, str] = {
    "tasks": "created_at",
    "recurring_tasks": "created_at",
    "reminder_records": "trigger_time",
}


@dataclass(slots=True)
class MergeReport:
    # table -> number of rows taken from the remote copy
    pulled: dict[str, int] = field(default_factory=dict)

    @property
    def total_pulled(self) -> int:
        return sum(self.pulled.values())


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, bytes):
        return None
    return str(value)


def compare_time(row: Row, fallback_column: str) -> datetime | None:
    for column in ("updated_at", "deleted_at"):
        text = _as_text(row.get(column))
        if text:
            return parse_datetime_any(text)
    return parse_datetime_any(_as_text(row.get(fallback_column)))


def choose_row(local: Row | None, remote: Row | None, fallback_column: str) -> Row | None:
    """Pick the surviving version of one row; the local copy wins ties."""
    if local is None:
        return remote
    if remote is None:
        return local
    lt = compare_time(local, fallback_column)
    rt = compare_time(remote, fallback_column)
    if lt is not None and rt is not None:
        return remote if rt > lt else local
    if lt is None and rt is not None:
        return remote
    return local


def merge_rows(
    local_rows: list[dict[str, Any]],
    remote_rows: list[dict[str, Any]],
    fallback_column: str,
) -> list[dict[str, Any]]:
    """Rows of the remote copy that beat (or are missing from) the local copy."""
    local_by_id = {str(r["id"]): r for r in local_rows if r.get("id") is not None}
    winners: list[dict[str, Any]] = []
    for remote in remote_rows:
        if remote.get("id") is None:
            continue
        local = local_by_id.get(str(remote["id"]))
        if choose_row(local, remote, fallback_column) is remote:
            winners.append(remote)
    return winners


def merge_snapshot(store: SyncRepo, remote_path: Path) -> MergeReport:
    """
    Reconcile a downloaded snapshot into the local store.

    Only rows won by the remote copy are written; local winners are already in
    place. Each table is read, decided and written in one store transaction,
    so a local edit committed meanwhile is either seen or lands afterwards.
    """
    report = MergeReport()
    for table in SYNC_TABLES:
        fallback = FALLBACK_TIME_COLUMNS[table]
        remote_rows = read_snapshot_rows(remote_path, table)
        report.pulled[table] = store.merge_rows_into(
            table,
            remote_rows,
            functools.partial(merge_rows, fallback_column=fallback),
        )
    logger.info("Merged remote snapshot: pulled=%s", report.pulled)
    return report


def sync_once(
    store: SyncRepo,
    client: WebDavClient,
    lock: RemoteLock,
    *,
    tmp_dir: str | Path | None = None,
) -> SyncState:
    """
    One full attempt under the remote lock.

    Raises LockContention when another device holds the lock, TransportError
    or StoreError on failure. A failure before the final PUT leaves the remote
    copy untouched. Temporary files are always removed.
    """
    with lock.hold(), tempfile.TemporaryDirectory(prefix="remindsync-", dir=tmp_dir) as work:
        work_dir = Path(work)
        snapshot = work_dir / f"snapshot-{uuid.uuid4().hex}.db"

        if not client.exists(REMOTE_DB_NAME):
            store.export_snapshot(snapshot)
            client.upload(REMOTE_DB_NAME, snapshot)
            logger.info("First sync: uploaded local snapshot")
            return SyncState.FIRST_SYNC

        remote = work_dir / f"remote-{uuid.uuid4().hex}.db"
        client.download(REMOTE_DB_NAME, remote)
        merge_snapshot(store, remote)
        store.export_snapshot(snapshot)
        client.upload(REMOTE_DB_NAME, snapshot)
        return SyncState.SUCCESS
