# =============================================================================
# dart_core/offline/push_engine.py
# Replays the mutation queue against the remote store
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from dart_core.logging import get_logger
from dart_core.offline.local_store import LocalStore
from dart_core.offline.mutation_queue import MutationQueue, QueueEntry
from dart_core.offline.remote_store import RemoteErrorKind, RemoteResult, RemoteStore
from dart_core.offline.table_schemas import QueueAction, get_schema

logger = get_logger(__name__)

# Entries that failed this many times are left in the queue but not replayed
DEFAULT_MAX_RETRIES = 5


class FileColumn(NamedTuple):
    """A payload column that may point at a file on the device."""
    source: str     # Column holding the device path
    target: str     # Column receiving the public URL
    bucket: str     # Supabase Storage bucket


FILE_COLUMNS: Dict[str, FileColumn] = {
    "accomplishments": FileColumn("image_url", "image_url", "accomplishments"),
    "saved_reports": FileColumn("file_path", "remote_url", "reports"),
}

StaleFile = Tuple[str, str]     # (bucket, public URL)


def local_file_path(value: Any) -> Optional[str]:
    """Device path held by a column value; None for empty values and URLs."""
    if not isinstance(value, str) or not value:
        return None
    if value.startswith("file://"):
        return value[len("file://"):]
    if "://" in value:
        return None
    return value


@dataclass
class PushReport:
    """Outcome of one push pass."""
    skipped: bool = False
    attempted: int = 0
    pushed: List[int] = field(default_factory=list)
    evicted: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


class PushEngine:
    """
    Drains the mutation queue, oldest entry first, one remote call at a time.

    A pass reads the queue once; entries added while it runs are picked up
    by the next pass. Device files referenced by a payload are uploaded to
    storage before the row is written. The pass never raises.
    """

    def __init__(
        self,
        store: LocalStore,
        queue: MutationQueue,
        remote: RemoteStore,
        connectivity,
        max_retries: Optional[int] = DEFAULT_MAX_RETRIES,
    ):
        """
        Args:
            store: Local store holding the mirrored rows
            queue: Queue to drain
            remote: Remote store receiving the writes
            connectivity: Object exposing ``is_online``
            max_retries: Failed attempts after which an entry is no longer
                replayed; None replays every entry on every pass
        """
        self.store = store
        self.queue = queue
        self.remote = remote
        self.connectivity = connectivity
        self.max_retries = max_retries

    def run(self) -> PushReport:
        report = PushReport()

        if not self.connectivity.is_online:
            logger.debug("Push skipped: offline")
            report.skipped = True
            return report

        try:
            entries = self.queue.drain(max_retries=self.max_retries)
        except Exception as e:
            logger.error(f"Push aborted, could not read queue: {e}")
            return report

        if entries:
            logger.info(f"Pushing {len(entries)} queued operations")

        for entry in entries:
            report.attempted += 1
            try:
                self._push_entry(entry, report)
            except Exception as e:
                logger.error(f"Error pushing queue entry #{entry.id}: {e}", exc_info=True)
                report.failed.append(entry.id)
                self._record_failure(entry, str(e))

        if entries:
            logger.info(
                f"Push complete: {len(report.pushed)} pushed, "
                f"{len(report.evicted)} evicted, {len(report.failed)} kept for retry"
            )
        return report

    def _push_entry(self, entry: QueueEntry, report: PushReport) -> None:
        payload = entry.payload
        upload_failure, stale_files = self._stage_files(entry, payload)
        if upload_failure is not None:
            result = upload_failure
        else:
            result = self._dispatch(entry, payload)

        if result.ok:
            self.queue.remove(entry.id)
            if entry.action is not QueueAction.DELETE:
                self._store_uploaded_url(entry, payload)
                self._mark_synced(entry)
            self._remove_files(stale_files)
            report.pushed.append(entry.id)
            return

        if result.kind is not None and result.kind.is_terminal:
            logger.warning(
                f"Evicting {entry.action.value} {entry.table}:{entry.row_id} "
                f"(#{entry.id}) after {result.kind.value}: {result.message}"
            )
            self.queue.remove(entry.id)
            if entry.action is QueueAction.DELETE and result.kind is RemoteErrorKind.NOT_FOUND:
                self._remove_files(stale_files)
            report.evicted.append(entry.id)
            return

        logger.error(
            f"Push failed for {entry.action.value} {entry.table}:{entry.row_id} "
            f"(#{entry.id}), will retry: {result.message}"
        )
        report.failed.append(entry.id)
        self._record_failure(entry, result.message or "unknown error")

    def _dispatch(self, entry: QueueEntry, payload: Dict[str, Any]) -> RemoteResult:
        schema = get_schema(entry.table)
        remote_payload = schema.to_remote(payload)

        if entry.action is QueueAction.INSERT:
            return self.remote.insert(entry.table, remote_payload)
        if entry.action is QueueAction.UPDATE:
            return self.remote.update(entry.table, remote_payload, entry.row_id)
        return self.remote.delete(entry.table, entry.row_id)

    # =========================================================================
    # FILE STORAGE
    # =========================================================================

    def _stage_files(
        self, entry: QueueEntry, payload: Dict[str, Any]
    ) -> Tuple[Optional[RemoteResult], List[StaleFile]]:
        """
        Upload the device file a payload points at and rewrite the payload
        to carry its public URL.

        Only the decoded ``payload`` is rewritten; the queued entry keeps its
        original data, so a retry uploads again under the same object name.

        Returns:
            (failed upload result or None, remote files to remove once the
            row write succeeds)
        """
        column = FILE_COLUMNS.get(entry.table)
        if column is None:
            return None, []

        if entry.action is QueueAction.DELETE:
            url = payload.get(column.target)
            return None, [(column.bucket, url)] if url else []

        path = local_file_path(payload.get(column.source))
        if path is None:
            return None, []

        previous_url = self._current_remote_url(entry, column)
        object_name = f"{self._owner(entry, payload)}/{entry.row_id}_{entry.id}{Path(path).suffix}"
        uploaded = self.remote.upload_file(column.bucket, object_name, path)
        if not uploaded.ok:
            return uploaded, []

        url = uploaded.data[0]["url"]
        payload[column.target] = url
        if previous_url and previous_url != url:
            return None, [(column.bucket, previous_url)]
        return None, []

    def _current_remote_url(self, entry: QueueEntry, column: FileColumn) -> Optional[str]:
        """URL the remote row points at before an UPDATE replaces its file."""
        if entry.action is not QueueAction.UPDATE or column.source != column.target:
            return None
        current = self.remote.get_row(entry.table, entry.row_id)
        if not current.ok or not current.data:
            return None
        url = current.data[0].get(column.target)
        return url if local_file_path(url) is None else None

    def _owner(self, entry: QueueEntry, payload: Dict[str, Any]) -> str:
        owner = payload.get("user_id")
        if owner is None:
            row = self.store.get_by_id(entry.table, entry.row_id)
            owner = row.get("user_id") if row else None
        return owner or "unknown"

    def _remove_files(self, stale_files: List[StaleFile]) -> None:
        for bucket, url in stale_files:
            removed = self.remote.remove_file(bucket, url)
            if not removed.ok:
                logger.warning(f"Could not remove {url} from {bucket}: {removed.message}")

    def _store_uploaded_url(self, entry: QueueEntry, payload: Dict[str, Any]) -> None:
        column = FILE_COLUMNS.get(entry.table)
        if column is None or column.source == column.target or not payload.get(column.target):
            return
        self.store.execute(
            f"UPDATE {entry.table} SET {column.target} = ? WHERE id = ?",
            [payload[column.target], entry.row_id],
        )

    # =========================================================================
    # QUEUE BOOKKEEPING
    # =========================================================================

    def _mark_synced(self, entry: QueueEntry) -> None:
        if "is_synced" not in self.store.table_columns(entry.table):
            return
        # A newer local write for the same row keeps it unsynced
        still_queued = self.store.query_first(
            "SELECT 1 AS queued FROM sync_queue WHERE table_name = ? AND row_id = ? LIMIT 1",
            [entry.table, entry.row_id],
        )
        if still_queued is None:
            self.store.execute(
                f"UPDATE {entry.table} SET is_synced = 1 WHERE id = ?", [entry.row_id]
            )

    def _record_failure(self, entry: QueueEntry, message: str) -> None:
        try:
            self.queue.record_failure(entry.id, message)
        except Exception as e:
            logger.error(f"Could not record failure for queue entry #{entry.id}: {e}")
