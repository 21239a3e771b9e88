# =============================================================================
# dart_core/offline/mutation_queue.py
# Durable queue of local writes awaiting the remote store
# =============================================================================
"""
MutationQueue - ordered log of pending INSERT/UPDATE/DELETE operations.

Entries live in the ``sync_queue`` table of the local store. They are
replayed strictly by sequence id and deleted once the remote write is
confirmed (or judged unrecoverable). The queue never merges or reorders
entries: three updates to one row produce three remote round-trips.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from dart_core.errors import PayloadValidationError
from dart_core.logging import get_logger
from dart_core.offline.local_store import LocalStore, utc_now_iso
from dart_core.offline.table_schemas import QueueAction, clean_payload, get_schema

logger = get_logger(__name__)

PENDING = "PENDING"


@dataclass(frozen=True)
class QueueEntry:
    """One pending write, as read back from the queue."""
    id: int
    table: str
    row_id: Optional[str]
    action: QueueAction
    raw_data: Optional[str]
    status: str = PENDING
    retry_count: int = 0
    last_error: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def payload(self) -> Dict[str, Any]:
        """Decoded payload ({} when the entry carries none)."""
        return json.loads(self.raw_data) if self.raw_data else {}


class MutationQueue:
    """Append / drain / remove access to the sync_queue table."""

    def __init__(self, store: LocalStore):
        self.store = store

    def enqueue(
        self,
        table: str,
        row_id: Optional[str],
        action: Union[QueueAction, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Append a PENDING entry.

        Args:
            table: Mirrored table name
            row_id: Target row id; may be None for an INSERT whose payload
                carries the id
            action: INSERT, UPDATE or DELETE
            payload: Full row for INSERT/UPDATE, optional for DELETE

        Returns:
            Sequence id of the new entry

        Raises:
            PayloadValidationError: payload does not match the table schema
        """
        action = QueueAction(action)
        schema = get_schema(table)
        payload = clean_payload(payload)
        schema.validate(action, payload)

        if row_id is None and payload is not None:
            row_id = payload.get("id")
        if row_id is None:
            raise PayloadValidationError(
                f"{action.value} on {table} needs a row id", table=table
            )

        try:
            data = json.dumps(payload) if payload is not None else None
        except (TypeError, ValueError) as e:
            raise PayloadValidationError(
                f"Payload for {table} is not JSON serializable: {e}", table=table
            )

        entry_id = self.store.execute_insert(
            """
            INSERT INTO sync_queue (table_name, row_id, action, data, status, retry_count, created_at)
            VALUES (?, ?, ?, ?, ?, 0, ?)
            """,
            [table, str(row_id), action.value, data, PENDING, utc_now_iso()],
        )
        logger.debug(f"Queued {action.value} {table}:{row_id} as #{entry_id}")
        return entry_id

    def drain(self, max_retries: Optional[int] = None) -> List[QueueEntry]:
        """
        PENDING entries, oldest first.

        Args:
            max_retries: Leave out entries that already failed this many
                times (None returns every PENDING entry)
        """
        sql = "SELECT * FROM sync_queue WHERE status = ?"
        params: List[Any] = [PENDING]
        if max_retries is not None:
            sql += " AND COALESCE(retry_count, 0) < ?"
            params.append(max_retries)
        rows = self.store.query_all(sql + " ORDER BY id ASC", params)
        return [self._to_entry(row) for row in rows]

    def remove(self, entry_id: int) -> None:
        """Delete an entry; removing a missing id is a no-op."""
        self.store.execute("DELETE FROM sync_queue WHERE id = ?", [entry_id])

    def record_failure(self, entry_id: int, message: str) -> None:
        """Count a failed attempt without touching the entry's payload."""
        self.store.execute(
            "UPDATE sync_queue SET retry_count = retry_count + 1, last_error = ? WHERE id = ?",
            [message[:500], entry_id],
        )

    def exhausted_count(self, max_retries: int) -> int:
        """PENDING entries that reached the retry limit."""
        row = self.store.query_first(
            "SELECT COUNT(*) AS count FROM sync_queue WHERE status = ? AND retry_count >= ?",
            [PENDING, max_retries],
        )
        return row["count"] if row else 0

    def reset_retries(self) -> int:
        """Clear retry counters so every PENDING entry is replayed again."""
        count = self.store.execute(
            "UPDATE sync_queue SET retry_count = 0 WHERE status = ? AND retry_count > 0",
            [PENDING],
        )
        if count:
            logger.info(f"Retry counters reset on {count} queue entries")
        return count

    def pending_count(self) -> int:
        row = self.store.query_first(
            "SELECT COUNT(*) AS count FROM sync_queue WHERE status = ?", [PENDING]
        )
        return row["count"] if row else 0

    def pending_row_keys(self) -> Set[Tuple[str, str]]:
        """(table, row_id) pairs that still have queued writes."""
        rows = self.store.query_all(
            "SELECT table_name, row_id FROM sync_queue WHERE status = ?", [PENDING]
        )
        return {(row["table_name"], row["row_id"]) for row in rows}

    @staticmethod
    def _to_entry(row: Dict[str, Any]) -> QueueEntry:
        return QueueEntry(
            id=row["id"],
            table=row["table_name"],
            row_id=row["row_id"],
            action=QueueAction(row["action"]),
            raw_data=row["data"],
            status=row["status"],
            retry_count=row.get("retry_count") or 0,
            last_error=row.get("last_error"),
            created_at=row["created_at"],
        )
