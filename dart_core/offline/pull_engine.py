# =============================================================================
# dart_core/offline/pull_engine.py
# Fetches remote changes since the last watermark into the local store
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from dart_core.errors import RemoteError
from dart_core.logging import get_logger
from dart_core.offline.local_store import WATERMARK_KEY, LocalStore, utc_now_iso
from dart_core.offline.mutation_queue import MutationQueue
from dart_core.offline.remote_store import RemoteStore
from dart_core.offline.table_schemas import MIRRORED_TABLES, TableSchema, get_schema

logger = get_logger(__name__)

EPOCH = "1970-01-01T00:00:00+00:00"


def to_utc(value: Any) -> Optional[pd.Timestamp]:
    """Parse an ISO-ish timestamp into a UTC pandas Timestamp (None if unparsable)."""
    if value is None or value == "":
        return None
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError):
        return None
    if ts is pd.NaT:
        return None
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


@dataclass
class PullReport:
    """Outcome of one pull pass."""
    skipped: bool = False
    pulled: Dict[str, int] = field(default_factory=dict)
    failed_tables: List[str] = field(default_factory=list)
    previous_watermark: Optional[str] = None
    watermark: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.skipped and not self.failed_tables

    @property
    def total(self) -> int:
        return sum(self.pulled.values())


class PullEngine:
    """
    Merges rows changed remotely since the stored watermark.

    Remote wins: a returned row overwrites the local copy, except for
    device-only columns such as a report's file path. The single global
    watermark advances only when every table pulled cleanly.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        connectivity,
        queue: Optional[MutationQueue] = None,
        tables: Sequence[str] = MIRRORED_TABLES,
        protect_pending: bool = False,
    ):
        """
        Args:
            store: Local store receiving the rows
            remote: Remote store to read from
            connectivity: Object exposing ``is_online``
            queue: Needed only with ``protect_pending``
            tables: Mirrored tables, pulled in this order
            protect_pending: Skip rows that still have queued local writes
        """
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.queue = queue or MutationQueue(store)
        self.tables = tuple(tables)
        self.protect_pending = protect_pending

    @property
    def watermark(self) -> str:
        return self.store.get_setting(WATERMARK_KEY) or EPOCH

    def run(self, user_id: str) -> PullReport:
        report = PullReport()

        if not self.connectivity.is_online:
            logger.debug("Pull skipped: offline")
            report.skipped = True
            return report

        try:
            since = self.watermark
            started_at = utc_now_iso()
            pending = self.queue.pending_row_keys() if self.protect_pending else set()
        except Exception as e:
            logger.error(f"Pull aborted, could not read sync state: {e}")
            report.failed_tables = list(self.tables)
            return report

        report.previous_watermark = since
        newest = to_utc(since)

        for table in self.tables:
            try:
                count, table_newest = self._pull_table(table, user_id, since, pending)
            except Exception as e:
                logger.error(f"Error pulling {table}: {e}", exc_info=True)
                report.failed_tables.append(table)
                continue
            report.pulled[table] = count
            if table_newest is not None and (newest is None or table_newest > newest):
                newest = table_newest

        if report.failed_tables:
            logger.warning(
                f"Pull incomplete ({', '.join(report.failed_tables)} failed); "
                f"watermark kept at {since}"
            )
            report.watermark = since
            return report

        report.watermark = self._advance_watermark(started_at, newest)
        logger.info(f"Pulled {report.total} rows; watermark now {report.watermark}")
        return report

    def _pull_table(self, table: str, user_id: str, since: str, pending: set):
        schema = get_schema(table)
        result = self.remote.select_changed(
            table, schema.owner_column, user_id, schema.change_column, since
        )
        if not result.ok:
            raise RemoteError(result.message or "select failed", kind=result.kind, table=table)

        has_sync_flag = "is_synced" in self.store.table_columns(table)
        newest = None
        count = 0

        with self.store.transaction():
            for row in result.data:
                changed = to_utc(row.get(schema.change_column))
                if changed is not None and (newest is None or changed > newest):
                    newest = changed

                if (table, str(row.get("id"))) in pending:
                    logger.debug(f"Keeping queued local copy of {table}:{row.get('id')}")
                    continue

                local_row = self._to_local(schema, row)
                if has_sync_flag:
                    local_row["is_synced"] = 1
                self.store.upsert(table, local_row)
                count += 1

        if count:
            logger.debug(f"Pulled {count} rows into {table}")
        return count, newest

    def _to_local(self, schema: TableSchema, row: Dict[str, Any]) -> Dict[str, Any]:
        # Device-only columns are never taken from the remote copy
        local_row = {k: v for k, v in row.items() if k not in schema.local_only}
        if schema.name == "saved_reports":
            existing = self.store.get_by_id(schema.name, local_row.get("id"))
            if existing is None or not existing.get("file_path"):
                # No file on this device; open the remote copy
                local_row["file_path"] = local_row.get("remote_url")
        return local_row

    def _advance_watermark(self, started_at: str, newest: Optional[pd.Timestamp]) -> str:
        candidates = [ts for ts in (to_utc(self.watermark), to_utc(started_at), newest) if ts is not None]
        watermark = max(candidates).isoformat()
        self.store.set_setting(WATERMARK_KEY, watermark)
        return watermark
