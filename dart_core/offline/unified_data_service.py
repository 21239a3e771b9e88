# =============================================================================
# dart_core/offline/unified_data_service.py
# Unified Data Service - local writes + queued sync for the screens
# =============================================================================
"""
UnifiedDataService - the data API screens use.

Every write goes to the local store first and is queued for the remote store
in the same transaction, then a sync is triggered without waiting for it.
Reads always come from the local store.

Usage:
------
service = UnifiedDataService(store, queue, engine)

task = service.save_accomplishment(user_id, "2026-03-02", "Inspected panel A")
service.clock_out(attendance_id)

print(service.pending_sync_count)
"""

from __future__ import annotations
import json
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from dart_core.errors import DuplicateRecordError
from dart_core.logging import get_logger
from dart_core.offline.local_store import LocalStore, utc_now_iso
from dart_core.offline.mutation_queue import MutationQueue
from dart_core.offline.table_schemas import QueueAction, clean_payload, get_schema

logger = get_logger(__name__)


def generate_id() -> str:
    """Client-generated primary key, so inserts can be queued while offline."""
    return str(uuid.uuid4())


def _local_values(row: Dict[str, Any]) -> List[Any]:
    return [json.dumps(v) if isinstance(v, (dict, list)) else v for v in row.values()]


class UnifiedDataService:
    """
    Local-first writes with queued replication.

    Attributes:
        store: Local store all reads and writes go through
        queue: Mutation queue receiving one entry per write
        engine: Sync engine triggered after each write (optional)
    """

    def __init__(self, store: LocalStore, queue: MutationQueue, engine=None):
        self.store = store
        self.queue = queue
        self.engine = engine

    @property
    def pending_sync_count(self) -> int:
        """Get number of pending sync operations."""
        return self.queue.pending_count()

    def _request_sync(self) -> None:
        if self.engine is not None:
            self.engine.trigger()

    # =========================================================================
    # GENERIC WRITES
    # =========================================================================

    def insert(self, table: str, row: Dict[str, Any], sync: bool = True) -> Dict[str, Any]:
        """
        Insert a row locally and queue an INSERT.

        Args:
            table: Mirrored table name
            row: Column values; ``id`` is generated when absent
            sync: Trigger a background sync afterwards

        Returns:
            The row as stored
        """
        row = clean_payload(row)
        row.setdefault("id", generate_id())
        schema = get_schema(table)
        schema.validate(QueueAction.INSERT, row)

        columns = self.store.table_columns(table)
        if "is_synced" in columns:
            row["is_synced"] = 0

        placeholders = ", ".join("?" for _ in row)
        with self.store.transaction():
            self.store.execute(
                f"INSERT INTO {table} ({', '.join(row)}) VALUES ({placeholders})",
                _local_values(row),
            )
            self.queue.enqueue(table, row["id"], QueueAction.INSERT, row)

        logger.debug(f"Inserted {table}:{row['id']}")
        if sync:
            self._request_sync()
        return row

    def update(
        self,
        table: str,
        row_id: str,
        changes: Dict[str, Any],
        sync: bool = True,
    ) -> bool:
        """
        Update a local row and queue an UPDATE carrying the changed columns.

        Returns:
            True if the row existed locally
        """
        changes = clean_payload(changes)
        changes.pop("id", None)
        columns = self.store.table_columns(table)
        if "updated_at" in columns and "updated_at" not in changes:
            changes["updated_at"] = utc_now_iso()
        get_schema(table).validate(QueueAction.UPDATE, changes)

        local_changes = dict(changes)
        if "is_synced" in columns:
            local_changes["is_synced"] = 0

        set_clause = ", ".join(f"{k} = ?" for k in local_changes)
        with self.store.transaction():
            updated = self.store.execute(
                f"UPDATE {table} SET {set_clause} WHERE id = ?",
                _local_values(local_changes) + [row_id],
            )
            if updated:
                self.queue.enqueue(table, row_id, QueueAction.UPDATE, changes)

        if updated and sync:
            self._request_sync()
        return bool(updated)

    def delete(
        self,
        table: str,
        row_id: str,
        payload: Optional[Dict[str, Any]] = None,
        sync: bool = True,
    ) -> bool:
        """
        Delete a local row and queue a DELETE.

        The DELETE is queued even when the row is already gone locally, so a
        row that only exists remotely is still removed there.
        """
        with self.store.transaction():
            deleted = self.store.execute(f"DELETE FROM {table} WHERE id = ?", [row_id])
            self.queue.enqueue(table, row_id, QueueAction.DELETE, payload)

        if sync:
            self._request_sync()
        return bool(deleted)

    # =========================================================================
    # ATTENDANCE
    # =========================================================================

    def clock_in(
        self,
        user_id: str,
        job_id: Optional[str] = None,
        day: Optional[str] = None,
        clock_in: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Open an attendance record for a day."""
        now = utc_now_iso()
        return self.insert("attendance", {
            "user_id": user_id,
            "job_id": job_id,
            "date": day or date.today().isoformat(),
            "clock_in": clock_in or now,
            "status": "present",
            "remarks": remarks,
            "updated_at": now,
        })

    def clock_out(self, attendance_id: str, clock_out: Optional[str] = None) -> bool:
        """Close an attendance record."""
        return self.update("attendance", attendance_id, {"clock_out": clock_out or utc_now_iso()})

    # =========================================================================
    # ACCOMPLISHMENTS
    # =========================================================================

    def save_accomplishment(
        self,
        user_id: str,
        day: str,
        description: str,
        job_id: Optional[str] = None,
        remarks: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a task done on a given day."""
        now = utc_now_iso()
        return self.insert("accomplishments", {
            "user_id": user_id,
            "job_id": job_id,
            "date": day,
            "description": description,
            "remarks": remarks,
            "image_url": image_url,
            "created_at": now,
            "updated_at": now,
        })

    def delete_accomplishment(self, accomplishment_id: str) -> bool:
        """Delete a task; an uploaded image is removed from storage on push."""
        task = self.store.get_by_id("accomplishments", accomplishment_id)
        payload = {"image_url": task["image_url"]} if task and task.get("image_url") else None
        return self.delete("accomplishments", accomplishment_id, payload)

    # =========================================================================
    # JOB POSITIONS & PROFILES
    # =========================================================================

    def save_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update a job position.

        Schedules may be passed as dicts/lists; they are stored as JSON text.
        """
        job = dict(job)
        for key in ("work_schedule", "break_schedule"):
            if key in job and not isinstance(job[key], (str, type(None))):
                job[key] = json.dumps(job[key])

        existing = self.store.get_by_id("job_positions", job["id"]) if job.get("id") else None
        if existing is None:
            now = utc_now_iso()
            job.setdefault("employment_status", "Regular")
            job.setdefault("rate", 0)
            job.setdefault("rate_type", "hourly")
            job.setdefault("payout_type", "Semi-Monthly")
            job.setdefault("created_at", now)
            job.setdefault("updated_at", now)
            return self.insert("job_positions", job)

        self.update("job_positions", job["id"], {k: v for k, v in job.items() if k != "id"})
        return self.store.get_by_id("job_positions", job["id"])

    def delete_job(self, job_id: str) -> bool:
        """
        Delete a job position, clearing it as the owner's current job first.
        """
        job = self.store.get_by_id("job_positions", job_id)
        with self.store.transaction():
            if job and job.get("user_id"):
                profile = self.store.get_by_id("profiles", job["user_id"])
                if profile and profile.get("current_job_id") == job_id:
                    self.update("profiles", job["user_id"], {"current_job_id": None}, sync=False)
            deleted = self.delete("job_positions", job_id, sync=False)

        self._request_sync()
        return deleted

    def save_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        """Create or update the signed-in user's profile."""
        profile = dict(profile)
        if not profile.get("full_name"):
            parts = [profile.get("first_name"), profile.get("middle_name"), profile.get("last_name")]
            full_name = " ".join(p for p in parts if p)
            if full_name:
                profile["full_name"] = full_name

        if self.store.get_by_id("profiles", profile["id"]) is None:
            profile.setdefault("updated_at", utc_now_iso())
            return self.insert("profiles", profile)

        self.update("profiles", profile["id"], {k: v for k, v in profile.items() if k != "id"})
        return self.store.get_by_id("profiles", profile["id"])

    def set_current_job(self, user_id: str, job_id: Optional[str]) -> bool:
        return self.update("profiles", user_id, {"current_job_id": job_id})

    # =========================================================================
    # SAVED REPORTS
    # =========================================================================

    def find_report(self, user_id: str, title: str, file_type: str) -> Optional[Dict[str, Any]]:
        return self.store.query_first(
            "SELECT * FROM saved_reports WHERE user_id = ? AND title = ? AND file_type = ?",
            [user_id, title, file_type],
        )

    def save_report(
        self,
        user_id: str,
        title: str,
        file_type: str,
        file_path: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Register a generated report file.

        Raises:
            DuplicateRecordError: the user already has a report with this
                title and format
        """
        existing = self.find_report(user_id, title, file_type)
        if existing is not None:
            raise DuplicateRecordError(
                f"A {file_type} report named {title!r} already exists",
                table="saved_reports",
                existing_id=existing["id"],
            )

        now = utc_now_iso()
        return self.insert("saved_reports", {
            "user_id": user_id,
            "title": title,
            "file_type": file_type,
            "file_path": file_path,
            "file_size": file_size,
            "created_at": now,
            "updated_at": now,
        })

    def rename_report(self, report_id: str, title: str, file_path: Optional[str] = None) -> bool:
        report = self.store.get_by_id("saved_reports", report_id)
        if report is None:
            return False

        clash = self.find_report(report["user_id"], title, report["file_type"])
        if clash is not None and clash["id"] != report_id:
            raise DuplicateRecordError(
                f"A {report['file_type']} report named {title!r} already exists",
                table="saved_reports",
                existing_id=clash["id"],
            )

        changes: Dict[str, Any] = {"title": title}
        if file_path is not None:
            changes["file_path"] = file_path
        return self.update("saved_reports", report_id, changes)

    def delete_report(self, report_id: str) -> bool:
        report = self.store.get_by_id("saved_reports", report_id)
        payload = {"remote_url": report["remote_url"]} if report and report.get("remote_url") else None
        return self.delete("saved_reports", report_id, payload)

    # =========================================================================
    # REPORT READS
    # =========================================================================

    def get_active_job(self, user_id: str) -> Optional[Dict[str, Any]]:
        profile = self.store.get_by_id("profiles", user_id)
        if not profile or not profile.get("current_job_id"):
            return None
        return self.store.get_by_id("job_positions", profile["current_job_id"])

    def get_daily_report(self, user_id: str, day: str) -> Dict[str, Any]:
        attendance = self.store.query_first(
            "SELECT * FROM attendance WHERE user_id = ? AND date = ?", [user_id, day]
        )
        tasks = self.store.query_all(
            "SELECT * FROM accomplishments WHERE user_id = ? AND date = ? ORDER BY created_at",
            [user_id, day],
        )
        return {"attendance": attendance, "tasks": tasks}

    def get_report_range(
        self,
        user_id: str,
        job_id: str,
        start_date: str,
        end_date: str,
    ) -> Dict[str, List[Dict[str, Any]]]:
        attendance = self.store.query_all(
            """
            SELECT * FROM attendance
            WHERE user_id = ? AND job_id = ? AND date >= ? AND date <= ?
            ORDER BY date ASC
            """,
            [user_id, job_id, start_date, end_date],
        )
        tasks = self.store.query_all(
            """
            SELECT * FROM accomplishments
            WHERE user_id = ? AND job_id = ? AND date >= ? AND date <= ?
            ORDER BY date ASC
            """,
            [user_id, job_id, start_date, end_date],
        )
        return {"attendance": attendance, "tasks": tasks}

    def delete_report_day(self, user_id: str, job_id: str, day: str) -> int:
        """
        Delete a day's attendance and accomplishments for one job.

        Returns:
            Number of local rows deleted
        """
        params = [user_id, job_id, day]
        where = "user_id = ? AND job_id = ? AND date = ?"
        attendance = self.store.query_all(f"SELECT id FROM attendance WHERE {where}", params)
        tasks = self.store.query_all(f"SELECT id FROM accomplishments WHERE {where}", params)

        deleted = 0
        with self.store.transaction():
            for row in attendance:
                deleted += self.delete("attendance", row["id"], sync=False)
            for row in tasks:
                deleted += self.delete("accomplishments", row["id"], sync=False)

        if deleted:
            self._request_sync()
        return deleted
