# =============================================================================
# tests/unit/test_unified_data_service.py
# Unit Tests for UnifiedDataService
# =============================================================================

import json
import uuid
from unittest.mock import MagicMock

import pytest

from dart_core.errors import DuplicateRecordError, PayloadValidationError
from dart_core.offline.table_schemas import QueueAction
from dart_core.offline.unified_data_service import UnifiedDataService, generate_id

from conftest import USER_ID


@pytest.fixture
def engine():
    return MagicMock()


@pytest.fixture
def service(store, queue, engine):
    return UnifiedDataService(store, queue, engine)


class TestGenericWrites:
    """Test local write + enqueue"""

    def test_generate_id_is_uuid4(self):
        assert uuid.UUID(generate_id()).version == 4

    def test_insert_writes_and_queues(self, service, store, queue, engine):
        row = service.insert("accomplishments", {
            "user_id": USER_ID, "date": "2026-03-02", "description": "Wired panel B",
        })

        local = store.get_by_id("accomplishments", row["id"])
        assert local["is_synced"] == 0
        entry = queue.drain()[0]
        assert entry.action is QueueAction.INSERT
        assert entry.row_id == row["id"]
        engine.trigger.assert_called_once_with()

    def test_invalid_insert_writes_nothing(self, service, store, queue, engine):
        with pytest.raises(PayloadValidationError):
            service.insert("accomplishments", {"user_id": USER_ID})

        assert store.query_all("SELECT * FROM accomplishments") == []
        assert queue.pending_count() == 0
        engine.trigger.assert_not_called()

    def test_update_queues_changed_columns(self, service, store, queue):
        row = service.insert("accomplishments", {
            "user_id": USER_ID, "date": "2026-03-02", "description": "Draft",
        })
        store.execute("UPDATE accomplishments SET is_synced = 1 WHERE id = ?", [row["id"]])

        assert service.update("accomplishments", row["id"], {"description": "Final"})

        assert store.get_by_id("accomplishments", row["id"])["is_synced"] == 0
        payload = queue.drain()[-1].payload
        assert payload["description"] == "Final"
        assert "updated_at" in payload
        assert "is_synced" not in payload

    def test_update_missing_row(self, service, queue):
        assert not service.update("attendance", "nope", {"remarks": "x"})
        assert queue.pending_count() == 0

    def test_delete_queues_even_without_local_row(self, service, queue):
        assert not service.delete("job_positions", "job-remote-only")

        entry = queue.drain()[0]
        assert entry.action is QueueAction.DELETE
        assert entry.row_id == "job-remote-only"

    def test_write_without_engine(self, store, queue):
        service = UnifiedDataService(store, queue)

        service.clock_in(USER_ID, day="2026-03-02")

        assert service.pending_sync_count == 1


class TestAttendanceAndTasks:
    """Test domain helpers"""

    def test_clock_in_and_out(self, service, store, queue):
        record = service.clock_in(USER_ID, job_id="job-1", day="2026-03-02")
        service.clock_out(record["id"], clock_out="2026-03-02T17:00:00+00:00")

        local = store.get_by_id("attendance", record["id"])
        assert local["clock_out"] == "2026-03-02T17:00:00+00:00"
        assert [e.action for e in queue.drain()] == [QueueAction.INSERT, QueueAction.UPDATE]

    def test_daily_report(self, service):
        service.clock_in(USER_ID, day="2026-03-02")
        service.save_accomplishment(USER_ID, "2026-03-02", "Task one")
        service.save_accomplishment(USER_ID, "2026-03-03", "Other day")

        report = service.get_daily_report(USER_ID, "2026-03-02")

        assert report["attendance"]["date"] == "2026-03-02"
        assert [t["description"] for t in report["tasks"]] == ["Task one"]

    def test_delete_accomplishment_carries_image_url(self, service, store, queue):
        task = service.save_accomplishment(
            USER_ID, "2026-03-02", "Task one", image_url="https://cdn.example.com/a.jpg"
        )

        assert service.delete_accomplishment(task["id"])

        assert store.get_by_id("accomplishments", task["id"]) is None
        entry = queue.drain()[-1]
        assert entry.action is QueueAction.DELETE
        assert entry.payload == {"image_url": "https://cdn.example.com/a.jpg"}

    def test_report_range_and_delete_day(self, service, store, queue):
        for day in ("2026-03-01", "2026-03-02", "2026-03-03"):
            service.clock_in(USER_ID, job_id="job-1", day=day)
            service.save_accomplishment(USER_ID, day, f"Work {day}", job_id="job-1")

        assert len(service.get_report_range(USER_ID, "job-1", "2026-03-02", "2026-03-03")["tasks"]) == 2

        deleted = service.delete_report_day(USER_ID, "job-1", "2026-03-02")

        assert deleted == 2
        remaining = service.get_report_range(USER_ID, "job-1", "2026-03-01", "2026-03-03")
        assert len(remaining["attendance"]) == 2
        assert [e.action for e in queue.drain()][-2:] == [QueueAction.DELETE, QueueAction.DELETE]


class TestJobsAndProfiles:
    """Test job and profile helpers"""

    def test_save_job_serializes_schedule(self, service, store, queue):
        job = service.save_job({
            "user_id": USER_ID,
            "title": "Site Engineer",
            "work_schedule": {"monday": {"start": "08:00", "end": "17:00"}},
        })

        local = store.get_by_id("job_positions", job["id"])
        assert json.loads(local["work_schedule"])["monday"]["start"] == "08:00"
        assert local["rate_type"] == "hourly"

    def test_save_job_existing_is_update(self, service, queue):
        job = service.save_job({"user_id": USER_ID, "title": "Engineer"})

        service.save_job({"id": job["id"], "title": "Senior Engineer"})

        actions = [e.action for e in queue.drain()]
        assert actions == [QueueAction.INSERT, QueueAction.UPDATE]

    def test_delete_job_clears_current_job(self, service, store, queue):
        service.save_profile({"id": USER_ID, "first_name": "Ana", "last_name": "Cruz"})
        job = service.save_job({"user_id": USER_ID, "title": "Engineer"})
        service.set_current_job(USER_ID, job["id"])
        assert service.get_active_job(USER_ID)["id"] == job["id"]

        service.delete_job(job["id"])

        assert store.get_by_id("profiles", USER_ID)["current_job_id"] is None
        last_two = queue.drain()[-2:]
        assert (last_two[0].table, last_two[0].action) == ("profiles", QueueAction.UPDATE)
        assert last_two[0].payload["current_job_id"] is None
        assert (last_two[1].table, last_two[1].action) == ("job_positions", QueueAction.DELETE)

    def test_save_profile_builds_full_name(self, service, store):
        service.save_profile({"id": USER_ID, "first_name": "Ana", "middle_name": "B.", "last_name": "Cruz"})

        assert store.get_by_id("profiles", USER_ID)["full_name"] == "Ana B. Cruz"


class TestSavedReports:
    """Test report registration"""

    def test_duplicate_title_rejected_locally(self, service, queue):
        service.save_report(USER_ID, "March", "pdf", file_path="/device/march.pdf")

        with pytest.raises(DuplicateRecordError) as exc_info:
            service.save_report(USER_ID, "March", "pdf")

        assert exc_info.value.code == "DATA_001"
        assert queue.pending_count() == 1

    def test_same_title_other_format_allowed(self, service):
        service.save_report(USER_ID, "March", "pdf")
        service.save_report(USER_ID, "March", "xlsx")

    def test_rename_report(self, service, store):
        report = service.save_report(USER_ID, "March", "pdf")
        service.save_report(USER_ID, "April", "pdf")

        assert service.rename_report(report["id"], "March (final)")
        assert store.get_by_id("saved_reports", report["id"])["title"] == "March (final)"

        with pytest.raises(DuplicateRecordError):
            service.rename_report(report["id"], "April")

    def test_delete_report(self, service, queue):
        report = service.save_report(USER_ID, "March", "pdf")

        assert service.delete_report(report["id"])
        assert queue.drain()[-1].action is QueueAction.DELETE
