# =============================================================================
# tests/unit/test_supabase_client.py
# Unit Tests for the Supabase RemoteStore adapter
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
from postgrest.exceptions import APIError

from dart_core.config import SyncConfig
from dart_core.data.supabase_client import (
    SupabaseRemoteStore,
    classify_error,
    get_supabase_client,
)
from dart_core.offline.remote_store import RemoteErrorKind


def api_error(code, message="boom"):
    return APIError({"message": message, "code": code, "hint": None, "details": None})


class TestClassifyError:
    """Test error classification at the adapter boundary"""

    @pytest.mark.parametrize("code,kind", [
        ("PGRST116", RemoteErrorKind.NOT_FOUND),
        ("23505", RemoteErrorKind.CONFLICT),
        ("PGRST204", RemoteErrorKind.SCHEMA_MISMATCH),
        ("42703", RemoteErrorKind.SCHEMA_MISMATCH),
        ("42501", RemoteErrorKind.OTHER),
    ])
    def test_api_error_codes(self, code, kind):
        assert classify_error(api_error(code))[0] is kind

    def test_network_error_is_other(self):
        kind, code, message = classify_error(ConnectionError("unreachable"))

        assert kind is RemoteErrorKind.OTHER
        assert code is None
        assert "unreachable" in message

    def test_only_other_is_retryable(self):
        assert not RemoteErrorKind.OTHER.is_terminal
        assert RemoteErrorKind.NOT_FOUND.is_terminal
        assert RemoteErrorKind.CONFLICT.is_terminal
        assert RemoteErrorKind.SCHEMA_MISMATCH.is_terminal


class TestSupabaseRemoteStoreWrites:
    """Test insert/update/delete against a mocked client"""

    def test_insert_success(self, mock_supabase):
        remote = SupabaseRemoteStore(mock_supabase)

        result = remote.insert("accomplishments", {"id": "row-1"})

        assert result.ok
        mock_supabase.table.assert_called_with("accomplishments")

    def test_insert_conflict(self, mock_supabase):
        mock_supabase.table.return_value.insert.return_value.execute.side_effect = api_error("23505")

        result = SupabaseRemoteStore(mock_supabase).insert("saved_reports", {"id": "r1"})

        assert not result
        assert result.kind is RemoteErrorKind.CONFLICT
        assert result.code == "23505"

    def test_insert_network_failure_does_not_raise(self, mock_supabase):
        mock_supabase.table.return_value.insert.return_value.execute.side_effect = TimeoutError("slow")

        result = SupabaseRemoteStore(mock_supabase).insert("attendance", {"id": "a1"})

        assert result.kind is RemoteErrorKind.OTHER

    def test_update_matching_nothing_is_not_found(self, mock_supabase):
        mock_supabase.table.return_value.update.return_value.eq.return_value.execute.return_value.data = []

        result = SupabaseRemoteStore(mock_supabase).update("attendance", {"remarks": "x"}, "a1")

        assert result.kind is RemoteErrorKind.NOT_FOUND

    def test_update_retried_without_updated_at(self, mock_supabase):
        """A table without updated_at gets the update minus that column"""
        update = mock_supabase.table.return_value.update
        ok = MagicMock(data=[{"id": "a1"}])
        update.return_value.eq.return_value.execute.side_effect = [api_error("PGRST204"), ok]

        result = SupabaseRemoteStore(mock_supabase).update(
            "accomplishments", {"remarks": "x", "updated_at": "2026-03-02T10:00:00+00:00"}, "a1"
        )

        assert result.ok
        assert update.call_args_list[-1].args[0] == {"remarks": "x"}

    def test_delete_missing_row_is_not_found(self, mock_supabase):
        mock_supabase.table.return_value.delete.return_value.eq.return_value.execute.return_value.data = []

        result = SupabaseRemoteStore(mock_supabase).delete("job_positions", "job-1")

        assert result.kind is RemoteErrorKind.NOT_FOUND


class TestSupabaseRemoteStoreSelect:
    """Test paginated change queries"""

    def _select_chain(self, client):
        return (
            client.table.return_value.select.return_value
            .eq.return_value.gt.return_value.order.return_value.range
        )

    def test_pages_until_short_batch(self, mock_supabase):
        range_call = self._select_chain(mock_supabase)
        range_call.return_value.execute.side_effect = [
            MagicMock(data=[{"id": 1}, {"id": 2}]),
            MagicMock(data=[{"id": 3}]),
        ]

        result = SupabaseRemoteStore(mock_supabase, page_size=2).select_changed(
            "attendance", "user_id", "u1", "updated_at", "1970-01-01T00:00:00+00:00"
        )

        assert [r["id"] for r in result.data] == [1, 2, 3]
        assert range_call.call_args_list[0].args == (0, 1)
        assert range_call.call_args_list[1].args == (2, 3)

    def test_select_filters_by_owner_and_watermark(self, mock_supabase):
        self._select_chain(mock_supabase).return_value.execute.return_value = MagicMock(data=[])
        select = mock_supabase.table.return_value.select.return_value

        SupabaseRemoteStore(mock_supabase).select_changed(
            "profiles", "id", "u1", "updated_at", "2026-03-01T00:00:00+00:00"
        )

        select.eq.assert_called_with("id", "u1")
        select.eq.return_value.gt.assert_called_with("updated_at", "2026-03-01T00:00:00+00:00")

    def test_select_failure(self, mock_supabase):
        self._select_chain(mock_supabase).return_value.execute.side_effect = api_error("42501")

        result = SupabaseRemoteStore(mock_supabase).select_changed(
            "attendance", "user_id", "u1", "updated_at", "1970-01-01T00:00:00+00:00"
        )

        assert not result.ok
        assert result.kind is RemoteErrorKind.OTHER


class TestSupabaseRemoteStoreStorage:
    """Test file uploads and removals against a mocked storage client"""

    def test_upload_returns_public_url(self, mock_supabase, tmp_path):
        pdf = tmp_path / "march.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        bucket = mock_supabase.storage.from_.return_value
        bucket.get_public_url.return_value = "https://x.supabase.co/storage/v1/object/public/reports/u1/r1_1.pdf"

        result = SupabaseRemoteStore(mock_supabase).upload_file("reports", "u1/r1_1.pdf", str(pdf))

        assert result.ok
        assert result.data[0]["url"].endswith("/reports/u1/r1_1.pdf")
        mock_supabase.storage.from_.assert_called_with("reports")
        bucket.upload.assert_called_once_with(
            "u1/r1_1.pdf",
            b"%PDF-1.4",
            file_options={"content-type": "application/pdf", "upsert": "true"},
        )

    def test_missing_device_file_is_other(self, mock_supabase, tmp_path):
        result = SupabaseRemoteStore(mock_supabase).upload_file(
            "accomplishments", "u1/a1_1.jpg", str(tmp_path / "gone.jpg")
        )

        assert not result.ok
        assert result.kind is RemoteErrorKind.OTHER
        assert result.message.startswith("File upload failed")
        mock_supabase.storage.from_.return_value.upload.assert_not_called()

    def test_storage_error_is_other(self, mock_supabase, tmp_path):
        photo = tmp_path / "a1.jpg"
        photo.write_bytes(b"jpeg")
        mock_supabase.storage.from_.return_value.upload.side_effect = api_error("23505")

        result = SupabaseRemoteStore(mock_supabase).upload_file("accomplishments", "u1/a1_1.jpg", str(photo))

        assert result.kind is RemoteErrorKind.OTHER

    def test_remove_by_public_url(self, mock_supabase):
        url = "https://x.supabase.co/storage/v1/object/public/accomplishments/u1/a1_1.jpg?t=1"

        result = SupabaseRemoteStore(mock_supabase).remove_file("accomplishments", url)

        assert result.ok
        mock_supabase.storage.from_.return_value.remove.assert_called_once_with(["u1/a1_1.jpg"])

    def test_remove_foreign_url_is_noop(self, mock_supabase):
        result = SupabaseRemoteStore(mock_supabase).remove_file("reports", "https://cdn.example.com/r1.pdf")

        assert result.ok
        mock_supabase.storage.from_.assert_not_called()

    def test_get_row_missing_is_not_found(self, mock_supabase):
        chain = mock_supabase.table.return_value.select.return_value.eq.return_value.limit.return_value
        chain.execute.return_value.data = []

        result = SupabaseRemoteStore(mock_supabase).get_row("accomplishments", "a1")

        assert result.kind is RemoteErrorKind.NOT_FOUND


class TestGetSupabaseClient:
    """Test client factory"""

    def test_unconfigured_returns_none(self):
        assert get_supabase_client(SyncConfig()) is None

    def test_configured_creates_client(self):
        config = SyncConfig(supabase_url="https://x.supabase.co", supabase_key="key")

        with patch("dart_core.data.supabase_client.create_client") as create:
            client = get_supabase_client(config)

        create.assert_called_once_with("https://x.supabase.co", "key")
        assert client is create.return_value
