# =============================================================================
# dart_core/data/supabase_client.py
# Supabase client factory and RemoteStore adapter (tables and storage)
# =============================================================================

from __future__ import annotations
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import Client, create_client

from dart_core.config import SyncConfig
from dart_core.logging import get_logger
from dart_core.offline.remote_store import (
    RemoteErrorKind,
    RemoteResult,
    RemoteStore,
    storage_object_path,
)

logger = get_logger(__name__)

# PostgREST / Postgres error codes with a fixed meaning for the push engine
ERROR_CODE_KINDS = {
    "PGRST116": RemoteErrorKind.NOT_FOUND,
    "23505": RemoteErrorKind.CONFLICT,
    "PGRST204": RemoteErrorKind.SCHEMA_MISMATCH,
    "42703": RemoteErrorKind.SCHEMA_MISMATCH,
}


def get_supabase_client(config: SyncConfig) -> Optional[Client]:
    """
    Create a Supabase client from the sync configuration.

    Returns:
        Supabase client instance or None if not configured
    """
    if not config.has_remote:
        logger.warning("Supabase credentials not configured; running local-only")
        return None

    try:
        return create_client(config.supabase_url, config.supabase_key)
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


def classify_error(error: Exception) -> Tuple[RemoteErrorKind, Optional[str], str]:
    """
    Map an exception raised by the Supabase client to a RemoteErrorKind.

    Returns:
        (kind, code, message)
    """
    if isinstance(error, APIError):
        code = str(error.code) if error.code is not None else None
        return ERROR_CODE_KINDS.get(code, RemoteErrorKind.OTHER), code, error.message or str(error)
    return RemoteErrorKind.OTHER, None, f"{type(error).__name__}: {error}"


class SupabaseRemoteStore(RemoteStore):
    """
    RemoteStore backed by Supabase tables.

    Usage:
        remote = SupabaseRemoteStore(get_supabase_client(config))
        result = remote.insert("accomplishments", row)
        if not result:
            print(result.kind, result.message)
    """

    def __init__(self, client: Client, page_size: int = 1000):
        self.client = client
        self.page_size = page_size

    def _failure(self, table: str, operation: str, error: Exception) -> RemoteResult:
        kind, code, message = classify_error(error)
        logger.debug(f"Supabase {operation} on {table} failed [{code}]: {message}")
        return RemoteResult.failure(kind, message, code)

    def select_changed(
        self,
        table: str,
        owner_column: str,
        owner_id: str,
        change_column: str,
        since: str,
    ) -> RemoteResult:
        """Fetch ALL changed rows, paging past the 1000 row response limit."""
        rows: List[Dict[str, Any]] = []
        offset = 0

        try:
            while True:
                response = (
                    self.client.table(table)
                    .select("*")
                    .eq(owner_column, owner_id)
                    .gt(change_column, since)
                    .order(change_column)
                    .range(offset, offset + self.page_size - 1)
                    .execute()
                )
                batch = response.data or []
                rows.extend(batch)
                if len(batch) < self.page_size:
                    break
                offset += self.page_size
        except Exception as e:
            return self._failure(table, "select", e)

        return RemoteResult.success(rows)

    def insert(self, table: str, row: Dict[str, Any]) -> RemoteResult:
        try:
            response = self.client.table(table).insert(row).execute()
        except Exception as e:
            return self._failure(table, "insert", e)
        return RemoteResult.success(response.data)

    def update(self, table: str, row: Dict[str, Any], row_id: str) -> RemoteResult:
        """
        Update one row by id.

        An unknown column on a remote table that predates ``updated_at`` is
        retried once without that column.
        """
        result = self._update(table, row, row_id)
        if result.kind is RemoteErrorKind.SCHEMA_MISMATCH and "updated_at" in row:
            safe_row = {k: v for k, v in row.items() if k != "updated_at"}
            logger.info(f"Retrying update on {table}:{row_id} without updated_at")
            result = self._update(table, safe_row, row_id)
        return result

    def _update(self, table: str, row: Dict[str, Any], row_id: str) -> RemoteResult:
        try:
            response = self.client.table(table).update(row).eq("id", row_id).execute()
        except Exception as e:
            return self._failure(table, "update", e)

        if not response.data:
            return RemoteResult.failure(
                RemoteErrorKind.NOT_FOUND, f"No {table} row with id {row_id}", "PGRST116"
            )
        return RemoteResult.success(response.data)

    def delete(self, table: str, row_id: str) -> RemoteResult:
        try:
            response = self.client.table(table).delete().eq("id", row_id).execute()
        except Exception as e:
            return self._failure(table, "delete", e)

        if not response.data:
            return RemoteResult.failure(
                RemoteErrorKind.NOT_FOUND, f"No {table} row with id {row_id}", "PGRST116"
            )
        return RemoteResult.success(response.data)

    def get_row(self, table: str, row_id: str) -> RemoteResult:
        try:
            response = self.client.table(table).select("*").eq("id", row_id).limit(1).execute()
        except Exception as e:
            return self._failure(table, "select", e)

        if not response.data:
            return RemoteResult.failure(
                RemoteErrorKind.NOT_FOUND, f"No {table} row with id {row_id}", "PGRST116"
            )
        return RemoteResult.success(response.data)

    # =========================================================================
    # FILE STORAGE
    # =========================================================================

    def upload_file(
        self,
        bucket: str,
        object_name: str,
        local_path: str,
        content_type: Optional[str] = None,
    ) -> RemoteResult:
        """Upload a device file to a storage bucket and return its public URL."""
        if content_type is None:
            content_type = mimetypes.guess_type(local_path)[0] or "application/octet-stream"

        try:
            content = Path(local_path).read_bytes()
            storage = self.client.storage.from_(bucket)
            storage.upload(
                object_name,
                content,
                file_options={"content-type": content_type, "upsert": "true"},
            )
            public_url = storage.get_public_url(object_name)
        except Exception as e:
            _, code, message = classify_error(e)
            logger.debug(f"Upload of {local_path} to {bucket} failed: {message}")
            return RemoteResult.failure(RemoteErrorKind.OTHER, f"File upload failed: {message}", code)

        logger.info(f"Uploaded {local_path} to {bucket}/{object_name}")
        return RemoteResult.success([{"path": object_name, "url": public_url}])

    def remove_file(self, bucket: str, url: str) -> RemoteResult:
        path = storage_object_path(url, bucket)
        if path is None:
            return RemoteResult.success()

        try:
            self.client.storage.from_(bucket).remove([path])
        except Exception as e:
            return self._failure(bucket, "remove", e)

        logger.info(f"Removed {bucket}/{path}")
        return RemoteResult.success([{"path": path}])
