# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import sys
import threading
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from dart_core.config import SyncConfig
from dart_core.offline.connection_manager import ConnectionState, ConnectionStatus
from dart_core.offline.local_store import LocalStore
from dart_core.offline.mutation_queue import MutationQueue
from dart_core.offline.pull_engine import to_utc
from dart_core.offline.remote_store import (
    RemoteErrorKind,
    RemoteResult,
    RemoteStore,
    storage_object_path,
)

USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"


# =============================================================================
# FAKES
# =============================================================================

class FakeRemoteStore(RemoteStore):
    """
    In-memory RemoteStore with Supabase-like semantics.

    - insert of an existing id, or of a duplicate saved report title, is CONFLICT
    - update/delete of a missing row is NOT_FOUND
    - fail(op, row_id, kind) makes the next matching call fail
    - hold() blocks every write until release() (concurrency tests)
    - uploads are kept in ``objects``, removals logged in ``removed``
    """

    UNIQUE_KEYS = {"saved_reports": ("user_id", "title", "file_type")}
    STORAGE_URL = "https://demo.supabase.co/storage/v1/object/public"

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.select_failures: set = set()
        self._failures: Dict[Tuple[str, Optional[str]], List[RemoteResult]] = {}
        self._lock = threading.Lock()
        self._gate = threading.Event()
        self._gate.set()
        self.entered = threading.Event()
        self.objects: Dict[Tuple[str, str], str] = {}
        self.removed: List[Tuple[str, str]] = []

    # ---- test controls -----------------------------------------------------

    def seed(self, table: str, row: Dict[str, Any]) -> None:
        self.tables.setdefault(table, {})[row["id"]] = dict(row)

    def rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self.tables.get(table, {})

    def fail(self, op: str, row_id: Optional[str], kind: RemoteErrorKind,
             message: str = "simulated failure", times: int = 1) -> None:
        failures = self._failures.setdefault((op, row_id), [])
        failures.extend(RemoteResult.failure(kind, message) for _ in range(times))

    def hold(self) -> None:
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    def writes(self) -> List[Tuple[str, str, Optional[str]]]:
        return [c for c in self.calls if c[0] != "select"]

    # ---- RemoteStore -------------------------------------------------------

    def _enter(self, op: str, table: str, row_id: Optional[str]) -> Optional[RemoteResult]:
        self.entered.set()
        self._gate.wait(timeout=10)
        with self._lock:
            self.calls.append((op, table, row_id))
            failures = self._failures.get((op, row_id))
            if failures:
                return failures.pop(0)
        return None

    def select_changed(self, table, owner_column, owner_id, change_column, since):
        self.calls.append(("select", table, None))
        if table in self.select_failures:
            return RemoteResult.failure(RemoteErrorKind.OTHER, "select failed")
        since_ts = to_utc(since)
        rows = [
            dict(row) for row in self.rows(table).values()
            if row.get(owner_column) == owner_id
            and to_utc(row.get(change_column)) is not None
            and to_utc(row.get(change_column)) > since_ts
        ]
        rows.sort(key=lambda r: to_utc(r[change_column]))
        return RemoteResult.success(rows)

    def insert(self, table, row):
        failure = self._enter("insert", table, row.get("id"))
        if failure is not None:
            return failure
        existing = self.rows(table)
        if row["id"] in existing:
            return RemoteResult.failure(RemoteErrorKind.CONFLICT, "duplicate key", "23505")
        unique = self.UNIQUE_KEYS.get(table)
        if unique:
            key = tuple(row.get(c) for c in unique)
            if any(tuple(r.get(c) for c in unique) == key for r in existing.values()):
                return RemoteResult.failure(RemoteErrorKind.CONFLICT, "duplicate key", "23505")
        self.seed(table, row)
        return RemoteResult.success([dict(row)])

    def update(self, table, row, row_id):
        failure = self._enter("update", table, row_id)
        if failure is not None:
            return failure
        current = self.rows(table).get(row_id)
        if current is None:
            return RemoteResult.failure(RemoteErrorKind.NOT_FOUND, "no rows", "PGRST116")
        current.update(row)
        return RemoteResult.success([dict(current)])

    def delete(self, table, row_id):
        failure = self._enter("delete", table, row_id)
        if failure is not None:
            return failure
        removed = self.rows(table).pop(row_id, None)
        if removed is None:
            return RemoteResult.failure(RemoteErrorKind.NOT_FOUND, "no rows", "PGRST116")
        return RemoteResult.success([removed])

    def get_row(self, table, row_id):
        row = self.rows(table).get(row_id)
        if row is None:
            return RemoteResult.failure(RemoteErrorKind.NOT_FOUND, "no rows", "PGRST116")
        return RemoteResult.success([dict(row)])

    def upload_file(self, bucket, object_name, local_path, content_type=None):
        with self._lock:
            failures = self._failures.get(("upload", local_path))
            if failures:
                return failures.pop(0)
        url = f"{self.STORAGE_URL}/{bucket}/{object_name}"
        self.objects[(bucket, object_name)] = local_path
        return RemoteResult.success([{"path": object_name, "url": url}])

    def remove_file(self, bucket, url):
        path = storage_object_path(url, bucket)
        if path is not None:
            self.objects.pop((bucket, path), None)
            self.removed.append((bucket, path))
        return RemoteResult.success()


class FakeConnectivity:
    """Connectivity monitor whose status tests flip by hand."""

    def __init__(self, online: bool = True):
        self.is_online = online
        self._callbacks = []

    def register_callback(self, callback) -> None:
        self._callbacks.append(callback)

    def set_online(self, online: bool) -> None:
        previous = ConnectionStatus.ONLINE if self.is_online else ConnectionStatus.OFFLINE
        self.is_online = online
        state = ConnectionState(
            status=ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE,
            previous_status=previous,
        )
        for callback in list(self._callbacks):
            callback(state)


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh SQLite file"""
    return tmp_path / "local_data" / "dart_local.db"


@pytest.fixture
def store(db_path):
    """Migrated LocalStore on a temp file"""
    store = LocalStore.open(db_path)
    yield store
    LocalStore.close_all()


@pytest.fixture
def queue(store):
    return MutationQueue(store)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return FakeConnectivity(online=True)


@pytest.fixture
def sync_config(db_path):
    """Config pointing at the temp database, no Supabase credentials"""
    return SyncConfig(db_path=db_path, sync_interval=3600)


@pytest.fixture
def stack(sync_config, remote, connectivity):
    """Fully wired sync stack on fakes, no background threads"""
    from dart_core.bootstrap import build_sync_stack

    stack = build_sync_stack(
        sync_config,
        remote=remote,
        connectivity=connectivity,
        start_background=False,
    )
    yield stack
    stack.engine.wait_until_idle(timeout=10)
    LocalStore.close_all()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    import dart_core.errors.handlers as handlers
    import dart_core.ui.sync_status as sync_status

    # Create mock streamlit module
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f
    mock_st.columns.side_effect = lambda n: [MagicMock() for _ in range(n)]
    mock_st.button.return_value = False

    monkeypatch.setitem(sys.modules, "streamlit", mock_st)
    monkeypatch.setattr(handlers, "st", mock_st)
    monkeypatch.setattr(sync_status, "st", mock_st)

    yield mock_st


@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value.data = [{"id": "row-1"}]
    mock_client.table.return_value.update.return_value.eq.return_value.execute.return_value.data = [{"id": "row-1"}]
    mock_client.table.return_value.delete.return_value.eq.return_value.execute.return_value.data = [{"id": "row-1"}]
    return mock_client


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_accomplishment(row_id: str = "acc-1", user_id: str = USER_ID, **overrides) -> Dict[str, Any]:
    """Minimal valid accomplishments row"""
    row = {
        "id": row_id,
        "user_id": user_id,
        "date": "2026-03-02",
        "description": "Inspected panel A",
        "created_at": "2026-03-02T08:00:00+00:00",
    }
    row.update(overrides)
    return row
