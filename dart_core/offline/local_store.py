# =============================================================================
# dart_core/offline/local_store.py
# Local SQLite Store mirroring the Supabase tables
# =============================================================================
"""
LocalStore - SQLite-based local storage that mirrors the Supabase schema.

Features:
- One shared, migrated instance per database file (LocalStore.open)
- Additive, idempotent migrations
- Thread-local connections with nestable transactions
- Column-scoped upserts for pulled rows
- DataFrame reads (pandas)
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import pandas as pd

from dart_core.errors import QueryError, StorageUnavailable
from dart_core.logging import get_logger
from dart_core.offline.table_schemas import MIRRORED_TABLES

logger = get_logger(__name__)

Params = Union[Sequence[Any], Dict[str, Any], None]

WATERMARK_KEY = "last_synced_at"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class LocalStore:
    """
    Local SQLite database for offline data storage.

    Obtain instances through LocalStore.open(); the application composition
    root passes the returned store to the queue and the sync engines.
    """

    # Schema definitions matching the Supabase tables
    SCHEMA = {
        "attendance": """
            CREATE TABLE IF NOT EXISTS attendance (
                id TEXT PRIMARY KEY NOT NULL,
                user_id TEXT NOT NULL,
                job_id TEXT,
                date TEXT NOT NULL,
                clock_in TEXT NOT NULL,
                clock_out TEXT,
                status TEXT,
                remarks TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                is_synced INTEGER DEFAULT 0
            )
        """,
        "accomplishments": """
            CREATE TABLE IF NOT EXISTS accomplishments (
                id TEXT PRIMARY KEY NOT NULL,
                user_id TEXT NOT NULL,
                job_id TEXT,
                date TEXT NOT NULL,
                description TEXT NOT NULL,
                remarks TEXT,
                image_url TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT,
                is_synced INTEGER DEFAULT 0
            )
        """,
        "job_positions": """
            CREATE TABLE IF NOT EXISTS job_positions (
                id TEXT PRIMARY KEY NOT NULL,
                user_id TEXT,
                title TEXT,
                work_schedule TEXT,
                break_schedule TEXT,
                created_at TEXT,
                updated_at TEXT
            )
        """,
        "profiles": """
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY NOT NULL,
                email TEXT,
                first_name TEXT,
                last_name TEXT,
                title TEXT,
                current_job_id TEXT,
                updated_at TEXT
            )
        """,
        "saved_reports": """
            CREATE TABLE IF NOT EXISTS saved_reports (
                id TEXT PRIMARY KEY NOT NULL,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                file_path TEXT,
                file_type TEXT NOT NULL,
                file_size INTEGER,
                remote_url TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT,
                is_synced INTEGER DEFAULT 0
            )
        """,
        "sync_queue": """
            CREATE TABLE IF NOT EXISTS sync_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                table_name TEXT NOT NULL,
                row_id TEXT,
                action TEXT NOT NULL,
                data TEXT,
                status TEXT DEFAULT 'PENDING',
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """,
    }

    INDEXES = (
        "CREATE INDEX IF NOT EXISTS idx_attendance_user_date ON attendance(user_id, date)",
        "CREATE INDEX IF NOT EXISTS idx_attendance_job ON attendance(job_id)",
        "CREATE INDEX IF NOT EXISTS idx_accomplishments_job ON accomplishments(job_id)",
        "CREATE INDEX IF NOT EXISTS idx_saved_reports_user ON saved_reports(user_id, title, file_type)",
        "CREATE INDEX IF NOT EXISTS idx_sync_queue_status ON sync_queue(status)",
    )

    # Historical column additions, applied in order on every open
    COLUMN_MIGRATIONS: Tuple[Tuple[str, str, str], ...] = (
        ("sync_queue", "retry_count", "INTEGER DEFAULT 0"),
        ("sync_queue", "last_error", "TEXT"),
        ("app_settings", "updated_at", "TEXT"),
        ("profiles", "middle_name", "TEXT"),
        ("profiles", "professional_suffix", "TEXT"),
        ("profiles", "full_name", "TEXT"),
        ("profiles", "avatar_url", "TEXT"),
        ("profiles", "local_avatar_path", "TEXT"),
        ("job_positions", "company", "TEXT"),
        ("job_positions", "department", "TEXT"),
        ("job_positions", "employment_status", "TEXT"),
        ("job_positions", "rate", "REAL"),
        ("job_positions", "rate_type", "TEXT"),
        ("job_positions", "payout_type", "TEXT"),
        ("accomplishments", "updated_at", "TEXT"),
        ("attendance", "job_id", "TEXT"),
        ("accomplishments", "job_id", "TEXT"),
        ("attendance", "is_synced", "INTEGER DEFAULT 0"),
        ("accomplishments", "is_synced", "INTEGER DEFAULT 0"),
    )

    _instances: Dict[str, LocalStore] = {}
    _lock = threading.Lock()

    def __init__(self, db_path: Path):
        """
        Prefer LocalStore.open(); the constructor does not touch the file.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._columns: Dict[str, Tuple[str, ...]] = {}
        self._migrated = False

    @classmethod
    def open(cls, db_path: Union[str, Path]) -> LocalStore:
        """
        Return the shared, migrated store for a database file.

        Concurrent callers for the same path receive the same instance; the
        file is opened and migrated exactly once.

        Raises:
            StorageUnavailable: the file or its directory cannot be created
        """
        path = Path(db_path).expanduser().resolve()
        key = str(path)

        with cls._lock:
            store = cls._instances.get(key)
            if store is None:
                store = cls(path)
                store._ensure_directory()
                store._get_connection()
                store.migrate()
                cls._instances[key] = store
                logger.info(f"Local store opened at: {path}")
        return store

    @classmethod
    def close_all(cls) -> None:
        """Close every cached store (process shutdown, tests)."""
        with cls._lock:
            stores = list(cls._instances.values())
            cls._instances.clear()
        for store in stores:
            store._close_connections()

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(
                f"Cannot create database directory: {e}", path=str(self.db_path.parent)
            )

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            try:
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode = WAL")
            except sqlite3.Error as e:
                raise StorageUnavailable(
                    f"Cannot open local database: {e}", path=str(self.db_path)
                )
            self._local.connection = conn
            self._local.depth = 0
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    # =========================================================================
    # STATEMENT EXECUTION
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        Nested blocks on the same thread join the outermost transaction,
        which commits or rolls back as a unit.
        """
        conn = self._get_connection()
        depth = self._local.depth
        self._local.depth = depth + 1
        try:
            yield conn
            if depth == 0:
                conn.commit()
        except Exception:
            if depth == 0:
                conn.rollback()
            raise
        finally:
            self._local.depth = depth

    def execute(self, sql: str, params: Params = None) -> int:
        """Execute a write statement and return the affected row count."""
        with self.transaction() as conn:
            try:
                cursor = conn.execute(sql, params or [])
            except sqlite3.Error as e:
                raise QueryError(str(e), sql=sql)
            return cursor.rowcount

    def execute_insert(self, sql: str, params: Params = None) -> int:
        """Execute an INSERT and return the new rowid."""
        with self.transaction() as conn:
            try:
                cursor = conn.execute(sql, params or [])
            except sqlite3.Error as e:
                raise QueryError(str(e), sql=sql)
            return cursor.lastrowid

    def query_all(self, sql: str, params: Params = None) -> List[Dict[str, Any]]:
        """Run a SELECT and return every row as a dict."""
        conn = self._get_connection()
        try:
            rows = conn.execute(sql, params or []).fetchall()
        except sqlite3.Error as e:
            raise QueryError(str(e), sql=sql)
        return [dict(row) for row in rows]

    def query_first(self, sql: str, params: Params = None) -> Optional[Dict[str, Any]]:
        """Run a SELECT and return the first row, or None."""
        conn = self._get_connection()
        try:
            row = conn.execute(sql, params or []).fetchone()
        except sqlite3.Error as e:
            raise QueryError(str(e), sql=sql)
        return dict(row) if row is not None else None

    # =========================================================================
    # MIGRATIONS
    # =========================================================================

    def migrate(self) -> None:
        """
        Create missing tables and apply the additive column migrations.

        Safe to call repeatedly. "duplicate column" means the migration has
        already run; any other failure is logged and skipped.
        """
        conn = self._get_connection()

        for table_name, schema in self.SCHEMA.items():
            try:
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")
            except sqlite3.Error as e:
                logger.error(f"Error creating table {table_name}: {e}")
        conn.commit()

        for table, column, column_type in self.COLUMN_MIGRATIONS:
            self._add_column(conn, table, column, column_type)

        for statement in self.INDEXES:
            try:
                conn.execute(statement)
            except sqlite3.Error as e:
                logger.warning(f"Index creation note: {e}")
        conn.commit()

        self._columns.clear()
        self._migrated = True
        logger.info("Local store migrated")

    def _add_column(self, conn: sqlite3.Connection, table: str, column: str, column_type: str) -> None:
        try:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
            conn.commit()
            logger.debug(f"Added column {table}.{column}")
        except sqlite3.OperationalError as e:
            if "duplicate column" in str(e).lower():
                return
            logger.warning(f"Migration note ({table}.{column}): {e}")
        except sqlite3.Error as e:
            logger.warning(f"Migration note ({table}.{column}): {e}")

    def table_columns(self, table: str) -> Tuple[str, ...]:
        """Column names of a local table (cached after first lookup)."""
        if table not in self._columns:
            self._check_table(table)
            rows = self.query_all(f"PRAGMA table_info({table})")
            self._columns[table] = tuple(row["name"] for row in rows)
        return self._columns[table]

    def _check_table(self, table: str) -> None:
        if table not in self.SCHEMA:
            raise QueryError(f"Unknown local table: {table}")

    # =========================================================================
    # ROW HELPERS
    # =========================================================================

    def upsert(self, table: str, row: Dict[str, Any]) -> bool:
        """
        Insert a row, or update an existing row with the same primary key.

        Only the columns present in ``row`` are written; other columns of an
        existing row keep their values. Keys that are not columns of the
        local table are ignored; nested values are stored as JSON text.
        """
        columns = [c for c in self.table_columns(table) if c in row]
        if not columns:
            return False

        values = [
            json.dumps(row[c]) if isinstance(row[c], (dict, list)) else row[c]
            for c in columns
        ]
        placeholders = ", ".join("?" for _ in columns)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")
        on_conflict = f"DO UPDATE SET {assignments}" if assignments else "DO NOTHING"
        self.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) {on_conflict}",
            values,
        )
        return True

    def get_by_id(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        """Get a record by primary key."""
        self._check_table(table)
        return self.query_first(f"SELECT * FROM {table} WHERE id = ?", [row_id])

    def to_dataframe(
        self,
        table: str,
        where: Optional[str] = None,
        params: Params = None,
    ) -> pd.DataFrame:
        """
        Load a table into a pandas DataFrame.

        Args:
            table: Table name
            where: Optional WHERE clause
            params: Parameters for WHERE clause
        """
        self._check_table(table)
        query = f"SELECT * FROM {table}"
        if where:
            query += f" WHERE {where}"

        try:
            return pd.read_sql_query(query, self._get_connection(), params=params)
        except (sqlite3.Error, pd.errors.DatabaseError) as e:
            raise QueryError(str(e), sql=query)

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        row = self.query_first("SELECT value FROM app_settings WHERE key = ?", [key])
        if row is None or row["value"] is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return row["value"]

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        value_str = value if isinstance(value, str) else json.dumps(value)
        self.execute(
            """
            INSERT OR REPLACE INTO app_settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            [key, value_str, utc_now_iso()],
        )

    def reset_data(self) -> None:
        """Drop all mirrored rows, the queue and the sync watermark (sign-out)."""
        with self.transaction():
            for table in MIRRORED_TABLES:
                self.execute(f"DELETE FROM {table}")
            self.execute("DELETE FROM sync_queue")
            self.execute("DELETE FROM app_settings WHERE key = ?", [WATERMARK_KEY])
        logger.info("Local data reset")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Close this store's connections and evict it from the open cache."""
        with LocalStore._lock:
            if LocalStore._instances.get(str(self.db_path)) is self:
                del LocalStore._instances[str(self.db_path)]
        self._close_connections()

    def _close_connections(self) -> None:
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug(f"Error closing connection: {e}")
        self._local = threading.local()
