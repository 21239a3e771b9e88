# =============================================================================
# dart_core/offline/__init__.py
# Offline-First Sync Core for DART
# =============================================================================
"""
Offline-First Sync Module

Every screen reads and writes the local SQLite store. Writes are recorded in
a durable mutation queue and replayed against Supabase when the device is
online; remote changes are pulled back by watermark. Report files and task
photos saved on the device are uploaded to Supabase Storage during push.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST SYNC CORE                       │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 UnifiedDataService                        │  │
│   │          (local write + enqueue, then trigger)            │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                           │                      │
│              ▼                           ▼                      │
│   ┌──────────────────┐        ┌──────────────────┐             │
│   │   LocalStore     │◄──────►│  MutationQueue   │             │
│   │ (SQLite mirror)  │        │   (sync_queue)   │             │
│   └──────────────────┘        └──────────────────┘             │
│              ▲                           │                      │
│              │ pull                      │ push                 │
│   ┌──────────────────┐        ┌──────────────────┐             │
│   │   PullEngine     │        │   PushEngine     │             │
│   └──────────────────┘        └──────────────────┘             │
│              ▲                           │                      │
│              └────────── RemoteStore ◄───┘                      │
│                   (Supabase tables + Storage)                    │
│                                                                  │
│   SyncEngine: one push-then-pull cycle at a time, triggered by  │
│   sign-in, ConnectionManager going online and a foreground timer │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from dart_core.bootstrap import build_sync_stack

stack = build_sync_stack(load_config())
stack.engine.bind_user(user_id)

stack.data.save_accomplishment(user_id, "2026-03-02", "Inspected panel A")
print(stack.data.pending_sync_count)
"""

from dart_core.offline.table_schemas import (
    QueueAction,
    TableSchema,
    TABLE_SCHEMAS,
    MIRRORED_TABLES,
    get_schema,
)

from dart_core.offline.local_store import (
    LocalStore,
    WATERMARK_KEY,
)

from dart_core.offline.mutation_queue import (
    MutationQueue,
    QueueEntry,
)

from dart_core.offline.remote_store import (
    RemoteStore,
    RemoteResult,
    RemoteErrorKind,
)

from dart_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionStatus,
    ConnectionState,
)

from dart_core.offline.push_engine import PushEngine, PushReport
from dart_core.offline.pull_engine import PullEngine, PullReport

from dart_core.offline.sync_engine import (
    SyncEngine,
    SyncReport,
    SyncState,
    SyncStatus,
    TriggerResult,
)

from dart_core.offline.unified_data_service import (
    UnifiedDataService,
    generate_id,
)

__all__ = [
    # Schemas
    "QueueAction",
    "TableSchema",
    "TABLE_SCHEMAS",
    "MIRRORED_TABLES",
    "get_schema",
    # Local Store
    "LocalStore",
    "WATERMARK_KEY",
    # Mutation Queue
    "MutationQueue",
    "QueueEntry",
    # Remote Store
    "RemoteStore",
    "RemoteResult",
    "RemoteErrorKind",
    # Connectivity
    "ConnectionManager",
    "ConnectionStatus",
    "ConnectionState",
    # Engines
    "PushEngine",
    "PushReport",
    "PullEngine",
    "PullReport",
    "SyncEngine",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "TriggerResult",
    # Unified Service (Main API)
    "UnifiedDataService",
    "generate_id",
]
