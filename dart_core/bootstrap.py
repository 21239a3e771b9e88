# =============================================================================
# dart_core/bootstrap.py
# Explicit wiring of the sync stack
# =============================================================================
"""
Builds the local store, queue, engines and data service from a SyncConfig.

Components receive their collaborators through their constructors; this is
the only place that knows the whole graph.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from dart_core.config import SyncConfig
from dart_core.data.supabase_client import SupabaseRemoteStore, get_supabase_client
from dart_core.logging import get_logger
from dart_core.offline.connection_manager import ConnectionManager
from dart_core.offline.local_store import LocalStore
from dart_core.offline.mutation_queue import MutationQueue
from dart_core.offline.pull_engine import PullEngine
from dart_core.offline.push_engine import PushEngine
from dart_core.offline.remote_store import RemoteStore
from dart_core.offline.sync_engine import SyncEngine
from dart_core.offline.unified_data_service import UnifiedDataService

logger = get_logger(__name__)


@dataclass
class SyncStack:
    """Everything a screen needs, wired together."""
    config: SyncConfig
    store: LocalStore
    queue: MutationQueue
    connectivity: ConnectionManager
    data: UnifiedDataService
    engine: Optional[SyncEngine] = None

    @property
    def local_only(self) -> bool:
        return self.engine is None

    def shutdown(self) -> None:
        if self.engine is not None:
            self.engine.stop()
        if hasattr(self.connectivity, "stop_monitoring"):
            self.connectivity.stop_monitoring()


def build_sync_stack(
    config: SyncConfig,
    remote: Optional[RemoteStore] = None,
    connectivity=None,
    start_background: bool = True,
) -> SyncStack:
    """
    Open the local store and wire the sync components.

    Args:
        config: Loaded configuration
        remote: RemoteStore to use instead of the Supabase adapter
        connectivity: Connectivity monitor to use instead of ConnectionManager
        start_background: Start the connectivity monitor and sync timer threads

    Returns:
        SyncStack; without a remote store the stack is local-only and has no
        engine
    """
    store = LocalStore.open(config.db_path)
    queue = MutationQueue(store)

    if connectivity is None:
        connectivity = ConnectionManager(
            supabase_url=config.supabase_url,
            check_interval_online=config.check_interval_online,
            check_interval_offline=config.check_interval_offline,
            connection_timeout=config.connection_timeout,
        )
        connectivity.initialize(start_monitoring=start_background)

    if remote is None:
        client = get_supabase_client(config)
        if client is not None:
            remote = SupabaseRemoteStore(client, page_size=config.pull_page_size)

    if remote is None:
        logger.warning("No remote store available; local changes stay queued")
        return SyncStack(
            config=config,
            store=store,
            queue=queue,
            connectivity=connectivity,
            data=UnifiedDataService(store, queue),
        )

    engine = SyncEngine(
        store,
        queue,
        PushEngine(
            store,
            queue,
            remote,
            connectivity,
            max_retries=config.max_retries or None,
        ),
        PullEngine(
            store,
            remote,
            connectivity,
            queue=queue,
            protect_pending=config.protect_pending,
        ),
        connectivity,
        sync_interval=config.sync_interval,
    )
    engine.initialize()
    if start_background:
        engine.start()

    logger.info("Sync stack ready")
    return SyncStack(
        config=config,
        store=store,
        queue=queue,
        connectivity=connectivity,
        data=UnifiedDataService(store, queue, engine),
        engine=engine,
    )
