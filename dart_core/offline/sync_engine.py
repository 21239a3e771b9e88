# =============================================================================
# dart_core/offline/sync_engine.py
# Sync Orchestrator: push then pull, one cycle at a time
# =============================================================================
"""
SyncEngine - the single entry point for synchronization.

Features:
- Single-flight trigger: a trigger while a cycle runs is dropped and reported
  as ALREADY_RUNNING
- Push-then-pull cycle with guaranteed return to IDLE
- Auto-triggers on user bind, connectivity regained and a foreground timer
- State callbacks for status displays
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from dart_core.errors import error_boundary
from dart_core.logging import get_logger, log_duration
from dart_core.offline.connection_manager import ConnectionState
from dart_core.offline.local_store import WATERMARK_KEY, LocalStore, utc_now_iso
from dart_core.offline.mutation_queue import MutationQueue
from dart_core.offline.pull_engine import PullEngine, PullReport
from dart_core.offline.push_engine import PushEngine, PushReport

logger = get_logger(__name__)


class TriggerResult(Enum):
    """What a call to SyncEngine.trigger() did."""
    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    NOT_READY = "not_ready"         # No signed-in user bound yet


class SyncStatus(Enum):
    """Sync status shown to the UI."""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SyncReport:
    """Outcome of one push-then-pull cycle."""
    started_at: str
    finished_at: Optional[str] = None
    push: Optional[PushReport] = None
    pull: Optional[PullReport] = None
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        """Offline: neither pass talked to the remote store."""
        return (
            self.error is None
            and self.push is not None and self.push.skipped
            and self.pull is not None and self.pull.skipped
        )

    @property
    def success(self) -> bool:
        if self.error is not None:
            return False
        push_ok = self.push is None or self.push.success
        pull_ok = self.pull is None or self.pull.skipped or self.pull.success
        return push_ok and pull_ok


@dataclass
class SyncState:
    """Current sync state."""
    is_syncing: bool = False
    status: SyncStatus = SyncStatus.IDLE
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    last_synced_at: Optional[str] = None
    last_report: Optional[SyncReport] = None
    cycles: int = 0
    total_pushed: int = 0
    dropped_triggers: int = 0


class SyncEngine:
    """
    Orchestrates push and pull passes for the signed-in user.

    Usage:
        engine = SyncEngine(store, queue, push_engine, pull_engine, monitor)
        engine.initialize()
        engine.bind_user(user_id)     # initial sync
        engine.trigger()              # fire-and-forget after a local write
        report = engine.sync_now()    # pull-to-refresh: wait for one cycle
    """

    def __init__(
        self,
        store: LocalStore,
        queue: MutationQueue,
        push_engine: PushEngine,
        pull_engine: PullEngine,
        connectivity,
        sync_interval: float = 60.0,
    ):
        self.store = store
        self.queue = queue
        self.push_engine = push_engine
        self.pull_engine = pull_engine
        self.connectivity = connectivity
        self.sync_interval = sync_interval

        self._state = SyncState(last_synced_at=store.get_setting(WATERMARK_KEY))
        self._user_id: Optional[str] = None
        self._cycle_lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._timer_thread: Optional[threading.Thread] = None
        self._stop_timer = threading.Event()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._initialized = False

    @property
    def state(self) -> SyncState:
        """Get current sync state."""
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def pending_count(self) -> int:
        return self.queue.pending_count()

    def initialize(self) -> None:
        """Subscribe to connectivity changes."""
        if self._initialized:
            return
        if hasattr(self.connectivity, "register_callback"):
            self.connectivity.register_callback(self._on_connection_change)
        self._initialized = True
        logger.info("SyncEngine initialized")

    # =========================================================================
    # USER SESSION
    # =========================================================================

    def bind_user(self, user_id: str, trigger: bool = True) -> Optional[TriggerResult]:
        """
        Attach the signed-in user; with a ready local store this is the
        initial-mount trigger.
        """
        self._user_id = user_id
        logger.info(f"Sync bound to user {user_id}")
        if trigger:
            return self.trigger()
        return None

    def unbind_user(self) -> None:
        """Detach the user (sign-out). A running cycle finishes first."""
        self._user_id = None
        self.wait_until_idle()

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def trigger(self, wait: bool = False) -> TriggerResult:
        """
        Start a sync cycle unless one is already running.

        Args:
            wait: Run the cycle on the calling thread and return when it ends;
                otherwise the cycle runs on a background thread

        Returns:
            STARTED, ALREADY_RUNNING (trigger dropped) or NOT_READY
        """
        result, _ = self._start(wait)
        return result

    def sync_now(self) -> Optional[SyncReport]:
        """
        Run one full cycle and wait for it.

        Returns:
            The cycle's report, or None when the trigger was dropped or no
            user is bound
        """
        _, report = self._start(wait=True)
        return report

    def _start(self, wait: bool) -> Tuple[TriggerResult, Optional[SyncReport]]:
        user_id = self._user_id
        if user_id is None:
            logger.debug("Sync not started: no user bound")
            return TriggerResult.NOT_READY, None

        if not self._cycle_lock.acquire(blocking=False):
            self._state.dropped_triggers += 1
            logger.debug("Sync already running; trigger dropped")
            return TriggerResult.ALREADY_RUNNING, None

        self._idle.clear()
        self._state.is_syncing = True
        self._state.status = SyncStatus.SYNCING

        if wait:
            return TriggerResult.STARTED, self._run_guarded(user_id)

        thread = threading.Thread(
            target=self._run_guarded,
            args=(user_id,),
            daemon=True,
            name="SyncCycle",
        )
        try:
            thread.start()
        except RuntimeError:
            self._finish()
            raise
        return TriggerResult.STARTED, None

    def _run_guarded(self, user_id: str) -> SyncReport:
        try:
            return self._run_cycle(user_id)
        finally:
            self._finish()

    def _finish(self) -> None:
        self._state.is_syncing = False
        self._cycle_lock.release()
        self._idle.set()
        self._notify_callbacks()

    def _run_cycle(self, user_id: str) -> SyncReport:
        report = SyncReport(started_at=utc_now_iso())
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        try:
            with log_duration(logger, "Sync cycle"):
                report.push = self.push_engine.run()
                report.pull = self.pull_engine.run(user_id)
        except Exception as e:
            report.error = str(e)

        report.finished_at = utc_now_iso()
        self._record(report)
        return report

    def _record(self, report: SyncReport) -> None:
        state = self._state
        state.cycles += 1
        state.last_report = report
        if report.push is not None:
            state.total_pushed += len(report.push.pushed)
        if report.skipped:
            state.status = SyncStatus.IDLE
        elif report.success:
            state.status = SyncStatus.SUCCESS
            state.last_sync_success = datetime.now()
        else:
            state.status = SyncStatus.ERROR
        try:
            state.last_synced_at = self.store.get_setting(WATERMARK_KEY)
        except Exception as e:
            logger.error(f"Could not read sync watermark: {e}")

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is running. Returns False on timeout."""
        return self._idle.wait(timeout)

    @error_boundary(error_message="Connectivity sync trigger failed")
    def _on_connection_change(self, state: ConnectionState) -> None:
        """Sync on the offline -> online edge."""
        if state.went_online:
            logger.info("Connection restored, triggering sync")
            self.trigger()

    # =========================================================================
    # FOREGROUND TIMER
    # =========================================================================

    def start(self) -> None:
        """Start the periodic foreground sync thread."""
        if self._timer_thread is not None and self._timer_thread.is_alive():
            return

        self.initialize()
        self._stop_timer.clear()
        self._timer_thread = threading.Thread(
            target=self._sync_loop,
            daemon=True,
            name="SyncEngine"
        )
        self._timer_thread.start()
        logger.info("Sync timer started")

    def stop(self, timeout: float = 10) -> None:
        """Stop the periodic thread and wait for a running cycle."""
        self._stop_timer.set()
        if self._timer_thread:
            self._timer_thread.join(timeout=timeout)
        self.wait_until_idle(timeout)
        logger.info("Sync timer stopped")

    def _sync_loop(self) -> None:
        while not self._stop_timer.wait(timeout=self.sync_interval):
            if self.connectivity.is_online:
                try:
                    self.trigger(wait=True)
                except Exception as e:
                    logger.error(f"Sync error: {e}")

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "status": self._state.status.value,
            "is_syncing": self._state.is_syncing,
            "user_id": self._user_id,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": self._state.last_sync_success.isoformat() if self._state.last_sync_success else None,
            "last_synced_at": self._state.last_synced_at,
            "pending_count": self.pending_count,
            "cycles": self._state.cycles,
            "total_pushed": self._state.total_pushed,
        }
