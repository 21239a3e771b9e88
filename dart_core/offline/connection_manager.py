# =============================================================================
# dart_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectionManager - Detects and monitors internet/Supabase connectivity.

Features:
- Connection detection (internet + Supabase host reachability)
- Periodic health checks on a background thread
- Callbacks on status changes, with the previous status for edge detection
- Injectable status checker for tests and for platform network APIs
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlparse

from dart_core.logging import get_logger

logger = get_logger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Full connectivity (Internet + Supabase)
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but Supabase unavailable
    CHECKING = "checking"       # Currently checking status
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    previous_status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    supabase_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None

    @property
    def went_online(self) -> bool:
        """True when the latest change was a transition into ONLINE."""
        return (
            self.status is ConnectionStatus.ONLINE
            and self.previous_status is not ConnectionStatus.ONLINE
        )


class ConnectionManager:
    """
    Connection status monitor shared by the sync engines.

    Usage:
        monitor = ConnectionManager(supabase_url=config.supabase_url)
        monitor.initialize()
        if monitor.is_online:
            ...
    """

    # Well-known DNS resolvers used as internet reachability targets
    INTERNET_HOSTS = (
        ("8.8.8.8", 53),        # Google DNS
        ("1.1.1.1", 53),        # Cloudflare DNS
        ("208.67.222.222", 53), # OpenDNS
    )

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        check_interval_online: float = 30.0,
        check_interval_offline: float = 10.0,
        connection_timeout: float = 5.0,
        checker: Optional[Callable[[], ConnectionStatus]] = None,
    ):
        """
        Args:
            supabase_url: Backend URL whose host is checked after the internet check
            check_interval_online: Seconds between checks while online
            check_interval_offline: Seconds between checks while offline
            connection_timeout: Socket timeout for each connection attempt
            checker: Replaces the socket checks; returns the detected status
        """
        self.supabase_url = supabase_url
        self.check_interval_online = check_interval_online
        self.check_interval_offline = check_interval_offline
        self.connection_timeout = connection_timeout
        self._checker = checker

        self._state = ConnectionState()
        self._state_lock = threading.Lock()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self._initialized = False

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        """Get current status."""
        return self._state.status

    @property
    def is_online(self) -> bool:
        """Check if we have full connectivity."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        """Check if we're completely offline."""
        return self._state.status == ConnectionStatus.OFFLINE

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Initialize the connection manager.

        Args:
            start_monitoring: Whether to start background monitoring
        """
        if self._initialized:
            return

        self.check_connection()

        if start_monitoring:
            self.start_monitoring()

        self._initialized = True
        logger.info(f"ConnectionManager initialized. Status: {self._state.status.value}")

    def check_connection(self) -> ConnectionState:
        """
        Perform a connection check and update state.

        Returns:
            Updated ConnectionState
        """
        with self._state_lock:
            if self._checker is not None:
                new_status = self._checker()
                internet_ok = new_status in (ConnectionStatus.ONLINE, ConnectionStatus.DEGRADED)
                supabase_ok = new_status == ConnectionStatus.ONLINE
            else:
                internet_ok = self._check_internet()
                supabase_ok = internet_ok and self._check_supabase()
                if internet_ok and supabase_ok:
                    new_status = ConnectionStatus.ONLINE
                elif internet_ok:
                    new_status = ConnectionStatus.DEGRADED
                else:
                    new_status = ConnectionStatus.OFFLINE

            changed = self._apply(new_status, internet_ok, supabase_ok)

        if changed:
            self._notify_callbacks()
        return self._state

    def _apply(self, new_status: ConnectionStatus, internet_ok: bool, supabase_ok: bool) -> bool:
        old_status = self._state.status
        self._state.last_check = datetime.now()
        self._state.internet_available = internet_ok
        self._state.supabase_available = supabase_ok

        if new_status == ConnectionStatus.ONLINE:
            self._state.last_online = datetime.now()
            self._state.consecutive_failures = 0
            self._state.error_message = None
        else:
            self._state.consecutive_failures += 1

        if old_status == new_status:
            return False

        self._state.previous_status = old_status
        self._state.status = new_status
        logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
        return True

    def _can_connect(self, host: str, port: int) -> bool:
        try:
            with socket.create_connection((host, port), timeout=self.connection_timeout):
                return True
        except OSError:
            return False

    def _check_internet(self) -> bool:
        """Check internet connectivity by attempting to reach well-known hosts."""
        return any(self._can_connect(host, port) for host, port in self.INTERNET_HOSTS)

    def _check_supabase(self) -> bool:
        """Check that the Supabase host accepts connections."""
        if not self.supabase_url:
            # No Supabase configured - treat as available (local-only mode)
            return True

        parsed = urlparse(self.supabase_url)
        if not parsed.hostname:
            self._state.error_message = f"Invalid Supabase URL: {self.supabase_url}"
            return False

        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        ok = self._can_connect(parsed.hostname, port)
        if not ok:
            self._state.error_message = f"Cannot reach {parsed.hostname}:{port}"
        return ok

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        """Background monitoring loop."""
        while not self._stop_monitoring.is_set():
            interval = (
                self.check_interval_online
                if self.is_online
                else self.check_interval_offline
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with ConnectionState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        """Notify all registered callbacks of status change."""
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def _force(self, status: ConnectionStatus) -> None:
        online = status == ConnectionStatus.ONLINE
        with self._state_lock:
            changed = self._apply(status, online, online)
        if changed:
            self._notify_callbacks()

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self._force(ConnectionStatus.OFFLINE)
        logger.info("Forced offline mode")

    def force_online(self) -> None:
        """Mark the connection online, e.g. from a platform network event."""
        self._force(ConnectionStatus.ONLINE)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "internet": self._state.internet_available,
            "supabase": self._state.supabase_available,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
