# =============================================================================
# dart_core/offline/remote_store.py
# Remote store interface consumed by the push and pull engines
# =============================================================================
"""
RemoteStore - per-table CRUD and file storage against the backend.

Adapters classify every failure once, at this boundary, into a closed
RemoteErrorKind so the engines branch on a finite set of outcomes instead of
inspecting error text. Adapter methods return a RemoteResult and never raise.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RemoteErrorKind(Enum):
    """Outcome classes of a failed remote call."""
    NOT_FOUND = "not_found"              # Row does not exist (PGRST116)
    CONFLICT = "conflict"                # Unique-constraint violation (23505)
    SCHEMA_MISMATCH = "schema_mismatch"  # Unknown column (PGRST204 / 42703)
    OTHER = "other"                      # Network, auth, validation, ...

    @property
    def is_terminal(self) -> bool:
        """Retrying an entry that failed this way cannot succeed."""
        # Includes SCHEMA_MISMATCH (PGRST204 / 42703): such entries are evicted, not retried
        return self is not RemoteErrorKind.OTHER


@dataclass
class RemoteResult:
    """Result of one remote call."""
    ok: bool
    kind: Optional[RemoteErrorKind] = None
    message: Optional[str] = None
    code: Optional[str] = None
    data: List[Dict[str, Any]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, data: Optional[List[Dict[str, Any]]] = None) -> RemoteResult:
        return cls(ok=True, data=data or [])

    @classmethod
    def failure(
        cls,
        kind: RemoteErrorKind,
        message: str,
        code: Optional[str] = None,
    ) -> RemoteResult:
        return cls(ok=False, kind=kind, message=message, code=code)


class RemoteStore(ABC):
    """Per-table CRUD with row ownership and change timestamps."""

    @abstractmethod
    def select_changed(
        self,
        table: str,
        owner_column: str,
        owner_id: str,
        change_column: str,
        since: str,
    ) -> RemoteResult:
        """Rows owned by ``owner_id`` whose ``change_column`` is after ``since``."""

    @abstractmethod
    def insert(self, table: str, row: Dict[str, Any]) -> RemoteResult:
        """Insert one row."""

    @abstractmethod
    def update(self, table: str, row: Dict[str, Any], row_id: str) -> RemoteResult:
        """Update the row whose id is ``row_id``."""

    @abstractmethod
    def delete(self, table: str, row_id: str) -> RemoteResult:
        """Delete the row whose id is ``row_id``."""

    @abstractmethod
    def get_row(self, table: str, row_id: str) -> RemoteResult:
        """Fetch the row whose id is ``row_id`` (NOT_FOUND when absent)."""

    # ---- file storage --------------------------------------------------------

    @abstractmethod
    def upload_file(
        self,
        bucket: str,
        object_name: str,
        local_path: str,
        content_type: Optional[str] = None,
    ) -> RemoteResult:
        """
        Upload a device file, replacing any object with the same name.

        On success ``data[0]`` holds ``{"path": object_name, "url": public_url}``.
        Any failure is reported as OTHER so the queue entry is retried.
        """

    @abstractmethod
    def remove_file(self, bucket: str, url: str) -> RemoteResult:
        """Remove the object behind a public URL; unknown URLs are a no-op."""


def storage_object_path(url: Optional[str], bucket: str) -> Optional[str]:
    """Object path inside ``bucket`` for one of its public URLs, or None."""
    marker = f"/{bucket}/"
    if not url or marker not in url:
        return None
    path = url.split(marker, 1)[1].split("?", 1)[0]
    return path or None
