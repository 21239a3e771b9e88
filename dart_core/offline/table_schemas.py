# =============================================================================
# dart_core/offline/table_schemas.py
# Per-table payload schemas for mirrored entities
# =============================================================================
"""
Schemas for the tables mirrored between the local store and Supabase.

Each queued payload is validated against the schema of its target table when
it is enqueued, so a malformed payload fails at the call site instead of
surfacing later as a remote error during a push pass.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from dart_core.errors import PayloadValidationError


class QueueAction(str, Enum):
    """Kind of write recorded in the mutation queue."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class TableSchema:
    """Columns and sync metadata of one mirrored table."""
    name: str
    columns: Tuple[str, ...]
    required: FrozenSet[str]
    change_column: str
    owner_column: str = "user_id"
    local_only: FrozenSet[str] = frozenset({"is_synced"})

    @property
    def remote_columns(self) -> Tuple[str, ...]:
        return tuple(c for c in self.columns if c not in self.local_only)

    def validate(self, action: QueueAction, payload: Optional[Mapping[str, Any]]) -> None:
        """
        Check a payload against this schema.

        Raises:
            PayloadValidationError: unknown columns, missing required columns
                on INSERT, or an empty UPDATE.
        """
        if payload is None:
            if action is QueueAction.DELETE:
                return
            raise PayloadValidationError(
                f"{action.value} on {self.name} requires a payload", table=self.name
            )

        if not isinstance(payload, Mapping):
            raise PayloadValidationError(
                f"Payload for {self.name} must be a mapping, got {type(payload).__name__}",
                table=self.name,
            )

        unknown = sorted(set(payload) - set(self.columns))
        if unknown:
            raise PayloadValidationError(
                f"Unknown columns for {self.name}", table=self.name, columns=unknown
            )

        if action is QueueAction.INSERT:
            missing = sorted(c for c in self.required if payload.get(c) is None)
            if missing:
                raise PayloadValidationError(
                    f"Missing required columns for {self.name}",
                    table=self.name,
                    columns=missing,
                )
        elif action is QueueAction.UPDATE and not payload:
            raise PayloadValidationError(
                f"UPDATE on {self.name} requires at least one column", table=self.name
            )

    def to_remote(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Drop columns that only exist on the device."""
        return {k: v for k, v in payload.items() if k not in self.local_only}


TABLE_SCHEMAS: Dict[str, TableSchema] = {
    "attendance": TableSchema(
        name="attendance",
        columns=(
            "id", "user_id", "job_id", "date", "clock_in", "clock_out",
            "status", "remarks", "updated_at", "is_synced",
        ),
        required=frozenset({"id", "user_id", "date", "clock_in"}),
        change_column="updated_at",
    ),
    "accomplishments": TableSchema(
        name="accomplishments",
        columns=(
            "id", "user_id", "job_id", "date", "description", "remarks",
            "image_url", "created_at", "updated_at", "is_synced",
        ),
        required=frozenset({"id", "user_id", "date", "description"}),
        change_column="created_at",
    ),
    "job_positions": TableSchema(
        name="job_positions",
        columns=(
            "id", "user_id", "title", "company", "department", "employment_status",
            "rate", "rate_type", "payout_type", "work_schedule", "break_schedule",
            "created_at", "updated_at",
        ),
        required=frozenset({"id", "user_id", "title"}),
        change_column="updated_at",
        local_only=frozenset(),
    ),
    "profiles": TableSchema(
        name="profiles",
        columns=(
            "id", "email", "first_name", "last_name", "middle_name", "title",
            "professional_suffix", "current_job_id", "full_name", "avatar_url",
            "local_avatar_path", "updated_at",
        ),
        required=frozenset({"id"}),
        change_column="updated_at",
        owner_column="id",
        local_only=frozenset({"local_avatar_path"}),
    ),
    "saved_reports": TableSchema(
        name="saved_reports",
        columns=(
            "id", "user_id", "title", "file_path", "file_type", "file_size",
            "remote_url", "created_at", "updated_at", "is_synced",
        ),
        required=frozenset({"id", "user_id", "title", "file_type"}),
        change_column="created_at",
        local_only=frozenset({"is_synced", "file_path"}),
    ),
}

# Pull order; parents before children
MIRRORED_TABLES: Tuple[str, ...] = (
    "profiles",
    "job_positions",
    "attendance",
    "accomplishments",
    "saved_reports",
)


def get_schema(table: str) -> TableSchema:
    """Look up the schema of a mirrored table."""
    try:
        return TABLE_SCHEMAS[table]
    except KeyError:
        raise PayloadValidationError(f"Table {table!r} is not mirrored", table=table)


def clean_value(value: Any) -> Any:
    """Convert a single value into something json.dumps accepts."""
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) else float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, (dict, list, tuple, set)):
        return value
    if value is not None and pd.isna(value):
        return None
    return value


def clean_payload(payload: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Normalize datetimes and numpy scalars in a payload."""
    if payload is None:
        return None
    return {k: clean_value(v) for k, v in payload.items()}
