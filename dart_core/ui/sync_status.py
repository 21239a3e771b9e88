# =============================================================================
# dart_core/ui/sync_status.py
# Reusable UI Component for Sync Status
# Shows connectivity, queue depth and last sync; offers a manual sync
# =============================================================================

import streamlit as st
from typing import Optional

import pandas as pd

from dart_core.errors import safe_execute
from dart_core.offline.local_store import WATERMARK_KEY, LocalStore
from dart_core.offline.mutation_queue import MutationQueue
from dart_core.offline.pull_engine import to_utc
from dart_core.offline.sync_engine import SyncEngine, SyncReport, SyncStatus

STATUS_LABELS = {
    SyncStatus.IDLE: "⏸️ Idle",
    SyncStatus.SYNCING: "🔄 Syncing...",
    SyncStatus.SUCCESS: "✅ Synced",
    SyncStatus.ERROR: "⚠️ Last sync had errors",
}


def format_last_synced(value: Optional[str]) -> str:
    """Render a stored watermark as local-readable text."""
    ts = to_utc(value)
    if ts is None:
        return "Never"
    return ts.strftime("%Y-%m-%d %H:%M UTC")


def describe_report(report: SyncReport) -> str:
    """One-line summary of a sync cycle."""
    if report.error:
        return f"Sync failed: {report.error}"

    parts = []
    if report.push is not None:
        if report.push.skipped:
            parts.append("push skipped (offline)")
        else:
            parts.append(f"{len(report.push.pushed)} pushed")
            if report.push.evicted:
                parts.append(f"{len(report.push.evicted)} dropped")
            if report.push.failed:
                parts.append(f"{len(report.push.failed)} retrying")
    if report.pull is not None:
        if report.pull.skipped:
            parts.append("pull skipped (offline)")
        else:
            parts.append(f"{report.pull.total} pulled")
            if report.pull.failed_tables:
                parts.append(f"failed: {', '.join(report.pull.failed_tables)}")
    return ", ".join(parts) or "Nothing to sync"


def load_queue_frame(store: LocalStore) -> pd.DataFrame:
    """Pending queue entries for display, oldest first."""
    df = store.to_dataframe("sync_queue", where="status = ?", params=["PENDING"])
    if df.empty:
        return df
    columns = [c for c in ("id", "table_name", "action", "row_id", "retry_count", "last_error", "created_at") if c in df.columns]
    return df.sort_values("id")[columns].reset_index(drop=True)


def render_sync_status_panel(
    store: LocalStore,
    engine: Optional[SyncEngine],
    connectivity=None,
    show_queue: bool = True,
    show_in_expander: bool = True,
    max_retries: Optional[int] = None,
) -> None:
    """
    Render the sync status panel.

    Args:
        store: Local store (queue and watermark are read from it)
        engine: Sync engine, or None when running local-only
        connectivity: Optional connectivity monitor for the online badge
        show_queue: Show pending queue entries in a table
        show_in_expander: Whether to wrap in an expander (default: True)
        max_retries: Retry limit of the push engine; entries at the limit
            are flagged and can be released for another attempt
    """

    def _render_parked(pending: pd.DataFrame, limit: int):
        parked = int((pending["retry_count"].fillna(0) >= limit).sum())
        if not parked:
            return
        st.warning(f"⚠️ {parked} change(s) failed {limit} times and are paused")
        if st.button("🔁 Retry paused changes", key="dart_retry_parked"):
            MutationQueue(store).reset_retries()
            if engine is not None:
                engine.trigger()
            st.rerun()

    def _render_panel():
        pending = load_queue_frame(store)

        col1, col2, col3 = st.columns(3)
        with col1:
            if connectivity is not None and connectivity.is_online:
                st.metric("Connection", "🟢 Online")
            elif connectivity is not None:
                st.metric("Connection", "🔴 Offline")
            else:
                st.metric("Connection", "Unknown")
        with col2:
            st.metric("Pending changes", len(pending))
        with col3:
            st.metric("Last synced", format_last_synced(store.get_setting(WATERMARK_KEY)))

        if engine is None:
            st.info("💾 Supabase is not configured; changes are kept on this device.")
        else:
            state = engine.state
            status = SyncStatus.SYNCING if state.is_syncing else state.status
            st.caption(STATUS_LABELS[status])
            if state.last_report is not None:
                st.caption(describe_report(state.last_report))

            if st.button(
                "🔄 Sync now",
                key="dart_sync_now",
                use_container_width=True,
                type="primary",
                disabled=state.is_syncing,
            ):
                with st.spinner("Syncing..."):
                    report = safe_execute(
                        engine.sync_now,
                        default=None,
                        error_message="Manual sync failed",
                        show_user_message=True,
                    )
                if report is None:
                    st.warning("A sync is already running")
                elif report.skipped:
                    st.warning("📴 Offline; changes stay queued on this device")
                elif report.success:
                    st.success(f"✅ {describe_report(report)}")
                    st.rerun()
                else:
                    st.error(f"❌ {describe_report(report)}")

        if max_retries and not pending.empty:
            _render_parked(pending, max_retries)

        if show_queue and not pending.empty:
            st.dataframe(pending, use_container_width=True, hide_index=True)

    if show_in_expander:
        with st.expander("🔄 Sync Status", expanded=False):
            _render_panel()
    else:
        _render_panel()
