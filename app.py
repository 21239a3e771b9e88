"""
Streamlit entry point for the DART offline sync core.

Wires the sync stack once per server process and renders the sync status
panel for the signed-in user. Sign-in itself happens elsewhere; the user id
is taken from the session, the DART_USER_ID environment variable, or typed in
the sidebar.
"""

from __future__ import annotations
import os

import streamlit as st

from dart_core.bootstrap import SyncStack, build_sync_stack
from dart_core.config import load_config
from dart_core.errors import handle_error
from dart_core.logging import get_logger, setup_logging
from dart_core.ui.sync_status import render_sync_status_panel

logger = get_logger(__name__)


@st.cache_resource
def get_sync_stack() -> SyncStack:
    """One wired stack per server process."""
    config = load_config()
    setup_logging(level=config.logging_level, log_dir=config.log_dir)
    return build_sync_stack(config)


def _current_user_id() -> str:
    user_id = st.session_state.get("user_id") or os.environ.get("DART_USER_ID", "")
    return st.sidebar.text_input("User ID", value=user_id).strip()


def main() -> None:
    st.set_page_config(
        page_title="DART - Sync",
        page_icon="🔄",
        layout="wide",
    )
    st.title("🔄 DART Sync")

    try:
        stack = get_sync_stack()
    except Exception as e:
        handle_error(e, show_user_message=True, user_message="Could not open local storage")
        st.stop()

    user_id = _current_user_id()
    if not user_id:
        st.info("Sign in to start syncing.")
        st.stop()

    if stack.engine is not None and stack.engine.user_id != user_id:
        if stack.engine.user_id is not None:
            # Switching accounts: the previous user's mirror must not leak
            stack.engine.unbind_user()
            stack.store.reset_data()
        st.session_state["user_id"] = user_id
        stack.engine.bind_user(user_id)

    render_sync_status_panel(
        stack.store,
        stack.engine,
        connectivity=stack.connectivity,
        show_in_expander=False,
        max_retries=stack.config.max_retries or None,
    )


main()
