from __future__ import annotations

import streamlit as st

from lstracker.runtime import TrackerRuntime

_TOAST_ICONS = {"error": "🚫", "warning": "⚠️", "info": "ℹ️", "success": "✅"}


def show_notices(runtime: TrackerRuntime) -> None:
    for notice in runtime.coordinator.drain_notices():
        st.toast(f"**{notice.title}**: {notice.description}", icon=_TOAST_ICONS.get(notice.level, "ℹ️"))


def render_sync_sidebar(runtime: TrackerRuntime) -> None:
    coordinator = runtime.coordinator
    state = runtime.store.state
    with st.sidebar:
        st.subheader("Sync")
        if not coordinator.is_configured:
            st.write("Remote: **not configured** (local only)")
        elif coordinator.setup_required:
            st.write("Remote: **setup required**")
        else:
            st.write(f"Remote: **{'online' if state.is_online else 'offline'}**")
        st.write(f"Unsynced changes: **{state.unsynced_changes.count}**")
        if coordinator.last_synced_at:
            st.caption(f"Last sync: {coordinator.last_synced_at}")
        if coordinator.is_configured and st.button("Sync now", key="sidebar_sync"):
            try:
                if runtime.request_sync():
                    st.success("Synced.")
            except TimeoutError:
                st.warning("Sync is taking long; it will continue in the background.")
    show_notices(runtime)
