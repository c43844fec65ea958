from __future__ import annotations

import streamlit as st

from lstracker.runtime import get_runtime
from lstracker.services.reports import dashboard_counts, taka_detail
from lstracker.ui import render_sync_sidebar

st.set_page_config(page_title="LS Production Tracker", page_icon="🧵", layout="wide")

st.title("🧵 LS Production Tracker")
st.caption("Taka production and delivery register. Works offline; changes sync to the shared database when online.")

runtime = get_runtime()
render_sync_sidebar(runtime)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{runtime.config.data_dir}`")
    st.write(f"**Database:** `{runtime.config.db_path.name}`")

state = runtime.store.state
counts = dashboard_counts(state)

c1, c2, c3, c4 = st.columns(4)
c1.metric("Produced takas", counts["production"])
c2.metric("Delivered", counts["delivered"])
c3.metric("In stock", counts["pending"])
c4.metric("Unsynced changes", counts["unsynced"])

st.divider()
st.subheader("Find a taka")
taka = st.text_input("Taka number", value="")
if taka.strip():
    detail = taka_detail(state, taka)
    if detail is None:
        st.warning(f"Taka {taka.strip()} not found.")
    else:
        left, right = st.columns(2)
        with left:
            st.markdown("**Production**")
            st.write(f"Machine: **{detail['machineNumber']}**")
            st.write(f"Meter: **{detail['meter']}**")
            st.write(f"Date: **{detail['date']}**")
        with right:
            st.markdown("**Delivery**")
            if detail["isDelivered"]:
                st.write(f"Party: **{detail['partyName']}**")
                st.write(f"Lot: **{detail['lotNumber']}**")
                st.write(f"Date: **{detail['deliveryDate']}**")
                if detail["tpNumber"] is not None:
                    st.write(f"TP: **{detail['tpNumber']}**")
            else:
                st.info("Not delivered yet.")

if not state.production_entries:
    st.info(
        "No takas yet. Add production on **🧵 Production**, or load demo data from **⚙️ Settings & Sync**.",
        icon="ℹ️",
    )
