from __future__ import annotations

import streamlit as st

st.set_page_config(page_title="LS Production Tracker", page_icon="🧵", layout="wide")

pages = [
    st.Page("home.py", title="Home", icon="🏠"),
    st.Page("pages/1_🧵_Production.py", title="Production", icon="🧵"),
    st.Page("pages/2_🚚_Delivery.py", title="Delivery", icon="🚚"),
    st.Page("pages/3_📦_Stock.py", title="Stock", icon="📦"),
    st.Page("pages/4_📊_Reports.py", title="Reports", icon="📊"),
    st.Page("pages/5_⚙️_Settings_&_Sync.py", title="Settings & Sync", icon="⚙️"),
]

st.navigation(pages).run()
