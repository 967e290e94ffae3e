# streamlit_app/dashboard.py
from __future__ import annotations
import os
import time
import pandas as pd
import streamlit as st

from enums.trade_status import TradeStatus
from repositories.trade_repository import TradeRepository
from utils.config import load_settings

DB_PATH = os.getenv("DB_PATH") or load_settings().db.path
trade_repo = TradeRepository(db_path=DB_PATH)

st.set_page_config(page_title="Upbit Scalper", layout="wide")
st.title("📊 Upbit Scalper")

# Sidebar
st.sidebar.header("Options")
auto_refresh = st.sidebar.checkbox("Auto-refresh", value=True)
interval_s   = st.sidebar.number_input("Interval (s)", min_value=2, max_value=60, value=5, step=1)
limit_rows   = st.sidebar.number_input("Rows to show", min_value=10, max_value=1000, value=100, step=10)

tab1, tab2 = st.tabs(["Open position", "Results"])

trades = trade_repo.get_recent_trades(limit=int(limit_rows))
df_all = pd.DataFrame([t.model_dump(mode="json") for t in trades]) if trades else pd.DataFrame()

# --------------------------
# Open position
# --------------------------
with tab1:
    st.subheader("Open trade")
    open_df = df_all[df_all["status"] != TradeStatus.CLOSED.value] if not df_all.empty else df_all
    if not open_df.empty:
        cols = [c for c in ["id", "market", "display_name", "status", "plan_buy_price", "plan_take_profit",
                            "plan_stop_loss", "buy_unit_price", "buy_volume", "buy_datetime"] if c in open_df.columns]
        st.dataframe(open_df[cols], use_container_width=True)
    else:
        st.info("No open trade.")

# --------------------------
# Results
# --------------------------
with tab2:
    st.subheader("Closed trades")

    summary = trade_repo.summary()
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Closed trades", f"{summary.get('closed_trades', 0)}")
    c2.metric("Win rate", f"{summary.get('win_rate', 0.0) * 100:.1f}%")
    c3.metric("Total profit (KRW)", f"{summary.get('profit_total', 0.0):,.0f}")
    c4.metric("Avg profit rate", f"{summary.get('avg_profit_rate', 0.0):.2f}%")

    if not df_all.empty:
        dfh = df_all[df_all["status"] == TradeStatus.CLOSED.value]

        # Filters
        markets = sorted(dfh["market"].dropna().unique()) if "market" in dfh.columns else []
        selected_market = st.selectbox("Filter by market", options=["(All)"] + markets)
        if selected_market != "(All)":
            dfh = dfh[dfh["market"] == selected_market]

        exits = sorted(dfh["exit_reason"].dropna().unique()) if "exit_reason" in dfh.columns else []
        selected_exit = st.selectbox("Filter by exit", options=["(All)"] + exits)
        if selected_exit != "(All)":
            dfh = dfh[dfh["exit_reason"] == selected_exit]

        pref = [
            "id", "market", "display_name", "exit_reason",
            "buy_unit_price", "buy_total_amount", "buy_datetime",
            "sell_unit_price", "sell_total_amount", "sell_datetime",
            "realized_profit_rate", "realized_profit_amount", "system_version",
        ]
        cols = [c for c in pref if c in dfh.columns] + [c for c in dfh.columns if c not in pref]
        st.dataframe(dfh[cols], use_container_width=True)
    else:
        st.info("No trades recorded yet.")

# --------------------------
# Auto-refresh
# --------------------------
if auto_refresh:
    time.sleep(float(interval_s))
    st.rerun()
