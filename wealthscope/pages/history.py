import streamlit as st
import plotly.express as px

from wealthscope.pages import dashboard
from wealthscope.utils.portfolio_stats import trend_frame
from wealthscope.web_app.ui_helpers import _fmt_cny, _fmt_ts


def render():
    st.subheader("History")
    store = st.session_state["history_store"]
    history = store.load()

    if not history:
        st.info("No snapshots yet. Run an analysis first.")
        return

    if len(history) > 1:
        df = trend_frame(history)
        fig = px.line(df, x="date", y="totalNetWorthCNY", markers=True, title="Net worth trend (CNY)")
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.caption("At least two snapshots are needed for a trend.")

    labels = {h.id: f"{_fmt_ts(h.timestamp)} · {_fmt_cny(h.total_net_worth_cny)}" for h in history}
    selected = st.selectbox("Snapshot", list(labels.keys()), format_func=lambda k: labels[k])

    if st.button("Clear history"):
        store.clear()
        st.rerun()

    snapshot = store.get(selected)
    if snapshot is not None:
        st.divider()
        dashboard.render(snapshot, key="history")
