import streamlit as st
import pandas as pd
import plotly.express as px

from wealthscope.core.schemas import AssetAnalysisResult, AssetType, MacroCategory
from wealthscope.utils.export import breakdown_csv, export_filename, result_json
from wealthscope.utils.portfolio_stats import (
    compute_risk_metrics,
    filter_by_entity,
    totals_by,
)
from wealthscope.web_app.ui_helpers import _badge, _fmt_cny, _fmt_pct, _fmt_ts, _ratio_kind


def _render_metrics(result: AssetAnalysisResult) -> None:
    rm = result.risk_metrics
    recomputed = compute_risk_metrics(result.breakdown)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Net worth (CNY)", _fmt_cny(result.total_net_worth_cny))
    c2.metric("Stock concentration", _fmt_pct(rm.stock_concentration), help=f"Recomputed: {_fmt_pct(recomputed.stock_concentration)}")
    c3.metric("Entity concentration", _fmt_pct(rm.entity_concentration), help=f"Recomputed: {_fmt_pct(recomputed.entity_concentration)}")
    c4.metric("Cash ratio", _fmt_pct(rm.cash_ratio), help=f"Recomputed: {_fmt_pct(recomputed.cash_ratio)}")

    _badge(f"Entity concentration {_fmt_pct(rm.entity_concentration)}", _ratio_kind(rm.entity_concentration, warn=0.5, bad=0.8))
    st.caption(f"Snapshot {result.id[:8]} · {_fmt_ts(result.timestamp)}")


def _render_charts(result: AssetAnalysisResult, key: str) -> None:
    left, right = st.columns(2, gap="large")

    with left:
        by_type = totals_by(result, "type")
        if not by_type.empty:
            by_type["label"] = by_type["type"].map(lambda v: AssetType(v).label)
            fig = px.pie(by_type, values="value", names="label", hole=0.5, title="By asset type (CNY)")
            st.plotly_chart(fig, use_container_width=True, key=f"{key}_type")

        by_macro = totals_by(result, "macroCategory")
        if not by_macro.empty:
            by_macro["label"] = by_macro["macroCategory"].map(lambda v: MacroCategory(v).label)
            fig = px.pie(by_macro, values="value", names="label", hole=0.5, title="By macro category (CNY)")
            st.plotly_chart(fig, use_container_width=True, key=f"{key}_macro")

    with right:
        by_entity = totals_by(result, "entity")
        if not by_entity.empty:
            fig = px.bar(by_entity, x="value", y="entity", orientation="h", title="By institution (CNY)")
            fig.update_layout(yaxis={"categoryorder": "total ascending"})
            st.plotly_chart(fig, use_container_width=True, key=f"{key}_entity")


def _render_items(result: AssetAnalysisResult, key: str) -> None:
    entities = sorted({i.entity or "Unknown" for i in result.breakdown})
    selected = st.selectbox("Filter by institution", ["All", *entities], key=f"{key}_entity_filter_{result.id}")
    items = filter_by_entity(result, None if selected == "All" else selected)

    df = pd.DataFrame(
        [
            {
                "Name": i.name,
                "Institution": i.entity or "Unknown",
                "Type": i.type.label,
                "Category": i.macro_category.label,
                "Amount": f"{i.original_amount:,.2f} {i.currency}",
                "CNY": round(i.converted_amount_cny, 2),
                "Note": i.description or "",
            }
            for i in items
        ]
    )
    st.dataframe(df, use_container_width=True, hide_index=True)


def render(result: AssetAnalysisResult, key: str = "current") -> None:
    _render_metrics(result)
    st.divider()
    _render_charts(result, key)

    st.subheader("Line items")
    _render_items(result, key)

    st.subheader("Risk alerts")
    if result.risk_metrics.risk_alerts:
        for alert in result.risk_metrics.risk_alerts:
            st.warning(alert)
    else:
        st.caption("No risk alerts")

    st.subheader("Summary")
    st.markdown(result.summary)
    st.subheader("Distribution")
    st.markdown(result.distribution_analysis)
    st.subheader("Advice")
    st.markdown(result.investment_advice)

    if result.validation_warnings:
        with st.expander(f"Validation warnings ({len(result.validation_warnings)})"):
            for w in result.validation_warnings:
                st.caption(w)

    d1, d2 = st.columns(2)
    d1.download_button("Download CSV", breakdown_csv(result), file_name=export_filename(result, "csv"), mime="text/csv", key=f"{key}_csv")
    d2.download_button("Download JSON", result_json(result), file_name=export_filename(result, "json"), mime="application/json", key=f"{key}_json")
