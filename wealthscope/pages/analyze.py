import streamlit as st

from wealthscope.analysis.image_encoder import ImageBlob
from wealthscope.analysis.orchestrator import AnalysisOrchestrator
from wealthscope.core.errors import AnalysisFailed
from wealthscope.pages import dashboard


def render():
    st.subheader("New analysis")
    st.caption("Upload screenshots of bank, brokerage or wealth-management account pages.")

    uploaded = st.file_uploader(
        "Screenshots",
        type=["png", "jpg", "jpeg", "webp", "gif", "bmp"],
        accept_multiple_files=True,
    )

    if uploaded:
        names = [f.name for f in uploaded]
        order = st.multiselect("Analysis order (images are sent in this order)", names, default=names)
        by_name = {f.name: f for f in uploaded}
        ordered = [by_name[n] for n in order if n in by_name]

        cols = st.columns(min(4, max(1, len(ordered))))
        for idx, f in enumerate(ordered):
            cols[idx % len(cols)].image(f, caption=f"{idx + 1}. {f.name}", use_container_width=True)

        if st.button("Analyze assets", type="primary", disabled=not ordered):
            config = st.session_state["analysis_config"]
            with st.spinner(f"Analyzing {len(ordered)} screenshot(s)..."):
                try:
                    result = AnalysisOrchestrator().analyze_sync(
                        [ImageBlob.from_upload(f) for f in ordered],
                        config,
                    )
                    st.session_state["result"] = result
                    st.session_state["history_store"].add(result)
                except AnalysisFailed as e:
                    st.session_state["result"] = None
                    st.error(e.envelope.message)
                    if e.envelope.retriable:
                        st.caption("This looks temporary; you can retry.")
    else:
        st.info("Upload one or more screenshots to start.")

    result = st.session_state.get("result")
    if result is not None:
        st.divider()
        dashboard.render(result)
