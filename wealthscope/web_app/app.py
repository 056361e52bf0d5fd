import streamlit as st
from wealthscope.core.config import SETTINGS
from wealthscope.utils.history import HistoryStore
from wealthscope.utils.logging import setup_logging
from wealthscope.web_app.ui_helpers import _render_settings_form
from wealthscope.pages import analyze, history

# Setup logging
setup_logging(SETTINGS.log_level)

st.set_page_config(page_title="WealthScope", layout="wide")

# Session initialization
def _init_session() -> None:
    st.session_state.setdefault("result", None)
    st.session_state.setdefault("history_store", HistoryStore(SETTINGS.history_path, limit=SETTINGS.history_limit))

_init_session()

# Sidebar for provider settings
with st.sidebar:
    st.session_state["analysis_config"] = _render_settings_form()
    st.divider()
    st.caption(f"Env: {SETTINGS.env}")

# Main UI
st.title("WealthScope")

tab_analyze, tab_history, tab_privacy = st.tabs(["New analysis", "History", "Privacy"])

with tab_analyze:
    analyze.render()

with tab_history:
    history.render()

with tab_privacy:
    st.markdown(
        "- Screenshots are sent only to the AI provider configured in the sidebar.\n"
        "- API keys entered here are kept in this session and never written to disk.\n"
        f"- Analysis history is stored locally in `{SETTINGS.history_path}`; use *Clear history* to delete it.\n"
        "- Extracted figures come from an AI model and may be wrong; verify before acting on them."
    )
