from __future__ import annotations

from datetime import datetime, timezone

import streamlit as st

from wealthscope.core.config import SETTINGS
from wealthscope.core.schemas import AIProvider, AnalysisConfiguration


def _badge(text: str, kind: str = "info") -> None:
    """Small colored badge using HTML."""
    color = {
        "ok": "#0f9d58",
        "warn": "#f4b400",
        "bad": "#db4437",
        "info": "#4285f4",
    }.get(kind, "#4285f4")
    st.markdown(
        f"""
        <span style="display:inline-block;padding:2px 10px;border-radius:999px;font-size:12px;background:{color};color:white;">
          {text}
        </span>
        """,
        unsafe_allow_html=True,
    )


def _fmt_cny(value: float) -> str:
    return f"¥{value:,.2f}"


def _fmt_pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def _fmt_ts(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _ratio_kind(value: float, *, warn: float, bad: float) -> str:
    if value >= bad:
        return "bad"
    if value >= warn:
        return "warn"
    return "ok"


def _render_settings_form() -> AnalysisConfiguration:
    """Sidebar provider settings; blank fields fall back to environment defaults."""
    st.subheader("AI provider")
    labels = {
        AIProvider.STRUCTURED_VISION: "Gemini (structured vision)",
        AIProvider.OPENAI_COMPATIBLE: "OpenAI-compatible",
    }
    options = list(labels.keys())
    default_idx = options.index(AIProvider(SETTINGS.default_provider)) if SETTINGS.default_provider in ("gemini", "openai") else 0
    provider = st.selectbox("Provider", options, index=default_idx, format_func=lambda p: labels[p])

    api_key = st.text_input("API key (optional, env default used if blank)", type="password")

    if provider is AIProvider.STRUCTURED_VISION:
        model_name = st.text_input("Model", value=SETTINGS.structured_default_model)
        return AnalysisConfiguration(provider=provider, api_key=api_key, model_name=model_name)

    base_url = st.text_input("Base URL", value=SETTINGS.openai_base_url, placeholder="https://api.openai.com/v1")
    model_name = st.text_input("Reasoning model", value=SETTINGS.openai_model)

    with st.expander("Separate vision model (two-stage OCR)"):
        vision_model_name = st.text_input("Vision model", value=SETTINGS.vision_model)
        vision_base_url = st.text_input("Vision base URL (blank = same as above)")
        vision_api_key = st.text_input("Vision API key (blank = same as above)", type="password")

    return AnalysisConfiguration(
        provider=provider,
        api_key=api_key,
        base_url=base_url,
        model_name=model_name,
        vision_model_name=vision_model_name,
        vision_base_url=vision_base_url,
        vision_api_key=vision_api_key,
    )
