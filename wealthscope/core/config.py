from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv


# Returns the process-wide default API key, or None when none is configured.
CredentialProvider = Callable[[], Optional[str]]


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str

    default_provider: str
    structured_default_model: str
    openai_base_url: str
    openai_model: str
    vision_model: str

    request_timeout_seconds: float
    temperature: float
    unified_max_tokens: int
    ocr_max_tokens: int

    strict_validation: bool
    total_tolerance_cny: float
    conversion_tolerance_pct: float

    history_path: str
    history_limit: int


def _deep_get(d: Dict[str, Any], path: str, default=None):
    cur = d
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def normalize_provider(value: Any) -> str:
    p = str(value or "").strip().lower()
    if p in ("google", "googleai", "google-genai", "genai", "structured_vision", "structured-vision"):
        return "gemini"
    if p in ("openai_compatible", "openai-compatible", "openai_compat", "compatible"):
        return "openai"
    return p


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_settings(config_path: str = "config.yaml") -> Settings:
    """
    Loads config.yaml + overrides from .env/environment variables.
    """
    load_dotenv()

    cfg: Dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

    # Empty env vars count as "not set" so they can't mask config.yaml.
    def _env_or_cfg(key: str, cfg_path: str, default):
        v = os.getenv(key)
        if v is None:
            return _deep_get(cfg, cfg_path, default)
        v = v.strip()
        return _deep_get(cfg, cfg_path, default) if v == "" else v

    env = _env_or_cfg("APP_ENV", "app.env", "dev")
    log_level = _env_or_cfg("LOG_LEVEL", "app.log_level", "INFO")

    default_provider = normalize_provider(_env_or_cfg("WEALTHSCOPE_PROVIDER", "analysis.provider", "gemini"))
    structured_default_model = _env_or_cfg("GEMINI_MODEL", "analysis.structured_model", "gemini-3-pro-preview")
    openai_base_url = _env_or_cfg("LLM_BASE_URL", "analysis.openai.base_url", "")
    openai_model = _env_or_cfg("LLM_MODEL", "analysis.openai.model", "")
    vision_model = _env_or_cfg("LLM_VISION_MODEL", "analysis.openai.vision_model", "")

    request_timeout_seconds = float(_env_or_cfg("REQUEST_TIMEOUT_SECONDS", "analysis.timeout_seconds", 120))
    temperature = float(_env_or_cfg("LLM_TEMPERATURE", "analysis.temperature", 0.1))
    unified_max_tokens = int(_env_or_cfg("UNIFIED_MAX_TOKENS", "analysis.unified_max_tokens", 4000))
    ocr_max_tokens = int(_env_or_cfg("OCR_MAX_TOKENS", "analysis.ocr_max_tokens", 1500))

    strict_validation = _as_bool(_env_or_cfg("STRICT_VALIDATION", "validation.strict", True))
    total_tolerance_cny = float(_env_or_cfg("TOTAL_TOLERANCE_CNY", "validation.total_tolerance_cny", 0.01))
    conversion_tolerance_pct = float(
        _env_or_cfg("CONVERSION_TOLERANCE_PCT", "validation.conversion_tolerance_pct", 0.02)
    )

    history_path = _env_or_cfg("HISTORY_PATH", "history.path", "data/history.json")
    history_limit = int(_env_or_cfg("HISTORY_LIMIT", "history.limit", 50))

    return Settings(
        env=env,
        log_level=log_level,
        default_provider=default_provider,
        structured_default_model=str(structured_default_model).strip(),
        openai_base_url=str(openai_base_url or "").strip(),
        openai_model=str(openai_model or "").strip(),
        vision_model=str(vision_model or "").strip(),
        request_timeout_seconds=request_timeout_seconds,
        temperature=temperature,
        unified_max_tokens=unified_max_tokens,
        ocr_max_tokens=ocr_max_tokens,
        strict_validation=strict_validation,
        total_tolerance_cny=total_tolerance_cny,
        conversion_tolerance_pct=conversion_tolerance_pct,
        history_path=history_path,
        history_limit=history_limit,
    )


def env_credential_provider() -> Optional[str]:
    """Default API key from the hosting environment (API_KEY, then the Gemini names)."""
    for key in ("API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"):
        v = os.getenv(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


# Optional convenience singleton
SETTINGS = load_settings()
