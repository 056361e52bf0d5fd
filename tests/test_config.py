from __future__ import annotations

from wealthscope.core.config import env_credential_provider, load_settings, normalize_provider


def _clear(monkeypatch, *keys):
    for k in keys:
        monkeypatch.delenv(k, raising=False)


def test_yaml_values_are_used(tmp_path, monkeypatch):
    _clear(monkeypatch, "WEALTHSCOPE_PROVIDER", "LLM_BASE_URL", "STRICT_VALIDATION", "HISTORY_LIMIT")
    monkeypatch.chdir(tmp_path)
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        "analysis:\n  provider: openai_compatible\n  openai:\n    base_url: https://api.example.com\n"
        "validation:\n  strict: false\nhistory:\n  limit: 7\n",
        encoding="utf-8",
    )
    s = load_settings(str(cfg))
    assert s.default_provider == "openai"
    assert s.openai_base_url == "https://api.example.com"
    assert s.strict_validation is False
    assert s.history_limit == 7


def test_env_overrides_yaml_and_blank_env_does_not(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = tmp_path / "config.yaml"
    cfg.write_text("analysis:\n  structured_model: from-yaml\n  temperature: 0.3\n", encoding="utf-8")
    monkeypatch.setenv("GEMINI_MODEL", "from-env")
    monkeypatch.setenv("LLM_TEMPERATURE", "   ")
    s = load_settings(str(cfg))
    assert s.structured_default_model == "from-env"
    assert s.temperature == 0.3


def test_defaults_without_config_file(tmp_path, monkeypatch):
    _clear(monkeypatch, "WEALTHSCOPE_PROVIDER", "GEMINI_MODEL", "STRICT_VALIDATION", "REQUEST_TIMEOUT_SECONDS")
    monkeypatch.chdir(tmp_path)
    s = load_settings(str(tmp_path / "missing.yaml"))
    assert s.default_provider == "gemini"
    assert s.structured_default_model == "gemini-3-pro-preview"
    assert s.strict_validation is True
    assert s.request_timeout_seconds == 120.0


def test_provider_aliases():
    assert normalize_provider("Google") == "gemini"
    assert normalize_provider("openai_compatible") == "openai"


def test_credential_provider_order(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _clear(monkeypatch, "API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY")
    assert env_credential_provider() is None

    monkeypatch.setenv("GOOGLE_API_KEY", "g")
    assert env_credential_provider() == "g"
    monkeypatch.setenv("API_KEY", " primary ")
    assert env_credential_provider() == "primary"


def test_credential_provider_does_not_reload_dotenv(monkeypatch):
    import wealthscope.core.config as config

    def fail():
        raise AssertionError(".env must only be loaded by load_settings")

    monkeypatch.setattr(config, "load_dotenv", fail)
    monkeypatch.setenv("API_KEY", "k")
    assert config.env_credential_provider() == "k"
