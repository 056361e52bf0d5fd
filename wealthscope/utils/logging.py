from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Per-analysis context, stamped on every record
analysis_id_var: ContextVar[str] = ContextVar("analysis_id", default="-")
provider_var: ContextVar[str] = ContextVar("provider", default="-")
strategy_var: ContextVar[str] = ContextVar("strategy", default="-")

# Bearer tokens, sk-style keys, Google API keys and key=... query params
_SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"),
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}"),
    re.compile(r"((?:api_?key|key)=)[^&\s]+", re.IGNORECASE),
)


def redact_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        if pattern.groups:
            text = pattern.sub(r"\1***", text)
        else:
            text = pattern.sub("***", text)
    return text


class AnalysisContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.analysis_id = analysis_id_var.get()
        record.provider = provider_var.get()
        record.strategy = strategy_var.get()
        return True


class KeyValueFormatter(logging.Formatter):
    """One line per record: UTC timestamp, level, logger, analysis context, redacted message."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
        msg = redact_secrets(record.getMessage())
        line = (
            f"{ts} level={record.levelname} logger={record.name} "
            f"analysis_id={getattr(record, 'analysis_id', '-')} "
            f"provider={getattr(record, 'provider', '-')} "
            f"strategy={getattr(record, 'strategy', '-')} msg={msg}"
        )
        if record.exc_info:
            line += " exc=" + redact_secrets(self.formatException(record.exc_info)).replace("\n", "\\n")
        return line


def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)

    # Streamlit re-runs the script on every interaction
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(lvl)
    handler.addFilter(AnalysisContextFilter())
    handler.setFormatter(KeyValueFormatter())
    root.addHandler(handler)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(max(lvl, logging.WARNING))


def set_log_context(*, analysis_id: str, provider: Optional[str] = None, strategy: Optional[str] = None) -> None:
    analysis_id_var.set(analysis_id)
    if provider is not None:
        provider_var.set(provider)
    if strategy is not None:
        strategy_var.set(strategy)


def set_strategy(strategy_name: str) -> None:
    strategy_var.set(strategy_name)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"wealthscope.{name}")
