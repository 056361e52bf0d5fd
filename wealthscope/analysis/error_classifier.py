"""Map arbitrary analysis failures onto a small, stable set of user-facing messages.

Best-effort: typed errors and HTTP status codes first, then substring matching
on the textual representation of the error chain.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterator, Optional

import httpx

from wealthscope.core.errors import (
    AnalysisError,
    ErrorKind,
    ImageStageError,
    InvalidConfiguration,
    ReadError,
)
from wealthscope.core.schemas import ErrorEnvelope

GENERIC_MESSAGE = "Asset analysis failed, please retry."

MESSAGES: Dict[str, str] = {
    "MISSING_CREDENTIAL": "API key is missing. Please configure your key in the settings.",
    "AUTH_FAILED": "Authentication failed: the API key is invalid.",
    "QUOTA_EXHAUSTED": "Permission denied or quota exhausted (403).",
    "ENDPOINT_NOT_FOUND": "Request path not found (404). Check the base URL or model name.",
    "RATE_LIMITED": "Too many requests (429). The provider is rate limiting; please retry later.",
    "NETWORK_ERROR": "Network connection failed. Check that the base URL is correct or whether a proxy is required.",
    "EMPTY_RESPONSE": "The AI model returned no data.",
    "MALFORMED_OUTPUT": "The AI output could not be parsed into an analysis result.",
}

RETRIABLE = {"RATE_LIMITED", "NETWORK_ERROR", "EMPTY_RESPONSE", "MALFORMED_OUTPUT", "UNKNOWN"}

_STATUS_CODES = {
    401: "AUTH_FAILED",
    403: "QUOTA_EXHAUSTED",
    404: "ENDPOINT_NOT_FOUND",
    429: "RATE_LIMITED",
}

_NETWORK_MARKERS = (
    "Failed to fetch",
    "NetworkError",
    "ConnectError",
    "Connection refused",
    "Name or service not known",
    "nodename nor servname",
    "timed out",
    "Cannot connect to host",
    "ClientConnectorError",
)


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    cur: Optional[BaseException] = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        cur = cur.__cause__ or cur.__context__


def _status_code(exc: BaseException) -> Optional[int]:
    for e in _chain(exc):
        for attr in ("status_code", "code"):
            v = getattr(e, attr, None)
            if isinstance(v, int) and not isinstance(v, bool) and 100 <= v <= 599:
                return v
    return None


def _find(exc: BaseException, cls):
    for e in _chain(exc):
        if isinstance(e, cls):
            return e
    return None


def _kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, AnalysisError):
        return exc.kind
    if _find(exc, httpx.TransportError) is not None:
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.UNKNOWN


def _innermost_message(exc: BaseException) -> str:
    msg = ""
    for e in _chain(exc):
        if not isinstance(e, ImageStageError) and str(e):
            msg = str(e)
            break
    return msg or str(exc)


def _code_from_text(text: str) -> Optional[str]:
    if "API key not valid" in text or re.search(r"\b401\b", text):
        return "AUTH_FAILED"
    if re.search(r"\b403\b", text) or "quota" in text.lower():
        return "QUOTA_EXHAUSTED"
    if any(m in text for m in _NETWORK_MARKERS):
        return "NETWORK_ERROR"
    if re.search(r"\b404\b", text):
        return "ENDPOINT_NOT_FOUND"
    if re.search(r"\b429\b", text) or "rate limit" in text.lower():
        return "RATE_LIMITED"
    return None


def classify_error(exc: BaseException) -> ErrorEnvelope:
    kind = _kind(exc)
    details: Dict[str, Any] = {"kind": kind.value}
    raw = _innermost_message(exc)
    status = _status_code(exc)
    if status is not None:
        details["status_code"] = status

    if kind is ErrorKind.MISSING_CREDENTIAL:
        code, message = "MISSING_CREDENTIAL", MESSAGES["MISSING_CREDENTIAL"]
    elif kind is ErrorKind.INVALID_CONFIGURATION:
        cfg_err = _find(exc, InvalidConfiguration)
        if cfg_err is not None:
            details["field"] = cfg_err.field
        code, message = "INVALID_CONFIGURATION", raw
    elif kind is ErrorKind.READ_ERROR:
        read_err = _find(exc, ReadError)
        name = read_err.image_name if read_err is not None else "?"
        details["image_name"] = name
        code, message = "READ_ERROR", f"Image '{name}' could not be processed. Check that the file is a readable image."
    elif status is not None:
        # Gemini answers a bad key with 400 + "API key not valid"
        code = _STATUS_CODES.get(status) or _code_from_text(" ".join(str(e) for e in _chain(exc))) or "API_ERROR"
        message = MESSAGES.get(code) or f"API call error: {raw}"
    elif kind is ErrorKind.NETWORK_ERROR:
        code, message = "NETWORK_ERROR", MESSAGES["NETWORK_ERROR"]
    elif kind is ErrorKind.EMPTY_RESPONSE:
        code, message = "EMPTY_RESPONSE", MESSAGES["EMPTY_RESPONSE"]
    elif kind is ErrorKind.MALFORMED_OUTPUT:
        code, message = "MALFORMED_OUTPUT", MESSAGES["MALFORMED_OUTPUT"]
    else:
        text = " ".join(str(e) for e in _chain(exc))
        code = _code_from_text(text) or "UNKNOWN"
        if code == "UNKNOWN":
            message = f"{GENERIC_MESSAGE} ({raw})" if raw else GENERIC_MESSAGE
        else:
            message = MESSAGES[code]

    stage = _find(exc, ImageStageError)
    if stage is not None:
        details.update(image_index=stage.image_index, image_name=stage.image_name, model=stage.model)
        message = f"Vision model failed on image {stage.image_index} ({stage.image_name}): {message}"

    return ErrorEnvelope(code=code, message=message, details=details, retriable=code in RETRIABLE)
