from __future__ import annotations

import json
import math
import re
import time
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from wealthscope.core.errors import MalformedOutput
from wealthscope.core.prompts import CNY_RATES, RATIO_FIELDS, RESPONSE_SCHEMA, canonical_currency
from wealthscope.core.schemas import (
    AssetAnalysisResult,
    AssetType,
    MacroCategory,
    ValidationReport,
)
from wealthscope.utils.logging import get_logger

logger = get_logger("normalizer")

_FENCE_OPEN_RE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?[ \t]*```$")
_EXCERPT_LIMIT = 300

# Used when permissive mode has to replace an unrecognized macroCategory.
_DEFAULT_MACRO = {
    AssetType.CASH: MacroCategory.LIQUIDITY,
    AssetType.STOCK: MacroCategory.RISK,
    AssetType.FUND: MacroCategory.INVESTMENT,
    AssetType.GOLD: MacroCategory.STABLE,
    AssetType.CRYPTO: MacroCategory.RISK,
    AssetType.OTHER: MacroCategory.INVESTMENT,
}


def _excerpt(text: str) -> str:
    t = (text or "").replace("\n", "\\n")
    return t[:_EXCERPT_LIMIT] + ("..." if len(t) > _EXCERPT_LIMIT else "")


def extract_json_text(text: str) -> str:
    """
    Recover the JSON span from raw model output:
    trim, strip a surrounding code fence (with or without a language tag),
    then slice from the first '{' to the last '}'.
    """
    clean = (text or "").strip()
    if clean.startswith("```"):
        clean = _FENCE_OPEN_RE.sub("", clean, count=1)
        clean = _FENCE_CLOSE_RE.sub("", clean, count=1).strip()

    first = clean.find("{")
    last = clean.rfind("}")
    if first != -1 and last != -1 and last > first:
        clean = clean[first : last + 1]
    return clean


def _loads_object(span: str, raw_text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning(f"json_parse_failed err={e} excerpt={_excerpt(raw_text)}")
        raise MalformedOutput(f"Model output is not valid JSON: {e}", raw_text=raw_text) from e
    if not isinstance(parsed, dict):
        logger.warning(f"json_not_object type={type(parsed).__name__} excerpt={_excerpt(raw_text)}")
        raise MalformedOutput("Model output is not a JSON object.", raw_text=raw_text)
    return parsed


def parse_model_output(text: str) -> Dict[str, Any]:
    """Tolerant parse for backends that may wrap JSON in prose or fences."""
    return _loads_object(extract_json_text(text), text)


def parse_strict_json(text: str) -> Dict[str, Any]:
    """Direct parse for schema-constrained backends."""
    return _loads_object((text or "").strip(), text)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def validate_payload(
    payload: Dict[str, Any],
    *,
    strict: bool = True,
    total_tolerance: float = 0.01,
    conversion_tolerance: float = 0.02,
) -> ValidationReport:
    """
    Check a parsed payload against the result contract, coercing enum aliases in place.

    Structural problems (missing fields, non-numeric amounts) are always errors.
    Contract problems (enum membership, ratio range, total mismatch) are errors when
    `strict`, warnings otherwise. Conversion-rate drift is only ever a warning.
    """
    report = ValidationReport()

    def contract(msg: str, location: str) -> None:
        if strict:
            report.add_error(msg, location=location)
        else:
            report.add_warning(msg, location=location)

    for field in RESPONSE_SCHEMA["required"]:
        if field in ("id", "timestamp"):
            continue
        if field not in payload or payload[field] is None:
            report.add_error(f"Missing required field '{field}'.", location=field)

    breakdown = payload.get("breakdown")
    if breakdown is not None and not isinstance(breakdown, list):
        report.add_error("'breakdown' must be an array.", location="breakdown")
        breakdown = None

    amounts: List[float] = []
    for i, item in enumerate(breakdown or []):
        loc = f"breakdown[{i}]"
        if not isinstance(item, dict):
            report.add_error("Asset item must be an object.", location=loc)
            continue

        for num_field in ("originalAmount", "convertedAmountCNY"):
            if not _is_number(item.get(num_field)):
                report.add_error(f"'{num_field}' must be a number.", location=f"{loc}.{num_field}")
        if _is_number(item.get("convertedAmountCNY")):
            amounts.append(float(item["convertedAmountCNY"]))

        asset_type = AssetType.parse(item.get("type"))
        if asset_type is None:
            contract(f"Unknown asset type {item.get('type')!r}.", f"{loc}.type")
            asset_type = AssetType.OTHER
        item["type"] = asset_type.value

        macro = MacroCategory.parse(item.get("macroCategory"))
        if macro is None:
            contract(f"Unknown macro category {item.get('macroCategory')!r}.", f"{loc}.macroCategory")
            macro = _DEFAULT_MACRO[asset_type]
        item["macroCategory"] = macro.value

        ccy = canonical_currency(str(item.get("currency") or ""))
        rate = CNY_RATES.get(ccy)
        orig, conv = item.get("originalAmount"), item.get("convertedAmountCNY")
        if rate is not None and _is_number(orig) and _is_number(conv):
            expected = float(orig) * rate
            if abs(float(conv) - expected) > conversion_tolerance * abs(expected) + 0.01:
                report.add_warning(
                    f"convertedAmountCNY {conv} deviates from {orig} {ccy} x {rate:g} = {expected:.2f}.",
                    location=f"{loc}.convertedAmountCNY",
                )

    risk = payload.get("riskMetrics")
    if isinstance(risk, dict):
        for ratio in RATIO_FIELDS:
            v = risk.get(ratio)
            if not _is_number(v):
                report.add_error(f"'{ratio}' must be a number.", location=f"riskMetrics.{ratio}")
            elif not 0.0 <= float(v) <= 1.0:
                contract(f"'{ratio}' = {v} is outside [0, 1].", f"riskMetrics.{ratio}")
    elif risk is not None:
        report.add_error("'riskMetrics' must be an object.", location="riskMetrics")

    total = payload.get("totalNetWorthCNY")
    if total is not None and not _is_number(total):
        report.add_error("'totalNetWorthCNY' must be a number.", location="totalNetWorthCNY")
    elif _is_number(total) and breakdown is not None:
        s = math.fsum(amounts)
        if abs(float(total) - s) > total_tolerance:
            contract(
                f"totalNetWorthCNY {total} does not match the breakdown sum {s:.2f}.",
                "totalNetWorthCNY",
            )

    return report.finalize()


def build_result(
    payload: Dict[str, Any],
    *,
    strict: bool = True,
    total_tolerance: float = 0.01,
    conversion_tolerance: float = 0.02,
    now_ms: Optional[int] = None,
    raw_text: str = "",
) -> AssetAnalysisResult:
    """Validate a parsed payload and construct the immutable result."""
    data = json.loads(json.dumps(payload))  # private deep copy; caller's dict is untouched
    data.pop("validationWarnings", None)

    rid = data.get("id")
    if not isinstance(rid, str) or not rid.strip():
        data["id"] = uuid.uuid4().hex
    data["timestamp"] = int(now_ms if now_ms is not None else time.time() * 1000)

    report = validate_payload(
        data,
        strict=strict,
        total_tolerance=total_tolerance,
        conversion_tolerance=conversion_tolerance,
    )
    warnings = [f"{w.location}: {w.message}" if w.location else w.message for w in report.warnings]
    for w in warnings:
        logger.warning(f"result_validation_warning {w}")

    if not report.ok:
        issues = [f"{e.location}: {e.message}" if e.location else e.message for e in report.errors]
        logger.warning(f"result_validation_failed issues={len(issues)} first={issues[0]}")
        raise MalformedOutput(
            "Model output violates the result contract: " + "; ".join(issues),
            raw_text=raw_text,
            issues=issues,
        )

    data["validationWarnings"] = warnings
    try:
        return AssetAnalysisResult.model_validate(data)
    except ValidationError as e:
        logger.warning(f"result_model_invalid err={e.error_count()} excerpt={_excerpt(raw_text)}")
        raise MalformedOutput(f"Model output does not match the result shape: {e}", raw_text=raw_text) from e
