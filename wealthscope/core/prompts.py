"""Fixed instruction prompts and the structured-output schema.

The schema below uses the OpenAPI subset understood by schema-constrained
generation backends (upper-case type names). The same field list drives
the post-parse validation in `wealthscope.analysis.normalizer`.
"""
from __future__ import annotations

from typing import Any, Dict, List

from wealthscope.core.schemas import AssetType, MacroCategory

REPORTING_CURRENCY = "CNY"

# Fixed reference rates: 1 unit of currency -> CNY
CNY_RATES: Dict[str, float] = {
    "CNY": 1.0,
    "USD": 7.25,
    "HKD": 0.93,
    "JPY": 0.048,
}

CURRENCY_ALIASES: Dict[str, str] = {
    "RMB": "CNY",
    "CNH": "CNY",
    "元": "CNY",
    "人民币": "CNY",
    "¥": "CNY",
    "￥": "CNY",
    "$": "USD",
    "US$": "USD",
    "美元": "USD",
    "HK$": "HKD",
    "港币": "HKD",
    "港元": "HKD",
    "円": "JPY",
    "JP¥": "JPY",
    "日元": "JPY",
}


def canonical_currency(value: str) -> str:
    v = (value or "").strip()
    return CURRENCY_ALIASES.get(v, v.upper())


def _rates_line() -> str:
    return ", ".join(f"{ccy}={rate:g}" for ccy, rate in CNY_RATES.items() if ccy != REPORTING_CURRENCY)


def _enum_values(enum_cls) -> str:
    return ", ".join(m.value for m in enum_cls)


ANALYSIS_PROMPT = f"""
You are a senior private wealth management expert. Analyze the financial data provided by the user.

Requirements:
1. Extract every asset line item, identify its currency and convert it to {REPORTING_CURRENCY}.
   Reference rates (1 unit = N {REPORTING_CURRENCY}): {_rates_line()}.
2. Deduplicate: recognize repeated accounts or balances that appear on more than one screenshot.
3. Identify the institution (entity): the bank (e.g. China Merchants Bank, ICBC) or broker
   (e.g. CITIC Securities, Futu) that holds each asset.
4. Classification:
   - type: strictly one of [{_enum_values(AssetType)}].
   - macroCategory: strictly one of [{_enum_values(MacroCategory)}].
5. Risk metrics (fractions between 0 and 1):
   - stockConcentration: value of the top 5 stock holdings / total stock value.
   - entityConcentration: holdings of the single largest institution / total portfolio value.
   - cashRatio: cash and demand deposits / total portfolio value.
   - riskAlerts: a list of concrete risk warnings.
6. totalNetWorthCNY must equal the sum of breakdown[].convertedAmountCNY.

Output JSON only. Do not wrap it in Markdown code fences and make sure the JSON is valid.
Required fields: id (random string), timestamp (current epoch milliseconds), totalNetWorthCNY,
summary, distributionAnalysis, investmentAdvice, riskMetrics (object), breakdown (array).
""".strip()

OCR_PROMPT = (
    "Extract all text in this image in detail, especially bank account names, balances, "
    "stock codes, position amounts and currency symbols. Do not analyze anything; "
    "just transcribe the text faithfully."
)


def format_ocr_section(index: int, text: str) -> str:
    """`index` is 1-based, in caller-supplied image order."""
    return f"[Image {index} extracted content]:\n{text}\n---"


def build_transcript_message(sections: List[str]) -> str:
    combined = "\n".join(sections)
    return (
        f"The following text was extracted from {len(sections)} financial account screenshots. "
        "Aggregate and analyze the assets based on it and return strictly JSON:\n\n"
        f"{combined}"
    )


RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "id": {"type": "STRING"},
        "timestamp": {"type": "NUMBER"},
        "totalNetWorthCNY": {"type": "NUMBER"},
        "summary": {"type": "STRING"},
        "distributionAnalysis": {"type": "STRING"},
        "investmentAdvice": {"type": "STRING"},
        "riskMetrics": {
            "type": "OBJECT",
            "properties": {
                "stockConcentration": {"type": "NUMBER"},
                "entityConcentration": {"type": "NUMBER"},
                "cashRatio": {"type": "NUMBER"},
                "riskAlerts": {"type": "ARRAY", "items": {"type": "STRING"}},
            },
            "required": ["stockConcentration", "entityConcentration", "cashRatio", "riskAlerts"],
        },
        "breakdown": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "entity": {"type": "STRING"},
                    "originalAmount": {"type": "NUMBER"},
                    "currency": {"type": "STRING"},
                    "convertedAmountCNY": {"type": "NUMBER"},
                    "type": {"type": "STRING", "enum": [m.value for m in AssetType]},
                    "macroCategory": {"type": "STRING", "enum": [m.value for m in MacroCategory]},
                    "description": {"type": "STRING"},
                },
                "required": [
                    "name",
                    "entity",
                    "originalAmount",
                    "currency",
                    "convertedAmountCNY",
                    "type",
                    "macroCategory",
                ],
            },
        },
    },
    "required": [
        "id",
        "timestamp",
        "totalNetWorthCNY",
        "breakdown",
        "summary",
        "distributionAnalysis",
        "investmentAdvice",
        "riskMetrics",
    ],
}

RATIO_FIELDS = ("stockConcentration", "entityConcentration", "cashRatio")
