from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import pandas as pd

from wealthscope.core.schemas import AssetAnalysisResult, AssetItem, AssetType, RiskMetrics

UNKNOWN_ENTITY = "Unknown"

BREAKDOWN_COLUMNS = [
    "name",
    "entity",
    "type",
    "macroCategory",
    "originalAmount",
    "currency",
    "convertedAmountCNY",
    "description",
]


def _d(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def _ratio(num: Decimal, den: Decimal) -> float:
    if den <= 0:
        return 0.0
    return float((num / den).quantize(Decimal("0.0001")))


def compute_risk_metrics(breakdown: Sequence[AssetItem]) -> RiskMetrics:
    """
    Recompute the three ratios from the line items (no LLM math):
    - stock concentration: top 5 STOCK items / total STOCK
    - entity concentration: largest institution / total
    - cash ratio: CASH / total
    """
    total = sum((_d(i.converted_amount_cny) for i in breakdown), Decimal(0))

    stocks = sorted((_d(i.converted_amount_cny) for i in breakdown if i.type is AssetType.STOCK), reverse=True)
    stock_total = sum(stocks, Decimal(0))
    top5 = sum(stocks[:5], Decimal(0))

    by_entity: Dict[str, Decimal] = {}
    for i in breakdown:
        key = i.entity or UNKNOWN_ENTITY
        by_entity[key] = by_entity.get(key, Decimal(0)) + _d(i.converted_amount_cny)
    largest = max(by_entity.values(), default=Decimal(0))

    cash = sum((_d(i.converted_amount_cny) for i in breakdown if i.type is AssetType.CASH), Decimal(0))

    return RiskMetrics(
        stock_concentration=_ratio(top5, stock_total),
        entity_concentration=_ratio(largest, total),
        cash_ratio=_ratio(cash, total),
        risk_alerts=[],
    )


def breakdown_frame(result: AssetAnalysisResult) -> pd.DataFrame:
    rows = [item.model_dump(mode="json", by_alias=True) for item in result.breakdown]
    df = pd.DataFrame(rows, columns=BREAKDOWN_COLUMNS)
    df["entity"] = df["entity"].fillna(UNKNOWN_ENTITY)
    return df


def totals_by(result: AssetAnalysisResult, field: str) -> pd.DataFrame:
    """Sum of convertedAmountCNY grouped by `type`, `macroCategory` or `entity`, largest first."""
    if field not in ("type", "macroCategory", "entity"):
        raise ValueError(f"cannot group by {field!r}")
    df = breakdown_frame(result)
    if df.empty:
        return pd.DataFrame(columns=[field, "value"])
    out = (
        df.groupby(field, as_index=False)["convertedAmountCNY"]
        .sum()
        .rename(columns={"convertedAmountCNY": "value"})
        .sort_values("value", ascending=False, kind="stable")
        .reset_index(drop=True)
    )
    return out


def filter_by_entity(result: AssetAnalysisResult, entity: Optional[str]) -> List[AssetItem]:
    if not entity:
        return list(result.breakdown)
    return [i for i in result.breakdown if (i.entity or UNKNOWN_ENTITY) == entity]


def trend_frame(history: Sequence[AssetAnalysisResult]) -> pd.DataFrame:
    """Net worth over time, oldest first."""
    rows = [
        {
            "date": datetime.fromtimestamp(h.timestamp / 1000, tz=timezone.utc),
            "totalNetWorthCNY": h.total_net_worth_cny,
        }
        for h in history
    ]
    df = pd.DataFrame(rows, columns=["date", "totalNetWorthCNY"])
    return df.sort_values("date", kind="stable").reset_index(drop=True)
