from __future__ import annotations

import json

from wealthscope.core.schemas import AssetAnalysisResult
from wealthscope.utils.portfolio_stats import breakdown_frame


def breakdown_csv(result: AssetAnalysisResult) -> bytes:
    # BOM so spreadsheet apps detect UTF-8 (institution names are often CJK)
    return breakdown_frame(result).to_csv(index=False).encode("utf-8-sig")


def result_json(result: AssetAnalysisResult) -> bytes:
    return json.dumps(result.to_wire(), ensure_ascii=False, indent=2).encode("utf-8")


def export_filename(result: AssetAnalysisResult, ext: str) -> str:
    return f"wealthscope_{result.id[:8]}_{result.timestamp}.{ext}"
