from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict


# -------------------------
# Enumerations
# -------------------------

class AssetType(str, Enum):
    CASH = "CASH"
    STOCK = "STOCK"
    FUND = "FUND"
    GOLD = "GOLD"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"

    @property
    def label(self) -> str:
        return _ASSET_TYPE_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["AssetType"]:
        """Resolve a code (any case) or a known display label; None when unrecognized."""
        return _lookup(cls, _ASSET_TYPE_ALIASES, value)


class MacroCategory(str, Enum):
    LIQUIDITY = "LIQUIDITY"
    INVESTMENT = "INVESTMENT"
    RISK = "RISK"
    STABLE = "STABLE"

    @property
    def label(self) -> str:
        return _MACRO_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["MacroCategory"]:
        return _lookup(cls, _MACRO_ALIASES, value)


class AIProvider(str, Enum):
    STRUCTURED_VISION = "gemini"
    OPENAI_COMPATIBLE = "openai"


_ASSET_TYPE_LABELS = {
    AssetType.CASH: "Cash & demand deposits",
    AssetType.STOCK: "Stocks",
    AssetType.FUND: "Wealth products / funds",
    AssetType.GOLD: "Gold / precious metals",
    AssetType.CRYPTO: "Crypto",
    AssetType.OTHER: "Other",
}

_MACRO_LABELS = {
    MacroCategory.LIQUIDITY: "Liquidity",
    MacroCategory.INVESTMENT: "Investment",
    MacroCategory.RISK: "Risk",
    MacroCategory.STABLE: "Stable",
}

# Display labels emitted by older (Chinese) prompts are accepted as aliases.
_ASSET_TYPE_ALIASES = {
    "现金与活期": AssetType.CASH,
    "股票": AssetType.STOCK,
    "理财/基金": AssetType.FUND,
    "黄金/贵金属": AssetType.GOLD,
    "虚拟货币": AssetType.CRYPTO,
    "其他": AssetType.OTHER,
    **{label.lower(): member for member, label in _ASSET_TYPE_LABELS.items()},
}

_MACRO_ALIASES = {
    "流动性资产": MacroCategory.LIQUIDITY,
    "投资性资产": MacroCategory.INVESTMENT,
    "风险性资产": MacroCategory.RISK,
    "稳健型资产": MacroCategory.STABLE,
    **{label.lower(): member for member, label in _MACRO_LABELS.items()},
}


def _lookup(enum_cls, aliases: Dict[str, Any], value: Any):
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    v = value.strip()
    if v.upper() in enum_cls.__members__:
        return enum_cls[v.upper()]
    return aliases.get(v) or aliases.get(v.lower())


# -------------------------
# Analysis result (UI contract)
# -------------------------

class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AssetItem(_WireModel):
    name: str
    entity: Optional[str] = None
    original_amount: float
    currency: str
    converted_amount_cny: float = Field(alias="convertedAmountCNY")
    type: AssetType
    macro_category: MacroCategory
    description: Optional[str] = None


class RiskMetrics(_WireModel):
    stock_concentration: float
    entity_concentration: float
    cash_ratio: float
    risk_alerts: List[str] = Field(default_factory=list)


class AssetAnalysisResult(_WireModel):
    id: str
    timestamp: int  # ms since epoch
    total_net_worth_cny: float = Field(alias="totalNetWorthCNY")
    summary: str
    distribution_analysis: str
    investment_advice: str
    risk_metrics: RiskMetrics
    breakdown: List[AssetItem] = Field(default_factory=list)
    validation_warnings: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# -------------------------
# Orchestrator input
# -------------------------

class AnalysisConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: AIProvider = AIProvider.STRUCTURED_VISION

    # Main / reasoning
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: Optional[str] = None

    # Separate vision stage (Split mode); unset values fall back to the main ones
    vision_model_name: Optional[str] = None
    vision_api_key: Optional[str] = None
    vision_base_url: Optional[str] = None

    @field_validator(
        "api_key", "base_url", "model_name", "vision_model_name", "vision_api_key", "vision_base_url",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @property
    def split_mode(self) -> bool:
        return bool(self.vision_model_name)


# -------------------------
# Errors + validation reports
# -------------------------

class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retriable: bool = False


class ValidationIssue(BaseModel):
    level: str  # ERROR | WARN
    message: str
    location: Optional[str] = None


class ValidationReport(BaseModel):
    ok: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    def add_error(self, msg: str, location: Optional[str] = None) -> None:
        self.errors.append(ValidationIssue(level="ERROR", message=msg, location=location))

    def add_warning(self, msg: str, location: Optional[str] = None) -> None:
        self.warnings.append(ValidationIssue(level="WARN", message=msg, location=location))

    def finalize(self) -> "ValidationReport":
        self.ok = len(self.errors) == 0
        return self
