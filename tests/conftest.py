from __future__ import annotations

import dataclasses
import json

import httpx
import pytest

from wealthscope.analysis.image_encoder import ImageBlob
from wealthscope.core.config import SETTINGS


def sample_payload() -> dict:
    return {
        "id": "snap-1",
        "timestamp": 1700000000000,
        "totalNetWorthCNY": 116550.0,
        "summary": "Mostly cash at one bank.",
        "distributionAnalysis": "86% of assets sit in demand deposits.",
        "investmentAdvice": "Move part of the idle cash into diversified funds.",
        "riskMetrics": {
            "stockConcentration": 1.0,
            "entityConcentration": 0.858,
            "cashRatio": 0.858,
            "riskAlerts": ["High cash ratio", "Single-bank concentration"],
        },
        "breakdown": [
            {
                "name": "Demand deposit",
                "entity": "China Merchants Bank",
                "originalAmount": 100000,
                "currency": "CNY",
                "convertedAmountCNY": 100000,
                "type": "CASH",
                "macroCategory": "LIQUIDITY",
            },
            {
                "name": "AAPL",
                "entity": "Futu Securities",
                "originalAmount": 1000,
                "currency": "USD",
                "convertedAmountCNY": 7250,
                "type": "STOCK",
                "macroCategory": "RISK",
                "description": "Apple Inc.",
            },
            {
                "name": "HK money market fund",
                "entity": "Futu Securities",
                "originalAmount": 10000,
                "currency": "HKD",
                "convertedAmountCNY": 9300,
                "type": "FUND",
                "macroCategory": "INVESTMENT",
            },
        ],
    }


def chat_response(content, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


@pytest.fixture()
def payload() -> dict:
    return sample_payload()


@pytest.fixture()
def settings():
    return dataclasses.replace(
        SETTINGS,
        strict_validation=True,
        total_tolerance_cny=0.01,
        conversion_tolerance_pct=0.02,
        temperature=0.1,
        unified_max_tokens=4000,
        ocr_max_tokens=1500,
        structured_default_model="gemini-3-pro-preview",
    )


@pytest.fixture()
def images():
    return [
        ImageBlob(name="bank.png", source=b"\x89PNG-bank", media_type="image/png"),
        ImageBlob(name="broker.jpg", source=b"\xff\xd8broker", media_type="image/jpeg"),
        ImageBlob(name="fund.png", source=b"\x89PNG-fund"),
    ]


class RecordingTransport:
    """Wraps a handler in httpx.MockTransport and records every request."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def _handle(self, request: httpx.Request):
        self.requests.append(request)
        return self.handler(request)

    def factory(self):
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture()
def recording():
    return RecordingTransport
