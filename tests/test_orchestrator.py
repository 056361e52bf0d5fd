from __future__ import annotations

import asyncio
import dataclasses
import json
from types import SimpleNamespace

import httpx
import pytest

from conftest import chat_response, sample_payload
from wealthscope.analysis.orchestrator import AnalysisOrchestrator
from wealthscope.analysis.openai_compat import OpenAICompatibleSplit, OpenAICompatibleUnified
from wealthscope.analysis.structured_vision import StructuredVision
from wealthscope.core.errors import AnalysisFailed, ErrorKind
from wealthscope.core.schemas import AIProvider, AnalysisConfiguration, AssetAnalysisResult


def _openai_config(**overrides):
    base = dict(
        provider=AIProvider.OPENAI_COMPATIBLE,
        api_key="sk-test",
        base_url="https://api.example.com/v1",
        model_name="reasoner",
    )
    base.update(overrides)
    return AnalysisConfiguration(**base)


def _orchestrator(settings, rec=None, default_key=None, genai_factory=None):
    kwargs = dict(settings=settings, credential_provider=lambda: default_key)
    if rec is not None:
        kwargs["http_client_factory"] = rec.factory()
    if genai_factory is not None:
        kwargs["genai_client_factory"] = genai_factory
    return AnalysisOrchestrator(**kwargs)


def _ok_handler(request):
    body = json.loads(request.content)
    if body["model"] == "vision-model":
        return chat_response("Balance: 100,000.00 CNY")
    return chat_response("Sure!\n```json\n" + json.dumps(sample_payload()) + "\n```")


def test_missing_base_url_fails_fast_without_network(settings, images, recording):
    rec = recording(_ok_handler)
    orch = _orchestrator(settings, rec)

    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(orch.analyze(images, _openai_config(base_url=None)))

    assert ei.value.kind is ErrorKind.INVALID_CONFIGURATION
    assert ei.value.code == "INVALID_CONFIGURATION"
    assert ei.value.envelope.details["field"] == "base_url"
    assert len(rec.requests) == 0


def test_missing_model_name_fails_fast(settings, images, recording):
    rec = recording(_ok_handler)
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze(images, _openai_config(model_name="  ")))
    assert ei.value.envelope.details["field"] == "model_name"
    assert len(rec.requests) == 0


def test_missing_credential_everywhere(settings, images, recording):
    rec = recording(_ok_handler)
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec, default_key=None).analyze(images, _openai_config(api_key=None)))
    assert ei.value.kind is ErrorKind.MISSING_CREDENTIAL
    assert "API key" in str(ei.value)
    assert len(rec.requests) == 0


def test_default_credential_is_used_when_no_explicit_key(settings, images, recording):
    rec = recording(_ok_handler)
    orch = _orchestrator(settings, rec, default_key="env-key")
    result = asyncio.run(orch.analyze(images, _openai_config(api_key=None)))
    assert isinstance(result, AssetAnalysisResult)
    assert rec.requests[0].headers["Authorization"] == "Bearer env-key"


def test_unified_mode_makes_a_single_call(settings, images, recording):
    rec = recording(_ok_handler)
    result = asyncio.run(_orchestrator(settings, rec).analyze(images, _openai_config()))
    assert len(rec.requests) == 1
    assert result.total_net_worth_cny == 116550.0
    assert result.id == "snap-1"


def test_split_mode_makes_n_ocr_calls_plus_one(settings, images, recording):
    rec = recording(_ok_handler)
    config = _openai_config(vision_model_name="vision-model")
    result = asyncio.run(_orchestrator(settings, rec).analyze(images, config))

    models = [b["model"] for b in rec.bodies()]
    assert models.count("vision-model") == len(images)
    assert models.count("reasoner") == 1
    assert models[-1] == "reasoner"
    # vision endpoint and key fall back to the primary ones
    assert {str(r.url) for r in rec.requests} == {"https://api.example.com/v1/chat/completions"}
    assert result.breakdown[0].entity == "China Merchants Bank"


def test_strategy_selection(settings):
    orch = _orchestrator(settings)
    assert isinstance(orch.select_strategy(_openai_config(), "k", None), OpenAICompatibleUnified)
    assert isinstance(orch.select_strategy(_openai_config(vision_model_name="v"), "k", None), OpenAICompatibleSplit)
    sv = orch.select_strategy(AnalysisConfiguration(), "k", None)
    assert isinstance(sv, StructuredVision)
    assert sv.model == "gemini-3-pro-preview"


@pytest.mark.parametrize(
    "status, code",
    [(401, "AUTH_FAILED"), (403, "QUOTA_EXHAUSTED"), (404, "ENDPOINT_NOT_FOUND"), (429, "RATE_LIMITED"), (500, "API_ERROR")],
)
def test_http_failures_are_classified(settings, images, recording, status, code):
    rec = recording(lambda request: httpx.Response(status, json={"error": {"message": "request rejected upstream"}}))
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze(images, _openai_config()))
    assert ei.value.kind is ErrorKind.PROVIDER_HTTP_ERROR
    assert ei.value.code == code
    assert len(rec.requests) == 1


def test_split_failure_names_the_image(settings, images, recording):
    def handler(request):
        body = json.loads(request.content)
        if body["model"] == "vision-model" and body["messages"][0]["content"][1]["image_url"]["url"].startswith("data:image/jpeg"):
            return httpx.Response(429, text="slow down")
        return _ok_handler(request)

    rec = recording(handler)
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze(images, _openai_config(vision_model_name="vision-model")))
    env = ei.value.envelope
    assert env.code == "RATE_LIMITED"
    assert env.details["image_index"] == 2
    assert "broker.jpg" in env.message
    assert all(b["model"] == "vision-model" for b in rec.bodies())


def test_malformed_output_is_classified(settings, images, recording):
    rec = recording(lambda request: chat_response("I could not find any assets."))
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze(images, _openai_config()))
    assert ei.value.code == "MALFORMED_OUTPUT"
    assert ei.value.envelope.retriable is True


def test_contract_violation_is_rejected_at_boundary(settings, images, recording):
    bad = sample_payload()
    bad["riskMetrics"]["cashRatio"] = 1.4
    rec = recording(lambda request: chat_response(json.dumps(bad)))
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze(images, _openai_config()))
    assert ei.value.kind is ErrorKind.MALFORMED_OUTPUT


def test_permissive_settings_pass_contract_violation(settings, images, recording):
    bad = sample_payload()
    bad["riskMetrics"]["cashRatio"] = 1.4
    rec = recording(lambda request: chat_response(json.dumps(bad)))
    orch = _orchestrator(dataclasses.replace(settings, strict_validation=False), rec)
    result = asyncio.run(orch.analyze(images, _openai_config()))
    assert result.risk_metrics.cash_ratio == 1.4
    assert result.validation_warnings


def test_unreadable_image_is_read_error(settings, recording, tmp_path):
    rec = recording(_ok_handler)
    from wealthscope.analysis.image_encoder import ImageBlob

    missing = ImageBlob.from_path(tmp_path / "gone.png")
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze([missing], _openai_config()))
    assert ei.value.code == "READ_ERROR"
    assert "gone.png" in str(ei.value)
    assert len(rec.requests) == 0


def test_structured_vision_end_to_end(settings, images):
    calls = []

    async def generate_content(*, model, contents, config):
        calls.append(model)
        return SimpleNamespace(text=json.dumps(sample_payload()))

    def factory(api_key, base_url):
        assert api_key == "env-key"
        return SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))

    orch = _orchestrator(settings, default_key="env-key", genai_factory=factory)
    result = asyncio.run(orch.analyze(images, AnalysisConfiguration(provider=AIProvider.STRUCTURED_VISION)))
    assert calls == ["gemini-3-pro-preview"]
    assert len(result.breakdown) == 3


def test_empty_image_list_is_rejected(settings, recording):
    rec = recording(_ok_handler)
    with pytest.raises(AnalysisFailed) as ei:
        asyncio.run(_orchestrator(settings, rec).analyze([], _openai_config()))
    assert ei.value.code == "INVALID_CONFIGURATION"
