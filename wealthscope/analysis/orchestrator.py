from __future__ import annotations

import asyncio
import uuid
from typing import Callable, Optional, Sequence

import httpx

from wealthscope.analysis.error_classifier import classify_error
from wealthscope.analysis.image_encoder import ImageBlob
from wealthscope.analysis.normalizer import build_result
from wealthscope.analysis.openai_compat import OpenAICompatibleSplit, OpenAICompatibleUnified
from wealthscope.analysis.strategies import AnalysisStrategy
from wealthscope.analysis.structured_vision import (
    GenAIClientFactory,
    StructuredVision,
    default_genai_client_factory,
)
from wealthscope.core.config import SETTINGS, CredentialProvider, Settings, env_credential_provider
from wealthscope.core.errors import (
    AnalysisError,
    AnalysisFailed,
    ErrorKind,
    InvalidConfiguration,
    MissingCredential,
)
from wealthscope.core.schemas import AIProvider, AnalysisConfiguration, AssetAnalysisResult
from wealthscope.utils.logging import get_logger, set_log_context, set_strategy

logger = get_logger("orchestrator")

HttpClientFactory = Callable[[], httpx.AsyncClient]


class AnalysisOrchestrator:
    """
    Single entry point for the UI: resolve credentials and endpoints, pick a
    strategy, run it once, and return a validated result.

    Every failure leaves as one `AnalysisFailed` carrying a classified envelope.
    No caching and no retries: each call is independent and at-most-once.
    """

    def __init__(
        self,
        *,
        settings: Settings = SETTINGS,
        credential_provider: CredentialProvider = env_credential_provider,
        http_client_factory: Optional[HttpClientFactory] = None,
        genai_client_factory: GenAIClientFactory = default_genai_client_factory,
    ) -> None:
        self.settings = settings
        self.credential_provider = credential_provider
        self.http_client_factory = http_client_factory or self._default_http_client
        self.genai_client_factory = genai_client_factory

    def _default_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.request_timeout_seconds)

    # -----------------------------
    # Resolution (no I/O)
    # -----------------------------
    def resolve_api_key(self, config: AnalysisConfiguration) -> str:
        api_key = config.api_key or self.credential_provider()
        if not api_key:
            raise MissingCredential("API key is missing. Configure your key in the settings.")
        return api_key

    def validate_configuration(self, config: AnalysisConfiguration, api_key: str) -> None:
        if config.provider is not AIProvider.OPENAI_COMPATIBLE:
            return
        if not config.base_url:
            raise InvalidConfiguration(
                "OpenAI-compatible mode requires a Base URL / endpoint.", field="base_url"
            )
        if not config.base_url.lower().startswith(("http://", "https://")):
            raise InvalidConfiguration(f"Invalid base URL: {config.base_url!r}.", field="base_url")
        if not api_key:
            raise InvalidConfiguration("API key is missing.", field="api_key")
        if not config.model_name:
            raise InvalidConfiguration("A reasoning model name is required.", field="model_name")
        if config.vision_base_url and not config.vision_base_url.lower().startswith(("http://", "https://")):
            raise InvalidConfiguration(
                f"Invalid vision base URL: {config.vision_base_url!r}.", field="vision_base_url"
            )

    def select_strategy(
        self,
        config: AnalysisConfiguration,
        api_key: str,
        client: Optional[httpx.AsyncClient],
    ) -> AnalysisStrategy:
        s = self.settings
        if config.provider is AIProvider.STRUCTURED_VISION:
            return StructuredVision(
                api_key=api_key,
                model=config.model_name or s.structured_default_model,
                base_url=config.base_url,
                client_factory=self.genai_client_factory,
            )
        if config.provider is AIProvider.OPENAI_COMPATIBLE and config.split_mode:
            return OpenAICompatibleSplit(
                client,
                api_key=api_key,
                base_url=config.base_url,
                model=config.model_name,
                vision_api_key=config.vision_api_key or api_key,
                vision_base_url=config.vision_base_url or config.base_url,
                vision_model=config.vision_model_name,
                temperature=s.temperature,
                ocr_max_tokens=s.ocr_max_tokens,
            )
        if config.provider is AIProvider.OPENAI_COMPATIBLE:
            return OpenAICompatibleUnified(
                client,
                api_key=api_key,
                base_url=config.base_url,
                model=config.model_name,
                temperature=s.temperature,
                max_tokens=s.unified_max_tokens,
            )
        raise InvalidConfiguration(f"Unsupported provider: {config.provider!r}", field="provider")

    # -----------------------------
    # Entry points
    # -----------------------------
    async def analyze(
        self,
        images: Sequence[ImageBlob],
        config: AnalysisConfiguration,
    ) -> AssetAnalysisResult:
        analysis_id = uuid.uuid4().hex[:12]
        set_log_context(analysis_id=analysis_id, provider=config.provider.value, strategy="-")
        try:
            if not images:
                raise InvalidConfiguration("At least one image is required.", field="images")
            api_key = self.resolve_api_key(config)
            self.validate_configuration(config, api_key)
            return await self._run(list(images), config, api_key)
        except Exception as e:
            envelope = classify_error(e)
            logger.error(f"analysis_failed code={envelope.code} err={type(e).__name__}: {e}")
            kind = e.kind if isinstance(e, AnalysisError) else ErrorKind(envelope.details["kind"])
            raise AnalysisFailed(envelope, kind=kind) from e

    async def _run(
        self,
        images: Sequence[ImageBlob],
        config: AnalysisConfiguration,
        api_key: str,
    ) -> AssetAnalysisResult:
        if config.provider is AIProvider.STRUCTURED_VISION:
            strategy = self.select_strategy(config, api_key, None)
            return await self._execute(strategy, images)

        async with self.http_client_factory() as client:
            strategy = self.select_strategy(config, api_key, client)
            return await self._execute(strategy, images)

    async def _execute(self, strategy: AnalysisStrategy, images: Sequence[ImageBlob]) -> AssetAnalysisResult:
        set_strategy(strategy.name)
        text = await strategy.generate(images)
        payload = strategy.parse(text)
        s = self.settings
        result = build_result(
            payload,
            strict=s.strict_validation,
            total_tolerance=s.total_tolerance_cny,
            conversion_tolerance=s.conversion_tolerance_pct,
            raw_text=text,
        )
        logger.info(
            f"analysis_done items={len(result.breakdown)} total_cny={result.total_net_worth_cny:.2f} "
            f"warnings={len(result.validation_warnings)}"
        )
        return result

    def analyze_sync(self, images: Sequence[ImageBlob], config: AnalysisConfiguration) -> AssetAnalysisResult:
        """For synchronous callers (Streamlit script thread, CLI)."""
        return asyncio.run(self.analyze(images, config))
