from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from wealthscope.analysis.image_encoder import ImageBlob, encode_images
from wealthscope.analysis.normalizer import parse_strict_json
from wealthscope.analysis.strategies import AnalysisStrategy
from wealthscope.core.errors import EmptyResponse, NetworkError, ProviderHttpError
from wealthscope.core.prompts import ANALYSIS_PROMPT, RESPONSE_SCHEMA
from wealthscope.utils.logging import get_logger

logger = get_logger("structured_vision")

GenAIClientFactory = Callable[[str, Optional[str]], Any]


def default_genai_client_factory(api_key: str, base_url: Optional[str]) -> genai.Client:
    http_options = types.HttpOptions(base_url=base_url) if base_url else None
    return genai.Client(api_key=api_key, http_options=http_options)


async def _close(client: Any) -> None:
    aclose = getattr(getattr(client, "aio", None), "aclose", None)
    if aclose is not None:
        await aclose()


class StructuredVision(AnalysisStrategy):
    """Single schema-constrained multimodal call; the backend returns bare JSON."""

    name = "structured_vision"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        client_factory: GenAIClientFactory = default_genai_client_factory,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.client_factory = client_factory

    def build_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
        )

    async def generate(self, images: Sequence[ImageBlob]) -> str:
        logger.info(f"Using structured vision: model={self.model} images={len(images)}")
        encoded = await encode_images(images)
        parts = [types.Part.from_bytes(data=img.content, mime_type=img.media_type) for img in encoded]
        parts.append(types.Part.from_text(text=ANALYSIS_PROMPT))

        client = self.client_factory(self.api_key, self.base_url)
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=parts,
                config=self.build_config(),
            )
        except genai_errors.APIError as e:
            raise ProviderHttpError(
                int(e.code or 0),
                str(e),
                provider="Gemini",
                detail=e.message or None,
            ) from e
        except (httpx.TransportError, OSError) as e:
            # aiohttp connector errors and timeouts are OSError subclasses
            raise NetworkError(f"Gemini request failed: {type(e).__name__}: {e}") from e
        finally:
            await _close(client)

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise EmptyResponse("AI returned no valid data.")
        return text

    def parse(self, text: str) -> Dict[str, Any]:
        return parse_strict_json(text)
