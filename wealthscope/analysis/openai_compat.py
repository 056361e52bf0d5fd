from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

import httpx

from wealthscope.analysis.image_encoder import EncodedImage, ImageBlob, encode_image, encode_images
from wealthscope.analysis.strategies import AnalysisStrategy
from wealthscope.core.errors import EmptyResponse, ImageStageError, MalformedOutput, NetworkError, ProviderHttpError
from wealthscope.core.prompts import ANALYSIS_PROMPT, OCR_PROMPT, build_transcript_message, format_ocr_section
from wealthscope.utils.logging import get_logger

logger = get_logger("openai_compat")

CHAT_COMPLETIONS_PATH = "/chat/completions"


def build_chat_completions_url(base_url: str) -> str:
    """
    Accept either a host/API root or a full completions URL.
    A bare host (no path) gets the conventional /v1 prefix; the completions
    path is appended only when not already present.
    """
    normalized = base_url.strip().rstrip("/")
    if normalized.endswith(CHAT_COMPLETIONS_PATH):
        return normalized
    if not urlsplit(normalized).path:
        normalized = f"{normalized}/v1"
    return f"{normalized}{CHAT_COMPLETIONS_PATH}"


def _host(url: str) -> str:
    return urlsplit(url).netloc or url


def image_part(image: EncodedImage, *, detail: Optional[str] = None) -> Dict[str, Any]:
    image_url: Dict[str, Any] = {"url": image.data_uri}
    if detail:
        image_url["detail"] = detail
    return {"type": "image_url", "image_url": image_url}


def extract_message_text(payload: Any) -> Optional[str]:
    """choices[0].message.content as text; None when absent or empty."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None

    content = message.get("content")
    if isinstance(content, str):
        return content if content.strip() else None
    if isinstance(content, list):
        chunks: List[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                chunks.append(item["text"])
        if chunks:
            return "\n".join(chunks)
    return None


def extract_error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
        if isinstance(payload, dict):
            if isinstance(payload.get("error"), dict):
                message = payload["error"].get("message")
                if isinstance(message, str) and message:
                    return message
            detail = payload.get("detail")
            if isinstance(detail, str) and detail:
                return detail
    except ValueError:
        pass
    body = response.text.strip()
    return body[:300] if body else "Unknown provider error"


async def chat_completion(
    client: httpx.AsyncClient,
    *,
    base_url: str,
    api_key: str,
    payload: Dict[str, Any],
) -> str:
    """POST one chat-completions request and return the message text."""
    url = build_chat_completions_url(base_url)
    try:
        response = await client.post(
            url,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
        )
    except httpx.TransportError as e:
        raise NetworkError(f"HTTP request to {_host(url)} failed: {type(e).__name__}: {e}") from e

    if response.status_code >= 400:
        raise ProviderHttpError(
            response.status_code,
            response.text,
            provider="OpenAI",
            detail=extract_error_detail(response),
        )

    try:
        data = response.json()
    except ValueError as e:
        raise MalformedOutput(f"OpenAI response was not valid JSON: {e}", raw_text=response.text) from e

    text = extract_message_text(data)
    if text is None:
        raise EmptyResponse(f"Model {payload.get('model')} returned no content.")
    return text


class OpenAICompatibleUnified(AnalysisStrategy):
    """One multimodal request carrying the instructions and every image."""

    name = "openai_unified"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_payload(self, images: Sequence[EncodedImage]) -> Dict[str, Any]:
        content: List[Dict[str, Any]] = [{"type": "text", "text": ANALYSIS_PROMPT}]
        content.extend(image_part(img, detail="high") for img in images)
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

    async def generate(self, images: Sequence[ImageBlob]) -> str:
        logger.info(f"Using unified strategy: model={self.model} host={_host(self.base_url)} images={len(images)}")
        encoded = await encode_images(images)
        return await chat_completion(
            self.client,
            base_url=self.base_url,
            api_key=self.api_key,
            payload=self.build_payload(encoded),
        )


class OpenAICompatibleSplit(AnalysisStrategy):
    """
    Two stages: parallel per-image OCR against the vision endpoint, then one
    reasoning call against the text endpoint with the transcripts as context.
    Any OCR failure aborts the whole analysis.
    """

    name = "openai_split"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str,
        model: str,
        vision_api_key: str,
        vision_base_url: str,
        vision_model: str,
        temperature: float = 0.1,
        ocr_max_tokens: int = 1500,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.vision_api_key = vision_api_key
        self.vision_base_url = vision_base_url
        self.vision_model = vision_model
        self.temperature = temperature
        self.ocr_max_tokens = ocr_max_tokens

    def build_ocr_payload(self, image: EncodedImage) -> Dict[str, Any]:
        return {
            "model": self.vision_model,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": OCR_PROMPT}, image_part(image)],
                }
            ],
            "temperature": self.temperature,
            "max_tokens": self.ocr_max_tokens,
        }

    def build_reasoning_payload(self, sections: List[str]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": ANALYSIS_PROMPT},
                {"role": "user", "content": build_transcript_message(sections)},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

    async def _transcribe(self, index: int, blob: ImageBlob) -> str:
        try:
            encoded = await encode_image(blob)
            text = await chat_completion(
                self.client,
                base_url=self.vision_base_url,
                api_key=self.vision_api_key,
                payload=self.build_ocr_payload(encoded),
            )
        except Exception as e:
            raise ImageStageError(e, image_index=index, image_name=blob.name, model=self.vision_model) from e
        logger.info(f"ocr_done image={index} chars={len(text)}")
        return format_ocr_section(index, text)

    async def transcribe_all(self, images: Sequence[ImageBlob]) -> List[str]:
        tasks = [asyncio.create_task(self._transcribe(i, blob)) for i, blob in enumerate(images, start=1)]
        try:
            # gather keeps input order regardless of completion order
            return list(await asyncio.gather(*tasks))
        except Exception:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def generate(self, images: Sequence[ImageBlob]) -> str:
        logger.info(
            f"Using split strategy: vision={self.vision_model} (on {_host(self.vision_base_url)}) "
            f"reasoning={self.model} (on {_host(self.base_url)}) images={len(images)}"
        )
        sections = await self.transcribe_all(images)
        return await chat_completion(
            self.client,
            base_url=self.base_url,
            api_key=self.api_key,
            payload=self.build_reasoning_payload(sections),
        )
