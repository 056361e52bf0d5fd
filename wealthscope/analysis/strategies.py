from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Sequence

from wealthscope.analysis.image_encoder import ImageBlob
from wealthscope.analysis.normalizer import parse_model_output


class AnalysisStrategy(ABC):
    """Produce raw analysis text from images, then parse it into a payload dict.

    Implementations: StructuredVision, OpenAICompatibleUnified, OpenAICompatibleSplit.
    """

    name: str

    @abstractmethod
    async def generate(self, images: Sequence[ImageBlob]) -> str:
        raise NotImplementedError

    def parse(self, text: str) -> Dict[str, Any]:
        return parse_model_output(text)
