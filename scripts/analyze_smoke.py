"""Manual smoke test for the analysis orchestrator.

Usage:
  python scripts/analyze_smoke.py statement1.png [statement2.png ...]

Provider settings come from config.yaml / .env (WEALTHSCOPE_PROVIDER, LLM_BASE_URL,
LLM_MODEL, LLM_VISION_MODEL, API_KEY).
"""
import json
import sys

from wealthscope.analysis.image_encoder import ImageBlob
from wealthscope.analysis.orchestrator import AnalysisOrchestrator
from wealthscope.core.config import SETTINGS
from wealthscope.core.errors import AnalysisFailed
from wealthscope.core.schemas import AIProvider, AnalysisConfiguration
from wealthscope.utils.logging import setup_logging


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    setup_logging(SETTINGS.log_level)
    provider = AIProvider(SETTINGS.default_provider)
    if provider is AIProvider.OPENAI_COMPATIBLE:
        config = AnalysisConfiguration(
            provider=provider,
            base_url=SETTINGS.openai_base_url,
            model_name=SETTINGS.openai_model,
            vision_model_name=SETTINGS.vision_model,
        )
    else:
        config = AnalysisConfiguration(provider=provider, model_name=SETTINGS.structured_default_model)

    images = [ImageBlob.from_path(p) for p in sys.argv[1:]]
    try:
        result = AnalysisOrchestrator().analyze_sync(images, config)
    except AnalysisFailed as e:
        print("Failed:", e.envelope.model_dump())
        sys.exit(1)

    print(json.dumps(result.to_wire(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
