"""
Módulo de análisis con IA.

Provee el ranking soft de propiedades usando LLM (Gemini/Groq).
"""

from brokermatch.analysis.ranking import (
    BaseRanker,
    LLMPropertyRanker,
    parse_ranking_response,
)
from brokermatch.analysis.llm_providers import (
    get_llm_provider,
    BaseLLMProvider,
    GeminiProvider,
    GroqProvider,
    LLMResponse,
)

__all__ = [
    # Ranking
    "BaseRanker",
    "LLMPropertyRanker",
    "parse_ranking_response",
    # Proveedores LLM
    "get_llm_provider",
    "BaseLLMProvider",
    "GeminiProvider",
    "GroqProvider",
    "LLMResponse",
]
