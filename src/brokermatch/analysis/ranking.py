"""
Ranking soft de propiedades contra el perfil de gusto del comprador.

El oráculo (LLM) recibe los candidatos que pasaron los filtros hard,
el perfil de gusto y el feedback histórico de los agentes, y devuelve
un JSON con los mejores matches. El parseo tolera texto alrededor del
JSON y degrada a lista vacía si la respuesta es inválida.
"""

import json
import math
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from brokermatch.analysis.llm_providers import BaseLLMProvider, get_llm_provider
from brokermatch.config import (
    FEEDBACK_DISLIKED_STATUSES,
    FEEDBACK_LIKED_STATUSES,
    Settings,
    get_settings,
)
from brokermatch.errors import RankingUnavailableError
from brokermatch.models import AgentFeedback, Buyer, Property, RankedMatch

logger = structlog.get_logger()


RANKING_SYSTEM_PROMPT = (
    "You are an AI assistant that matches real-estate properties to buyers. "
    "Always answer with valid JSON only."
)

RANKING_USER_PROMPT_TEMPLATE = """You help real-estate agents match properties to their clients.

Taste profile of the client "{buyer_name}":

**What the client likes:**
{liked}

**What the client dislikes / rules out:**
{disliked}

**General summary:**
{summary}
{feedback_context}
These properties already passed the client's hard requirements (budget, rooms, city, required features):
{candidates}

Rank the properties by how well they fit the client's taste profile.
Pay special attention to the dislikes: if a property has something from the negative list, give it a low score or leave it out.
Treat the agent notes on previous properties as real evidence of the client's preferences.

Return JSON with up to {max_results} matching properties, best match first.

Answer format (JSON only):
{{
  "matches": [
    {{
      "property_id": "property uuid",
      "match_score": number between 1-100,
      "match_reason": "short explanation of why the property fits or not"
    }}
  ]
}}

Only include properties that score at least {min_score}.
If a property has something the client explicitly rules out, or that the agent noted the client disliked, do not include it."""

FEEDBACK_CONTEXT_TEMPLATE = """
**Agent notes on previous properties (very important!):**
{lines}

If a property has a trait the agent said the client disliked, lower its score significantly!
"""

_NOT_SPECIFIED = "not specified"


def format_candidate(prop: Property, description_max_chars: int = 600) -> str:
    """Resumen acotado de un candidato para el prompt."""
    def _or_unknown(value) -> str:
        if value is None:
            return "?"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    features = [
        "safe room" if prop.has_safe_room else "no safe room",
    ]
    if prop.has_sun_balcony:
        features.append("sun balcony")
    if prop.has_elevator:
        features.append("elevator")
    features.append(f"{prop.parking_spots or 0} parking spots")

    price = f"₪{prop.price:,.0f}" if prop.price is not None else "?"
    location = ", ".join(
        part for part in (prop.address, prop.neighborhood, prop.city) if part
    ) or "?"
    description = (prop.description or "").strip()[:description_max_chars]

    summary = (
        f"Property at {location}. {_or_unknown(prop.rooms)} rooms, "
        f"{_or_unknown(prop.size_sqm)} sqm, floor {_or_unknown(prop.floor)}, "
        f"price: {price}. {', '.join(features)}."
    )
    if description:
        summary = f"{summary} {description}"
    return summary


def build_feedback_context(feedback: Sequence[AgentFeedback]) -> str:
    """
    Agrupa el feedback del agente en "le gustó" / "no le gustó".

    Returns:
        Bloque de texto para el prompt (vacío si no hay feedback útil)
    """
    liked = [
        f.feedback.strip() for f in feedback
        if f.status in FEEDBACK_LIKED_STATUSES and f.feedback.strip()
    ]
    disliked = [
        f.feedback.strip() for f in feedback
        if f.status in FEEDBACK_DISLIKED_STATUSES and f.feedback.strip()
    ]
    if not liked and not disliked:
        return ""

    lines = []
    if disliked:
        lines.append(f"Things the client did not like: {'; '.join(disliked)}")
    if liked:
        lines.append(f"Things the client liked: {'; '.join(liked)}")
    return FEEDBACK_CONTEXT_TEMPLATE.format(lines="\n".join(lines))


def _extract_first_json_object(text: str) -> Optional[dict]:
    """Devuelve el primer objeto JSON bien formado dentro del texto."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def parse_ranking_response(
    text: str,
    candidate_ids: Optional[set[str]] = None,
    min_score: int = 40,
    max_results: int = 10,
) -> list[RankedMatch]:
    """
    Parsea la respuesta del oráculo a una lista de RankedMatch.

    Nunca levanta: ante una respuesta malformada loguea y devuelve [].

    Args:
        text: Respuesta cruda del LLM
        candidate_ids: IDs válidos (se descartan los inventados)
        min_score: Score mínimo reportable
        max_results: Máximo de matches devueltos

    Returns:
        Matches ordenados por score descendente
    """
    text = (text or "").strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1].strip()
            if text.startswith("json"):
                text = text[4:].strip()

    data = _extract_first_json_object(text)
    if data is None:
        logger.warning("Respuesta del oráculo sin JSON válido", response=text[:500])
        return []

    raw_matches = data.get("matches")
    if not isinstance(raw_matches, list):
        logger.warning("Respuesta del oráculo sin lista 'matches'", keys=list(data.keys()))
        return []

    results: dict[str, RankedMatch] = {}
    for item in raw_matches:
        if not isinstance(item, dict):
            continue

        property_id = str(item.get("property_id") or "").strip()
        if not property_id or property_id in results:
            continue
        if candidate_ids is not None and property_id not in candidate_ids:
            logger.debug("Match con property_id desconocido", property_id=property_id)
            continue

        try:
            raw_score = float(item.get("match_score"))
        except (TypeError, ValueError):
            continue
        # Infinity, -Infinity, NaN y 1e999 son JSON válido para json.loads
        if not math.isfinite(raw_score):
            continue
        score = max(1, min(100, int(round(raw_score))))
        if score < min_score:
            continue

        results[property_id] = RankedMatch(
            property_id=property_id,
            match_score=score,
            match_reason=str(item.get("match_reason") or "").strip(),
        )

    ranked = sorted(results.values(), key=lambda m: m.match_score, reverse=True)
    return ranked[:max_results]


class BaseRanker(ABC):
    """Capacidad de ranking soft: intercambiable por un scorer determinístico."""

    @abstractmethod
    async def rank(
        self,
        buyer: Buyer,
        candidates: Sequence[Property],
        feedback: Sequence[AgentFeedback] = (),
    ) -> list[RankedMatch]:
        """
        Rankea candidatos contra el perfil de gusto.

        Returns:
            Hasta max_ranked_results matches con score 1-100
        """
        pass


class LLMPropertyRanker(BaseRanker):
    """Ranking usando un LLM (Groq o Gemini) como oráculo."""

    def __init__(
        self,
        provider: Optional[BaseLLMProvider] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or get_settings()
        self._provider = provider or get_llm_provider()

    def build_prompt(
        self,
        buyer: Buyer,
        candidates: Sequence[Property],
        feedback: Sequence[AgentFeedback] = (),
    ) -> str:
        taste = buyer.taste
        max_chars = self._settings.ranking_description_max_chars
        lines = [
            f"{i}. [ID: {prop.id}] {format_candidate(prop, max_chars)}"
            for i, prop in enumerate(candidates, start=1)
        ]
        return RANKING_USER_PROMPT_TEMPLATE.format(
            buyer_name=buyer.full_name,
            liked=taste.liked or _NOT_SPECIFIED,
            disliked=taste.disliked or _NOT_SPECIFIED,
            summary=taste.summary or _NOT_SPECIFIED,
            feedback_context=build_feedback_context(feedback),
            candidates="\n".join(lines),
            max_results=self._settings.max_ranked_results,
            min_score=self._settings.min_report_score,
        )

    @retry(
        retry=retry_if_exception_type(RankingUnavailableError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _ask_oracle(self, prompt: str) -> str:
        response = await self._provider.generate(
            system_prompt=RANKING_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=self._settings.ranking_temperature,
            max_tokens=self._settings.ranking_max_tokens,
        )
        return response.text

    async def rank(
        self,
        buyer: Buyer,
        candidates: Sequence[Property],
        feedback: Sequence[AgentFeedback] = (),
    ) -> list[RankedMatch]:
        if buyer.taste.is_empty or not candidates:
            return []

        limit = self._settings.ranking_max_candidates
        if len(candidates) > limit:
            logger.warning(
                "Demasiados candidatos para el oráculo, se recorta",
                buyer_id=buyer.id,
                candidates=len(candidates),
                limit=limit,
            )
            candidates = list(candidates)[:limit]

        prompt = self.build_prompt(buyer, candidates, feedback)
        logger.info(
            "Enviando ranking al oráculo",
            buyer_id=buyer.id,
            candidates=len(candidates),
            feedback_items=len(feedback),
        )

        text = await self._ask_oracle(prompt)
        logger.debug("Respuesta del oráculo", buyer_id=buyer.id, response=text)

        matches = parse_ranking_response(
            text,
            candidate_ids={p.id for p in candidates},
            min_score=self._settings.min_report_score,
            max_results=self._settings.max_ranked_results,
        )
        logger.info("Ranking completado", buyer_id=buyer.id, matches=len(matches))
        return matches
