"""
Abstracción de proveedores LLM.

Permite switchear fácilmente entre diferentes proveedores (Gemini, Groq)
sin cambiar el código del ranking. Los errores de cada SDK se traducen
a la taxonomía de brokermatch.errors (429, 402, caído/timeout).
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import structlog

from brokermatch.config import get_settings
from brokermatch.errors import (
    RankingQuotaExceededError,
    RankingRateLimitedError,
    RankingUnavailableError,
)

logger = structlog.get_logger()


@dataclass
class LLMResponse:
    """Respuesta normalizada de cualquier LLM."""
    text: str
    model: str
    provider: str
    tokens_used: Optional[int] = None


def classify_status(provider: str, status_code: Optional[int], detail: str):
    """
    Traduce un status HTTP del proveedor al error correspondiente.

    Returns:
        Instancia de RankingError lista para levantar
    """
    if status_code == 429:
        return RankingRateLimitedError(f"{provider}: rate limit excedido ({detail})")
    if status_code == 402:
        return RankingQuotaExceededError(f"{provider}: cuota agotada ({detail})")
    return RankingUnavailableError(f"{provider}: error {status_code} ({detail})")


class BaseLLMProvider(ABC):
    """Clase base para proveedores de LLM."""

    provider_name: str = "base"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or get_settings().ranking_timeout_seconds

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """
        Genera una respuesta del LLM con timeout acotado.

        Raises:
            RankingUnavailableError: Timeout, error de red o 5xx
            RankingRateLimitedError: HTTP 429
            RankingQuotaExceededError: HTTP 402 / cuota agotada
        """
        try:
            return await asyncio.wait_for(
                self._generate(system_prompt, user_prompt, temperature, max_tokens),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "Timeout esperando al LLM",
                provider=self.provider_name,
                timeout=self.timeout,
            )
            raise RankingUnavailableError(
                f"{self.provider_name}: sin respuesta en {self.timeout}s"
            ) from e

    @abstractmethod
    async def _generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """
        Llamada concreta al SDK del proveedor.

        Args:
            system_prompt: Instrucciones del sistema
            user_prompt: Prompt del usuario
            temperature: Temperatura de generación (0.0-1.0)
            max_tokens: Máximo de tokens a generar

        Returns:
            LLMResponse con el texto generado
        """
        pass


class GeminiProvider(BaseLLMProvider):
    """Proveedor de Google Gemini."""

    provider_name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        from google import genai

        super().__init__(timeout=timeout)
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model

        if not self.api_key:
            raise ValueError("GEMINI_API_KEY no configurada")

        self.client = genai.Client(api_key=self.api_key)
        logger.info("GeminiProvider inicializado", model=self.model)

    async def _generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        from google.genai import errors, types

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[user_prompt],
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=temperature,
                    top_p=0.8,
                    max_output_tokens=max_tokens,
                ),
            )
        except errors.APIError as e:
            logger.error("Error de Gemini", code=e.code, error=str(e))
            raise classify_status(self.provider_name, e.code, str(e)) from e

        return LLMResponse(
            text=(response.text or "").strip(),
            model=self.model,
            provider=self.provider_name,
        )


class GroqProvider(BaseLLMProvider):
    """
    Proveedor de Groq (LPU inference).

    Modelos disponibles:
    - llama-3.1-8b-instant: Rápido y económico
    - llama-3.3-70b-versatile: Más capaz, mejor para rankear en hebreo

    Docs: https://console.groq.com/docs/models
    """

    provider_name = "groq"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        from groq import AsyncGroq

        super().__init__(timeout=timeout)
        settings = get_settings()
        self.api_key = api_key or settings.groq_api_key
        self.model = model or settings.groq_model

        if not self.api_key:
            raise ValueError("GROQ_API_KEY no configurada")

        # Los reintentos los maneja el ranking con tenacity
        self.client = AsyncGroq(api_key=self.api_key, max_retries=0)
        logger.info("GroqProvider inicializado", model=self.model)

    async def _generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        import groq

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except groq.APIStatusError as e:
            logger.error("Error de Groq", status=e.status_code, error=str(e))
            raise classify_status(self.provider_name, e.status_code, str(e)) from e
        except groq.APIConnectionError as e:
            logger.error("Groq inalcanzable", error=str(e))
            raise RankingUnavailableError(f"{self.provider_name}: {e}") from e

        text = response.choices[0].message.content or ""
        tokens = response.usage.total_tokens if response.usage else None

        return LLMResponse(
            text=text.strip(),
            model=self.model,
            provider=self.provider_name,
            tokens_used=tokens,
        )


def get_llm_provider(
    provider: Optional[str] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> BaseLLMProvider:
    """
    Factory para obtener el proveedor de LLM configurado.

    Args:
        provider: 'gemini' o 'groq' (default: settings.llm_provider)
        api_key: API key (default: del settings según provider)
        model: Modelo a usar (default: del settings según provider)

    Returns:
        Instancia del proveedor configurado
    """
    settings = get_settings()
    provider = provider or settings.llm_provider

    if provider.lower() == "groq":
        return GroqProvider(api_key=api_key, model=model)
    elif provider.lower() == "gemini":
        return GeminiProvider(api_key=api_key, model=model)
    else:
        raise ValueError(f"Proveedor LLM no soportado: {provider}. Usar 'gemini' o 'groq'")
