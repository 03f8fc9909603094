"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py -> brokermatch/ -> src/ -> raíz del proyecto (donde está el .env)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Configuración principal de la aplicación."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(..., description="URL del proyecto Supabase")
    supabase_key: str = Field(..., description="Anon key de Supabase")
    supabase_service_key: Optional[str] = Field(
        None, description="Service role key (el motor escribe matches y notificaciones)"
    )

    # LLM Provider (oráculo de ranking)
    llm_provider: str = Field(
        "groq",
        description="Proveedor de LLM a usar: 'gemini' o 'groq'"
    )

    # Gemini
    gemini_api_key: Optional[str] = Field(None, description="API key de Google Gemini")
    gemini_model: str = Field("gemini-2.5-flash", description="Modelo de Gemini a usar")

    # Groq
    groq_api_key: Optional[str] = Field(None, description="API key de Groq")
    groq_model: str = Field(
        "llama-3.3-70b-versatile",
        description="Modelo de Groq a usar (llama-3.1-8b-instant, llama-3.3-70b-versatile)"
    )

    # Ranking
    ranking_timeout_seconds: float = Field(
        45.0, gt=0, description="Timeout de la llamada al oráculo (segundos)"
    )
    ranking_temperature: float = Field(0.2, ge=0.0, le=1.0)
    ranking_max_tokens: int = Field(2048, description="Máximo de tokens de la respuesta")
    ranking_max_candidates: int = Field(
        60, ge=1, description="Máximo de candidatos enviados al oráculo por corrida"
    )
    ranking_description_max_chars: int = Field(
        600, ge=0, description="Largo máximo de la descripción libre por candidato"
    )
    min_report_score: int = Field(
        40, ge=1, le=100, description="Score mínimo que el oráculo debe reportar"
    )
    max_ranked_results: int = Field(10, ge=1, description="Máximo de matches rankeados")

    # Filtros hard
    budget_elasticity: float = Field(
        0.2, ge=0.0, lt=1.0, description="Elasticidad del presupuesto (0.2 = ±20%)"
    )

    # Notificaciones
    notification_threshold: int = Field(
        70, ge=1, le=100, description="Score mínimo para notificar al agente"
    )

    # Triggers
    trigger_concurrency: int = Field(
        3, ge=1, description="Compradores re-matcheados en paralelo por evento"
    )

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()


# Estados de buyer_properties que cuentan como feedback positivo / negativo
FEEDBACK_LIKED_STATUSES = ["interested", "visited"]
FEEDBACK_DISLIKED_STATUSES = ["not_interested"]

PROPERTY_STATUS_AVAILABLE = "available"
