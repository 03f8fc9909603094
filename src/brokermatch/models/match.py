"""
Modelos del resultado de matching.

- FilterOutcome: resultado del filtro hard por propiedad
- RankedMatch: propiedad rankeada por el oráculo
- MatchRecord / Notification: filas persistidas por el motor
- MatchingResult: payload de respuesta de una corrida
"""

from typing import Optional

from pydantic import BaseModel, Field

from brokermatch.models.property import Property

NO_TASTE_PROFILE_MESSAGE = (
    "The buyer has no taste profile yet. Fill in what the buyer likes, "
    "dislikes or a match summary before running the matching."
)
NO_CANDIDATES_MESSAGE = "No available properties match the buyer's requirements."


class FilterOutcome(BaseModel):
    """Resultado de evaluar una propiedad contra los filtros hard."""

    property_id: str
    passed: bool
    reason: Optional[str] = Field(
        None, description="Motivo de exclusión (siempre presente si passed=False)"
    )


class AgentFeedback(BaseModel):
    """Comentario del agente sobre una propiedad ya asignada al comprador."""

    feedback: str
    status: Optional[str] = None


class RankedMatch(BaseModel):
    """Propiedad rankeada por el oráculo contra el perfil de gusto."""

    property_id: str
    match_score: int = Field(..., ge=1, le=100)
    match_reason: str = ""


class MatchRecord(BaseModel):
    """Fila de la tabla matches, clave compuesta (buyer_id, property_id)."""

    buyer_id: str
    property_id: str
    match_score: int = Field(0, ge=0, le=100)
    match_reason: Optional[str] = None
    hard_filter_passed: bool
    updated_at: str

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para upsert en Supabase."""
        return self.model_dump()


class Notification(BaseModel):
    """Alerta para el agente por un match de score alto."""

    buyer_id: str
    agent_id: str
    property_id: str
    match_score: int
    match_reason: Optional[str] = None
    is_read_by_agent: bool = False
    is_read_by_manager: bool = False

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para inserción en Supabase."""
        return self.model_dump()


class EnrichedMatch(BaseModel):
    """Match rankeado con el registro completo de la propiedad."""

    property_id: str
    match_score: int
    match_reason: str
    property: Property

    def to_payload(self) -> dict:
        return {
            "property_id": self.property_id,
            "match_score": self.match_score,
            "match_reason": self.match_reason,
            "property": self.property.to_payload(),
        }


class ExclusionReasonCount(BaseModel):
    """Motivo de exclusión agregado, para analytics."""

    reason: str
    count: int


class MatchingResult(BaseModel):
    """Respuesta de una corrida de matching (preview o persistida)."""

    buyer_id: str
    buyer_name: str
    matches: list[EnrichedMatch] = Field(default_factory=list)
    total_filtered: int = Field(0, description="Candidatos que pasaron los filtros hard")
    failed_count: int = Field(0, description="Candidatos excluidos por filtros hard")
    filters_applied: dict = Field(default_factory=dict)
    message: Optional[str] = Field(
        None, description="Explicación cuando no hay matches por precondición"
    )
    saved: bool = False
    committed_count: int = 0
    notifications_created: int = 0

    @property
    def has_taste_profile(self) -> bool:
        return self.message != NO_TASTE_PROFILE_MESSAGE

    def to_payload(self) -> dict:
        """Payload JSON devuelto por ambos entry points."""
        payload = {
            "buyer_name": self.buyer_name,
            "matches": [m.to_payload() for m in self.matches],
            "total_filtered": self.total_filtered,
            "failed_count": self.failed_count,
            "filters_applied": self.filters_applied,
        }
        if self.message:
            payload["message"] = self.message
        return payload
