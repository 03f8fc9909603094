"""
Modelo de Comprador y Criterios

Define los criterios hard (excluyentes) del comprador y su perfil
de gusto en texto libre, usado para el ranking soft.
"""

from enum import Enum
from typing import Optional

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from brokermatch.errors import InvalidCriteriaError

logger = structlog.get_logger()


class RequiredFeature(str, Enum):
    """Características que el comprador puede exigir."""

    SAFE_ROOM = "has_safe_room"
    SUN_BALCONY = "has_sun_balcony"
    ELEVATOR = "has_elevator"
    PARKING = "parking_spots"


# Alias cortos aceptados como input
_FEATURE_ALIASES = {
    "safe_room": RequiredFeature.SAFE_ROOM,
    "sun_balcony": RequiredFeature.SUN_BALCONY,
    "elevator": RequiredFeature.ELEVATOR,
    "parking": RequiredFeature.PARKING,
}


class BuyerCriteria(BaseModel):
    """
    Filtros excluyentes: si una propiedad no cumple, se descarta.

    Semántica de campos vacíos:
    - Bounds en None: sin restricción.
    - target_cities vacío: cualquier ciudad.
    - target_neighborhoods vacío: WILDCARD, cualquier barrio dentro de las
      ciudades permitidas (no significa "ningún barrio").
    """

    # Presupuesto (se aplica con elasticidad, ver hard_filters)
    budget_min: Optional[float] = Field(None, ge=0, description="Presupuesto mínimo")
    budget_max: Optional[float] = Field(None, ge=0, description="Presupuesto máximo")

    # Características físicas
    min_rooms: Optional[float] = Field(None, ge=0, description="Mínimo de habitaciones")
    floor_min: Optional[int] = Field(None, description="Piso mínimo")
    floor_max: Optional[int] = Field(None, description="Piso máximo")

    # Ubicación
    target_cities: list[str] = Field(
        default_factory=list, description="Ciudades aceptables (vacío = todas)"
    )
    target_neighborhoods: list[str] = Field(
        default_factory=list, description="Barrios aceptables (vacío = wildcard)"
    )

    # Must-haves
    required_features: list[RequiredFeature] = Field(default_factory=list)

    @field_validator("target_cities", "target_neighborhoods", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        if value is None:
            return []
        return [v.strip() for v in value if v and v.strip()]

    @field_validator("required_features", mode="before")
    @classmethod
    def _normalize_features(cls, value):
        if not value:
            return []

        normalized = []
        for raw in value:
            key = raw.value if isinstance(raw, RequiredFeature) else str(raw).strip()
            feature = _FEATURE_ALIASES.get(key)
            if feature is None:
                try:
                    feature = RequiredFeature(key)
                except ValueError:
                    logger.warning("Feature requerida desconocida, se ignora", feature=key)
                    continue
            if feature not in normalized:
                normalized.append(feature)
        return normalized

    @model_validator(mode="after")
    def _check_ranges(self):
        # Rangos invertidos se rechazan, nunca se corrigen en silencio
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError(
                f"budget_min ({self.budget_min}) mayor que budget_max ({self.budget_max})"
            )
        if (
            self.floor_min is not None
            and self.floor_max is not None
            and self.floor_min > self.floor_max
        ):
            raise ValueError(
                f"floor_min ({self.floor_min}) mayor que floor_max ({self.floor_max})"
            )
        return self

    def describe(self) -> dict:
        """Eco de los filtros aplicados, para el payload de respuesta."""
        budget = None
        if self.budget_min is not None or self.budget_max is not None:
            low = f"₪{self.budget_min:,.0f}" if self.budget_min is not None else "₪0"
            high = f"₪{self.budget_max:,.0f}" if self.budget_max is not None else "₪∞"
            budget = f"{low} - {high}"

        floor_range = None
        if self.floor_min is not None or self.floor_max is not None:
            low = str(self.floor_min) if self.floor_min is not None else "0"
            high = str(self.floor_max) if self.floor_max is not None else "∞"
            floor_range = f"{low} - {high}"

        return {
            "budget": budget,
            "min_rooms": self.min_rooms,
            "cities": list(self.target_cities),
            "neighborhoods": list(self.target_neighborhoods),
            "features": [f.value for f in self.required_features],
            "floor_range": floor_range,
        }


class TasteProfile(BaseModel):
    """Perfil de gusto en texto libre. Lo evalúa el oráculo, no reglas."""

    liked: Optional[str] = Field(None, description="Qué le gusta al comprador")
    disliked: Optional[str] = Field(None, description="Qué descarta el comprador")
    summary: Optional[str] = Field(None, description="Resumen general del perfil")

    @property
    def is_empty(self) -> bool:
        return not any(
            (text or "").strip() for text in (self.liked, self.disliked, self.summary)
        )


class Buyer(BaseModel):
    """Comprador con sus criterios hard y su perfil de gusto."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="UUID generado por Supabase")
    full_name: str = Field("", description="Nombre del comprador")
    criteria: BuyerCriteria = Field(default_factory=BuyerCriteria)
    taste: TasteProfile = Field(default_factory=TasteProfile)

    @classmethod
    def from_db_row(cls, row: dict) -> "Buyer":
        """
        Construye el comprador a partir de una fila de la tabla buyers.

        Raises:
            InvalidCriteriaError: Si los criterios son inconsistentes
        """
        try:
            criteria = BuyerCriteria(
                budget_min=row.get("budget_min"),
                budget_max=row.get("budget_max"),
                min_rooms=row.get("min_rooms"),
                floor_min=row.get("floor_min"),
                floor_max=row.get("floor_max"),
                target_cities=row.get("target_cities"),
                target_neighborhoods=row.get("target_neighborhoods"),
                required_features=row.get("required_features"),
            )
        except ValidationError as e:
            raise InvalidCriteriaError(
                f"Criterios inválidos para el comprador {row.get('id')}: {e}"
            ) from e

        return cls(
            id=row["id"],
            full_name=row.get("full_name") or "",
            criteria=criteria,
            taste=TasteProfile(
                liked=row.get("global_liked_profile"),
                disliked=row.get("global_disliked_profile"),
                summary=row.get("client_match_summary"),
            ),
        )
