"""
Modelo de Propiedad del inventario.

Inmutable durante una corrida de matching.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Property(BaseModel):
    """Propiedad disponible con atributos estructurados."""

    model_config = ConfigDict(frozen=True, extra="ignore", from_attributes=True)

    id: str = Field(..., description="UUID generado por Supabase")
    address: Optional[str] = Field(None, description="Dirección")
    city: Optional[str] = Field(None, description="Ciudad")
    neighborhood: Optional[str] = Field(None, description="Barrio")

    price: Optional[float] = Field(None, description="Precio en ₪")
    rooms: Optional[float] = Field(None, description="Habitaciones (admite 3.5)")
    size_sqm: Optional[float] = Field(None, description="Superficie en m²")
    floor: Optional[int] = Field(None, description="Piso")

    has_safe_room: bool = Field(default=False, description="Tiene ממ״ד")
    has_sun_balcony: bool = Field(default=False, description="Tiene balcón al sol")
    has_elevator: bool = Field(default=False, description="Tiene ascensor")
    parking_spots: Optional[int] = Field(None, description="Cantidad de cocheras")

    description: Optional[str] = Field(None, description="Descripción libre")
    status: Optional[str] = Field(None, description="Estado de disponibilidad")

    @field_validator("has_safe_room", "has_sun_balcony", "has_elevator", mode="before")
    @classmethod
    def _none_as_false(cls, value):
        return bool(value) if value is not None else False

    @property
    def has_parking(self) -> bool:
        return (self.parking_spots or 0) > 0

    def to_payload(self) -> dict:
        """Registro desnormalizado para la respuesta del matching."""
        return self.model_dump()
