"""
Preferencias del usuario.

Define los filtros hard (restricciones que el scoring penaliza si no se
cumplen) y las preferencias soft (ponderables), creadas por request.
"""

from typing import Optional

from pydantic import BaseModel, Field

from nido.models.listing import Coordinates


class HardFilters(BaseModel):
    """
    Restricciones del usuario.
    Un listing que no las cumple pierde crédito en constraint fit.
    """

    # Presupuesto
    budget_min: Optional[float] = Field(None, ge=0, description="Precio mínimo")
    budget_max: Optional[float] = Field(None, ge=0, description="Precio máximo")

    # Características físicas
    min_rooms: Optional[int] = Field(None, ge=0, description="Mínimo de ambientes")

    # Amenities obligatorios (must-have)
    required_amenities: list[str] = Field(default_factory=list)

    # Tolerancia de viaje
    max_commute_minutes: Optional[float] = Field(
        None, gt=0, description="Máximo tiempo de viaje tolerable"
    )


class PriorityWeights(BaseModel):
    """Importancia relativa (0.0 a 1.0) que el usuario da a cada aspecto."""

    price: float = Field(default=0.5, ge=0, le=1)
    location: float = Field(default=0.5, ge=0, le=1)
    amenities: float = Field(default=0.5, ge=0, le=1)
    quality: float = Field(default=0.5, ge=0, le=1)


class SoftPreferences(BaseModel):
    """
    Preferencias ponderables: influyen en el score pero no penalizan
    como una restricción.
    """

    priorities: PriorityWeights = Field(default_factory=PriorityWeights)

    preferred_districts: list[str] = Field(default_factory=list)
    preferred_amenities: list[str] = Field(default_factory=list)

    ideal_commute_minutes: Optional[float] = Field(
        None, ge=0, description="Viaje con el que el usuario está plenamente conforme"
    )
    target_location: Optional[Coordinates] = Field(
        None, description="Destino habitual (trabajo, facultad) para estimar el viaje"
    )
    min_size_m2: Optional[float] = Field(None, gt=0, description="Superficie deseada")

    # Vector de personalidad: rasgos continuos 0-1 (quiet, social, ...)
    personality: dict[str, float] = Field(default_factory=dict)

    ideal_description: Optional[str] = Field(
        None,
        max_length=500,
        description="Descripción libre: 'Busco algo luminoso y silencioso cerca de la facultad'",
    )


class UserPreferences(BaseModel):
    """Combinación de filtros hard y preferencias soft."""

    hard_filters: HardFilters = Field(default_factory=HardFilters)
    soft_preferences: SoftPreferences = Field(default_factory=SoftPreferences)
