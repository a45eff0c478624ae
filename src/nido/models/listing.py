"""
Modelo de Listing para el motor de ranking.

Vista de solo lectura de una propiedad: el storage es dueño del registro,
el ranking nunca lo modifica durante una pasada.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    """Coordenadas geográficas."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class EngagementStats(BaseModel):
    """Contadores de interacción acumulados por el listing."""

    model_config = ConfigDict(frozen=True)

    views: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    messages: int = Field(default=0, ge=0)


class Listing(BaseModel):
    """
    Propiedad candidata a rankear.

    Todos los atributos salvo el id son opcionales: el scoring aplica
    un default neutro cuando falta un dato.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., description="Identificador estable del listing")
    title: str = Field(default="", description="Título del anuncio")
    description: str = Field(default="", description="Descripción libre")

    # Datos económicos y físicos
    price: Optional[float] = Field(None, ge=0, description="Precio mensual")
    rooms: Optional[int] = Field(None, ge=0, description="Cantidad de ambientes")
    size_m2: Optional[float] = Field(None, ge=0, description="Superficie en m²")

    # Ubicación
    district: Optional[str] = Field(None, description="Barrio / distrito")
    coordinates: Optional[Coordinates] = Field(None, description="Ubicación")
    commute_minutes: Optional[float] = Field(
        None, ge=0, description="Minutos de viaje al destino del usuario, si se conocen"
    )

    # Amenities y carácter del barrio
    amenities: list[str] = Field(default_factory=list, description="Tags de amenities")
    character_traits: dict[str, float] = Field(
        default_factory=dict,
        description="Intensidad 0-1 de rasgos del entorno: {'quiet': 0.8, 'social': 0.3}",
    )

    # Confianza y calidad
    verified: Optional[bool] = Field(None, description="Dueño verificado")
    media_score: Optional[float] = Field(None, ge=0, le=1, description="Calidad de fotos")
    completeness_score: Optional[float] = Field(
        None, ge=0, le=1, description="Completitud de la ficha"
    )

    engagement: Optional[EngagementStats] = Field(None, description="Interacciones")

    @property
    def amenity_set(self) -> frozenset[str]:
        """Amenities normalizados a minúsculas."""
        return frozenset(a.strip().lower() for a in self.amenities if a and a.strip())

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Listing":
        """
        Construye un Listing a partir de una fila de Supabase.

        Acepta tanto coordenadas anidadas como columnas latitude/longitude.
        """
        coordinates = row.get("coordinates")
        if not coordinates and row.get("latitude") is not None and row.get("longitude") is not None:
            coordinates = {"lat": row["latitude"], "lng": row["longitude"]}

        engagement = row.get("engagement")
        if engagement is None and any(
            row.get(key) is not None for key in ("view_count", "save_count", "message_count")
        ):
            engagement = {
                "views": row.get("view_count") or 0,
                "saves": row.get("save_count") or 0,
                "messages": row.get("message_count") or 0,
            }

        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=row.get("description") or "",
            price=row.get("price"),
            rooms=row.get("rooms"),
            size_m2=row.get("size_m2"),
            district=row.get("district"),
            coordinates=coordinates,
            commute_minutes=row.get("commute_minutes"),
            amenities=row.get("amenities") or [],
            character_traits=row.get("character_traits") or {},
            verified=row.get("verified"),
            media_score=row.get("media_score"),
            completeness_score=row.get("completeness_score"),
            engagement=engagement,
        )
