"""
Modelos de retrieval híbrido.

Cada canal devuelve ScoredCandidate con un score propio en [0, 1];
el merger los fusiona en Candidate deduplicados por listing.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from nido.models.listing import Listing
from nido.models.user import UserPreferences


class SearchQuery(BaseModel):
    """Consulta que entra al pipeline de búsqueda."""

    text: Optional[str] = Field(None, description="Texto libre de búsqueda")
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    limit: int = Field(default=20, ge=1)
    user_id: Optional[str] = Field(None, description="Usuario, para el log de eventos de ranking")
    session_id: Optional[str] = None


class ScoredCandidate(BaseModel):
    """Un resultado de un canal de retrieval."""

    model_config = ConfigDict(frozen=True)

    listing_id: str
    score: float = Field(..., description="Score del canal, se recorta a [0, 1] al fusionar")
    reason_codes: list[str] = Field(default_factory=list)
    listing: Optional[Listing] = Field(
        None, description="Registro completo si el canal lo trae (el canal estructurado sí)"
    )


class ChannelResult(BaseModel):
    """Respuesta completa de un canal, incluida la degradación si falló."""

    model_config = ConfigDict(frozen=True)

    channel: str
    candidates: list[ScoredCandidate] = Field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None

    @classmethod
    def failure(cls, channel: str, error: str) -> "ChannelResult":
        """Canal que no respondió: se trata como conjunto vacío."""
        return cls(channel=channel, candidates=[], failed=True, error=error)


class Candidate(BaseModel):
    """Candidato fusionado entre canales."""

    model_config = ConfigDict(frozen=True)

    listing_id: str
    fused_score: float = Field(..., ge=0, le=1, description="Señal intermedia, no se muestra")
    channel_scores: dict[str, float] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)
    reason_codes: list[str] = Field(default_factory=list)
    listing: Optional[Listing] = None


class MergeResult(BaseModel):
    """Salida del merger."""

    model_config = ConfigDict(frozen=True)

    candidates: list[Candidate] = Field(default_factory=list)
    degraded: bool = False
    failed_channels: list[str] = Field(default_factory=list)
