"""
Modelos del ranking: componentes, pesos del bandit y resultados.

Los seis componentes son la única fuente de verdad compartida entre
scoring, pesos, explicaciones y feedback.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from nido.errors import InvalidWeightMap

# Tolerancia para considerar que los pesos suman 1
WEIGHT_SUM_TOLERANCE = 1e-6


class Component(str, Enum):
    """Dimensiones de scoring, en orden canónico."""

    CONSTRAINT_FIT = "constraint_fit"
    PERSONAL_FIT = "personal_fit"
    ACCESSIBILITY = "accessibility"
    TRUST_QUALITY = "trust_quality"
    MARKET_VALUE = "market_value"
    ENGAGEMENT = "engagement"


COMPONENT_NAMES: tuple[str, ...] = tuple(c.value for c in Component)


class _ComponentMap(BaseModel):
    """Base para modelos con un float por componente."""

    model_config = ConfigDict(frozen=True)

    constraint_fit: float
    personal_fit: float
    accessibility: float
    trust_quality: float
    market_value: float
    engagement: float

    def get(self, component: Component | str) -> float:
        return getattr(self, Component(component).value)

    def items(self) -> Iterator[tuple[Component, float]]:
        for component in Component:
            yield component, getattr(self, component.value)

    def as_dict(self) -> dict[str, float]:
        return {component.value: value for component, value in self.items()}


class ComponentScores(_ComponentMap):
    """Sub-scores normalizados de un listing, cada uno en [0, 1]."""

    constraint_fit: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    personal_fit: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    accessibility: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    trust_quality: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    market_value: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    engagement: float = Field(..., ge=0, le=1, allow_inf_nan=False)


class BanditWeightMap(_ComponentMap):
    """
    Pesos de blending por componente.

    Invariante: cada peso en [0, 1] y la suma total igual a 1 dentro de
    WEIGHT_SUM_TOLERANCE. Una instancia construida siempre es válida.
    """

    constraint_fit: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    personal_fit: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    accessibility: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    trust_quality: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    market_value: float = Field(..., ge=0, le=1, allow_inf_nan=False)
    engagement: float = Field(..., ge=0, le=1, allow_inf_nan=False)

    @model_validator(mode="after")
    def _check_sum(self) -> "BanditWeightMap":
        total = math.fsum(value for _, value in self.items())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Los pesos suman {total:.8f}, se esperaba 1.0")
        return self

    @classmethod
    def default(cls) -> "BanditWeightMap":
        """Prior fijo usado al inicializar y como fallback."""
        return DEFAULT_BANDIT_WEIGHTS

    @classmethod
    def from_mapping(cls, weights: Mapping[str, float]) -> "BanditWeightMap":
        """
        Valida un mapa de pesos crudo (por ejemplo, leído del storage).

        Raises:
            InvalidWeightMap: Si falta o sobra una clave, hay negativos,
                valores no finitos o la suma no es 1.
        """
        if not isinstance(weights, Mapping):
            raise InvalidWeightMap(f"Se esperaba un mapping, llegó {type(weights).__name__}")

        keys = set(weights)
        missing = set(COMPONENT_NAMES) - keys
        unknown = keys - set(COMPONENT_NAMES)
        if missing:
            raise InvalidWeightMap(f"Faltan componentes: {sorted(missing)}")
        if unknown:
            raise InvalidWeightMap(f"Componentes desconocidos: {sorted(unknown)}")

        try:
            return cls.model_validate(dict(weights))
        except ValidationError as e:
            raise InvalidWeightMap(str(e)) from e

    @classmethod
    def normalized(cls, values: Mapping[str, float]) -> "BanditWeightMap":
        """
        Normaliza valores no negativos para que sumen 1.

        Raises:
            InvalidWeightMap: Si la suma no es positiva.
        """
        clean = {name: max(float(values.get(name, 0.0)), 0.0) for name in COMPONENT_NAMES}
        total = math.fsum(clean.values())
        if not math.isfinite(total) or total <= 0:
            raise InvalidWeightMap("No se pueden normalizar pesos con suma no positiva")
        return cls.from_mapping({name: value / total for name, value in clean.items()})


DEFAULT_BANDIT_WEIGHTS = BanditWeightMap(
    constraint_fit=0.3,
    personal_fit=0.2,
    accessibility=0.1,
    trust_quality=0.2,
    market_value=0.1,
    engagement=0.1,
)


class WeightSnapshot(BaseModel):
    """
    Versión publicada de los pesos del bandit.

    Inmutable: el learner publica una versión nueva en lugar de
    modificar la anterior.
    """

    model_config = ConfigDict(frozen=True)

    version: int = Field(default=0, ge=0)
    weights: BanditWeightMap = Field(default_factory=BanditWeightMap.default)
    trials: dict[str, float] = Field(default_factory=dict)
    successes: dict[str, float] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para inserción en Supabase."""
        return {
            "version": self.version,
            "weights": self.weights.as_dict(),
            "trials": self.trials,
            "successes": self.successes,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "WeightSnapshot":
        """
        Reconstruye un snapshot desde una fila de Supabase.

        Raises:
            InvalidWeightMap: Si los pesos persistidos no son válidos.
            pydantic.ValidationError: Si el resto de la fila está corrupta.
        """
        data = {
            "version": row.get("version", 0),
            "weights": BanditWeightMap.from_mapping(row.get("weights")),
            "trials": row.get("trials") or {},
            "successes": row.get("successes") or {},
        }
        if row.get("created_at"):
            data["created_at"] = row["created_at"]
        return cls.model_validate(data)


class RankedResult(BaseModel):
    """Listing rankeado con su score final, breakdown y explicación."""

    model_config = ConfigDict(frozen=True)

    listing_id: str
    score: float = Field(..., ge=0, le=100, description="Score final 0-100, 2 decimales")
    reasons: list[str] = Field(default_factory=list)
    reason_codes: list[str] = Field(default_factory=list)
    components: ComponentScores
    weights: BanditWeightMap

    # Procedencia de retrieval (para la capa de explicación)
    sources: list[str] = Field(default_factory=list)
    retrieval_codes: list[str] = Field(default_factory=list)

    weights_version: Optional[int] = None
