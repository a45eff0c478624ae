"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Encontrar la raíz del proyecto (donde está el .env)
# config.py -> nido/ -> src/ -> raíz del proyecto
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

# Tolerancia para la suma de pesos de canal
CHANNEL_WEIGHT_TOLERANCE = 1e-6


class Settings(BaseSettings):
    """Configuración principal de la aplicación."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase (listings, feedback log, snapshots de pesos)
    supabase_url: Optional[str] = Field(None, description="URL del proyecto Supabase")
    supabase_key: Optional[str] = Field(None, description="Anon key de Supabase")
    supabase_service_key: Optional[str] = Field(
        None, description="Service role key para operaciones admin"
    )

    # Embeddings (canal semántico)
    gemini_api_key: Optional[str] = Field(None, description="API key de Google Gemini")
    embedding_model: str = Field(
        "gemini-embedding-001", description="Modelo de embedding a usar"
    )
    embedding_dim: int = Field(768, description="Dimensión del vector de embedding")

    # Retrieval híbrido
    channel_weight_structured: float = Field(
        0.5, ge=0.0, le=1.0, description="Peso del canal de filtros estructurados"
    )
    channel_weight_keyword: float = Field(
        0.2, ge=0.0, le=1.0, description="Peso del canal full-text"
    )
    channel_weight_semantic: float = Field(
        0.3, ge=0.0, le=1.0, description="Peso del canal de embeddings"
    )
    channel_timeout_seconds: float = Field(
        2.0, gt=0.0, description="Tiempo máximo de espera por canal (segundos)"
    )
    channel_result_limit: int = Field(
        50, ge=1, description="Máximo de candidatos pedidos a cada canal"
    )
    max_ranked_results: int = Field(
        20, ge=1, description="Máximo de resultados rankeados devueltos"
    )
    ranking_event_top_n: int = Field(
        5, ge=0, description="Resultados del top que se registran como eventos de ranking (0 = ninguno)"
    )

    # Scoring
    market_min_comparables: int = Field(
        3, ge=1, description="Mínimo de comparables (barrio + ambientes) para el percentil de precio"
    )
    transit_speed_kmh: float = Field(
        20.0, gt=0.0, description="Velocidad media asumida para estimar el viaje desde coordenadas"
    )

    # Bandit (recalculo offline de pesos)
    learner_lookback_days: int = Field(
        30, ge=1, description="Ventana de feedback considerada por el learner (días)"
    )
    bandit_min_trial_increment: float = Field(
        0.05, gt=0.0, le=1.0, description="Incremento mínimo de trials por componente"
    )
    bandit_high_intensity_threshold: float = Field(
        0.66, ge=0.0, le=1.0, description="Intensidad a partir de la cual el éxito es completo"
    )
    bandit_low_intensity_threshold: float = Field(
        0.33, ge=0.0, le=1.0, description="Intensidad a partir de la cual el éxito es parcial"
    )
    bandit_mid_credit: float = Field(
        0.5, ge=0.0, le=1.0, description="Crédito de éxito para intensidad media"
    )
    bandit_low_credit: float = Field(
        0.1, ge=0.0, le=1.0, description="Crédito de éxito para intensidad baja"
    )

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")

    @model_validator(mode="after")
    def _check_channel_weights(self) -> "Settings":
        total = sum(self.channel_weights.values())
        if total > 1.0 + CHANNEL_WEIGHT_TOLERANCE:
            raise ValueError(
                f"Los pesos de canal suman {total:.3f}, el máximo es 1"
            )
        return self

    @property
    def channel_weights(self) -> dict[str, float]:
        """Pesos de blending por canal, en el orden de los canales por defecto."""
        return {
            "structured": self.channel_weight_structured,
            "keyword": self.channel_weight_keyword,
            "semantic": self.channel_weight_semantic,
        }


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()
