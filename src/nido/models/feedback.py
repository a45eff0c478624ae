"""
Feedback de usuarios sobre resultados rankeados.

El log de feedback es append-only: el motor nunca modifica ni borra
eventos, solo los consume en lotes desde el learner.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from nido.models.ranking import COMPONENT_NAMES, ComponentScores


class FeedbackType(str, Enum):
    """Reacciones posibles del usuario."""

    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"
    NEUTRAL = "neutral"
    CLICK = "click"
    SAVE = "save"
    CONTACT = "contact"

    @property
    def signal(self) -> float:
        """Señal escalar en [-1, 1]."""
        return FEEDBACK_SIGNALS[self]


FEEDBACK_SIGNALS: dict[FeedbackType, float] = {
    FeedbackType.HELPFUL: 1.0,
    FeedbackType.NOT_HELPFUL: -1.0,
    FeedbackType.NEUTRAL: 0.0,
    FeedbackType.CLICK: 0.25,
    FeedbackType.SAVE: 0.5,
    FeedbackType.CONTACT: 1.0,
}


class FeedbackEvent(BaseModel):
    """
    Reacción de un usuario a un listing rankeado.

    Guarda el breakdown por componente vigente al momento del ranking,
    que es lo que el learner usa para atribuir el éxito.
    """

    model_config = ConfigDict(frozen=True)

    listing_id: str = Field(..., min_length=1)
    signal: float = Field(..., ge=-1, le=1, allow_inf_nan=False)
    component_scores: ComponentScores
    feedback_type: Optional[FeedbackType] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para inserción en Supabase."""
        data = {
            "listing_id": self.listing_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "feedback_type": self.feedback_type.value if self.feedback_type else None,
            "feedback_score": self.signal,
            "created_at": self.created_at.isoformat(),
        }
        # Una columna por componente para poder consultar el log con SQL
        for name in COMPONENT_NAMES:
            data[f"{name}_score"] = self.component_scores.get(name)
        return data

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "FeedbackEvent":
        """
        Reconstruye un evento desde una fila del log.

        Raises:
            pydantic.ValidationError: Si la fila está incompleta o corrupta.
        """
        scores = row.get("component_scores")
        if scores is None:
            scores = {name: row.get(f"{name}_score") for name in COMPONENT_NAMES}

        data = {
            "listing_id": row.get("listing_id"),
            "signal": row.get("feedback_score", row.get("signal")),
            "component_scores": scores,
            "feedback_type": row.get("feedback_type"),
            "user_id": row.get("user_id"),
            "session_id": row.get("session_id"),
        }
        if row.get("created_at"):
            data["created_at"] = row["created_at"]
        return cls.model_validate(data)
