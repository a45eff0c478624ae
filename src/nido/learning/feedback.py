"""
Captura de feedback de usuarios.

Convierte la reacción a un resultado rankeado en un FeedbackEvent y lo
agrega al log. No toca los pesos: eso es trabajo del learner offline.
"""

from typing import Optional

from nido.database.repositories import FeedbackRepository
from nido.models import FeedbackEvent, FeedbackType, RankedResult


class FeedbackRecorder:
    """Registra feedback en el log append-only."""

    def __init__(self, repository: FeedbackRepository):
        self.repository = repository

    def record(
        self,
        ranked_result: RankedResult,
        feedback_type: FeedbackType,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> FeedbackEvent:
        """
        Registra la reacción de un usuario a un resultado.

        Args:
            ranked_result: Resultado tal como se le mostró al usuario
            feedback_type: Tipo de reacción
            user_id: Usuario (opcional)
            session_id: Sesión de búsqueda (opcional)

        Returns:
            El evento agregado al log
        """
        feedback_type = FeedbackType(feedback_type)
        event = FeedbackEvent(
            listing_id=ranked_result.listing_id,
            signal=feedback_type.signal,
            component_scores=ranked_result.components,
            feedback_type=feedback_type,
            user_id=user_id,
            session_id=session_id,
        )

        self.repository.append(event)
        return event
