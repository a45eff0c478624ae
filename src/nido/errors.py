"""
Errores del motor de ranking.

Ninguno de estos errores debe llegar al usuario final: cada uno tiene
una estrategia de degradación local (ver quién los captura).
"""


class NidoError(Exception):
    """Clase base para errores del motor."""


class InvalidWeightMap(NidoError, ValueError):
    """El mapa de pesos no suma 1, tiene negativos o le falta una clave."""


class ChannelTimeout(NidoError):
    """Un canal de retrieval no respondió dentro del tiempo permitido."""

    def __init__(self, channel: str, timeout: float):
        super().__init__(f"Canal '{channel}' sin respuesta tras {timeout:.2f}s")
        self.channel = channel
        self.timeout = timeout


class MalformedFeedbackEvent(NidoError):
    """Un registro del log de feedback no se pudo interpretar."""

    def __init__(self, message: str, row: object = None):
        super().__init__(message)
        self.row = row


class LearnerNoData(NidoError):
    """No hay feedback utilizable en la ventana del learner."""
