"""
Canal de retrieval abstracto.

Define la interfaz común para los tres métodos de búsqueda
(filtros estructurados, full-text y embeddings).
"""

from abc import ABC, abstractmethod

from nido.models import ScoredCandidate, SearchQuery


class RetrievalChannel(ABC):
    """
    Clase base abstracta para canales de retrieval.

    Cada canal puntúa sus resultados en [0, 1] con su propio método;
    el merger solo depende de esta interfaz.
    """

    # Nombre del canal (override en subclases)
    NAME: str = "base"

    # Reason code que el canal aporta a cada resultado
    REASON_CODE: str = ""

    def __init__(self, limit: int = 50):
        self.limit = limit

    @property
    def name(self) -> str:
        return self.NAME

    @abstractmethod
    async def search(self, query: SearchQuery) -> list[ScoredCandidate]:
        """
        Busca candidatos para la consulta.

        Args:
            query: Consulta con texto libre y preferencias

        Returns:
            Candidatos ordenados por score del canal, descendente
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} limit={self.limit}>"
