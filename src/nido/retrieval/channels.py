"""
Canales concretos de retrieval sobre Supabase.

Las llamadas al cliente de Supabase son síncronas; se ejecutan con
asyncio.to_thread para no bloquear el event loop mientras los otros
canales corren en paralelo.
"""

import asyncio
from typing import Optional

import structlog
from pydantic import ValidationError

from nido.analysis.embeddings import EmbeddingGenerator
from nido.database.repositories import ListingRepository
from nido.models import Listing, ScoredCandidate, SearchQuery
from nido.retrieval.base import RetrievalChannel

logger = structlog.get_logger()

# Score por posición del canal estructurado
STRUCTURED_TOP_SCORE = 0.9
STRUCTURED_POSITION_DECAY = 0.01
STRUCTURED_MIN_SCORE = 0.5


def _query_text(query: SearchQuery) -> Optional[str]:
    """Texto libre de la consulta o, si falta, la descripción ideal del usuario."""
    text = query.text or query.preferences.soft_preferences.ideal_description
    if text and text.strip():
        return text.strip()
    return None


class StructuredChannel(RetrievalChannel):
    """Listings que cumplen los filtros hard (presupuesto, ambientes)."""

    NAME = "structured"
    REASON_CODE = "filter_match"

    def __init__(self, repository: ListingRepository, limit: int = 50):
        super().__init__(limit)
        self.repository = repository

    @staticmethod
    def position_score(position: int) -> float:
        """El primer resultado vale 0.9 y cada posición resta 0.01, con piso 0.5."""
        return max(STRUCTURED_MIN_SCORE, STRUCTURED_TOP_SCORE - position * STRUCTURED_POSITION_DECAY)

    async def search(self, query: SearchQuery) -> list[ScoredCandidate]:
        hard = query.preferences.hard_filters
        soft = query.preferences.soft_preferences

        rows = await asyncio.to_thread(
            self.repository.search_by_filters,
            budget_min=hard.budget_min,
            budget_max=hard.budget_max,
            min_rooms=hard.min_rooms,
            districts=soft.preferred_districts or None,
            limit=self.limit,
        )

        candidates = []
        for row in rows:
            try:
                listing = Listing.from_db_row(row)
            except (KeyError, ValidationError) as e:
                logger.warning("Listing inválido en canal estructurado", id=row.get("id"), error=str(e))
                continue

            candidates.append(
                ScoredCandidate(
                    listing_id=listing.id,
                    score=self.position_score(len(candidates)),
                    reason_codes=[self.REASON_CODE],
                    listing=listing,
                )
            )

        logger.debug("Canal estructurado", results=len(candidates))
        return candidates


class KeywordChannel(RetrievalChannel):
    """Búsqueda full-text; el rank se normaliza contra el mejor resultado."""

    NAME = "keyword"
    REASON_CODE = "keyword_match"

    def __init__(self, repository: ListingRepository, limit: int = 50):
        super().__init__(limit)
        self.repository = repository

    async def search(self, query: SearchQuery) -> list[ScoredCandidate]:
        text = _query_text(query)
        if not text:
            return []

        rows = await asyncio.to_thread(self.repository.keyword_search, text, self.limit)
        if not rows:
            return []

        ranks = [float(row.get("rank") or 0.0) for row in rows]
        best = max(ranks)

        candidates = [
            ScoredCandidate(
                listing_id=str(row["id"]),
                score=rank / best if best > 0 else 0.0,
                reason_codes=[self.REASON_CODE],
            )
            for row, rank in zip(rows, ranks)
        ]

        logger.debug("Canal keyword", query=text[:50], results=len(candidates))
        return candidates


class SemanticChannel(RetrievalChannel):
    """Similitud de embeddings entre la consulta y los listings."""

    NAME = "semantic"
    REASON_CODE = "semantic_match"

    def __init__(
        self,
        repository: ListingRepository,
        embedder: EmbeddingGenerator,
        limit: int = 50,
    ):
        super().__init__(limit)
        self.repository = repository
        self.embedder = embedder

    @staticmethod
    def similarity_to_score(similarity: Optional[float]) -> float:
        """Mapea similitud de coseno [-1, 1] a [0, 1]."""
        if similarity is None:
            return 0.0
        return min(1.0, max(0.0, (float(similarity) + 1.0) / 2.0))

    async def search(self, query: SearchQuery) -> list[ScoredCandidate]:
        text = _query_text(query)
        if not text:
            return []

        vector = await self.embedder.generate_query_embedding(text)
        rows = await asyncio.to_thread(self.repository.similarity_search, vector, self.limit)

        candidates = [
            ScoredCandidate(
                listing_id=str(row["id"]),
                score=self.similarity_to_score(row.get("similarity")),
                reason_codes=[self.REASON_CODE],
            )
            for row in rows
        ]

        logger.debug("Canal semántico", query=text[:50], results=len(candidates))
        return candidates
