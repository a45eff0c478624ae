"""
Servicio de búsqueda híbrida.

Camino de serving completo: snapshot de pesos -> canales en paralelo ->
merge -> hidratación -> ranking con explicación.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Sequence

import structlog
from pydantic import ValidationError

from nido.analysis.embeddings import EmbeddingGenerator
from nido.config import Settings, get_settings
from nido.database.repositories import (
    ListingRepository,
    RankingEventRepository,
    WeightSnapshotRepository,
)
from nido.database.supabase_client import get_supabase_client
from nido.learning.snapshot import WeightSnapshotStore
from nido.models import Candidate, Listing, RankedResult, SearchQuery
from nido.ranking.engine import RankingEngine
from nido.retrieval.base import RetrievalChannel
from nido.retrieval.channels import KeywordChannel, SemanticChannel, StructuredChannel
from nido.retrieval.merger import RetrievalMerger, collect_channels

logger = structlog.get_logger()


@dataclass
class SearchResponse:
    """Resultado de una búsqueda."""

    results: list[RankedResult] = field(default_factory=list)
    degraded: bool = False
    failed_channels: list[str] = field(default_factory=list)
    weights_version: Optional[int] = None


class HybridSearchService:
    """
    Orquesta retrieval y ranking para una consulta.

    No guarda estado entre requests: cada búsqueda toma su propia
    referencia al snapshot de pesos vigente.
    """

    def __init__(
        self,
        channels: Sequence[RetrievalChannel],
        store: WeightSnapshotStore,
        listing_repository: Optional[ListingRepository] = None,
        merger: Optional[RetrievalMerger] = None,
        engine: Optional[RankingEngine] = None,
        event_repository: Optional[RankingEventRepository] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.channels = list(channels)
        self.store = store
        self.listing_repository = listing_repository
        self.merger = merger or RetrievalMerger()
        self.engine = engine or RankingEngine(settings=self.settings)
        self.event_repository = event_repository

    async def _hydrate(self, candidates: list[Candidate]) -> tuple[list[Candidate], bool]:
        """
        Completa el listing de los candidatos que solo traen id.

        Si el lookup falla o no responde a tiempo, se descartan los
        candidatos sin listing y se devuelve la marca de degradación.
        """
        missing = [c.listing_id for c in candidates if c.listing is None]
        if not missing or self.listing_repository is None:
            return candidates, False

        try:
            rows = await asyncio.wait_for(
                asyncio.to_thread(self.listing_repository.get_by_ids, missing),
                timeout=self.settings.channel_timeout_seconds,
            )
        except Exception as e:
            error_kind = "LookupTimeout" if isinstance(e, asyncio.TimeoutError) else type(e).__name__
            logger.warning(
                "Lookup de listings falló, se rankea sin hidratar",
                missing=len(missing),
                error_kind=error_kind,
                error=str(e),
            )
            return [c for c in candidates if c.listing is not None], True

        listings: dict[str, Listing] = {}
        for row in rows:
            try:
                listing = Listing.from_db_row(row)
            except (KeyError, ValidationError) as e:
                logger.warning("Listing inválido al hidratar", id=row.get("id"), error=str(e))
                continue
            listings[listing.id] = listing

        hydrated = [
            c if c.listing is not None or c.listing_id not in listings
            else c.model_copy(update={"listing": listings[c.listing_id]})
            for c in candidates
        ]
        return hydrated, False

    async def _log_ranking_events(self, results: list[RankedResult], query: SearchQuery) -> None:
        """Persiste el top-N mostrado. Best-effort: un error solo se loguea."""
        top = results[: self.settings.ranking_event_top_n]
        if self.event_repository is None or not top:
            return

        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    self.event_repository.log_events,
                    top,
                    user_id=query.user_id,
                    session_id=query.session_id,
                ),
                timeout=self.settings.channel_timeout_seconds,
            )
        except Exception as e:
            logger.warning(
                "No se pudieron registrar los eventos de ranking",
                events=len(top),
                error_kind=type(e).__name__,
                error=str(e),
            )

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Ejecuta una búsqueda.

        Args:
            query: Texto libre, preferencias y límite de resultados

        Returns:
            SearchResponse con los resultados rankeados y la marca de
            degradación si algún canal o el lookup de listings no respondió
        """
        snapshot = self.store.current()

        channel_results = await collect_channels(
            self.channels, query, self.settings.channel_timeout_seconds
        )
        merged = self.merger.merge(channel_results, self.settings.channel_weights)
        candidates, lookup_failed = await self._hydrate(merged.candidates)
        degraded = merged.degraded or lookup_failed

        limit = min(query.limit, self.settings.max_ranked_results)
        results = self.engine.rank(
            candidates,
            query.preferences,
            weights=snapshot,
            limit=limit,
        )

        await self._log_ranking_events(results, query)

        logger.info(
            "Búsqueda completada",
            candidates=len(merged.candidates),
            results=len(results),
            degraded=degraded,
            weights_version=snapshot.version,
        )

        return SearchResponse(
            results=results,
            degraded=degraded,
            failed_channels=list(merged.failed_channels),
            weights_version=snapshot.version,
        )


def build_default_service(settings: Optional[Settings] = None) -> HybridSearchService:
    """
    Arma el servicio con los adaptadores de Supabase y Gemini.

    El canal semántico solo se agrega si hay GEMINI_API_KEY.

    Raises:
        ValueError: Si faltan las credenciales de Supabase
    """
    settings = settings or get_settings()
    client = get_supabase_client()
    listing_repository = ListingRepository(client)
    limit = settings.channel_result_limit

    channels: list[RetrievalChannel] = [
        StructuredChannel(listing_repository, limit=limit),
        KeywordChannel(listing_repository, limit=limit),
    ]
    if settings.gemini_api_key:
        channels.append(SemanticChannel(listing_repository, EmbeddingGenerator(), limit=limit))
    else:
        logger.warning("GEMINI_API_KEY no configurada, canal semántico deshabilitado")

    store = WeightSnapshotStore(WeightSnapshotRepository(client))
    store.refresh()

    return HybridSearchService(
        channels=channels,
        store=store,
        listing_repository=listing_repository,
        event_repository=RankingEventRepository(client),
        settings=settings,
    )
