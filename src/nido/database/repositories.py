"""
Repositorios para operaciones en Supabase.

Cada repositorio maneja una tabla/entidad específica. El motor de
ranking solo lee listings; los logs de eventos de ranking y de
feedback son append-only y los snapshots de pesos se insertan como versiones nuevas, nunca se editan.
"""

from datetime import datetime
from typing import Optional

import structlog

from nido.database.supabase_client import get_supabase_client, SupabaseClient
from nido.models import FeedbackEvent, RankedResult, WeightSnapshot

logger = structlog.get_logger()


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or get_supabase_client()

    @property
    def client(self) -> SupabaseClient:
        return self._client


class ListingRepository(BaseRepository):
    """Repositorio de listings publicados (solo lectura)."""

    TABLE = "listings"

    def search_by_filters(
        self,
        budget_min: Optional[float] = None,
        budget_max: Optional[float] = None,
        min_rooms: Optional[int] = None,
        districts: Optional[list[str]] = None,
        limit: int = 50,
    ) -> list[dict]:
        """
        Búsqueda por filtros estructurados.

        Returns:
            Lista de listings que cumplen los filtros
        """
        query = self.client.table(self.TABLE).select("*").eq("status", "published")

        if budget_min is not None:
            query = query.gte("price", budget_min)
        if budget_max is not None:
            query = query.lte("price", budget_max)
        if min_rooms is not None:
            query = query.gte("rooms", min_rooms)
        if districts:
            query = query.in_("district", districts)

        response = (
            query.order("completeness_score", desc=True)
            .order("id")
            .limit(limit)
            .execute()
        )
        return response.data

    def get_by_ids(self, listing_ids: list[str]) -> list[dict]:
        """Obtiene varios listings por id (orden no garantizado)."""
        if not listing_ids:
            return []
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .in_("id", listing_ids)
            .execute()
        )
        return response.data

    def keyword_search(self, query_text: str, limit: int = 50) -> list[dict]:
        """
        Búsqueda full-text sobre título y descripción.

        Usa la función RPC search_listings_keyword, que devuelve
        filas {id, rank} ordenadas por ts_rank.
        """
        return self.client.rpc(
            "search_listings_keyword",
            {"query_text": query_text, "match_count": limit},
        )

    def similarity_search(
        self,
        query_vector: list[float],
        limit: int = 50,
        match_threshold: float = 0.0,
    ) -> list[dict]:
        """Búsqueda por embedding. Devuelve filas {id, similarity}."""
        return self.client.vector_search(
            query_vector=query_vector,
            match_threshold=match_threshold,
            match_count=limit,
        )


class FeedbackRepository(BaseRepository):
    """Repositorio del log de feedback (append-only)."""

    TABLE = "ranking_feedback"

    def append(self, event: FeedbackEvent) -> dict:
        """Registra un evento de feedback."""
        response = self.client.table(self.TABLE).insert(event.to_db_dict()).execute()
        logger.info(
            "Feedback registrado",
            listing_id=event.listing_id,
            user_id=event.user_id,
            type=event.feedback_type.value if event.feedback_type else None,
        )
        return response.data[0] if response.data else {}

    def get_window(self, since: datetime, limit: Optional[int] = None) -> list[dict]:
        """
        Obtiene las filas crudas de feedback desde una fecha.

        Las filas se devuelven tal cual: validarlas es trabajo del learner,
        que descarta las corruptas sin abortar el lote.
        """
        query = (
            self.client.table(self.TABLE)
            .select("*")
            .gte("created_at", since.isoformat())
            .order("created_at")
            .order("id")
        )
        if limit is not None:
            query = query.limit(limit)
        return query.execute().data


class WeightSnapshotRepository(BaseRepository):
    """Repositorio de snapshots versionados de pesos del bandit."""

    TABLE = "rank_weight_snapshots"

    def get_latest(self) -> Optional[dict]:
        """Obtiene el snapshot publicado más reciente."""
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .order("version", desc=True)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def get_recent(self, limit: int = 10) -> list[dict]:
        """Últimos snapshots, de la versión más alta a la más baja."""
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .order("version", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def insert(self, snapshot: WeightSnapshot) -> dict:
        """Inserta una versión nueva. Las versiones existentes no se tocan."""
        response = self.client.table(self.TABLE).insert(snapshot.to_db_dict()).execute()
        logger.info("Snapshot de pesos insertado", version=snapshot.version)
        return response.data[0] if response.data else {}


class RankingEventRepository(BaseRepository):
    """
    Repositorio de eventos de ranking (impresiones).

    Guarda qué se mostró, con qué score y por qué, para poder cruzar
    después el feedback con el ranking que lo originó.
    """

    TABLE = "ranking_events"

    def log_events(
        self,
        results: list[RankedResult],
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> list[dict]:
        """
        Registra un evento por resultado mostrado, en una sola inserción.

        Returns:
            Filas insertadas
        """
        if not results:
            return []

        rows = [
            {
                "user_id": user_id,
                "session_id": session_id,
                "listing_id": result.listing_id,
                "position": position,
                "ranking_score": result.score,
                "component_scores": result.components.as_dict(),
                "reasons": list(result.reasons),
                "reason_codes": list(result.reason_codes),
                "weights_version": result.weights_version,
            }
            for position, result in enumerate(results, start=1)
        ]
        response = self.client.table(self.TABLE).insert(rows).execute()
        logger.debug("Eventos de ranking registrados", count=len(rows), user_id=user_id)
        return response.data or []
