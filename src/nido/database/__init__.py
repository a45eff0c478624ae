"""
Módulo de base de datos.

Provee acceso a Supabase: listings, eventos de ranking, log de feedback y
snapshots de pesos.
"""

from nido.database.supabase_client import get_supabase_client, SupabaseClient
from nido.database.repositories import (
    ListingRepository,
    FeedbackRepository,
    WeightSnapshotRepository,
    RankingEventRepository,
)

__all__ = [
    "get_supabase_client",
    "SupabaseClient",
    "ListingRepository",
    "FeedbackRepository",
    "WeightSnapshotRepository",
    "RankingEventRepository",
]
