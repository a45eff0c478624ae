"""
Módulo de búsqueda.

Servicio que une retrieval híbrido, pesos vigentes y ranking.
"""

from nido.search.service import HybridSearchService, SearchResponse, build_default_service

__all__ = [
    "HybridSearchService",
    "SearchResponse",
    "build_default_service",
]
