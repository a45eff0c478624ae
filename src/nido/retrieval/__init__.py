"""
Módulo de retrieval híbrido.

Canales de búsqueda (estructurado, keyword, semántico) y el merger
que los fusiona en un único conjunto de candidatos.
"""

from nido.retrieval.base import RetrievalChannel
from nido.retrieval.channels import KeywordChannel, SemanticChannel, StructuredChannel
from nido.retrieval.merger import RetrievalMerger, collect_channels

__all__ = [
    "RetrievalChannel",
    "StructuredChannel",
    "KeywordChannel",
    "SemanticChannel",
    "RetrievalMerger",
    "collect_channels",
]
