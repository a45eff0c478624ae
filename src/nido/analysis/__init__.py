"""
Módulo de análisis.

Provee la generación de embeddings usada por el canal semántico.
"""

from nido.analysis.embeddings import EmbeddingGenerator

__all__ = [
    "EmbeddingGenerator",
]
