"""
Motor de ranking.

Componentes puros de scoring, combinación con los pesos del bandit y
explicaciones consistentes con el score.
"""

from nido.ranking.components import (
    NEUTRAL_SCORE,
    ScoringContext,
    compute_components,
)
from nido.ranking.engine import RankingEngine, weighted_score
from nido.ranking.explanations import (
    Explanation,
    ExplanationBuilder,
    ReasonCode,
    REASON_TEMPLATES,
)

__all__ = [
    "NEUTRAL_SCORE",
    "ScoringContext",
    "compute_components",
    "RankingEngine",
    "weighted_score",
    "Explanation",
    "ExplanationBuilder",
    "ReasonCode",
    "REASON_TEMPLATES",
]
