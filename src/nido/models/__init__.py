"""
Modelos de datos del sistema.

- Listing y UserPreferences: entradas del ranking (solo lectura)
- ComponentScores, BanditWeightMap, RankedResult: ranking y pesos
- ScoredCandidate, Candidate: retrieval híbrido
- FeedbackEvent: log de feedback para el learner
"""

from nido.models.listing import Listing, Coordinates, EngagementStats
from nido.models.user import (
    UserPreferences,
    HardFilters,
    SoftPreferences,
    PriorityWeights,
)
from nido.models.ranking import (
    Component,
    COMPONENT_NAMES,
    ComponentScores,
    BanditWeightMap,
    DEFAULT_BANDIT_WEIGHTS,
    WeightSnapshot,
    RankedResult,
)
from nido.models.retrieval import (
    SearchQuery,
    ScoredCandidate,
    ChannelResult,
    Candidate,
    MergeResult,
)
from nido.models.feedback import FeedbackEvent, FeedbackType, FEEDBACK_SIGNALS

__all__ = [
    # Entradas
    "Listing",
    "Coordinates",
    "EngagementStats",
    "UserPreferences",
    "HardFilters",
    "SoftPreferences",
    "PriorityWeights",
    # Ranking
    "Component",
    "COMPONENT_NAMES",
    "ComponentScores",
    "BanditWeightMap",
    "DEFAULT_BANDIT_WEIGHTS",
    "WeightSnapshot",
    "RankedResult",
    # Retrieval
    "SearchQuery",
    "ScoredCandidate",
    "ChannelResult",
    "Candidate",
    "MergeResult",
    # Feedback
    "FeedbackEvent",
    "FeedbackType",
    "FEEDBACK_SIGNALS",
]
