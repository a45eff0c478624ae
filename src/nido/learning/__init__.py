"""
Módulo de aprendizaje de pesos.

Learner Beta-Bernoulli offline, snapshot versionado de pesos y
captura de feedback.
"""

from nido.learning.bandit import (
    BanditConfig,
    BanditWeightLearner,
    LearnerResult,
    posterior_mean,
    success_intensity,
)
from nido.learning.feedback import FeedbackRecorder
from nido.learning.job import WeightRecomputeJob
from nido.learning.snapshot import WeightSnapshotStore

__all__ = [
    "BanditConfig",
    "BanditWeightLearner",
    "LearnerResult",
    "posterior_mean",
    "success_intensity",
    "FeedbackRecorder",
    "WeightRecomputeJob",
    "WeightSnapshotStore",
]
