"""
Learner de pesos Beta-Bernoulli.

Recalcula offline los pesos de los seis componentes a partir de una
ventana de feedback. Usa la media posterior de cada Beta en lugar de
muestrear, así el ranking en producción sigue siendo determinístico.

Nunca corre en el camino de una request: el serving solo lee el último
snapshot publicado.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from nido.config import Settings, get_settings
from nido.errors import LearnerNoData, MalformedFeedbackEvent
from nido.models import COMPONENT_NAMES, BanditWeightMap, FeedbackEvent, WeightSnapshot

logger = structlog.get_logger()

FeedbackRow = Union[FeedbackEvent, dict[str, Any]]
PreviousWeights = Union[BanditWeightMap, WeightSnapshot, None]


@dataclass(frozen=True)
class BanditConfig:
    """
    Constantes del update.

    Los umbrales de intensidad y los créditos son valores por defecto
    heredados, no invariantes: se pueden ajustar por configuración.
    """

    min_trial_increment: float = 0.05
    high_intensity_threshold: float = 0.66
    low_intensity_threshold: float = 0.33
    mid_credit: float = 0.5
    low_credit: float = 0.1

    def __post_init__(self):
        if self.min_trial_increment <= 0:
            raise ValueError("min_trial_increment debe ser positivo")
        if self.low_intensity_threshold > self.high_intensity_threshold:
            raise ValueError("El umbral bajo no puede superar al alto")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BanditConfig":
        settings = settings or get_settings()
        return cls(
            min_trial_increment=settings.bandit_min_trial_increment,
            high_intensity_threshold=settings.bandit_high_intensity_threshold,
            low_intensity_threshold=settings.bandit_low_intensity_threshold,
            mid_credit=settings.bandit_mid_credit,
            low_credit=settings.bandit_low_credit,
        )

    def success_credit(self, intensity: float) -> float:
        """Fracción del trial que cuenta como éxito según la intensidad."""
        if intensity > self.high_intensity_threshold:
            return 1.0
        if intensity > self.low_intensity_threshold:
            return self.mid_credit
        return self.low_credit


@dataclass
class LearnerResult:
    """Resultado de un recálculo de pesos."""

    weights: BanditWeightMap
    trials: dict[str, float] = field(default_factory=dict)
    successes: dict[str, float] = field(default_factory=dict)
    processed: int = 0
    skipped: int = 0
    no_data: bool = False


def success_intensity(signal: float) -> float:
    """Mapea la señal de feedback [-1, 1] a una intensidad de éxito [0, 1]."""
    if not math.isfinite(signal):
        return 0.5
    return min(1.0, max(0.0, (signal + 1.0) / 2.0))


def posterior_mean(successes: float, trials: float) -> float:
    """Media de Beta(1 + s, 1 + t - s), es decir (s + 1) / (t + 2)."""
    return (successes + 1.0) / (trials + 2.0)


class BanditWeightLearner:
    """
    Recalcula el BanditWeightMap a partir de una ventana de feedback.

    Los contadores salen solo de la ventana recibida, así que dos
    corridas sobre la misma ventana dan exactamente los mismos pesos.
    Un learner por snapshot: no está pensado para correr en paralelo
    contra el mismo store.
    """

    def __init__(self, config: Optional[BanditConfig] = None):
        self.config = config or BanditConfig.from_settings()

    def _parse(self, row: FeedbackRow) -> FeedbackEvent:
        if isinstance(row, FeedbackEvent):
            return row
        if not isinstance(row, dict):
            raise MalformedFeedbackEvent(f"Fila de tipo {type(row).__name__}", row=row)
        try:
            return FeedbackEvent.from_db_row(row)
        except ValidationError as e:
            raise MalformedFeedbackEvent(str(e), row=row) from e

    def recompute_weights(
        self,
        feedback_window: Iterable[FeedbackRow],
        previous: PreviousWeights = None,
    ) -> LearnerResult:
        """
        Recalcula los pesos.

        Args:
            feedback_window: Eventos (o filas crudas del log) de la ventana
            previous: Pesos vigentes, se conservan si la ventana no tiene datos

        Returns:
            LearnerResult con los pesos normalizados y los contadores
        """
        if isinstance(previous, WeightSnapshot):
            previous = previous.weights
        previous = previous or BanditWeightMap.default()

        trials = {name: 0.0 for name in COMPONENT_NAMES}
        successes = {name: 0.0 for name in COMPONENT_NAMES}
        processed = 0
        skipped = 0

        for row in feedback_window:
            try:
                event = self._parse(row)
            except MalformedFeedbackEvent as e:
                skipped += 1
                logger.warning(
                    "Evento de feedback inválido, se omite",
                    error_kind=MalformedFeedbackEvent.__name__,
                    error=str(e)[:200],
                )
                continue

            credit = self.config.success_credit(success_intensity(event.signal))
            for component, score in event.component_scores.items():
                trial = max(abs(score), self.config.min_trial_increment)
                trials[component.value] += trial
                successes[component.value] += min(trial * credit, trial)
            processed += 1

        if math.fsum(trials.values()) <= 0:
            logger.info(
                "Sin feedback en la ventana, se mantienen los pesos",
                error_kind=LearnerNoData.__name__,
                skipped=skipped,
            )
            return LearnerResult(
                weights=previous,
                trials=trials,
                successes=successes,
                processed=0,
                skipped=skipped,
                no_data=True,
            )

        means = {name: posterior_mean(successes[name], trials[name]) for name in COMPONENT_NAMES}
        weights = BanditWeightMap.normalized(means)

        logger.info(
            "Pesos recalculados",
            processed=processed,
            skipped=skipped,
            weights={name: round(value, 4) for name, value in weights.as_dict().items()},
        )

        return LearnerResult(
            weights=weights,
            trials=trials,
            successes=successes,
            processed=processed,
            skipped=skipped,
        )
