"""
Ciclo offline de recálculo de pesos.

Lee la ventana de feedback, recalcula con el learner y publica un
snapshot nuevo. Corre desde un job programado, nunca desde el serving.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from nido.config import Settings, get_settings
from nido.database.repositories import FeedbackRepository
from nido.learning.bandit import BanditConfig, BanditWeightLearner
from nido.learning.snapshot import WeightSnapshotStore

logger = structlog.get_logger()


class WeightRecomputeJob:
    """
    Orquesta un ciclo de recálculo.

    Flujo:
    1. Cargar el último snapshot publicado
    2. Leer el feedback de los últimos N días
    3. Recalcular pesos (filas corruptas se omiten y se cuentan)
    4. Publicar una versión nueva, salvo dry-run o ventana sin datos
    """

    def __init__(
        self,
        feedback_repository: FeedbackRepository,
        store: WeightSnapshotStore,
        learner: Optional[BanditWeightLearner] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.feedback_repository = feedback_repository
        self.store = store
        self.learner = learner or BanditWeightLearner(BanditConfig.from_settings(self.settings))

    def run(
        self,
        lookback_days: Optional[int] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Ejecuta un ciclo completo.

        Returns:
            Estadísticas del ciclo
        """
        lookback_days = max(lookback_days or self.settings.learner_lookback_days, 1)
        since = (now or datetime.now(timezone.utc)) - timedelta(days=lookback_days)

        previous = self.store.refresh()
        rows = self.feedback_repository.get_window(since)

        logger.info(
            "Recalculando pesos",
            lookback_days=lookback_days,
            rows=len(rows),
            previous_version=previous.version,
        )

        result = self.learner.recompute_weights(rows, previous=previous)

        stats = {
            "rows": len(rows),
            "processed": result.processed,
            "skipped": result.skipped,
            "no_data": result.no_data,
            "published": False,
            "version": previous.version,
            "weights": result.weights.as_dict(),
        }

        if result.no_data:
            return stats

        if dry_run:
            logger.info("Dry-run: no se publican los pesos")
            return stats

        snapshot = self.store.publish(result.weights, result.trials, result.successes)
        stats["published"] = True
        stats["version"] = snapshot.version
        return stats
