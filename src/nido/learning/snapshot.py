"""
Snapshot versionado de los pesos del bandit.

El serving toma una referencia inmutable por request; el learner
publica una versión nueva (escribe primero, después apunta los lectores
a ella). Un lector ve la versión anterior o la nueva, nunca una mezcla.
"""

import threading
from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError

from nido.database.repositories import WeightSnapshotRepository
from nido.errors import InvalidWeightMap
from nido.models import BanditWeightMap, WeightSnapshot

logger = structlog.get_logger()


def _row_version(row: Optional[Mapping[str, Any]]) -> int:
    """Versión declarada por una fila persistida, 0 si no es legible."""
    if not row:
        return 0
    try:
        return max(int(row.get("version") or 0), 0)
    except (TypeError, ValueError):
        return 0


class WeightSnapshotStore:
    """
    Holder en proceso del snapshot vigente.

    Sin repositorio funciona solo en memoria (dry-run, tests).
    """

    # Cuántas versiones recientes revisa refresh() buscando una válida
    REFRESH_DEPTH = 10

    def __init__(
        self,
        repository: Optional[WeightSnapshotRepository] = None,
        initial: Optional[WeightSnapshot] = None,
    ):
        self.repository = repository
        self._snapshot = initial or WeightSnapshot()
        self._lock = threading.Lock()

    def current(self) -> WeightSnapshot:
        """Snapshot vigente. Es una lectura de referencia: no bloquea."""
        return self._snapshot

    def publish(
        self,
        weights: BanditWeightMap,
        trials: Optional[Mapping[str, float]] = None,
        successes: Optional[Mapping[str, float]] = None,
    ) -> WeightSnapshot:
        """
        Publica una versión nueva de los pesos.

        La versión nueva supera a la vigente y a la más alta persistida,
        aunque esa fila sea inválida. Se persiste antes de cambiar la
        referencia; si la escritura falla, los lectores siguen viendo la
        versión anterior.

        Returns:
            El snapshot publicado
        """
        with self._lock:
            base = self._snapshot.version
            if self.repository is not None:
                base = max(base, _row_version(self.repository.get_latest()))

            snapshot = WeightSnapshot(
                version=base + 1,
                weights=weights,
                trials=dict(trials or {}),
                successes=dict(successes or {}),
            )

            if self.repository is not None:
                self.repository.insert(snapshot)

            self._snapshot = snapshot

        logger.info("Pesos publicados", version=snapshot.version)
        return snapshot

    def refresh(self) -> WeightSnapshot:
        """
        Recarga la versión válida más reciente.

        Las filas inválidas se saltean con un warning; una versión más
        vieja que la vigente nunca la reemplaza.
        """
        if self.repository is None:
            return self._snapshot

        latest: Optional[WeightSnapshot] = None
        for row in self.repository.get_recent(self.REFRESH_DEPTH):
            if _row_version(row) <= self._snapshot.version:
                break
            try:
                latest = WeightSnapshot.from_db_row(row)
            except (InvalidWeightMap, ValidationError) as e:
                logger.warning(
                    "Snapshot persistido inválido, se saltea",
                    error_kind=InvalidWeightMap.__name__,
                    version=row.get("version"),
                    error=str(e)[:200],
                )
                continue
            break

        if latest is None:
            return self._snapshot

        with self._lock:
            if latest.version > self._snapshot.version:
                self._snapshot = latest
                logger.debug("Snapshot de pesos actualizado", version=latest.version)

        return self._snapshot
