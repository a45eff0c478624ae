"""
Motor de ranking multi-componente.

Combina los seis sub-scores con los pesos vigentes del bandit en un
único score 0-100, ordena y adjunta la explicación.

El ranking es determinístico: mismas entradas y mismos pesos producen
exactamente la misma lista. No hay aleatoriedad en el scoring.
"""

import math
from typing import Mapping, Optional, Sequence, Union

import structlog

from nido.config import Settings, get_settings
from nido.errors import InvalidWeightMap
from nido.models import (
    BanditWeightMap,
    Candidate,
    Listing,
    RankedResult,
    UserPreferences,
    WeightSnapshot,
)
from nido.ranking.components import ScoringContext, compute_components
from nido.ranking.explanations import ExplanationBuilder

logger = structlog.get_logger()

RankInput = Union[Listing, Candidate]
WeightsInput = Union[BanditWeightMap, WeightSnapshot, Mapping[str, float], None]


def weighted_score(components, weights: BanditWeightMap) -> float:
    """Σ peso × componente, escalado a 0-100 y redondeado a 2 decimales."""
    total = math.fsum(weights.get(component) * score for component, score in components.items())
    return round(min(1.0, max(0.0, total)) * 100.0, 2)


class RankingEngine:
    """
    Ranking de candidatos con pesos del bandit.

    Flujo por pasada:
    1. Validar pesos (fallback a defaults si son inválidos)
    2. Calcular estadísticas del conjunto (comparables, engagement máximo)
    3. Calcular componentes y score por listing
    4. Explicar cada resultado con los mismos componentes
    5. Ordenar por score descendente, desempate por id
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        explainer: Optional[ExplanationBuilder] = None,
    ):
        self.settings = settings or get_settings()
        self.explainer = explainer or ExplanationBuilder(
            transit_speed_kmh=self.settings.transit_speed_kmh
        )

    def resolve_weights(self, weights: WeightsInput) -> tuple[BanditWeightMap, Optional[int]]:
        """
        Devuelve pesos válidos y la versión del snapshot, si la hay.

        Un mapa inválido no se renormaliza: se descarta y se usan los
        pesos por defecto, para no mover resultados de forma impredecible.
        """
        if weights is None:
            return BanditWeightMap.default(), None
        if isinstance(weights, WeightSnapshot):
            return weights.weights, weights.version
        if isinstance(weights, BanditWeightMap):
            return weights, None

        try:
            return BanditWeightMap.from_mapping(weights), None
        except InvalidWeightMap as e:
            logger.warning(
                "Pesos inválidos, usando defaults",
                error_kind=InvalidWeightMap.__name__,
                error=str(e),
            )
            return BanditWeightMap.default(), None

    def rank(
        self,
        candidates: Sequence[RankInput],
        preferences: UserPreferences,
        weights: WeightsInput = None,
        limit: Optional[int] = None,
    ) -> list[RankedResult]:
        """
        Rankea candidatos para un usuario.

        Args:
            candidates: Listings o candidatos fusionados del retrieval;
                los candidatos sin listing hidratado se ignoran
            preferences: Preferencias del usuario
            weights: Pesos del bandit (mapa, snapshot o None para defaults)
            limit: Máximo de resultados (None = todos)

        Returns:
            Lista de RankedResult ordenada por score descendente
        """
        resolved, version = self.resolve_weights(weights)

        entries: list[tuple[Listing, Optional[Candidate]]] = []
        for item in candidates:
            if isinstance(item, Candidate):
                if item.listing is None:
                    logger.warning("Candidato sin listing, se omite", listing_id=item.listing_id)
                    continue
                entries.append((item.listing, item))
            else:
                entries.append((item, None))

        if not entries:
            logger.info("Sin candidatos para rankear", error_kind="EmptyCandidateSet")
            return []

        context = ScoringContext.from_listings(
            (listing for listing, _ in entries),
            min_comparables=self.settings.market_min_comparables,
            transit_speed_kmh=self.settings.transit_speed_kmh,
        )

        results = [
            self._evaluate(listing, candidate, preferences, resolved, version, context)
            for listing, candidate in entries
        ]
        results.sort(key=lambda r: (-r.score, r.listing_id))

        logger.debug(
            "Ranking calculado",
            candidates=len(results),
            weights_version=version,
            top_score=results[0].score,
        )

        return results[:limit] if limit is not None else results

    def _evaluate(
        self,
        listing: Listing,
        candidate: Optional[Candidate],
        preferences: UserPreferences,
        weights: BanditWeightMap,
        version: Optional[int],
        context: ScoringContext,
    ) -> RankedResult:
        components = compute_components(listing, preferences, context)
        retrieval_codes = list(candidate.reason_codes) if candidate else []

        explanation = self.explainer.build(
            components=components,
            weights=weights,
            listing=listing,
            preferences=preferences,
            retrieval_codes=retrieval_codes,
        )

        return RankedResult(
            listing_id=listing.id,
            score=weighted_score(components, weights),
            reasons=explanation.reasons,
            reason_codes=explanation.reason_codes,
            components=components,
            weights=weights,
            sources=list(candidate.sources) if candidate else [],
            retrieval_codes=retrieval_codes,
            weights_version=version,
        )
