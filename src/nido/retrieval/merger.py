"""
Fusión de resultados de los canales de retrieval.

Cada candidato queda una sola vez, con score fusionado
Σ peso_canal × score_canal sobre los canales donde apareció. El score
fusionado es una señal intermedia: el score que ve el usuario es el del
RankingEngine.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Union

import structlog

from nido.config import CHANNEL_WEIGHT_TOLERANCE
from nido.errors import ChannelTimeout
from nido.models import Candidate, ChannelResult, Listing, MergeResult, SearchQuery
from nido.retrieval.base import RetrievalChannel

logger = structlog.get_logger()

ChannelWeights = Union[Sequence[float], Mapping[str, float]]


def _clamp_channel_score(score: float) -> float:
    if not math.isfinite(score):
        return 0.0
    return min(1.0, max(0.0, score))


@dataclass
class _MergeGroup:
    """Acumulador de un listing mientras se recorren los canales."""

    listing_id: str
    channel_scores: dict[str, float] = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)
    reason_codes: list[str] = field(default_factory=list)
    listing: Optional[Listing] = None

    def add(self, channel: str, score: float, reason_codes: Sequence[str], listing: Optional[Listing]):
        if channel in self.channel_scores:
            # Duplicado dentro del mismo canal: queda el mejor score
            self.channel_scores[channel] = max(self.channel_scores[channel], score)
        else:
            self.channel_scores[channel] = score
            self.sources.append(channel)

        for code in reason_codes:
            if code not in self.reason_codes:
                self.reason_codes.append(code)

        if self.listing is None and listing is not None:
            self.listing = listing


class RetrievalMerger:
    """
    Deduplica y fusiona las listas de los canales.

    Determinístico: mismas listas y mismos pesos producen exactamente
    la misma salida.
    """

    @staticmethod
    def resolve_weights(
        channel_results: Sequence[ChannelResult],
        channel_weights: ChannelWeights,
    ) -> dict[str, float]:
        """
        Alinea los pesos con los canales.

        Acepta una secuencia paralela a channel_results o un mapping por
        nombre de canal (un canal sin peso en el mapping pesa 0).

        Raises:
            ValueError: Largo incorrecto, pesos negativos o no finitos,
                o suma mayor a 1.
        """
        names = [result.channel for result in channel_results]

        if isinstance(channel_weights, Mapping):
            weights = {name: float(channel_weights.get(name, 0.0)) for name in names}
        else:
            values = list(channel_weights)
            if len(values) != len(names):
                raise ValueError(
                    f"Se esperaban {len(names)} pesos de canal, llegaron {len(values)}"
                )
            weights = {name: float(value) for name, value in zip(names, values)}

        for name, value in weights.items():
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"Peso de canal inválido para '{name}': {value}")

        total = math.fsum(weights.values())
        if total > 1.0 + CHANNEL_WEIGHT_TOLERANCE:
            raise ValueError(f"Los pesos de canal suman {total:.6f}, máximo 1.0")

        return weights

    def merge(
        self,
        channel_results: Sequence[ChannelResult],
        channel_weights: ChannelWeights,
    ) -> MergeResult:
        """
        Fusiona los resultados de los canales.

        Args:
            channel_results: Una respuesta por canal (las fallidas cuentan como vacías)
            channel_weights: Peso de blending por canal

        Returns:
            MergeResult con candidatos por score fusionado descendente
            (desempate por listing_id) y la marca de degradación
        """
        weights = self.resolve_weights(channel_results, channel_weights)

        groups: dict[str, _MergeGroup] = {}
        failed_channels: list[str] = []

        for result in channel_results:
            if result.failed:
                failed_channels.append(result.channel)
                continue

            for hit in result.candidates:
                group = groups.get(hit.listing_id)
                if group is None:
                    group = groups[hit.listing_id] = _MergeGroup(listing_id=hit.listing_id)
                group.add(
                    result.channel,
                    _clamp_channel_score(hit.score),
                    hit.reason_codes,
                    hit.listing,
                )

        candidates = [
            Candidate(
                listing_id=group.listing_id,
                fused_score=min(
                    1.0,
                    math.fsum(weights[ch] * score for ch, score in group.channel_scores.items()),
                ),
                channel_scores=dict(group.channel_scores),
                sources=list(group.sources),
                reason_codes=list(group.reason_codes),
                listing=group.listing,
            )
            for group in groups.values()
        ]
        candidates.sort(key=lambda c: (-c.fused_score, c.listing_id))

        if failed_channels:
            logger.info(
                "Merge degradado",
                failed_channels=failed_channels,
                candidates=len(candidates),
            )

        return MergeResult(
            candidates=candidates,
            degraded=bool(failed_channels),
            failed_channels=failed_channels,
        )


async def _search_with_timeout(channel: RetrievalChannel, query: SearchQuery, timeout: float):
    try:
        return await asyncio.wait_for(channel.search(query), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ChannelTimeout(channel.name, timeout) from e


async def _run_channel(channel: RetrievalChannel, query: SearchQuery, timeout: float) -> ChannelResult:
    try:
        candidates = await _search_with_timeout(channel, query, timeout)
    except ChannelTimeout as e:
        logger.warning(
            "Canal sin respuesta, se trata como vacío",
            channel=channel.name,
            timeout=timeout,
            error_kind=ChannelTimeout.__name__,
        )
        return ChannelResult.failure(channel.name, str(e))
    except Exception as e:
        logger.error(
            "Error en canal de retrieval, se trata como vacío",
            channel=channel.name,
            error=str(e),
        )
        return ChannelResult.failure(channel.name, str(e))

    return ChannelResult(channel=channel.name, candidates=candidates)


async def collect_channels(
    channels: Sequence[RetrievalChannel],
    query: SearchQuery,
    timeout: float,
) -> list[ChannelResult]:
    """
    Ejecuta todos los canales en paralelo, cada uno con su timeout.

    Un canal que tarda más de `timeout` segundos o que falla queda como
    ChannelResult fallido; nunca aborta la búsqueda completa.

    Returns:
        Un ChannelResult por canal, en el mismo orden que `channels`
    """
    results = await asyncio.gather(
        *(_run_channel(channel, query, timeout) for channel in channels)
    )
    return list(results)
