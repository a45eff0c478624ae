"""
Componentes de scoring.

Funciones puras y totales: dado un listing y las preferencias del
usuario devuelven un sub-score en [0, 1]. Cualquier dato faltante
degrada al valor neutro NEUTRAL_SCORE en lugar de propagarse.
"""

import math
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Optional

from nido.models import ComponentScores, Coordinates, Listing, UserPreferences

NEUTRAL_SCORE = 0.5

# Sub-pesos de trust/quality
TRUST_VERIFIED_WEIGHT = 0.4
TRUST_MEDIA_WEIGHT = 0.3
TRUST_COMPLETENESS_WEIGHT = 0.3

# Sub-pesos de engagement (saves y mensajes indican más intención que una vista)
ENGAGEMENT_VIEWS_WEIGHT = 0.2
ENGAGEMENT_SAVES_WEIGHT = 0.4
ENGAGEMENT_MESSAGES_WEIGHT = 0.4

# Peso fijo de la similitud de personalidad dentro de personal fit
PERSONALITY_WEIGHT = 1.0

EARTH_RADIUS_KM = 6371.0


def clamp01(value: Optional[float]) -> float:
    """Recorta a [0, 1]; None, NaN e infinitos pasan a NEUTRAL_SCORE."""
    if value is None or not math.isfinite(value):
        return NEUTRAL_SCORE
    return min(1.0, max(0.0, value))


def _segment_key(listing: Listing) -> Optional[tuple[str, int]]:
    if not listing.district or listing.rooms is None:
        return None
    return listing.district.strip().lower(), listing.rooms


@dataclass(frozen=True)
class ScoringContext:
    """
    Estadísticas del conjunto de candidatos de una pasada de ranking.

    Market value y engagement son relativos al conjunto; el resto de los
    componentes solo miran el listing y las preferencias.
    """

    all_prices: tuple[float, ...] = ()
    prices_by_segment: dict[tuple[str, int], tuple[float, ...]] = field(default_factory=dict)
    max_views: int = 0
    max_saves: int = 0
    max_messages: int = 0
    min_comparables: int = 3
    transit_speed_kmh: float = 20.0

    @classmethod
    def from_listings(
        cls,
        listings: Iterable[Listing],
        min_comparables: int = 3,
        transit_speed_kmh: float = 20.0,
    ) -> "ScoringContext":
        """Calcula las estadísticas una sola vez por pasada."""
        all_prices: list[float] = []
        segments: dict[tuple[str, int], list[float]] = {}
        max_views = max_saves = max_messages = 0

        for listing in listings:
            if listing.price is not None and math.isfinite(listing.price):
                all_prices.append(listing.price)
                key = _segment_key(listing)
                if key is not None:
                    segments.setdefault(key, []).append(listing.price)

            if listing.engagement is not None:
                max_views = max(max_views, listing.engagement.views)
                max_saves = max(max_saves, listing.engagement.saves)
                max_messages = max(max_messages, listing.engagement.messages)

        return cls(
            all_prices=tuple(sorted(all_prices)),
            prices_by_segment={k: tuple(sorted(v)) for k, v in segments.items()},
            max_views=max_views,
            max_saves=max_saves,
            max_messages=max_messages,
            min_comparables=min_comparables,
            transit_speed_kmh=transit_speed_kmh,
        )

    def comparable_prices(self, listing: Listing) -> tuple[float, ...]:
        """
        Precios comparables: mismo barrio y misma cantidad de ambientes.

        Si el segmento es demasiado chico se usa todo el conjunto.
        """
        key = _segment_key(listing)
        if key is not None:
            segment = self.prices_by_segment.get(key, ())
            if len(segment) >= self.min_comparables:
                return segment
        return self.all_prices


def constraint_fit(listing: Listing, preferences: UserPreferences) -> float:
    """
    Cumplimiento de restricciones hard.

    Cada restricción declarada pesa 1/n: presupuesto máximo, mínimo de
    ambientes y amenities obligatorios (este último proporcional a la
    fracción faltante). Un dato desconocido del listing cuesta la mitad.
    """
    hard = preferences.hard_filters
    penalties: list[float] = []

    if hard.budget_max is not None:
        if listing.price is None:
            penalties.append(0.5)
        else:
            penalties.append(1.0 if listing.price > hard.budget_max else 0.0)

    if hard.min_rooms is not None:
        if listing.rooms is None:
            penalties.append(0.5)
        else:
            penalties.append(1.0 if listing.rooms < hard.min_rooms else 0.0)

    required = {a.strip().lower() for a in hard.required_amenities if a and a.strip()}
    if required:
        missing = required - listing.amenity_set
        penalties.append(len(missing) / len(required))

    if not penalties:
        return NEUTRAL_SCORE

    return clamp01(1.0 - sum(penalties) / len(penalties))


def _centered(value: float) -> float:
    return 2.0 * clamp01(value) - 1.0


def trait_similarity(
    personality: dict[str, float], character: dict[str, float]
) -> Optional[float]:
    """
    Similitud de coseno entre rasgos del usuario y del entorno.

    Los valores 0-1 se centran en [-1, 1] para que 0.5 sea indiferente,
    y el coseno se lleva a [0, 1]. None si no hay rasgos en común.
    """
    shared = sorted(set(personality) & set(character))
    if not shared:
        return None

    user = [_centered(personality[t]) for t in shared]
    place = [_centered(character[t]) for t in shared]

    dot_product = sum(a * b for a, b in zip(user, place))
    norm_user = math.sqrt(sum(a * a for a in user))
    norm_place = math.sqrt(sum(b * b for b in place))

    if norm_user == 0 or norm_place == 0:
        return None

    return clamp01((dot_product / (norm_user * norm_place) + 1.0) / 2.0)


def personal_fit(listing: Listing, preferences: UserPreferences) -> float:
    """
    Afinidad personal: blend ponderado de las señales disponibles.

    Personalidad vs carácter del barrio (peso fijo), barrio preferido
    (prioridad de ubicación), amenities deseados (prioridad de amenities),
    holgura de presupuesto (prioridad de precio) y superficie (prioridad
    de calidad).
    """
    soft = preferences.soft_preferences
    hard = preferences.hard_filters
    priorities = soft.priorities
    signals: list[tuple[float, float]] = []

    similarity = trait_similarity(soft.personality, listing.character_traits)
    if similarity is not None:
        signals.append((PERSONALITY_WEIGHT, similarity))

    if soft.preferred_districts and listing.district:
        district = listing.district.lower()
        matched = any(d.strip().lower() in district for d in soft.preferred_districts if d.strip())
        signals.append((priorities.location, 1.0 if matched else 0.0))

    preferred = {a.strip().lower() for a in soft.preferred_amenities if a and a.strip()}
    if preferred:
        ratio = len(preferred & listing.amenity_set) / len(preferred)
        signals.append((priorities.amenities, ratio))

    if hard.budget_max and listing.price is not None:
        # Al límite del presupuesto vale 0.5; a la mitad del presupuesto, 1.0
        signals.append((priorities.price, clamp01(1.5 - listing.price / hard.budget_max)))

    if soft.min_size_m2 and listing.size_m2 is not None:
        signals.append((priorities.quality, clamp01(listing.size_m2 / soft.min_size_m2)))

    total_weight = sum(weight for weight, _ in signals)
    if total_weight <= 0:
        return NEUTRAL_SCORE

    return clamp01(sum(weight * value for weight, value in signals) / total_weight)


def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
    """Distancia en km sobre la esfera terrestre."""
    lat1, lat2 = math.radians(origin.lat), math.radians(destination.lat)
    dlat = lat2 - lat1
    dlng = math.radians(destination.lng - origin.lng)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def estimate_commute_minutes(
    listing: Listing,
    preferences: UserPreferences,
    transit_speed_kmh: float = 20.0,
) -> Optional[float]:
    """Minutos de viaje conocidos o estimados desde coordenadas."""
    if listing.commute_minutes is not None:
        return listing.commute_minutes

    target = preferences.soft_preferences.target_location
    if target is None or listing.coordinates is None or transit_speed_kmh <= 0:
        return None

    return haversine_km(listing.coordinates, target) / transit_speed_kmh * 60.0


def accessibility(
    listing: Listing,
    preferences: UserPreferences,
    transit_speed_kmh: float = 20.0,
) -> float:
    """
    Decaimiento lineal por tiempo de viaje.

    1.0 hasta el viaje ideal del usuario, 0.0 desde el doble del máximo
    tolerable, lineal entre ambos.
    """
    max_commute = preferences.hard_filters.max_commute_minutes
    if not max_commute:
        return NEUTRAL_SCORE

    commute = estimate_commute_minutes(listing, preferences, transit_speed_kmh)
    if commute is None or not math.isfinite(commute):
        return NEUTRAL_SCORE

    zero_at = 2.0 * max_commute
    ideal = min(preferences.soft_preferences.ideal_commute_minutes or 0.0, zero_at)

    if commute <= ideal:
        return 1.0
    if commute >= zero_at:
        return 0.0
    return clamp01((zero_at - commute) / (zero_at - ideal))


def trust_quality(listing: Listing) -> float:
    """Verificación del dueño, calidad de fotos y completitud de la ficha."""
    if listing.verified is None:
        verified = NEUTRAL_SCORE
    else:
        verified = 1.0 if listing.verified else 0.0

    media = clamp01(listing.media_score)
    completeness = clamp01(listing.completeness_score)

    return clamp01(
        verified * TRUST_VERIFIED_WEIGHT
        + media * TRUST_MEDIA_WEIGHT
        + completeness * TRUST_COMPLETENESS_WEIGHT
    )


def market_value(listing: Listing, context: ScoringContext) -> float:
    """
    Posición del precio dentro de los comparables.

    1 - percentil (mid-rank): más barato que la mediana puntúa más de 0.5.
    """
    if listing.price is None or not math.isfinite(listing.price):
        return NEUTRAL_SCORE

    prices = context.comparable_prices(listing)
    if not prices:
        return NEUTRAL_SCORE

    below = bisect_left(prices, listing.price)
    equal = bisect_right(prices, listing.price) - below
    if equal == 0:
        # Listing fuera del conjunto: se cuenta como un elemento más
        percentile = (below + 0.5) / (len(prices) + 1)
    else:
        percentile = (below + 0.5 * equal) / len(prices)

    return clamp01(1.0 - percentile)


def _log_ratio(count: int, maximum: int) -> float:
    return clamp01(math.log1p(count) / math.log1p(maximum))


def engagement(listing: Listing, context: ScoringContext) -> float:
    """
    Popularidad normalizada con log contra el máximo del conjunto.

    El log evita que un outlier muy popular aplaste al resto.
    """
    stats = listing.engagement
    if stats is None:
        return NEUTRAL_SCORE

    parts: list[tuple[float, float]] = []
    if context.max_views > 0:
        parts.append((ENGAGEMENT_VIEWS_WEIGHT, _log_ratio(stats.views, context.max_views)))
    if context.max_saves > 0:
        parts.append((ENGAGEMENT_SAVES_WEIGHT, _log_ratio(stats.saves, context.max_saves)))
    if context.max_messages > 0:
        parts.append(
            (ENGAGEMENT_MESSAGES_WEIGHT, _log_ratio(stats.messages, context.max_messages))
        )

    if not parts:
        return NEUTRAL_SCORE

    total_weight = sum(weight for weight, _ in parts)
    return clamp01(sum(weight * value for weight, value in parts) / total_weight)


def compute_components(
    listing: Listing,
    preferences: UserPreferences,
    context: Optional[ScoringContext] = None,
) -> ComponentScores:
    """
    Calcula los seis componentes de un listing.

    Args:
        listing: Listing a evaluar
        preferences: Preferencias del usuario
        context: Estadísticas del conjunto; si falta, el listing es su
            propio conjunto

    Returns:
        ComponentScores con todos los valores en [0, 1]
    """
    if context is None:
        context = ScoringContext.from_listings([listing])

    return ComponentScores(
        constraint_fit=constraint_fit(listing, preferences),
        personal_fit=personal_fit(listing, preferences),
        accessibility=accessibility(listing, preferences, context.transit_speed_kmh),
        trust_quality=trust_quality(listing),
        market_value=market_value(listing, context),
        engagement=engagement(listing, context),
    )
