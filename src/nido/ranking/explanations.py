"""
Explicaciones del ranking.

Traduce el breakdown por componente en reason codes estables y textos
para el usuario. Los textos salen de una única tabla de templates y cada
código está atado a un componente: un código de fortaleza solo se emite
si el score de su componente lo respalda, y lo mismo para las alertas.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from nido.models import (
    BanditWeightMap,
    Component,
    ComponentScores,
    Listing,
    RankedResult,
    UserPreferences,
)
from nido.ranking.components import estimate_commute_minutes

STRENGTH_THRESHOLD = 0.6
CONCERN_THRESHOLD = 0.4
MAX_STRENGTHS = 2
MAX_CONCERNS = 1


class ReasonCode(str, Enum):
    """Tags estables de por qué un listing puntuó como puntuó."""

    # Fortalezas
    MEETS_REQUIREMENTS = "meets_requirements"
    WITHIN_BUDGET = "within_budget"
    MOSTLY_MEETS_REQUIREMENTS = "mostly_meets_requirements"
    PERSONAL_MATCH = "personal_match"
    DISTRICT_MATCH = "district_match"
    SHORT_COMMUTE = "short_commute"
    GOOD_LOCATION = "good_location"
    VERIFIED_OWNER = "verified_owner"
    COMPLETE_LISTING = "complete_listing"
    FAIR_PRICE = "fair_price"
    POPULAR = "popular"

    # Alertas
    OVER_BUDGET = "over_budget"
    MISSING_AMENITIES = "missing_amenities"
    FEWER_ROOMS = "fewer_rooms"
    CONSTRAINT_GAP = "constraint_gap"
    PERSONAL_MISMATCH = "personal_mismatch"
    LONG_COMMUTE = "long_commute"
    FAR_LOCATION = "far_location"
    UNVERIFIED_LISTING = "unverified_listing"
    ABOVE_MARKET = "above_market"
    LOW_ENGAGEMENT = "low_engagement"

    # Procedencia de retrieval
    FILTER_MATCH = "filter_match"
    KEYWORD_MATCH = "keyword_match"
    SEMANTIC_MATCH = "semantic_match"

    BALANCED_MATCH = "balanced_match"


REASON_TEMPLATES: dict[ReasonCode, str] = {
    ReasonCode.MEETS_REQUIREMENTS: "Cumple con todo lo que pediste",
    ReasonCode.WITHIN_BUDGET: "Dentro de tu presupuesto",
    ReasonCode.MOSTLY_MEETS_REQUIREMENTS: "Cumple con la mayoría de tus requisitos",
    ReasonCode.PERSONAL_MATCH: "Encaja con tu estilo de vida",
    ReasonCode.DISTRICT_MATCH: "En uno de tus barrios preferidos ({district})",
    ReasonCode.SHORT_COMMUTE: "Buena ubicación: unos {minutes} min de viaje",
    ReasonCode.GOOD_LOCATION: "Buena ubicación para tu día a día",
    ReasonCode.VERIFIED_OWNER: "Dueño verificado",
    ReasonCode.COMPLETE_LISTING: "Ficha completa y con buenas fotos",
    ReasonCode.FAIR_PRICE: "Buen precio frente a propiedades similares",
    ReasonCode.POPULAR: "Muy buscado por otros usuarios",
    ReasonCode.OVER_BUDGET: "Se pasa de tu presupuesto por {amount}",
    ReasonCode.MISSING_AMENITIES: "Le falta: {amenities}",
    ReasonCode.FEWER_ROOMS: "Tiene menos ambientes de los que buscás",
    ReasonCode.CONSTRAINT_GAP: "No cumple algunas de tus restricciones",
    ReasonCode.PERSONAL_MISMATCH: "No termina de encajar con tu estilo",
    ReasonCode.LONG_COMMUTE: "Viaje largo: unos {minutes} min",
    ReasonCode.FAR_LOCATION: "Queda lejos de tu destino habitual",
    ReasonCode.UNVERIFIED_LISTING: "Dueño sin verificar o ficha incompleta",
    ReasonCode.ABOVE_MARKET: "Precio por encima de propiedades similares",
    ReasonCode.LOW_ENGAGEMENT: "Todavía genera poco interés",
    ReasonCode.FILTER_MATCH: "Cumple tus filtros de búsqueda",
    ReasonCode.KEYWORD_MATCH: "Coincide con lo que escribiste",
    ReasonCode.SEMANTIC_MATCH: "Se parece a lo que describiste",
    ReasonCode.BALANCED_MATCH: "Buen equilibrio general",
}

# Componente que respalda cada código
STRENGTH_CODES: dict[ReasonCode, Component] = {
    ReasonCode.MEETS_REQUIREMENTS: Component.CONSTRAINT_FIT,
    ReasonCode.WITHIN_BUDGET: Component.CONSTRAINT_FIT,
    ReasonCode.MOSTLY_MEETS_REQUIREMENTS: Component.CONSTRAINT_FIT,
    ReasonCode.PERSONAL_MATCH: Component.PERSONAL_FIT,
    ReasonCode.DISTRICT_MATCH: Component.PERSONAL_FIT,
    ReasonCode.SHORT_COMMUTE: Component.ACCESSIBILITY,
    ReasonCode.GOOD_LOCATION: Component.ACCESSIBILITY,
    ReasonCode.VERIFIED_OWNER: Component.TRUST_QUALITY,
    ReasonCode.COMPLETE_LISTING: Component.TRUST_QUALITY,
    ReasonCode.FAIR_PRICE: Component.MARKET_VALUE,
    ReasonCode.POPULAR: Component.ENGAGEMENT,
}

CONCERN_CODES: dict[ReasonCode, Component] = {
    ReasonCode.OVER_BUDGET: Component.CONSTRAINT_FIT,
    ReasonCode.MISSING_AMENITIES: Component.CONSTRAINT_FIT,
    ReasonCode.FEWER_ROOMS: Component.CONSTRAINT_FIT,
    ReasonCode.CONSTRAINT_GAP: Component.CONSTRAINT_FIT,
    ReasonCode.PERSONAL_MISMATCH: Component.PERSONAL_FIT,
    ReasonCode.LONG_COMMUTE: Component.ACCESSIBILITY,
    ReasonCode.FAR_LOCATION: Component.ACCESSIBILITY,
    ReasonCode.UNVERIFIED_LISTING: Component.TRUST_QUALITY,
    ReasonCode.ABOVE_MARKET: Component.MARKET_VALUE,
    ReasonCode.LOW_ENGAGEMENT: Component.ENGAGEMENT,
}

# Procedencias que vale la pena contarle al usuario
_SHOWN_RETRIEVAL_CODES = (ReasonCode.KEYWORD_MATCH, ReasonCode.SEMANTIC_MATCH)

_COMPONENT_ORDER = {component: index for index, component in enumerate(Component)}


@dataclass
class Explanation:
    """Textos y códigos paralelos, en el mismo orden."""

    reasons: list[str] = field(default_factory=list)
    reason_codes: list[str] = field(default_factory=list)

    def add(self, code: ReasonCode, **params) -> None:
        if code.value in self.reason_codes:
            return
        self.reasons.append(REASON_TEMPLATES[code].format(**params))
        self.reason_codes.append(code.value)


def _format_amount(amount: float) -> str:
    return f"{amount:,.0f}".replace(",", ".")


class ExplanationBuilder:
    """
    Arma la explicación a partir del breakdown por componente.

    Las 2 fortalezas son los componentes con score más alto por encima de
    STRENGTH_THRESHOLD; la alerta es el componente más bajo por debajo de
    CONCERN_THRESHOLD. Empates: mayor peso vigente, luego orden canónico.
    """

    def __init__(
        self,
        strength_threshold: float = STRENGTH_THRESHOLD,
        concern_threshold: float = CONCERN_THRESHOLD,
        transit_speed_kmh: float = 20.0,
    ):
        if concern_threshold >= strength_threshold:
            raise ValueError("El umbral de alerta debe ser menor al de fortaleza")
        self.strength_threshold = strength_threshold
        self.concern_threshold = concern_threshold
        self.transit_speed_kmh = transit_speed_kmh

    def explain(
        self,
        result: RankedResult,
        listing: Optional[Listing] = None,
        preferences: Optional[UserPreferences] = None,
    ) -> Explanation:
        """Explicación de un resultado ya rankeado."""
        return self.build(
            components=result.components,
            weights=result.weights,
            listing=listing,
            preferences=preferences,
            retrieval_codes=result.retrieval_codes,
        )

    def build(
        self,
        components: ComponentScores,
        weights: BanditWeightMap,
        listing: Optional[Listing] = None,
        preferences: Optional[UserPreferences] = None,
        retrieval_codes: Sequence[str] = (),
    ) -> Explanation:
        """
        Construye razones y códigos.

        Args:
            components: Breakdown usado para el score
            weights: Pesos vigentes (solo desempatan)
            listing: Listing, para elegir la variante específica de cada razón
            preferences: Preferencias, ídem
            retrieval_codes: Códigos de procedencia de los canales

        Returns:
            Explanation con fortalezas, alerta y procedencia, en ese orden
        """
        explanation = Explanation()

        strengths = sorted(
            (
                (component, score)
                for component, score in components.items()
                if score >= self.strength_threshold
            ),
            key=lambda item: (-item[1], -weights.get(item[0]), _COMPONENT_ORDER[item[0]]),
        )[:MAX_STRENGTHS]

        concerns = sorted(
            (
                (component, score)
                for component, score in components.items()
                if score <= self.concern_threshold
            ),
            key=lambda item: (item[1], -weights.get(item[0]), _COMPONENT_ORDER[item[0]]),
        )[:MAX_CONCERNS]

        for component, score in strengths:
            code, params = self._strength(component, score, listing, preferences)
            explanation.add(code, **params)

        for component, _ in concerns:
            code, params = self._concern(component, listing, preferences)
            explanation.add(code, **params)

        if not strengths and not concerns:
            explanation.add(ReasonCode.BALANCED_MATCH)

        for code in _SHOWN_RETRIEVAL_CODES:
            if code.value in retrieval_codes:
                explanation.add(code)

        return explanation

    def _commute(
        self, listing: Optional[Listing], preferences: Optional[UserPreferences]
    ) -> Optional[float]:
        if listing is None or preferences is None:
            return listing.commute_minutes if listing is not None else None
        return estimate_commute_minutes(listing, preferences, self.transit_speed_kmh)

    def _strength(
        self,
        component: Component,
        score: float,
        listing: Optional[Listing],
        preferences: Optional[UserPreferences],
    ) -> tuple[ReasonCode, dict]:
        if component is Component.CONSTRAINT_FIT:
            if score >= 1.0:
                return ReasonCode.MEETS_REQUIREMENTS, {}
            budget = preferences.hard_filters.budget_max if preferences else None
            if budget is not None and listing is not None and listing.price is not None:
                if listing.price <= budget:
                    return ReasonCode.WITHIN_BUDGET, {}
            return ReasonCode.MOSTLY_MEETS_REQUIREMENTS, {}

        if component is Component.PERSONAL_FIT:
            district = _matched_district(listing, preferences)
            if district:
                return ReasonCode.DISTRICT_MATCH, {"district": district}
            return ReasonCode.PERSONAL_MATCH, {}

        if component is Component.ACCESSIBILITY:
            minutes = self._commute(listing, preferences)
            if minutes is not None:
                return ReasonCode.SHORT_COMMUTE, {"minutes": round(minutes)}
            return ReasonCode.GOOD_LOCATION, {}

        if component is Component.TRUST_QUALITY:
            if listing is not None and listing.verified:
                return ReasonCode.VERIFIED_OWNER, {}
            return ReasonCode.COMPLETE_LISTING, {}

        if component is Component.MARKET_VALUE:
            return ReasonCode.FAIR_PRICE, {}

        return ReasonCode.POPULAR, {}

    def _concern(
        self,
        component: Component,
        listing: Optional[Listing],
        preferences: Optional[UserPreferences],
    ) -> tuple[ReasonCode, dict]:
        if component is Component.CONSTRAINT_FIT:
            if listing is not None and preferences is not None:
                hard = preferences.hard_filters
                if (
                    hard.budget_max is not None
                    and listing.price is not None
                    and listing.price > hard.budget_max
                ):
                    return ReasonCode.OVER_BUDGET, {
                        "amount": _format_amount(listing.price - hard.budget_max)
                    }
                required = {a.strip().lower() for a in hard.required_amenities if a.strip()}
                missing = sorted(required - listing.amenity_set)
                if missing:
                    return ReasonCode.MISSING_AMENITIES, {"amenities": ", ".join(missing)}
                if (
                    hard.min_rooms is not None
                    and listing.rooms is not None
                    and listing.rooms < hard.min_rooms
                ):
                    return ReasonCode.FEWER_ROOMS, {}
            return ReasonCode.CONSTRAINT_GAP, {}

        if component is Component.PERSONAL_FIT:
            return ReasonCode.PERSONAL_MISMATCH, {}

        if component is Component.ACCESSIBILITY:
            minutes = self._commute(listing, preferences)
            if minutes is not None:
                return ReasonCode.LONG_COMMUTE, {"minutes": round(minutes)}
            return ReasonCode.FAR_LOCATION, {}

        if component is Component.TRUST_QUALITY:
            return ReasonCode.UNVERIFIED_LISTING, {}

        if component is Component.MARKET_VALUE:
            return ReasonCode.ABOVE_MARKET, {}

        return ReasonCode.LOW_ENGAGEMENT, {}


def _matched_district(
    listing: Optional[Listing], preferences: Optional[UserPreferences]
) -> Optional[str]:
    if listing is None or preferences is None or not listing.district:
        return None
    district = listing.district.lower()
    for preferred in preferences.soft_preferences.preferred_districts:
        if preferred.strip() and preferred.strip().lower() in district:
            return listing.district
    return None
