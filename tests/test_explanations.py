import pytest

from nido.models import BanditWeightMap, ComponentScores, DEFAULT_BANDIT_WEIGHTS, HardFilters, Listing, UserPreferences
from nido.ranking import ExplanationBuilder, RankingEngine
from nido.ranking.explanations import CONCERN_CODES, STRENGTH_CODES, ReasonCode


def scores(**overrides):
    values = dict.fromkeys(
        ["constraint_fit", "personal_fit", "accessibility", "trust_quality", "market_value", "engagement"],
        0.5,
    )
    values.update(overrides)
    return ComponentScores(**values)


@pytest.fixture
def builder():
    return ExplanationBuilder()


def test_top_two_strengths_in_score_order(builder):
    explanation = builder.build(
        scores(constraint_fit=1.0, personal_fit=0.9, trust_quality=0.8),
        DEFAULT_BANDIT_WEIGHTS,
    )

    assert explanation.reason_codes == ["meets_requirements", "personal_match"]
    assert len(explanation.reasons) == len(explanation.reason_codes)


def test_strength_ties_break_by_weight(builder):
    weights = BanditWeightMap(
        constraint_fit=0.2,
        personal_fit=0.1,
        accessibility=0.1,
        trust_quality=0.4,
        market_value=0.1,
        engagement=0.1,
    )
    explanation = builder.build(scores(personal_fit=0.8, trust_quality=0.8), weights)

    assert explanation.reason_codes == ["complete_listing", "personal_match"]


def test_no_location_claim_when_accessibility_is_low(builder):
    explanation = builder.build(
        scores(accessibility=0.3, constraint_fit=0.9, market_value=0.7),
        DEFAULT_BANDIT_WEIGHTS,
        listing=Listing(id="x", commute_minutes=70),
        preferences=UserPreferences(hard_filters=HardFilters(max_commute_minutes=40)),
    )

    assert "short_commute" not in explanation.reason_codes
    assert "good_location" not in explanation.reason_codes
    assert explanation.reason_codes[-1] == "long_commute"
    assert explanation.reasons[-1] == "Viaje largo: unos 70 min"


def test_single_concern_is_the_lowest_component(builder):
    explanation = builder.build(scores(market_value=0.1, engagement=0.3), DEFAULT_BANDIT_WEIGHTS)

    assert explanation.reason_codes == ["above_market"]


def test_over_budget_concern_names_the_gap(builder):
    listing = Listing(id="b", price=200000, amenities=[])
    prefs = UserPreferences(hard_filters=HardFilters(budget_max=150000, required_amenities=["balcon"]))

    explanation = builder.build(scores(constraint_fit=0.0), DEFAULT_BANDIT_WEIGHTS, listing, prefs)

    assert explanation.reason_codes == ["over_budget"]
    assert explanation.reasons == ["Se pasa de tu presupuesto por 50.000"]


def test_missing_amenities_concern(builder):
    listing = Listing(id="b", price=100000, amenities=["balcon"])
    prefs = UserPreferences(
        hard_filters=HardFilters(budget_max=150000, required_amenities=["balcon", "cochera", "parrilla"])
    )

    explanation = builder.build(scores(constraint_fit=0.33), DEFAULT_BANDIT_WEIGHTS, listing, prefs)

    assert explanation.reason_codes == ["missing_amenities"]
    assert explanation.reasons == ["Le falta: cochera, parrilla"]


def test_balanced_match_when_nothing_stands_out(builder):
    explanation = builder.build(scores(), DEFAULT_BANDIT_WEIGHTS)

    assert explanation.reason_codes == ["balanced_match"]


def test_retrieval_provenance_goes_last(builder):
    explanation = builder.build(
        scores(market_value=0.9),
        DEFAULT_BANDIT_WEIGHTS,
        retrieval_codes=["filter_match", "semantic_match", "keyword_match"],
    )

    assert explanation.reason_codes == ["fair_price", "keyword_match", "semantic_match"]


def test_thresholds_must_be_ordered():
    with pytest.raises(ValueError):
        ExplanationBuilder(strength_threshold=0.4, concern_threshold=0.6)


def test_explain_matches_ranked_result(settings, make_listing, preferences):
    engine = RankingEngine(settings=settings)
    listings = [
        make_listing("a"),
        make_listing("b", price=180000, amenities=[], verified=False),
        make_listing("c", commute_minutes=75, district="Lugano"),
    ]

    for result in engine.rank(listings, preferences):
        listing = next(item for item in listings if item.id == result.listing_id)
        explanation = engine.explainer.explain(result, listing, preferences)

        assert explanation.reason_codes == result.reason_codes
        assert explanation.reasons == result.reasons

        # Cada código está respaldado por el score de su componente
        for code in result.reason_codes:
            code = ReasonCode(code)
            if code in STRENGTH_CODES:
                assert result.components.get(STRENGTH_CODES[code]) >= 0.6
            if code in CONCERN_CODES:
                assert result.components.get(CONCERN_CODES[code]) <= 0.4
