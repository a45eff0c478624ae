import asyncio

import pytest
from structlog.testing import capture_logs

from nido.learning import WeightSnapshotStore
from nido.models import HardFilters, SearchQuery, SoftPreferences, UserPreferences, WeightSnapshot
from nido.retrieval import KeywordChannel, RetrievalChannel, SemanticChannel, StructuredChannel
from nido.search import HybridSearchService

ROWS = [
    {
        "id": "a",
        "title": "Dos ambientes luminoso",
        "price": 110000,
        "rooms": 2,
        "district": "Palermo",
        "amenities": ["balcon"],
        "verified": True,
        "view_count": 300,
        "save_count": 20,
        "message_count": 4,
        "latitude": -34.58,
        "longitude": -58.42,
    },
    {
        "id": "b",
        "title": "Monoambiente",
        "price": 90000,
        "rooms": 1,
        "district": "Almagro",
        "amenities": [],
    },
    {
        "id": "c",
        "title": "Tres ambientes con cochera",
        "price": 140000,
        "rooms": 3,
        "district": "Palermo",
        "amenities": ["balcon", "cochera"],
        "verified": False,
    },
]


class FakeEmbedder:
    def __init__(self):
        self.queries = []

    async def generate_query_embedding(self, query):
        self.queries.append(query)
        return [0.1, 0.2, 0.3]


class SlowChannel(RetrievalChannel):
    NAME = "semantic"

    async def search(self, query):
        await asyncio.sleep(5)
        return []


@pytest.fixture
def prefs():
    return UserPreferences(
        hard_filters=HardFilters(budget_max=150000, min_rooms=2, required_amenities=["balcon"]),
        soft_preferences=SoftPreferences(preferred_districts=["Palermo"]),
    )


@pytest.fixture
def repository(listing_repository):
    return listing_repository(
        rows=ROWS,
        keyword_rows=[{"id": "c", "rank": 0.4}, {"id": "a", "rank": 0.2}],
        similarity_rows=[{"id": "b", "similarity": 0.6}, {"id": "a", "similarity": -0.2}],
    )


def test_structured_channel_scores_by_position(repository, prefs):
    hits = asyncio.run(StructuredChannel(repository).search(SearchQuery(preferences=prefs)))

    assert [h.listing_id for h in hits] == ["a", "c"]
    assert [h.score for h in hits] == pytest.approx([0.9, 0.89])
    assert all(h.listing is not None for h in hits)
    assert repository.filter_calls[0]["budget_max"] == 150000
    assert repository.filter_calls[0]["districts"] == ["Palermo"]


def test_structured_position_score_has_floor():
    assert StructuredChannel.position_score(100) == 0.5


def test_keyword_channel_normalizes_by_best_rank(repository):
    hits = asyncio.run(KeywordChannel(repository).search(SearchQuery(text="cochera")))

    assert {h.listing_id: h.score for h in hits} == pytest.approx({"c": 1.0, "a": 0.5})
    assert all(h.reason_codes == ["keyword_match"] for h in hits)


def test_keyword_channel_without_text_returns_nothing(repository):
    assert asyncio.run(KeywordChannel(repository).search(SearchQuery())) == []


def test_semantic_channel_maps_cosine_to_unit_interval(repository):
    embedder = FakeEmbedder()
    query = SearchQuery(
        preferences=UserPreferences(soft_preferences=SoftPreferences(ideal_description="algo tranquilo"))
    )

    hits = asyncio.run(SemanticChannel(repository, embedder).search(query))

    assert embedder.queries == ["algo tranquilo"]
    assert {h.listing_id: h.score for h in hits} == pytest.approx({"b": 0.8, "a": 0.4})


def test_search_ranks_hydrated_candidates(settings, repository, prefs):
    store = WeightSnapshotStore(initial=WeightSnapshot(version=3))
    service = HybridSearchService(
        channels=[
            StructuredChannel(repository),
            KeywordChannel(repository),
            SemanticChannel(repository, FakeEmbedder()),
        ],
        store=store,
        listing_repository=repository,
        settings=settings,
    )

    response = asyncio.run(service.search(SearchQuery(text="luminoso", preferences=prefs)))

    assert not response.degraded
    assert response.weights_version == 3
    assert {r.listing_id for r in response.results} == {"a", "b", "c"}
    assert response.results[0].listing_id == "a"
    assert all(r.weights_version == 3 for r in response.results)

    b = next(r for r in response.results if r.listing_id == "b")
    assert b.sources == ["semantic"]
    assert "semantic_match" in b.reason_codes


def test_search_degrades_when_a_channel_times_out(settings, repository, prefs):
    service = HybridSearchService(
        channels=[StructuredChannel(repository), KeywordChannel(repository), SlowChannel()],
        store=WeightSnapshotStore(),
        listing_repository=repository,
        settings=settings,
    )

    response = asyncio.run(service.search(SearchQuery(text="luminoso", preferences=prefs)))

    assert response.degraded
    assert response.failed_channels == ["semantic"]
    assert [r.listing_id for r in response.results][0] == "a"
    assert len(response.results) == 2


def test_search_respects_limit(settings, repository, prefs):
    service = HybridSearchService(
        channels=[StructuredChannel(repository), KeywordChannel(repository)],
        store=WeightSnapshotStore(),
        listing_repository=repository,
        settings=settings,
    )

    response = asyncio.run(service.search(SearchQuery(text="luminoso", preferences=prefs, limit=1)))

    assert len(response.results) == 1


def test_failed_listing_lookup_degrades_instead_of_failing(settings, listing_repository, prefs):
    class BrokenLookupRepository(listing_repository):
        def get_by_ids(self, listing_ids):
            raise ConnectionError("lookup caído")

    repository = BrokenLookupRepository(rows=ROWS, keyword_rows=[{"id": "b", "rank": 0.5}])
    service = HybridSearchService(
        channels=[StructuredChannel(repository), KeywordChannel(repository)],
        store=WeightSnapshotStore(),
        listing_repository=repository,
        settings=settings,
    )

    with capture_logs() as logs:
        response = asyncio.run(service.search(SearchQuery(text="luminoso", preferences=prefs)))

    assert response.degraded
    assert response.failed_channels == []
    assert [r.listing_id for r in response.results] == ["a", "c"]
    assert any(log.get("error_kind") == "ConnectionError" for log in logs)


def test_search_logs_top_results_as_ranking_events(settings, repository, prefs, event_repository):
    events = event_repository()
    service = HybridSearchService(
        channels=[StructuredChannel(repository), KeywordChannel(repository)],
        store=WeightSnapshotStore(),
        listing_repository=repository,
        event_repository=events,
        settings=settings.model_copy(update={"ranking_event_top_n": 1}),
    )
    query = SearchQuery(text="luminoso", preferences=prefs, user_id="u1", session_id="s1")

    response = asyncio.run(service.search(query))

    assert len(events.calls) == 1
    assert events.calls[0]["user_id"] == "u1"
    assert events.calls[0]["session_id"] == "s1"
    assert events.calls[0]["results"] == response.results[:1]


def test_ranking_event_failure_does_not_break_search(settings, repository, prefs, event_repository):
    service = HybridSearchService(
        channels=[StructuredChannel(repository)],
        store=WeightSnapshotStore(),
        listing_repository=repository,
        event_repository=event_repository(fail=True),
        settings=settings,
    )

    with capture_logs() as logs:
        response = asyncio.run(service.search(SearchQuery(preferences=prefs)))

    assert [r.listing_id for r in response.results] == ["a", "c"]
    assert not response.degraded
    assert any(
        log["event"] == "No se pudieron registrar los eventos de ranking" for log in logs
    )
