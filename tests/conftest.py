"""Fixtures compartidas: listings, preferencias y repositorios en memoria."""

from datetime import datetime, timezone

import pytest

from nido.config import Settings
from nido.models import (
    ComponentScores,
    EngagementStats,
    FeedbackEvent,
    HardFilters,
    Listing,
    SoftPreferences,
    UserPreferences,
)


@pytest.fixture
def settings():
    return Settings(_env_file=None, channel_timeout_seconds=0.2)


@pytest.fixture
def make_listing():
    def _make(listing_id="l1", **overrides):
        data = {
            "id": listing_id,
            "title": f"Depto {listing_id}",
            "price": 120000,
            "rooms": 2,
            "size_m2": 45,
            "district": "Palermo",
            "amenities": ["balcon"],
            "verified": True,
            "media_score": 0.8,
            "completeness_score": 0.9,
            "commute_minutes": 20,
            "engagement": EngagementStats(views=100, saves=10, messages=2),
        }
        data.update(overrides)
        return Listing(**data)

    return _make


@pytest.fixture
def preferences():
    return UserPreferences(
        hard_filters=HardFilters(
            budget_max=150000,
            min_rooms=2,
            required_amenities=["balcon"],
            max_commute_minutes=40,
        ),
        soft_preferences=SoftPreferences(
            preferred_districts=["Palermo"],
            personality={"quiet": 0.9, "social": 0.2},
        ),
    )


@pytest.fixture
def make_event():
    def _make(signal=1.0, listing_id="l1", **scores):
        values = {
            "constraint_fit": 0.5,
            "personal_fit": 0.5,
            "accessibility": 0.5,
            "trust_quality": 0.5,
            "market_value": 0.5,
            "engagement": 0.5,
        }
        values.update(scores)
        return FeedbackEvent(
            listing_id=listing_id,
            signal=signal,
            component_scores=ComponentScores(**values),
            created_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
        )

    return _make


class InMemoryListingRepository:
    """Reemplazo de ListingRepository sobre una lista de filas."""

    def __init__(self, rows=None, keyword_rows=None, similarity_rows=None):
        self.rows = list(rows or [])
        self.keyword_rows = list(keyword_rows or [])
        self.similarity_rows = list(similarity_rows or [])
        self.filter_calls = []

    def search_by_filters(self, budget_min=None, budget_max=None, min_rooms=None, districts=None, limit=50):
        self.filter_calls.append(
            {"budget_min": budget_min, "budget_max": budget_max, "min_rooms": min_rooms, "districts": districts}
        )
        rows = [
            row for row in self.rows
            if (budget_max is None or row.get("price") is None or row["price"] <= budget_max)
            and (min_rooms is None or row.get("rooms") is None or row["rooms"] >= min_rooms)
        ]
        return rows[:limit]

    def get_by_ids(self, listing_ids):
        wanted = set(listing_ids)
        return [row for row in self.rows if str(row["id"]) in wanted]

    def keyword_search(self, query_text, limit=50):
        return self.keyword_rows[:limit]

    def similarity_search(self, query_vector, limit=50, match_threshold=0.0):
        return self.similarity_rows[:limit]


class InMemoryFeedbackRepository:
    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.events = []

    def append(self, event):
        self.events.append(event)
        self.rows.append(event.to_db_dict())
        return self.rows[-1]

    def get_window(self, since, limit=None):
        return list(self.rows)


class InMemorySnapshotRepository:
    """Tabla de snapshots: filas crudas, leídas por versión descendente."""

    def __init__(self, latest=None, rows=None, fail_on_insert=False):
        self.rows = list(rows or [])
        if latest is not None:
            self.rows.append(latest)
        self.inserted = []
        self.fail_on_insert = fail_on_insert

    def get_recent(self, limit=10):
        return sorted(self.rows, key=lambda row: row.get("version", 0), reverse=True)[:limit]

    def get_latest(self):
        recent = self.get_recent(1)
        return recent[0] if recent else None

    def insert(self, snapshot):
        if self.fail_on_insert:
            raise ConnectionError("supabase caído")
        self.inserted.append(snapshot)
        self.rows.append(snapshot.to_db_dict())
        return self.rows[-1]


class InMemoryRankingEventRepository:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def log_events(self, results, user_id=None, session_id=None):
        if self.fail:
            raise ConnectionError("supabase caído")
        self.calls.append({"results": list(results), "user_id": user_id, "session_id": session_id})
        return []


@pytest.fixture
def listing_repository():
    return InMemoryListingRepository


@pytest.fixture
def feedback_repository():
    return InMemoryFeedbackRepository()


@pytest.fixture
def snapshot_repository():
    return InMemorySnapshotRepository


@pytest.fixture
def event_repository():
    return InMemoryRankingEventRepository
