import asyncio

import pytest
from structlog.testing import capture_logs

from nido.models import ChannelResult, ScoredCandidate, SearchQuery
from nido.retrieval import RetrievalChannel, RetrievalMerger, collect_channels

WEIGHTS = {"structured": 0.5, "keyword": 0.2, "semantic": 0.3}


def hit(listing_id, score, code):
    return ScoredCandidate(listing_id=listing_id, score=score, reason_codes=[code])


def channel(name, *hits):
    return ChannelResult(channel=name, candidates=list(hits))


class StaticChannel(RetrievalChannel):
    def __init__(self, name, hits, delay=0.0):
        super().__init__()
        self.NAME = name
        self.hits = hits
        self.delay = delay

    async def search(self, query):
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.hits)


class BrokenChannel(RetrievalChannel):
    NAME = "keyword"

    async def search(self, query):
        raise ConnectionError("rpc caída")


@pytest.fixture
def merger():
    return RetrievalMerger()


def test_fused_score_sums_only_present_channels(merger):
    result = merger.merge(
        [
            channel("structured", hit("a", 0.9, "filter_match")),
            channel("keyword", hit("a", 1.0, "keyword_match"), hit("b", 0.5, "keyword_match")),
            channel("semantic"),
        ],
        WEIGHTS,
    )

    fused = {c.listing_id: c.fused_score for c in result.candidates}
    assert fused["a"] == pytest.approx(0.5 * 0.9 + 0.2 * 1.0)
    assert fused["b"] == pytest.approx(0.2 * 0.5)
    assert [c.listing_id for c in result.candidates] == ["a", "b"]
    assert not result.degraded


def test_candidate_in_every_channel_stays_within_one(merger):
    result = merger.merge(
        [
            channel("structured", hit("a", 1.0, "filter_match")),
            channel("keyword", hit("a", 1.0, "keyword_match")),
            channel("semantic", hit("a", 1.0, "semantic_match")),
        ],
        WEIGHTS,
    )

    assert len(result.candidates) == 1
    assert result.candidates[0].fused_score <= 1.0


def test_only_listings_seen_by_some_channel_are_returned(merger):
    result = merger.merge(
        [channel("structured", hit("a", 0.9, "filter_match")), channel("keyword"), channel("semantic")],
        WEIGHTS,
    )

    assert {c.listing_id for c in result.candidates} == {"a"}


def test_reason_codes_are_unioned_not_overwritten(merger):
    result = merger.merge(
        [
            channel("structured", hit("a", 0.9, "filter_match")),
            channel("keyword", hit("a", 0.4, "keyword_match")),
            channel("semantic", hit("a", 0.7, "semantic_match")),
        ],
        WEIGHTS,
    )

    candidate = result.candidates[0]
    assert candidate.reason_codes == ["filter_match", "keyword_match", "semantic_match"]
    assert candidate.sources == ["structured", "keyword", "semantic"]
    assert candidate.channel_scores == {"structured": 0.9, "keyword": 0.4, "semantic": 0.7}


def test_duplicates_within_a_channel_keep_best_score(merger):
    result = merger.merge(
        [channel("structured", hit("a", 0.6, "filter_match"), hit("a", 0.8, "filter_match"))],
        [1.0],
    )

    assert result.candidates[0].fused_score == pytest.approx(0.8)


def test_out_of_range_channel_scores_are_clamped(merger):
    result = merger.merge(
        [channel("structured", hit("a", 3.5, "filter_match"), hit("b", -2.0, "filter_match"))],
        [1.0],
    )

    fused = {c.listing_id: c.fused_score for c in result.candidates}
    assert fused == {"a": 1.0, "b": 0.0}


def test_ties_break_by_listing_id(merger):
    result = merger.merge(
        [channel("keyword", hit("z", 0.5, "keyword_match"), hit("m", 0.5, "keyword_match"))],
        [1.0],
    )

    assert [c.listing_id for c in result.candidates] == ["m", "z"]


def test_failed_channel_marks_result_degraded(merger):
    result = merger.merge(
        [
            channel("structured", hit("a", 0.9, "filter_match")),
            ChannelResult.failure("semantic", "timeout"),
        ],
        WEIGHTS,
    )

    assert result.degraded
    assert result.failed_channels == ["semantic"]
    assert [c.listing_id for c in result.candidates] == ["a"]


@pytest.mark.parametrize("weights", [[0.5, 0.5, 0.0], [1.2], [-0.1], [0.7, 0.6]])
def test_invalid_channel_weights_raise(merger, weights):
    results = [channel("structured", hit("a", 0.9, "filter_match"))]
    if len(weights) == 2:
        results.append(channel("keyword"))

    with pytest.raises(ValueError):
        merger.merge(results, weights)


def test_merge_is_deterministic(merger):
    results = [
        channel("structured", *(hit(str(i), 0.9 - i * 0.01, "filter_match") for i in range(10))),
        channel("keyword", *(hit(str(i), i / 10, "keyword_match") for i in range(0, 10, 2))),
    ]

    assert merger.merge(results, WEIGHTS) == merger.merge(results, WEIGHTS)


def test_timed_out_channel_degrades_but_keeps_other_results(merger):
    channels = [
        StaticChannel("structured", [hit("a", 0.9, "filter_match")]),
        StaticChannel("keyword", [hit("b", 0.8, "keyword_match")]),
        StaticChannel("semantic", [hit("c", 0.9, "semantic_match")], delay=5.0),
    ]

    with capture_logs() as logs:
        results = asyncio.run(collect_channels(channels, SearchQuery(text="luminoso"), timeout=0.05))

    assert [r.channel for r in results] == ["structured", "keyword", "semantic"]
    assert results[2].failed

    merged = merger.merge(results, WEIGHTS)
    assert merged.degraded
    assert merged.failed_channels == ["semantic"]
    assert [c.listing_id for c in merged.candidates] == ["a", "b"]
    assert any(log.get("error_kind") == "ChannelTimeout" for log in logs)


def test_channel_exception_is_treated_as_empty():
    channels = [StaticChannel("structured", [hit("a", 0.9, "filter_match")]), BrokenChannel()]

    results = asyncio.run(collect_channels(channels, SearchQuery(), timeout=1.0))

    assert not results[0].failed
    assert results[1].failed
    assert "rpc caída" in results[1].error
