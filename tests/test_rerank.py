import asyncio

from swapfeed.config import CandidateItem, PreferenceSignal
from swapfeed.errors import ScorerError
from swapfeed.rerank import dedupe, liked_items, rank, sort_by_scores


def make_pool(n, prefix="item"):
    return [
        CandidateItem(id=f"{prefix}-{i}", title=f"Title {i}", category="books", price=float(i))
        for i in range(n)
    ]


def make_history(n=3):
    return [
        PreferenceSignal(
            item_id=f"liked-{i}",
            items=CandidateItem(id=f"liked-{i}", title=f"Liked {i}", category="books"),
        )
        for i in range(n)
    ]


class DummyScorer:
    """
    Same interface as LLMScorer.score. Returns a fixed id -> score map and
    records how often it was asked.
    """

    def __init__(self, scores=None, exc=None, delay=0.0):
        self.scores = scores or {}
        self.exc = exc
        self.delay = delay
        self.calls = 0

    async def score(self, liked, pool):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return dict(self.scores)


def run_rank(pool, history, scorer, **kwargs):
    return asyncio.run(rank("user-1", pool, history, scorer, **kwargs))


def ids(items):
    return [item.id for item in items]


def test_empty_history_returns_first_20_without_scoring():
    pool = make_pool(30)
    scorer = DummyScorer({"item-29": 10})
    out = run_rank(pool, [], scorer)
    assert ids(out) == ids(pool[:20])
    assert scorer.calls == 0


def test_history_with_only_null_items_counts_as_empty():
    pool = make_pool(5)
    history = [PreferenceSignal(item_id="gone", items=None)]
    scorer = DummyScorer({"item-4": 10})
    out = run_rank(pool, history, scorer)
    assert ids(out) == ids(pool)
    assert scorer.calls == 0


def test_partial_scores_sort_unscored_last_in_input_order():
    a, b, c = make_pool(3)
    scorer = DummyScorer({a.id: 9, b.id: 2})
    out = run_rank([a, b, c], make_history(), scorer)
    assert ids(out) == [a.id, b.id, c.id]


def test_unscored_items_keep_recency_order_behind_scored():
    pool = make_pool(5)
    scorer = DummyScorer({"item-3": 7})
    out = run_rank(pool, make_history(), scorer)
    assert ids(out) == ["item-3", "item-0", "item-1", "item-2", "item-4"]


def test_full_scores_order_is_non_increasing_and_stable():
    pool = make_pool(6)
    scores = {"item-0": 3, "item-1": 8, "item-2": 3, "item-3": 8, "item-4": 1, "item-5": 5}
    out = run_rank(pool, make_history(), DummyScorer(scores))
    assert ids(out) == ["item-1", "item-3", "item-5", "item-0", "item-2", "item-4"]
    ordered = [scores[i] for i in ids(out)]
    assert ordered == sorted(ordered, reverse=True)


def test_fifty_scored_candidates_return_exactly_twenty():
    pool = make_pool(50)
    scores = {item.id: float(i % 11) for i, item in enumerate(pool)}
    out = run_rank(pool, make_history(), DummyScorer(scores))
    assert len(out) == 20


def test_scorer_ids_outside_pool_never_appear():
    pool = make_pool(4)
    scorer = DummyScorer({"stranger": 10, "item-2": 5})
    out = run_rank(pool, make_history(), scorer)
    assert set(ids(out)) <= set(ids(pool))
    assert ids(out)[0] == "item-2"
    assert len(out) == min(20, len(pool))


def test_scorer_failure_falls_back_to_recency():
    pool = make_pool(25)
    out = run_rank(pool, make_history(), DummyScorer(exc=ScorerError("HTTP 500")))
    assert ids(out) == ids(pool[:20])


def test_unexpected_scorer_exception_is_absorbed():
    pool = make_pool(3)
    out = run_rank(pool, make_history(), DummyScorer(exc=RuntimeError("boom")))
    assert ids(out) == ids(pool)


def test_scorer_timeout_falls_back_to_recency():
    pool = make_pool(3)
    scorer = DummyScorer({"item-2": 10}, delay=0.5)
    out = run_rank(pool, make_history(), scorer, timeout=0.01)
    assert ids(out) == ids(pool)


def test_limit_is_respected():
    pool = make_pool(10)
    out = run_rank(pool, make_history(), DummyScorer({"item-9": 1}), limit=3)
    assert ids(out) == ["item-9", "item-0", "item-1"]


def test_empty_pool_returns_empty_without_scoring():
    scorer = DummyScorer({"x": 1})
    assert run_rank([], make_history(), scorer) == []
    assert scorer.calls == 0


def test_duplicate_pool_ids_appear_once():
    a, b = make_pool(2)
    pool = dedupe([a, b, a])
    assert ids(pool) == [a.id, b.id]
    out = run_rank([a, b, a], make_history(), DummyScorer({b.id: 4}))
    assert ids(out) == [b.id, a.id]


def test_sort_by_scores_negative_scores_sink_below_unscored():
    pool = make_pool(3)
    out = sort_by_scores(pool, {"item-0": -1.0}, limit=20)
    assert ids(out) == ["item-1", "item-2", "item-0"]


def test_liked_items_drops_null_joins():
    history = make_history(2) + [PreferenceSignal(item_id="gone", items=None)]
    assert [i.id for i in liked_items(history)] == ["liked-0", "liked-1"]
