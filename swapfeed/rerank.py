# swapfeed/rerank.py
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

from loguru import logger

from . import config
from .config import CandidateItem, PreferenceSignal, RankedResult
from .errors import ScorerError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def liked_items(history: Sequence[PreferenceSignal]) -> List[CandidateItem]:
    """Drop interest rows whose item join came back null."""
    return [s.liked_item for s in history if s.liked_item is not None]


def dedupe(pool: Sequence[CandidateItem]) -> List[CandidateItem]:
    seen = set()
    out: List[CandidateItem] = []
    for item in pool:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


def fallback(pool: Sequence[CandidateItem], limit: int) -> List[CandidateItem]:
    """Recency order as delivered by the catalog, capped."""
    return list(pool[:limit])


def sort_by_scores(
    pool: Sequence[CandidateItem],
    scores: Dict[str, float],
    limit: int,
) -> RankedResult:
    """
    Stable sort by descending score. Ids the scorer skipped count as 0 and keep
    their relative input order; ids the scorer invented are never looked at.
    """
    ranked = sorted(pool, key=lambda item: -scores.get(item.id, 0.0))
    return ranked[:limit]


# ---------------------------------------------------------------------------
# Main entry
# ---------------------------------------------------------------------------

async def rank(
    user_id: str,
    candidate_pool: Sequence[CandidateItem],
    history: Sequence[PreferenceSignal],
    scorer,
    limit: Optional[int] = None,
    timeout: Optional[float] = None,
) -> RankedResult:
    """
    Re-rank `candidate_pool` (already active, non-owned, newest first) for
    `user_id` using the liked items in `history`:

      1) no usable history -> first `limit` candidates, scorer not called
      2) ask `scorer` for id -> score, bounded by `timeout` seconds
      3) stable sort by descending score, missing ids score 0
      4) cap at `limit`

    Never raises for scoring problems; any failure in 2-3 returns the same
    recency fallback as 1.
    """
    limit = limit or config.RESULT_MAX
    pool = dedupe(candidate_pool)

    liked = liked_items(history)
    if not liked:
        logger.info("No preference history for user {}; returning recency order", user_id)
        return fallback(pool, limit)

    if not pool:
        return []

    try:
        call = scorer.score(liked, pool)
        if timeout is not None:
            scores = await asyncio.wait_for(call, timeout=timeout)
        else:
            scores = await call
        ranked = sort_by_scores(pool, scores, limit)
    except asyncio.TimeoutError:
        logger.warning("Scorer timed out after {}s for user {}; falling back to recency order", timeout, user_id)
        return fallback(pool, limit)
    except ScorerError as e:
        logger.warning("Scoring failed for user {}; falling back to recency order: {}", user_id, e)
        return fallback(pool, limit)
    except Exception as e:
        logger.exception("Unexpected scoring error for user {}; falling back to recency order: {}", user_id, e)
        return fallback(pool, limit)

    logger.info(
        "Ranked {} of {} candidates for user {} ({} scored)",
        len(ranked), len(pool), user_id, sum(1 for item in pool if item.id in scores),
    )
    return ranked
