"""Fan-out signal scoring and weighted aggregation.

    score = w.relationship·rel + w.engagement·eng + w.personalization·pers
          + w.recency·rec + w.negative_feedback·max(neg, 0)

The negative signal is used twice with different clamping: floored at zero
inside the weighted sum, and unfloored for suppression (``neg <= -0.5``
removes the post).

Ordering is ``(-score, input position)``; completion order of the concurrent
lookups never influences ties.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.ranking.scorer import SignalScorer
from app.ranking.types import Candidate, RankedCandidate, SignalScores
from app.ranking.weights import RankingWeights

logger = logging.getLogger(__name__)

SUPPRESSION_THRESHOLD = -0.5


def aggregate_score(signals: SignalScores, weights: RankingWeights) -> float:
    return (
        weights.relationship * max(signals.relationship, 0.0)
        + weights.engagement * max(signals.engagement, 0.0)
        + weights.personalization * max(signals.personalization, 0.0)
        + weights.recency * max(signals.recency, 0.0)
        + weights.negative_feedback * max(signals.negative_feedback, 0.0)
    )


def is_suppressed(signals: SignalScores) -> bool:
    return signals.negative_feedback <= SUPPRESSION_THRESHOLD


@dataclass(slots=True)
class FanOutResult:
    # (input position, candidate, signals) for every candidate that resolved
    scored: list[tuple[int, Candidate, SignalScores]] = field(default_factory=list)
    failed: int = 0
    abandoned: int = 0
    timed_out: bool = False
    cancelled: bool = False


async def score_candidates(
    candidates: Sequence[Candidate],
    scorer: SignalScorer,
    *,
    timeout_s: float,
    concurrency: int = 32,
    cancel_event: asyncio.Event | None = None,
) -> FanOutResult:
    """Score every candidate concurrently, bounded by ``concurrency`` and ``timeout_s``.

    Returns whatever resolved before the deadline or before ``cancel_event``
    was set; outstanding lookups are cancelled. A candidate whose scoring
    raised is dropped and counted in ``failed``.
    """
    result = FanOutResult()
    if not candidates:
        return result

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _score(candidate: Candidate) -> SignalScores:
        async with semaphore:
            return await scorer.score(candidate)

    tasks: dict[asyncio.Future[SignalScores], int] = {
        asyncio.ensure_future(_score(c)): i for i, c in enumerate(candidates)
    }
    pending: set[asyncio.Future] = set(tasks)
    cancel_waiter = (
        asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
    )
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s

    try:
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                result.timed_out = True
                break
            wait_on = pending | {cancel_waiter} if cancel_waiter is not None else pending
            done, _ = await asyncio.wait(
                wait_on, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            pending -= done
            if cancel_waiter is not None and cancel_waiter in done:
                result.cancelled = True
                break
    finally:
        for task in pending:
            task.cancel()
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()
        if pending:
            scorer.cancel_pending()
            # Let cancelled lookups unwind before the caller reuses their resources.
            await asyncio.gather(*pending, return_exceptions=True)

    result.abandoned = len(pending)
    for task, index in tasks.items():
        if task in pending:
            continue
        if task.cancelled():
            result.abandoned += 1
            continue
        exc = task.exception()
        if exc is not None:
            result.failed += 1
            logger.warning(
                "Scoring failed for post %s",
                candidates[index].post_id,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            continue
        result.scored.append((index, candidates[index], task.result()))

    result.scored.sort(key=lambda item: item[0])
    return result


def rank_scored(
    scored: Sequence[tuple[int, Candidate, SignalScores]],
    weights: RankingWeights,
) -> list[RankedCandidate]:
    """Aggregate, drop suppressed posts and sort by score desc, input order asc."""
    kept: list[tuple[int, RankedCandidate]] = []
    for index, candidate, signals in scored:
        if is_suppressed(signals):
            continue
        kept.append(
            (index, RankedCandidate(candidate, signals, aggregate_score(signals, weights)))
        )
    kept.sort(key=lambda item: (-item[1].score, item[0]))
    return [ranked for _, ranked in kept]


async def rank_candidates(
    candidates: Sequence[Candidate],
    scorer: SignalScorer,
    weights: RankingWeights,
    *,
    timeout_s: float,
    concurrency: int = 32,
    cancel_event: asyncio.Event | None = None,
) -> list[RankedCandidate]:
    fan_out = await score_candidates(
        candidates,
        scorer,
        timeout_s=timeout_s,
        concurrency=concurrency,
        cancel_event=cancel_event,
    )
    if fan_out.timed_out or fan_out.cancelled or fan_out.failed:
        logger.warning(
            "Partial scoring (%s): %d/%d scored, %d failed, %d abandoned, timed_out=%s cancelled=%s",
            weights.name,
            len(fan_out.scored),
            len(candidates),
            fan_out.failed,
            fan_out.abandoned,
            fan_out.timed_out,
            fan_out.cancelled,
        )
    return rank_scored(fan_out.scored, weights)
