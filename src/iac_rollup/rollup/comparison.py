from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from iac_rollup.errors import RollupCancelledError
from iac_rollup.interfaces import CancellationToken, Matcher
from iac_rollup.models import MatchCandidate, MatchResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ComparisonOutcome:
    matches: list[MatchResult] = field(default_factory=list)
    bucket_count: int = 0
    comparison_count: int = 0


def build_buckets(matcher: Matcher, candidates: Sequence[MatchCandidate]) -> list[list[MatchCandidate]]:
    """Group candidates by blocking key, keeping only buckets that span repositories.

    Buckets come back sorted by key and keep candidate order inside each one.
    """
    buckets: dict[str, list[MatchCandidate]] = {}
    for candidate in candidates:
        key = matcher.blocking_key(candidate)
        if key is None:
            continue
        buckets.setdefault(key, []).append(candidate)

    return [
        bucket
        for _, bucket in sorted(buckets.items())
        if len({candidate.repository_id for candidate in bucket}) > 1
    ]


def compare_bucket(
    matcher: Matcher,
    bucket: Sequence[MatchCandidate],
    cancel: CancellationToken | None = None,
) -> tuple[list[MatchResult], int]:
    raise_if_cancelled(cancel)
    results: list[MatchResult] = []
    comparisons = 0
    for i, left in enumerate(bucket):
        for right in bucket[i + 1 :]:
            if left.repository_id == right.repository_id:
                continue
            comparisons += 1
            result = matcher.compare(left, right)
            if result is not None:
                results.append(result)
    return results, comparisons


def compare_candidates(
    matcher: Matcher,
    candidates: Sequence[MatchCandidate],
    concurrency: int = 1,
    cancel: CancellationToken | None = None,
) -> ComparisonOutcome:
    """Compare every cross-repository pair that shares a bucket.

    Buckets are independent, so with ``concurrency > 1`` they run on a thread
    pool. Partial results are concatenated in bucket order either way.
    """
    buckets = build_buckets(matcher, candidates)
    outcome = ComparisonOutcome(bucket_count=len(buckets))

    if concurrency <= 1 or len(buckets) <= 1:
        for bucket in buckets:
            results, comparisons = compare_bucket(matcher, bucket, cancel)
            outcome.matches.extend(results)
            outcome.comparison_count += comparisons
        return outcome

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="rollup-compare") as pool:
        futures: list[Future[tuple[list[MatchResult], int]]] = [
            pool.submit(compare_bucket, matcher, bucket, cancel) for bucket in buckets
        ]
        try:
            for future in futures:
                results, comparisons = future.result()
                outcome.matches.extend(results)
                outcome.comparison_count += comparisons
        except RollupCancelledError:
            for future in futures:
                future.cancel()
            raise

    logger.debug(
        "%s compared %d pairs across %d buckets on %d workers",
        matcher.strategy,
        outcome.comparison_count,
        outcome.bucket_count,
        concurrency,
    )
    return outcome


def raise_if_cancelled(cancel: CancellationToken | None) -> None:
    if cancel is not None and cancel.is_set():
        raise RollupCancelledError("Rollup execution was cancelled")
