from iac_rollup.rollup.comparison import ComparisonOutcome, build_buckets, compare_candidates
from iac_rollup.rollup.executor import (
    ExcludedMatcher,
    MatcherRunStats,
    RollupExecutionResult,
    RollupExecutor,
    RollupStats,
)
from iac_rollup.rollup.merge import MergeEngine, merge_metadata
from iac_rollup.rollup.resolution import RejectedMatch, Resolution, resolve_matches

__all__ = [
    "ComparisonOutcome",
    "ExcludedMatcher",
    "MatcherRunStats",
    "MergeEngine",
    "RejectedMatch",
    "Resolution",
    "RollupExecutionResult",
    "RollupExecutor",
    "RollupStats",
    "build_buckets",
    "compare_candidates",
    "merge_metadata",
    "resolve_matches",
]
