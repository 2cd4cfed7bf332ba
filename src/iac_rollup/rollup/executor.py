from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from iac_rollup.config import (
    BaseMatcherConfig,
    RollupConfig,
    RollupSettings,
    load_rollup_config,
)
from iac_rollup.errors import (
    ConfigurationError,
    RollupError,
    RollupExecutionError,
    RollupLimitExceededError,
    UnsupportedStrategyError,
    ValidationIssue,
)
from iac_rollup.interfaces import CancellationToken, Matcher
from iac_rollup.matchers.factory import MatcherFactory
from iac_rollup.models import MatchResult, Node, RepositoryScan, UnifiedGraph
from iac_rollup.rollup.comparison import compare_candidates, raise_if_cancelled
from iac_rollup.rollup.merge import MergeEngine
from iac_rollup.rollup.resolution import RejectedMatch, resolve_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExcludedMatcher:
    """A configured matcher that was left out of the run, and why."""

    index: int
    type: str
    code: str
    message: str
    issues: tuple[ValidationIssue, ...] = ()


@dataclass(slots=True)
class MatcherRunStats:
    strategy: str
    priority: int
    candidate_count: int = 0
    bucket_count: int = 0
    comparison_count: int = 0
    match_count: int = 0


@dataclass(slots=True)
class RollupStats:
    scan_count: int = 0
    repository_count: int = 0
    node_count: int = 0
    candidate_count: int = 0
    comparison_count: int = 0
    raw_match_count: int = 0
    accepted_match_count: int = 0
    rejected_match_count: int = 0
    merged_node_count: int = 0
    unified_node_count: int = 0
    unified_edge_count: int = 0
    cross_repository_edges: int = 0
    warning_count: int = 0
    duration_ms: float = 0.0
    matchers: list[MatcherRunStats] = field(default_factory=list)


@dataclass(slots=True)
class RollupExecutionResult:
    rollup_id: str
    graph: UnifiedGraph
    matches: list[MatchResult]
    rejected_matches: list[RejectedMatch]
    excluded_matchers: list[ExcludedMatcher]
    stats: RollupStats


class RollupExecutor:
    """Runs matchers over repository scans and merges the results into one graph.

    A run either returns a complete ``RollupExecutionResult`` or raises a
    ``RollupExecutionError``; nothing partial escapes.
    """

    def __init__(self, factory: MatcherFactory | None = None, settings: RollupSettings | None = None) -> None:
        self._settings = settings or RollupSettings()
        self._factory = factory or MatcherFactory(cache_enabled=self._settings.cache_matchers)

    @property
    def factory(self) -> MatcherFactory:
        return self._factory

    def execute(
        self,
        scans: Sequence[RepositoryScan],
        config: RollupConfig | Mapping[str, Any],
        cancel: CancellationToken | None = None,
    ) -> RollupExecutionResult:
        try:
            return self._execute(scans, config, cancel)
        except RollupExecutionError:
            raise
        except RollupError as exc:
            raise RollupExecutionError(exc.message, code=exc.code, details=exc.details) from exc
        except Exception as exc:
            raise RollupExecutionError(
                f"Rollup execution failed: {exc}",
                details={"error_type": type(exc).__name__},
            ) from exc

    def _execute(
        self,
        scans: Sequence[RepositoryScan],
        config: RollupConfig | Mapping[str, Any],
        cancel: CancellationToken | None,
    ) -> RollupExecutionResult:
        started = time.perf_counter()
        rollup_config, indexed, excluded = _prepare_config(config, self._factory)
        stats = RollupStats(
            scan_count=len(scans),
            repository_count=len({scan.repository_id for scan in scans}),
            node_count=sum(len(scan.nodes) for scan in scans),
        )
        self._validate_input(scans, rollup_config, stats.node_count)

        logger.info(
            "Starting rollup %s over %d scans (%d nodes)",
            rollup_config.rollup_id,
            stats.scan_count,
            stats.node_count,
        )

        matchers = self._build_matchers(indexed, excluded)
        if not matchers:
            raise RollupExecutionError(
                "No enabled matchers could be built",
                code="NO_ENABLED_MATCHERS",
                details={"excluded": [excluded_matcher.code for excluded_matcher in excluded]},
            )

        filtered = [(scan, _filter_nodes(scan.nodes, rollup_config)) for scan in scans]
        raw_matches: list[MatchResult] = []
        for matcher in matchers:
            raise_if_cancelled(cancel)
            candidates = []
            for scan, nodes in filtered:
                candidates.extend(matcher.extract_candidates(nodes, scan.repository_id, scan.scan_id))

            outcome = compare_candidates(
                matcher,
                candidates,
                concurrency=self._settings.concurrency,
                cancel=cancel,
            )
            raw_matches.extend(outcome.matches)
            stats.matchers.append(
                MatcherRunStats(
                    strategy=matcher.strategy,
                    priority=matcher.get_priority(),
                    candidate_count=len(candidates),
                    bucket_count=outcome.bucket_count,
                    comparison_count=outcome.comparison_count,
                    match_count=len(outcome.matches),
                )
            )
            stats.candidate_count += len(candidates)
            stats.comparison_count += outcome.comparison_count
            logger.debug(
                "%s matcher: %d candidates, %d comparisons, %d matches",
                matcher.strategy,
                len(candidates),
                outcome.comparison_count,
                len(outcome.matches),
            )

        raise_if_cancelled(cancel)
        resolution = resolve_matches(raw_matches)
        graph = MergeEngine(
            rollup_config.merge_options,
            preserve_edge_types=rollup_config.preserve_edge_types,
        ).merge(scans, resolution.accepted)

        stats.raw_match_count = len(raw_matches)
        stats.accepted_match_count = len(resolution.accepted)
        stats.rejected_match_count = len(resolution.rejected)
        stats.merged_node_count = graph.stats.merged_node_count
        stats.unified_node_count = graph.stats.nodes_after_merge
        stats.unified_edge_count = graph.stats.edges_after_merge
        stats.cross_repository_edges = graph.stats.cross_repository_edges
        stats.warning_count = len(graph.warnings)
        stats.duration_ms = round((time.perf_counter() - started) * 1000, 3)

        logger.info(
            "Rollup %s merged %d nodes into %d (%d matches accepted, %d rejected)",
            rollup_config.rollup_id,
            stats.node_count,
            stats.unified_node_count,
            stats.accepted_match_count,
            stats.rejected_match_count,
        )

        return RollupExecutionResult(
            rollup_id=rollup_config.rollup_id,
            graph=graph,
            matches=resolution.accepted,
            rejected_matches=resolution.rejected,
            excluded_matchers=excluded,
            stats=stats,
        )

    def _validate_input(self, scans: Sequence[RepositoryScan], config: RollupConfig, node_count: int) -> None:
        if len(scans) < 2:
            raise RollupExecutionError(
                "A rollup needs at least two repository scans",
                code="INSUFFICIENT_SCANS",
                details={"scan_count": len(scans)},
            )

        limits = [limit for limit in (config.merge_options.max_nodes, self._settings.max_nodes) if limit is not None]
        if limits and node_count > min(limits):
            raise RollupLimitExceededError(
                f"Rollup input has {node_count} nodes, more than the limit of {min(limits)}",
                details={"node_count": node_count, "max_nodes": min(limits)},
            )

    def _build_matchers(
        self,
        indexed: list[tuple[int, BaseMatcherConfig]],
        excluded: list[ExcludedMatcher],
    ) -> list[Matcher]:
        matchers: list[Matcher] = []
        for index, matcher_config in indexed:
            if not matcher_config.enabled:
                continue
            try:
                matchers.append(self._factory.create_matcher(matcher_config))
            except (ConfigurationError, UnsupportedStrategyError) as exc:
                excluded.append(_excluded(index, matcher_config.type, exc))
                logger.warning("Excluding %s matcher #%d: %s", matcher_config.type, index, exc.message)
        return sorted(matchers, key=lambda matcher: -matcher.get_priority())


def _prepare_config(
    config: RollupConfig | Mapping[str, Any],
    factory: MatcherFactory,
) -> tuple[RollupConfig, list[tuple[int, BaseMatcherConfig]], list[ExcludedMatcher]]:
    """Parse matcher configs one at a time so a malformed entry only excludes itself."""
    if isinstance(config, RollupConfig):
        return config, list(enumerate(config.matchers)), []

    data = dict(config)
    raw_matchers = data.pop("matchers", None) or ()
    indexed: list[tuple[int, BaseMatcherConfig]] = []
    excluded: list[ExcludedMatcher] = []
    for index, raw in enumerate(raw_matchers):
        try:
            indexed.append((index, factory.parse_config(raw)))
        except ConfigurationError as exc:
            matcher_type = raw.get("type") if isinstance(raw, Mapping) else None
            excluded.append(_excluded(index, str(matcher_type or "unknown"), exc))
            logger.warning("Excluding matcher #%d: %s", index, exc.message)

    data["matchers"] = [matcher_config for _, matcher_config in indexed]
    return load_rollup_config(data), indexed, excluded


def _excluded(index: int, matcher_type: str, exc: RollupError) -> ExcludedMatcher:
    return ExcludedMatcher(
        index=index,
        type=matcher_type,
        code=exc.code,
        message=exc.message,
        issues=tuple(getattr(exc, "issues", ())),
    )


def _filter_nodes(nodes: Sequence[Node], config: RollupConfig) -> list[Node]:
    include = set(config.include_node_types)
    exclude = set(config.exclude_node_types)
    return [
        node
        for node in nodes
        if (not include or node.node_type in include) and node.node_type not in exclude
    ]
