from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from iac_rollup.models import MatchDetails, MatchResult, NodeRef


@dataclass(frozen=True, slots=True)
class RejectedMatch:
    match: MatchResult
    reason: str
    conflicting_with: NodeRef | None = None


@dataclass(slots=True)
class Resolution:
    accepted: list[MatchResult] = field(default_factory=list)
    rejected: list[RejectedMatch] = field(default_factory=list)


def orient(match: MatchResult) -> MatchResult:
    """Point the match from the smaller (repository, node) reference to the larger one."""
    if match.source_ref <= match.target_ref:
        return match
    return replace(
        match,
        source_node_id=match.target_node_id,
        target_node_id=match.source_node_id,
        source_repository_id=match.target_repository_id,
        target_repository_id=match.source_repository_id,
        source_scan_id=match.target_scan_id,
        target_scan_id=match.source_scan_id,
        details=MatchDetails(
            matched_attribute=match.details.matched_attribute,
            source_value=match.details.target_value,
            target_value=match.details.source_value,
            context=match.details.context,
        ),
    )


def ranking_key(match: MatchResult) -> tuple[int, int, str, str, str, str, str]:
    return (
        -match.priority,
        -match.confidence,
        match.source_node_id,
        match.target_node_id,
        match.source_repository_id,
        match.target_repository_id,
        match.strategy,
    )


def resolve_matches(matches: Iterable[MatchResult]) -> Resolution:
    """Pick the matches that feed the merge.

    Matches are ranked by priority, then confidence, then node ids. Walking
    that ranking, the first result for a node pair wins, and each node keeps
    at most one accepted match into any other repository.
    """
    ranked = sorted((orient(match) for match in matches), key=ranking_key)
    resolution = Resolution()
    seen_pairs: set[tuple[NodeRef, NodeRef]] = set()
    links: dict[tuple[NodeRef, str], NodeRef] = {}

    for match in ranked:
        source = match.source_ref
        target = match.target_ref
        pair = (source, target)
        if pair in seen_pairs:
            resolution.rejected.append(RejectedMatch(match=match, reason="duplicate_pair"))
            continue
        seen_pairs.add(pair)

        existing = links.get((source, match.target_repository_id)) or links.get(
            (target, match.source_repository_id)
        )
        if existing is not None:
            resolution.rejected.append(
                RejectedMatch(match=match, reason="repository_conflict", conflicting_with=existing)
            )
            continue

        links[(source, match.target_repository_id)] = target
        links[(target, match.source_repository_id)] = source
        resolution.accepted.append(match)

    return resolution
