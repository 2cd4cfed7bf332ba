from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from iac_rollup.config import MergeOptions
from iac_rollup.errors import MergeConflictError
from iac_rollup.matchers.base import node_resource_type
from iac_rollup.models import (
    AmbiguousMergeWarning,
    MatchResult,
    MemberProvenance,
    MergedNode,
    MergeStats,
    Node,
    NodeRef,
    RepositoryScan,
    UnifiedEdge,
    UnifiedGraph,
)
from iac_rollup.schema import ConflictResolution

logger = logging.getLogger(__name__)


class MergeEngine:
    """Collapses transitively matched nodes into one merged node per class."""

    def __init__(self, options: MergeOptions | None = None, preserve_edge_types: Iterable[str] = ()) -> None:
        self._options = options or MergeOptions()
        self._preserve_edge_types = frozenset(preserve_edge_types)

    def merge(self, scans: Sequence[RepositoryScan], matches: Sequence[MatchResult]) -> UnifiedGraph:
        nodes: dict[NodeRef, Node] = {}
        scan_ids: dict[NodeRef, str] = {}
        uf = _UnionFind()
        for scan in scans:
            for node in scan.nodes:
                ref = (scan.repository_id, node.node_id)
                nodes[ref] = node
                scan_ids[ref] = scan.scan_id
                uf.add(ref)

        matches_by_ref: dict[NodeRef, list[MatchResult]] = defaultdict(list)
        for match in matches:
            if match.source_ref not in nodes or match.target_ref not in nodes:
                logger.debug("Skipping match for unknown node %s -> %s", match.source_ref, match.target_ref)
                continue
            uf.union(match.source_ref, match.target_ref)
            matches_by_ref[match.source_ref].append(match)
            matches_by_ref[match.target_ref].append(match)

        stats = MergeStats(nodes_before_merge=len(nodes))
        merged_nodes: dict[str, MergedNode] = {}
        membership: dict[NodeRef, str] = {}
        warnings: list[AmbiguousMergeWarning] = []

        groups = uf.groups()
        for root in sorted(groups):
            members = sorted(groups[root])
            merged, conflicts = self._merge_group(members, nodes, scan_ids, matches_by_ref)
            stats.metadata_conflicts += conflicts
            merged_nodes[merged.merged_id] = merged
            for ref in members:
                membership[ref] = merged.merged_id
            if merged.is_merged:
                stats.merged_node_count += 1
                warnings.extend(_ambiguity_warnings(merged, [nodes[ref] for ref in members]))

        for warning in warnings:
            logger.warning("Ambiguous merge %s", warning.message)

        edges = self._repoint_edges(scans, membership, merged_nodes, stats)

        stats.nodes_after_merge = len(merged_nodes)
        stats.edges_after_merge = len(edges)
        stats.cross_repository_edges = sum(1 for edge in edges if edge.cross_repository)

        return UnifiedGraph(
            nodes=merged_nodes,
            membership=membership,
            edges=edges,
            matches=list(matches),
            warnings=warnings,
            stats=stats,
        )

    def _merge_group(
        self,
        members: list[NodeRef],
        nodes: Mapping[NodeRef, Node],
        scan_ids: Mapping[NodeRef, str],
        matches_by_ref: Mapping[NodeRef, list[MatchResult]],
    ) -> tuple[MergedNode, int]:
        group_nodes = [nodes[ref] for ref in members]
        first_repository, first_node = members[0]
        merged_id = f"{_id_part(first_repository)}:{_id_part(first_node)}"
        if len(members) > 1:
            merged_id = f"merged:{merged_id}"

        class_matches: list[MatchResult] = []
        seen: set[int] = set()
        for ref in members:
            for match in matches_by_ref.get(ref, ()):
                if id(match) not in seen:
                    seen.add(id(match))
                    class_matches.append(match)

        metadata, conflicts = merge_metadata(
            [node.metadata for node in group_nodes],
            self._options.conflict_resolution,
            merged_id=merged_id,
        )

        provenance: list[MemberProvenance] = []
        if self._options.preserve_source_info:
            for ref, node in zip(members, group_nodes):
                best = matches_by_ref.get(ref, [])
                provenance.append(
                    MemberProvenance(
                        repository_id=ref[0],
                        node_id=ref[1],
                        scan_id=scan_ids[ref],
                        location=node.location,
                        strategy=best[0].strategy if best else None,
                        confidence=best[0].confidence if best else None,
                    )
                )

        resource_types = [rt for rt in (node_resource_type(node) for node in group_nodes) if rt]
        merged = MergedNode(
            merged_id=merged_id,
            node_type=_most_common([node.node_type for node in group_nodes]),
            name=_most_common([node.name for node in group_nodes]),
            members=members,
            provenance=provenance,
            metadata=metadata,
            resource_type=_most_common(resource_types) if resource_types else None,
            strategy=class_matches[0].strategy if class_matches else None,
            confidence=min(match.confidence for match in class_matches) if class_matches else None,
            match_count=len(class_matches),
        )
        return merged, conflicts

    def _repoint_edges(
        self,
        scans: Sequence[RepositoryScan],
        membership: Mapping[NodeRef, str],
        merged_nodes: Mapping[str, MergedNode],
        stats: MergeStats,
    ) -> list[UnifiedEdge]:
        edges: dict[tuple[str, str, str], UnifiedEdge] = {}
        for scan in scans:
            for edge in scan.edges:
                stats.edges_before_merge += 1
                if self._preserve_edge_types and edge.edge_type not in self._preserve_edge_types:
                    continue
                source = membership.get((scan.repository_id, edge.source))
                target = membership.get((scan.repository_id, edge.target))
                if source is None or target is None:
                    logger.debug("Dropping dangling edge %s -> %s in %s", edge.source, edge.target, scan.repository_id)
                    continue
                if source == target and edge.source != edge.target:
                    continue

                cross_repository = merged_nodes[source].repository_ids != merged_nodes[target].repository_ids
                if cross_repository and not self._options.create_cross_repo_edges:
                    continue

                key = (source, target, edge.edge_type)
                existing = edges.get(key)
                if existing is not None:
                    repositories = existing.metadata.setdefault("source_repositories", [])
                    if scan.repository_id not in repositories:
                        repositories.append(scan.repository_id)
                    continue
                edges[key] = UnifiedEdge(
                    source=source,
                    target=target,
                    edge_type=edge.edge_type,
                    cross_repository=cross_repository,
                    metadata={**edge.metadata, "source_repositories": [scan.repository_id]},
                )
        return list(edges.values())


def merge_metadata(
    values: Sequence[Mapping[str, Any]],
    policy: ConflictResolution,
    merged_id: str = "",
) -> tuple[dict[str, Any], int]:
    """Combine member metadata; returns the merged mapping and the number of conflicting keys.

    ``first``/``last`` take the value of the first or last member that has the
    key, ``merge`` merges mappings and lists recursively (first member wins
    for scalars), and ``error`` raises on any disagreement.
    """
    keys: list[str] = []
    for mapping in values:
        for key in mapping:
            if key not in keys:
                keys.append(key)

    merged: dict[str, Any] = {}
    conflicts = 0
    for key in keys:
        present = [mapping[key] for mapping in values if key in mapping]
        conflicting = any(value != present[0] for value in present[1:])
        if conflicting:
            conflicts += 1

        if policy == ConflictResolution.FIRST:
            merged[key] = present[0]
        elif policy == ConflictResolution.LAST:
            merged[key] = present[-1]
        elif policy == ConflictResolution.ERROR:
            if conflicting:
                raise MergeConflictError(
                    f"Conflicting values for metadata key {key!r} in {merged_id}",
                    details={"merged_id": merged_id, "key": key, "values": [repr(value) for value in present]},
                )
            merged[key] = present[0]
        else:
            merged[key] = _merge_values(present)
    return merged, conflicts


def _merge_values(values: list[Any]) -> Any:
    if all(isinstance(value, Mapping) for value in values):
        return merge_metadata(values, ConflictResolution.MERGE)[0]
    if all(isinstance(value, list) for value in values):
        combined: list[Any] = []
        for value in values:
            for item in value:
                if item not in combined:
                    combined.append(item)
        return combined
    return values[0]


def _id_part(value: str) -> str:
    # percent-escapes "%" and ":" within one id part
    return value.replace("%", "%25").replace(":", "%3A")


def _most_common(values: list[str]) -> str:
    counts = Counter(values)
    return max(dict.fromkeys(values), key=lambda value: counts[value])


def _ambiguity_warnings(merged: MergedNode, nodes: list[Node]) -> list[AmbiguousMergeWarning]:
    warnings: list[AmbiguousMergeWarning] = []

    node_types = sorted({node.node_type for node in nodes})
    if len(node_types) > 1:
        warnings.append(
            AmbiguousMergeWarning(
                merged_id=merged.merged_id,
                reason="mixed node types",
                members=list(merged.members),
                values=node_types,
            )
        )

    resource_types = sorted({rt for rt in (node_resource_type(node) for node in nodes) if rt})
    if len(resource_types) > 1:
        warnings.append(
            AmbiguousMergeWarning(
                merged_id=merged.merged_id,
                reason="mixed resource types",
                members=list(merged.members),
                values=resource_types,
            )
        )

    repositories = Counter(repository_id for repository_id, _ in merged.members)
    repeated = sorted(repository_id for repository_id, count in repositories.items() if count > 1)
    if repeated:
        warnings.append(
            AmbiguousMergeWarning(
                merged_id=merged.merged_id,
                reason="several nodes from one repository",
                members=list(merged.members),
                values=repeated,
            )
        )
    return warnings


class _UnionFind:
    def __init__(self) -> None:
        self._parent: dict[NodeRef, NodeRef] = {}

    def add(self, item: NodeRef) -> None:
        self._parent.setdefault(item, item)

    def find(self, item: NodeRef) -> NodeRef:
        if item not in self._parent:
            self._parent[item] = item
            return item
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, left: NodeRef, right: NodeRef) -> None:
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left == root_right:
            return
        if root_right < root_left:
            root_left, root_right = root_right, root_left
        self._parent[root_right] = root_left

    def groups(self) -> dict[NodeRef, list[NodeRef]]:
        grouped: dict[NodeRef, list[NodeRef]] = defaultdict(list)
        for item in list(self._parent):
            grouped[self.find(item)].append(item)
        return grouped
