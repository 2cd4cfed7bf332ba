"""Impact queries over a unified graph.

``BlastRadiusAnalyzer.analyze`` answers two questions for a set of seed
nodes: what is affected if the seeds change (forward), and what could affect
the seeds (reverse). Every impacted node carries the shortest path from each
seed that reaches it, so results can be traced back edge by edge.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from iac_rollup.errors import BlastRadiusError
from iac_rollup.graph.algorithms import BfsTree, DirectedGraph, shortest_path_tree
from iac_rollup.models import NodeRef, UnifiedGraph
from iac_rollup.schema import ImpactDirection, RiskLevel

logger = logging.getLogger(__name__)

EDGE_TYPE_WEIGHTS: dict[str, int] = {
    "depends_on": 10,
    "references": 8,
    "creates": 9,
    "destroys": 10,
    "module_call": 9,
    "module_source": 7,
    "module_provider": 6,
    "input_variable": 5,
    "output_value": 5,
    "local_reference": 4,
    "provider_config": 7,
    "provider_alias": 6,
    "data_source": 6,
    "data_reference": 5,
    "selector_match": 8,
    "namespace_member": 4,
    "volume_mount": 7,
    "service_target": 8,
    "ingress_backend": 8,
    "rbac_binding": 6,
    "configmap_ref": 5,
    "secret_ref": 7,
}
DEFAULT_EDGE_WEIGHT = 5
DECAY_FACTOR = 0.7

DEFAULT_MAX_DEPTH = 5


@dataclass(frozen=True, slots=True)
class ImpactedNode:
    """One impacted node. ``seed``, ``depth`` and ``path`` describe the nearest seed.

    ``paths`` holds the shortest path from every seed that reaches the node,
    in seed order. Paths always follow real edge direction.
    """

    node_id: str
    depth: int
    seed: str
    path: tuple[str, ...]
    paths: dict[str, tuple[str, ...]] = field(default_factory=dict, hash=False)
    node_type: str = ""
    repository_ids: tuple[str, ...] = ()
    edge_type: str = ""
    via_repository_ids: tuple[str, ...] = ()
    impact_score: float = 0.0
    cross_repository: bool = False


@dataclass(frozen=True, slots=True)
class CrossRepositoryImpact:
    from_repository_ids: tuple[str, ...]
    to_repository_ids: tuple[str, ...]
    edge_type: str
    impacted_nodes: int


@dataclass(slots=True)
class ImpactSummary:
    total_impacted: int = 0
    direct_count: int = 0
    indirect_count: int = 0
    cross_repository_count: int = 0
    cross_repository_impact: list[CrossRepositoryImpact] = field(default_factory=list)
    impact_by_type: dict[str, int] = field(default_factory=dict)
    impact_by_repository: dict[str, int] = field(default_factory=dict)
    impact_by_depth: dict[int, int] = field(default_factory=dict)
    risk_level: RiskLevel = RiskLevel.LOW
    impact_score: float = 0.0


@dataclass(slots=True)
class ImpactSet:
    direction: ImpactDirection
    nodes: list[ImpactedNode]
    summary: ImpactSummary

    @property
    def node_ids(self) -> set[str]:
        return {node.node_id for node in self.nodes}

    @property
    def direct(self) -> list[ImpactedNode]:
        return [node for node in self.nodes if node.depth == 1]

    @property
    def indirect(self) -> list[ImpactedNode]:
        return [node for node in self.nodes if node.depth > 1]

    def get(self, node_id: str) -> ImpactedNode | None:
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None


@dataclass(slots=True)
class BlastRadiusResult:
    seeds: list[str]
    direction: ImpactDirection
    max_depth: int | None
    include_cross_repository: bool = True
    include_indirect: bool = True
    forward: ImpactSet | None = None
    reverse: ImpactSet | None = None
    summary: ImpactSummary = field(default_factory=ImpactSummary)


class BlastRadiusAnalyzer:
    """Forward and reverse reachability from seed nodes, with paths and a risk summary.

    Seeds are merged ids, or ``(repository_id, node_id)`` pairs when the
    analyzer was built from a ``UnifiedGraph``.
    """

    def __init__(self, graph: UnifiedGraph | DirectedGraph) -> None:
        if isinstance(graph, UnifiedGraph):
            self._unified: UnifiedGraph | None = graph
            self._graph = graph.to_directed_graph()
        else:
            self._unified = None
            self._graph = graph

    @property
    def graph(self) -> DirectedGraph:
        return self._graph

    def analyze(
        self,
        seeds: Iterable[str | NodeRef],
        direction: ImpactDirection | str = ImpactDirection.FORWARD,
        max_depth: int | None = DEFAULT_MAX_DEPTH,
        edge_types: Iterable[str] | None = None,
        include_cross_repository: bool = True,
        include_indirect: bool = True,
    ) -> BlastRadiusResult:
        """Impact of changing ``seeds``.

        ``max_depth=None`` walks without a hop limit. With
        ``include_cross_repository=False`` the walk never follows an edge whose
        endpoints belong to different repositories; with
        ``include_indirect=False`` only nodes one hop from a seed are reported.
        """
        try:
            direction = ImpactDirection(direction)
        except ValueError as exc:
            raise BlastRadiusError(
                f"Unknown impact direction {direction!r}",
                code="INVALID_DIRECTION",
                details={"direction": str(direction)},
            ) from exc
        if max_depth is not None and max_depth < 0:
            raise BlastRadiusError(
                "max_depth must be zero or positive",
                code="INVALID_MAX_DEPTH",
                details={"max_depth": max_depth},
            )
        seed_ids = self._resolve_seeds(seeds)

        graph = self._graph if edge_types is None else self._graph.filter_edges(edge_types)
        if not include_cross_repository:
            graph = DirectedGraph(
                graph.nodes,
                [edge for edge in graph.edges if not self._crosses_repositories(edge.source, edge.target)],
            )

        result = BlastRadiusResult(
            seeds=seed_ids,
            direction=direction,
            max_depth=max_depth,
            include_cross_repository=include_cross_repository,
            include_indirect=include_indirect,
        )
        if direction in (ImpactDirection.FORWARD, ImpactDirection.BOTH):
            result.forward = self._impact(graph, seed_ids, ImpactDirection.FORWARD, max_depth, include_indirect)
        if direction in (ImpactDirection.REVERSE, ImpactDirection.BOTH):
            result.reverse = self._impact(graph, seed_ids, ImpactDirection.REVERSE, max_depth, include_indirect)

        combined: dict[str, ImpactedNode] = {}
        for impact_set in (result.forward, result.reverse):
            if impact_set is None:
                continue
            for node in impact_set.nodes:
                combined.setdefault(node.node_id, node)
        result.summary = summarize(list(combined.values()))

        logger.info(
            "Blast radius for %d seed(s) %s: %d impacted, risk %s",
            len(seed_ids),
            direction.value,
            result.summary.total_impacted,
            result.summary.risk_level.value,
        )
        return result

    def _resolve_seeds(self, seeds: Iterable[str | NodeRef]) -> list[str]:
        resolved: list[str] = []
        unknown: list[str] = []
        for seed in seeds:
            if isinstance(seed, tuple):
                merged_id = self._unified.merged_id_for(*seed) if self._unified is not None else None
                if merged_id is None:
                    unknown.append(":".join(seed))
                    continue
                seed = merged_id
            if seed not in self._graph:
                unknown.append(seed)
            elif seed not in resolved:
                resolved.append(seed)

        if unknown:
            raise BlastRadiusError(
                f"Unknown seed node(s): {', '.join(unknown)}",
                code="UNKNOWN_SEED",
                details={"unknown": unknown},
            )
        if not resolved:
            raise BlastRadiusError("At least one seed node is required", code="NO_SEEDS")
        return resolved

    def _impact(
        self,
        graph: DirectedGraph,
        seeds: Sequence[str],
        direction: ImpactDirection,
        max_depth: int | None,
        include_indirect: bool,
    ) -> ImpactSet:
        walk_graph = graph if direction == ImpactDirection.FORWARD else graph.transpose()
        edge_type_of: dict[tuple[str, str], str] = {}
        for edge in walk_graph.edges:
            edge_type_of.setdefault((edge.source, edge.target), edge.edge_type)

        trees: list[tuple[str, BfsTree]] = [
            (seed, shortest_path_tree(walk_graph, seed, max_depth=max_depth)) for seed in seeds
        ]
        nearest: dict[str, tuple[int, str, BfsTree]] = {}
        paths: dict[str, dict[str, tuple[str, ...]]] = {}
        seed_set = set(seeds)
        for seed, tree in trees:
            for node_id, depth in tree.depths.items():
                if node_id in seed_set:
                    continue
                walk = tree.path_to(node_id) or [seed, node_id]
                paths.setdefault(node_id, {})[seed] = (
                    tuple(walk) if direction == ImpactDirection.FORWARD else tuple(reversed(walk))
                )
                current = nearest.get(node_id)
                if current is None or depth < current[0]:
                    nearest[node_id] = (depth, seed, tree)

        impacted: list[ImpactedNode] = []
        for node_id, (depth, seed, tree) in nearest.items():
            if depth > 1 and not include_indirect:
                continue
            parent = tree.parents.get(node_id) or seed
            edge_type = edge_type_of.get((parent, node_id), "")
            weight = EDGE_TYPE_WEIGHTS.get(edge_type, DEFAULT_EDGE_WEIGHT)
            impacted.append(
                ImpactedNode(
                    node_id=node_id,
                    depth=depth,
                    seed=seed,
                    path=paths[node_id][seed],
                    paths=paths[node_id],
                    node_type=self._node_type(node_id),
                    repository_ids=self._repository_ids(node_id),
                    edge_type=edge_type,
                    via_repository_ids=self._repository_ids(parent),
                    impact_score=round(weight * DECAY_FACTOR ** (depth - 1), 2),
                    cross_repository=self._crosses_repositories(parent, node_id),
                )
            )

        impacted.sort(key=lambda node: (node.depth, node.node_id))
        return ImpactSet(direction=direction, nodes=impacted, summary=summarize(impacted))

    def _node_type(self, node_id: str) -> str:
        if self._unified is None or node_id not in self._unified.nodes:
            return ""
        return self._unified.nodes[node_id].node_type

    def _repository_ids(self, node_id: str) -> tuple[str, ...]:
        if self._unified is None or node_id not in self._unified.nodes:
            return ()
        return tuple(self._unified.nodes[node_id].repository_ids)

    def _crosses_repositories(self, left: str, right: str) -> bool:
        if self._unified is None:
            return False
        return self._repository_ids(left) != self._repository_ids(right)


def summarize(nodes: Sequence[ImpactedNode]) -> ImpactSummary:
    direct = sum(1 for node in nodes if node.depth == 1)
    by_repository: Counter[str] = Counter()
    for node in nodes:
        by_repository.update(node.repository_ids)

    cross_groups: Counter[tuple[tuple[str, ...], tuple[str, ...], str]] = Counter(
        (node.via_repository_ids, node.repository_ids, node.edge_type) for node in nodes if node.cross_repository
    )
    cross_impact = [
        CrossRepositoryImpact(
            from_repository_ids=from_ids,
            to_repository_ids=to_ids,
            edge_type=edge_type,
            impacted_nodes=count,
        )
        for (from_ids, to_ids, edge_type), count in sorted(cross_groups.items())
    ]

    return ImpactSummary(
        total_impacted=len(nodes),
        direct_count=direct,
        indirect_count=len(nodes) - direct,
        cross_repository_count=sum(cross_groups.values()),
        cross_repository_impact=cross_impact,
        impact_by_type=dict(Counter(node.node_type for node in nodes if node.node_type)),
        impact_by_repository=dict(sorted(by_repository.items())),
        impact_by_depth=dict(sorted(Counter(node.depth for node in nodes).items())),
        risk_level=risk_level(direct, len(nodes) - direct, len(cross_impact)),
        impact_score=round(sum(node.impact_score for node in nodes), 2),
    )


def risk_level(direct_count: int, indirect_count: int, cross_repository_groups: int) -> RiskLevel:
    """Each (from, to, edge type) cross-repository group weighs five times a direct hit."""
    score = direct_count * 2 + indirect_count + cross_repository_groups * 5
    if score < 10:
        return RiskLevel.LOW
    if score < 30:
        return RiskLevel.MEDIUM
    if score < 100 and cross_repository_groups < 5:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL
