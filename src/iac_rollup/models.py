from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from iac_rollup.graph.algorithms import DirectedGraph, GraphEdge

NodeRef = tuple[str, str]
"""(repository_id, node_id): a node's identity across all scans."""


@dataclass(frozen=True, slots=True)
class SourceLocation:
    file: str = ""
    line_start: int = 0
    line_end: int = 0


@dataclass(frozen=True, slots=True)
class Node:
    """A resource discovered in one repository scan."""

    node_id: str
    node_type: str
    name: str
    location: SourceLocation = field(default_factory=SourceLocation)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    resource_type: str | None = None
    provider: str | None = None
    namespace: str | None = None
    repository_id: str = ""
    scan_id: str = ""


@dataclass(frozen=True, slots=True)
class Edge:
    source: str
    target: str
    edge_type: str = "depends_on"
    edge_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RepositoryScan:
    """One repository's parsed graph, as handed over by the parsing layer."""

    repository_id: str
    scan_id: str
    nodes: list[Node]
    edges: list[Edge] = field(default_factory=list)


@dataclass(slots=True)
class MatchCandidate:
    """A node prepared by one matcher for comparison."""

    node: Node
    repository_id: str
    scan_id: str
    match_key: str | None
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def ref(self) -> NodeRef:
        return (self.repository_id, self.node.node_id)


@dataclass(frozen=True, slots=True)
class MatchDetails:
    matched_attribute: str
    source_value: str
    target_value: str
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Cross-repository match between two candidates with a 0-100 confidence."""

    source_node_id: str
    target_node_id: str
    source_repository_id: str
    target_repository_id: str
    source_scan_id: str
    target_scan_id: str
    strategy: str
    confidence: int
    priority: int
    details: MatchDetails

    @property
    def source_ref(self) -> NodeRef:
        return (self.source_repository_id, self.source_node_id)

    @property
    def target_ref(self) -> NodeRef:
        return (self.target_repository_id, self.target_node_id)


@dataclass(slots=True)
class MemberProvenance:
    """Where one original node in a merged node came from."""

    repository_id: str
    node_id: str
    scan_id: str
    location: SourceLocation
    strategy: str | None = None
    confidence: int | None = None


@dataclass(slots=True)
class MergedNode:
    merged_id: str
    node_type: str
    name: str
    members: list[NodeRef]
    provenance: list[MemberProvenance]
    metadata: dict[str, Any] = field(default_factory=dict)
    resource_type: str | None = None
    strategy: str | None = None
    confidence: int | None = None
    match_count: int = 0

    @property
    def is_merged(self) -> bool:
        return len(self.members) > 1

    @property
    def repository_ids(self) -> list[str]:
        return sorted({repository_id for repository_id, _ in self.members})


@dataclass(slots=True)
class UnifiedEdge:
    source: str
    target: str
    edge_type: str
    cross_repository: bool
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AmbiguousMergeWarning:
    """A transitive merge that joined nodes which look structurally different."""

    merged_id: str
    reason: str
    members: list[NodeRef]
    values: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        joined = ", ".join(self.values)
        return f"{self.merged_id}: {self.reason} ({joined})"


@dataclass(slots=True)
class MergeStats:
    nodes_before_merge: int = 0
    nodes_after_merge: int = 0
    edges_before_merge: int = 0
    edges_after_merge: int = 0
    merged_node_count: int = 0
    cross_repository_edges: int = 0
    metadata_conflicts: int = 0


@dataclass(slots=True)
class UnifiedGraph:
    nodes: dict[str, MergedNode]
    membership: dict[NodeRef, str]
    edges: list[UnifiedEdge]
    matches: list[MatchResult] = field(default_factory=list)
    warnings: list[AmbiguousMergeWarning] = field(default_factory=list)
    stats: MergeStats = field(default_factory=MergeStats)

    def merged_id_for(self, repository_id: str, node_id: str) -> str | None:
        return self.membership.get((repository_id, node_id))

    def merged_nodes(self) -> list[MergedNode]:
        return [node for node in self.nodes.values() if node.is_merged]

    def groups(self) -> list[list[NodeRef]]:
        return [list(node.members) for node in self.nodes.values()]

    def to_directed_graph(self) -> DirectedGraph:
        return DirectedGraph(
            sorted(self.nodes),
            [GraphEdge(edge.source, edge.target, edge.edge_type) for edge in self.edges],
        )
