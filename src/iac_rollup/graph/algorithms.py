"""Directed-graph primitives used by the rollup and blast-radius code.

Everything here works on a ``DirectedGraph`` snapshot of node ids and edges
and knows nothing about matching or IaC. Results depend only on the order in
which nodes and edges were supplied, so callers that want reproducible output
should build graphs from sorted ids.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GraphEdge:
    source: str
    target: str
    edge_type: str = ""
    edge_id: str | None = None


class DirectedGraph:
    """Immutable node/edge snapshot with precomputed adjacency.

    Edge endpoints that are missing from ``nodes`` are appended in the order
    they are first seen.
    """

    __slots__ = ("_nodes", "_edges", "_node_set", "_successors", "_predecessors", "_transposed")

    def __init__(
        self,
        nodes: Iterable[str] = (),
        edges: Iterable[GraphEdge | tuple[str, str]] = (),
    ) -> None:
        ordered = list(dict.fromkeys(nodes))
        known = set(ordered)
        normalized: list[GraphEdge] = []
        for edge in edges:
            if not isinstance(edge, GraphEdge):
                edge = GraphEdge(edge[0], edge[1])
            for endpoint in (edge.source, edge.target):
                if endpoint not in known:
                    known.add(endpoint)
                    ordered.append(endpoint)
            normalized.append(edge)

        successors: dict[str, list[str]] = {node: [] for node in ordered}
        predecessors: dict[str, list[str]] = {node: [] for node in ordered}
        for edge in normalized:
            successors[edge.source].append(edge.target)
            predecessors[edge.target].append(edge.source)

        self._nodes = tuple(ordered)
        self._edges = tuple(normalized)
        self._node_set = frozenset(known)
        self._successors = {node: tuple(targets) for node, targets in successors.items()}
        self._predecessors = {node: tuple(sources) for node, sources in predecessors.items()}
        self._transposed: DirectedGraph | None = None

    @property
    def nodes(self) -> tuple[str, ...]:
        return self._nodes

    @property
    def edges(self) -> tuple[GraphEdge, ...]:
        return self._edges

    def __contains__(self, node: object) -> bool:
        return node in self._node_set

    def __len__(self) -> int:
        return len(self._nodes)

    def successors(self, node: str) -> tuple[str, ...]:
        return self._successors.get(node, ())

    def predecessors(self, node: str) -> tuple[str, ...]:
        return self._predecessors.get(node, ())

    def has_self_loop(self, node: str) -> bool:
        return node in self._successors.get(node, ())

    def transpose(self) -> DirectedGraph:
        if self._transposed is None:
            reversed_edges = [
                GraphEdge(edge.target, edge.source, edge.edge_type, edge.edge_id) for edge in self._edges
            ]
            self._transposed = DirectedGraph(self._nodes, reversed_edges)
        return self._transposed

    def filter_edges(self, edge_types: Iterable[str]) -> DirectedGraph:
        allowed = set(edge_types)
        return DirectedGraph(self._nodes, [edge for edge in self._edges if edge.edge_type in allowed])


@dataclass(frozen=True, slots=True)
class StronglyConnectedComponent:
    nodes: tuple[str, ...]
    is_cycle: bool


@dataclass(frozen=True, slots=True)
class CycleInfo:
    nodes: tuple[str, ...]
    edges: tuple[GraphEdge, ...]


@dataclass(frozen=True, slots=True)
class CycleDetected:
    """Returned by ``topological_sort`` when some nodes cannot be ordered."""

    residual: tuple[str, ...]
    partial_order: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        return f"graph has a cycle; {len(self.residual)} node(s) could not be ordered"


@dataclass(frozen=True, slots=True)
class BfsTree:
    source: str
    parents: dict[str, str | None]
    depths: dict[str, int]

    def path_to(self, node: str) -> list[str] | None:
        if node not in self.parents:
            return None
        path = [node]
        parent = self.parents[node]
        while parent is not None:
            path.append(parent)
            parent = self.parents[parent]
        path.reverse()
        return path


@dataclass(frozen=True, slots=True)
class DegreeStats:
    in_degree: float
    out_degree: float
    total_degree: float


def strongly_connected_components(graph: DirectedGraph) -> list[StronglyConnectedComponent]:
    """Tarjan's algorithm, iterative so deep graphs do not hit the recursion limit."""
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[StronglyConnectedComponent] = []
    counter = 0

    for root in graph.nodes:
        if root in index:
            continue

        index[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(graph.successors(root)))]

        while work:
            node, successors = work[-1]
            descended = False
            for successor in successors:
                if successor not in index:
                    index[successor] = lowlink[successor] = counter
                    counter += 1
                    stack.append(successor)
                    on_stack.add(successor)
                    work.append((successor, iter(graph.successors(successor))))
                    descended = True
                    break
                if successor in on_stack:
                    lowlink[node] = min(lowlink[node], index[successor])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index[node]:
                members: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    members.append(member)
                    if member == node:
                        break
                members.reverse()
                components.append(
                    StronglyConnectedComponent(
                        nodes=tuple(members),
                        is_cycle=len(members) > 1 or graph.has_self_loop(node),
                    )
                )

    return components


def find_cycles(graph: DirectedGraph) -> list[CycleInfo]:
    cycles: list[CycleInfo] = []
    for component in strongly_connected_components(graph):
        if not component.is_cycle:
            continue
        members = set(component.nodes)
        closing = tuple(edge for edge in graph.edges if edge.source in members and edge.target in members)
        cycles.append(CycleInfo(nodes=component.nodes, edges=closing))
    return cycles


def topological_sort(graph: DirectedGraph) -> list[str] | CycleDetected:
    """Kahn's algorithm. Cycles come back as a ``CycleDetected`` value, not an exception."""
    in_degree = {node: 0 for node in graph.nodes}
    for edge in graph.edges:
        in_degree[edge.target] += 1

    queue = deque(node for node in graph.nodes if in_degree[node] == 0)
    order: list[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for successor in graph.successors(node):
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    if len(order) != len(graph.nodes):
        placed = set(order)
        residual = tuple(node for node in graph.nodes if node not in placed)
        return CycleDetected(residual=residual, partial_order=tuple(order))
    return order


def shortest_path_tree(
    graph: DirectedGraph,
    source: str,
    max_depth: int | None = None,
    stop_at: str | None = None,
) -> BfsTree:
    """BFS parent tree from ``source``. The first discovery of a node wins."""
    parents: dict[str, str | None] = {}
    depths: dict[str, int] = {}
    if source not in graph:
        return BfsTree(source=source, parents=parents, depths=depths)

    parents[source] = None
    depths[source] = 0
    queue = deque([source])
    while queue:
        node = queue.popleft()
        depth = depths[node]
        if max_depth is not None and depth >= max_depth:
            continue
        for successor in graph.successors(node):
            if successor in parents:
                continue
            parents[successor] = node
            depths[successor] = depth + 1
            if successor == stop_at:
                return BfsTree(source=source, parents=parents, depths=depths)
            queue.append(successor)

    return BfsTree(source=source, parents=parents, depths=depths)


def bfs_shortest_path(graph: DirectedGraph, source: str, target: str) -> list[str] | None:
    if source not in graph or target not in graph:
        return None
    if source == target:
        return [source]
    return shortest_path_tree(graph, source, stop_at=target).path_to(target)


def find_reachable_nodes(graph: DirectedGraph, source: str, max_depth: int | None = None) -> dict[str, int]:
    """Hop distance to every node reachable from ``source`` (``source`` itself at 0)."""
    return dict(shortest_path_tree(graph, source, max_depth=max_depth).depths)


def find_nodes_that_reach(graph: DirectedGraph, target: str, max_depth: int | None = None) -> dict[str, int]:
    """Hop distance from every node that can reach ``target`` (``target`` itself at 0)."""
    return find_reachable_nodes(graph.transpose(), target, max_depth=max_depth)


def find_all_paths(
    graph: DirectedGraph,
    source: str,
    target: str,
    max_depth: int = 10,
    max_paths: int = 100,
) -> list[list[str]]:
    """Simple paths from ``source`` to ``target``, shortest first.

    Walks depth-first with an explicit stack of successor iterators, so long
    chains never hit the interpreter's recursion limit.
    """
    if source not in graph or target not in graph:
        return []
    if source == target:
        return [[source]]

    paths: list[list[str]] = []
    current = [source]
    visited = {source}
    stack = [iter(graph.successors(source))]
    while stack and len(paths) < max_paths:
        successor = next(stack[-1], None)
        if successor is None:
            stack.pop()
            visited.discard(current.pop())
            continue
        if successor in visited or len(current) > max_depth:
            continue
        if successor == target:
            paths.append(current + [successor])
            continue
        visited.add(successor)
        current.append(successor)
        stack.append(iter(graph.successors(successor)))

    return sorted(paths, key=len)


def find_articulation_points(graph: DirectedGraph) -> list[str]:
    """Cut vertices of the undirected view of ``graph`` (iterative low-link DFS)."""
    adjacency: dict[str, list[str]] = {node: [] for node in graph.nodes}
    seen_pairs: set[tuple[str, str]] = set()
    for edge in graph.edges:
        if edge.source == edge.target:
            continue
        pair = (min(edge.source, edge.target), max(edge.source, edge.target))
        if pair in seen_pairs:
            continue
        seen_pairs.add(pair)
        adjacency[edge.source].append(edge.target)
        adjacency[edge.target].append(edge.source)

    discovery: dict[str, int] = {}
    low: dict[str, int] = {}
    points: set[str] = set()
    timer = 0

    for root in graph.nodes:
        if root in discovery:
            continue
        discovery[root] = low[root] = timer
        timer += 1
        root_children = 0
        work: list[tuple[str, str | None, Iterable[str]]] = [(root, None, iter(adjacency[root]))]

        while work:
            node, parent, neighbors = work[-1]
            descended = False
            for neighbor in neighbors:
                if neighbor not in discovery:
                    discovery[neighbor] = low[neighbor] = timer
                    timer += 1
                    if node == root:
                        root_children += 1
                    work.append((neighbor, node, iter(adjacency[neighbor])))
                    descended = True
                    break
                if neighbor != parent:
                    low[node] = min(low[node], discovery[neighbor])
            if descended:
                continue

            work.pop()
            if parent is not None:
                low[parent] = min(low[parent], low[node])
                if parent != root and low[node] >= discovery[parent]:
                    points.add(parent)

        if root_children > 1:
            points.add(root)

    return sorted(points)


def calculate_density(graph: DirectedGraph) -> float:
    node_count = len(graph)
    if node_count < 2:
        return 0.0
    return len(graph.edges) / (node_count * (node_count - 1))


def calculate_average_degree(graph: DirectedGraph) -> DegreeStats:
    node_count = len(graph)
    if node_count == 0:
        return DegreeStats(in_degree=0.0, out_degree=0.0, total_degree=0.0)
    edge_count = len(graph.edges)
    return DegreeStats(
        in_degree=edge_count / node_count,
        out_degree=edge_count / node_count,
        total_degree=2 * edge_count / node_count,
    )
