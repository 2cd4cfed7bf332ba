from iac_rollup.graph.algorithms import (
    BfsTree,
    CycleDetected,
    CycleInfo,
    DegreeStats,
    DirectedGraph,
    GraphEdge,
    StronglyConnectedComponent,
    bfs_shortest_path,
    calculate_average_degree,
    calculate_density,
    find_all_paths,
    find_articulation_points,
    find_cycles,
    find_nodes_that_reach,
    find_reachable_nodes,
    shortest_path_tree,
    strongly_connected_components,
    topological_sort,
)

__all__ = [
    "BfsTree",
    "CycleDetected",
    "CycleInfo",
    "DegreeStats",
    "DirectedGraph",
    "GraphEdge",
    "StronglyConnectedComponent",
    "bfs_shortest_path",
    "calculate_average_degree",
    "calculate_density",
    "find_all_paths",
    "find_articulation_points",
    "find_cycles",
    "find_nodes_that_reach",
    "find_reachable_nodes",
    "shortest_path_tree",
    "strongly_connected_components",
    "topological_sort",
]
