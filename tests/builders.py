from __future__ import annotations

from typing import Any

from iac_rollup.models import Edge, MatchDetails, MatchResult, Node, RepositoryScan
from iac_rollup.schema import NodeKind


def tf_resource(node_id: str, resource_type: str, name: str | None = None, **metadata: Any) -> Node:
    return Node(
        node_id=node_id,
        node_type=NodeKind.TERRAFORM_RESOURCE,
        name=name if name is not None else node_id.split(".")[-1],
        resource_type=resource_type,
        provider="aws",
        metadata=metadata,
    )


def k8s_node(
    node_id: str,
    name: str,
    namespace: str | None = None,
    node_type: str = NodeKind.K8S_DEPLOYMENT,
    **metadata: Any,
) -> Node:
    return Node(node_id=node_id, node_type=node_type, name=name, namespace=namespace, metadata=metadata)


def scan(repository_id: str, nodes: list[Node], edges: list[tuple[str, str] | tuple[str, str, str]] = ()) -> RepositoryScan:
    return RepositoryScan(
        repository_id=repository_id,
        scan_id=f"{repository_id}-scan",
        nodes=list(nodes),
        edges=[Edge(source=edge[0], target=edge[1], edge_type=edge[2] if len(edge) > 2 else "depends_on") for edge in edges],
    )


def match(
    source: tuple[str, str],
    target: tuple[str, str],
    strategy: str = "resource_id",
    confidence: int = 100,
    priority: int = 50,
) -> MatchResult:
    return MatchResult(
        source_node_id=source[1],
        target_node_id=target[1],
        source_repository_id=source[0],
        target_repository_id=target[0],
        source_scan_id=f"{source[0]}-scan",
        target_scan_id=f"{target[0]}-scan",
        strategy=strategy,
        confidence=confidence,
        priority=priority,
        details=MatchDetails(matched_attribute="id", source_value=source[1], target_value=target[1]),
    )
