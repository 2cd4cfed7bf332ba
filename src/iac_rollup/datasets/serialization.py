from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import asdict
from typing import Any

from iac_rollup.models import Edge, Node, RepositoryScan, SourceLocation


def scans_to_payload(scans: Sequence[RepositoryScan]) -> list[dict[str, Any]]:
    return [
        {
            "repository_id": scan.repository_id,
            "scan_id": scan.scan_id,
            "nodes": [_node_payload(node) for node in scan.nodes],
            "edges": [_edge_payload(edge) for edge in scan.edges],
        }
        for scan in scans
    ]


def scans_from_payload(payload: Sequence[Mapping[str, Any]]) -> list[RepositoryScan]:
    scans: list[RepositoryScan] = []
    for raw_scan in payload:
        repository_id = str(raw_scan["repository_id"])
        scan_id = str(raw_scan.get("scan_id") or f"{repository_id}-scan")
        nodes = [
            _node_from_payload(raw_node, repository_id, scan_id)
            for raw_node in raw_scan.get("nodes", [])
            if raw_node.get("node_id")
        ]
        edges = [
            Edge(
                source=str(raw_edge["source"]),
                target=str(raw_edge["target"]),
                edge_type=str(raw_edge.get("edge_type") or "depends_on"),
                edge_id=raw_edge.get("edge_id"),
                metadata=dict(raw_edge.get("metadata") or {}),
            )
            for raw_edge in raw_scan.get("edges", [])
        ]
        scans.append(RepositoryScan(repository_id=repository_id, scan_id=scan_id, nodes=nodes, edges=edges))
    return scans


def _node_payload(node: Node) -> dict[str, Any]:
    payload = asdict(node)
    payload["metadata"] = dict(node.metadata)
    return payload


def _edge_payload(edge: Edge) -> dict[str, Any]:
    payload = asdict(edge)
    payload["metadata"] = dict(edge.metadata)
    return payload


def _node_from_payload(raw: Mapping[str, Any], repository_id: str, scan_id: str) -> Node:
    location = raw.get("location") or {}
    return Node(
        node_id=str(raw["node_id"]),
        node_type=str(raw.get("node_type", "")),
        name=str(raw.get("name", "")),
        location=SourceLocation(
            file=str(location.get("file", "")),
            line_start=int(location.get("line_start", 0)),
            line_end=int(location.get("line_end", 0)),
        ),
        metadata=dict(raw.get("metadata") or {}),
        resource_type=raw.get("resource_type"),
        provider=raw.get("provider"),
        namespace=raw.get("namespace"),
        repository_id=repository_id,
        scan_id=scan_id,
    )
