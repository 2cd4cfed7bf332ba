from __future__ import annotations

import random
from dataclasses import replace
from typing import Any

from iac_rollup.models import Edge, Node, RepositoryScan, SourceLocation
from iac_rollup.schema import EdgeKind, NodeKind

_SERVICES = [
    "billing",
    "checkout",
    "catalog",
    "payments",
    "search",
    "identity",
    "ledger",
    "notifications",
]
_ENVIRONMENTS = ["prod", "staging", "dev"]
_TEAMS = ["platform", "data", "web", "core"]
_ACCOUNTS = ["111111111111", "222222222222", "333333333333"]
_CHARTS = ["nginx", "redis", "postgresql", "kafka"]
_KINDS = ["s3_bucket", "iam_role", "deployment", "helm_release"]

_EDGE_TYPES = {
    NodeKind.TERRAFORM_RESOURCE: EdgeKind.DEPENDS_ON,
    NodeKind.K8S_DEPLOYMENT: EdgeKind.REFERENCES,
    NodeKind.HELM_RELEASE: EdgeKind.MODULE_CALL,
}


class ReferenceScanGenerator:
    """Generate synthetic repository scans (with intentionally shared resources) for tests and benchmarks.

    Every repository receives a copy of each shared resource. Copies after the
    first repository may be perturbed: a changed id case, an id that is still
    ``(known after apply)``, reordered tags, or a typo in a k8s/helm name.
    """

    def __init__(self, seed: int = 7) -> None:
        self._rng = random.Random(seed)

    def generate(
        self,
        repository_count: int = 3,
        resources_per_repository: int = 30,
        shared_rate: float = 0.3,
        perturb_rate: float = 0.5,
    ) -> list[RepositoryScan]:
        if repository_count <= 0 or resources_per_repository <= 0:
            return []

        shared_count = int(resources_per_repository * shared_rate)
        shared_count = max(0, min(shared_count, resources_per_repository))
        shared = [self._profile(self._token(), i) for i in range(shared_count)]

        scans: list[RepositoryScan] = []
        for repo_index in range(repository_count):
            repository_id = f"repo-{repo_index:02d}"
            nodes: list[Node] = []
            for profile in shared:
                node = self._node(profile)
                if repo_index > 0 and self._rng.random() < perturb_rate:
                    node = self._perturb(node)
                nodes.append(node)

            unique_index = 0
            while len(nodes) < resources_per_repository:
                profile = self._profile(self._token(), unique_index)
                nodes.append(self._node(profile))
                unique_index += 1

            self._rng.shuffle(nodes)
            scan_id = f"{repository_id}-scan-1"
            scans.append(
                RepositoryScan(
                    repository_id=repository_id,
                    scan_id=scan_id,
                    nodes=[replace(node, repository_id=repository_id, scan_id=scan_id) for node in nodes],
                    edges=self._edges(nodes),
                )
            )
        return scans

    def _token(self) -> str:
        return f"{self._rng.getrandbits(40):010x}"

    def _profile(self, label: str, idx: int) -> dict[str, Any]:
        service = self._rng.choice(_SERVICES)
        environment = self._rng.choice(_ENVIRONMENTS)
        return {
            "kind": self._rng.choice(_KINDS),
            "label": label,
            "service": service,
            "environment": environment,
            "team": self._rng.choice(_TEAMS),
            "account": self._rng.choice(_ACCOUNTS),
            "chart": self._rng.choice(_CHARTS),
            "line": 1 + (idx % 400) * 10,
        }

    def _node(self, profile: dict[str, Any]) -> Node:
        kind = profile["kind"]
        base = f"{profile['service']}-{profile['environment']}-{profile['label']}"
        tags = {
            "Name": base,
            "Environment": profile["environment"],
            "Team": profile["team"],
        }
        location = SourceLocation(file="main.tf", line_start=profile["line"], line_end=profile["line"] + 8)

        if kind == "s3_bucket":
            return Node(
                node_id=f"aws_s3_bucket.{base.replace('-', '_')}",
                node_type=NodeKind.TERRAFORM_RESOURCE,
                name=base.replace("-", "_"),
                location=location,
                resource_type="aws_s3_bucket",
                provider="aws",
                metadata={"id": base, "bucket": base, "arn": f"arn:aws:s3:::{base}", "tags": tags},
            )
        if kind == "iam_role":
            return Node(
                node_id=f"aws_iam_role.{base.replace('-', '_')}",
                node_type=NodeKind.TERRAFORM_RESOURCE,
                name=base.replace("-", "_"),
                location=location,
                resource_type="aws_iam_role",
                provider="aws",
                metadata={
                    "id": base,
                    "arn": f"arn:aws:iam::{profile['account']}:role/{base}",
                    "tags": tags,
                },
            )

        location = SourceLocation(
            file=f"k8s/{profile['service']}.yaml",
            line_start=profile["line"],
            line_end=profile["line"] + 20,
        )
        if kind == "deployment":
            return Node(
                node_id=f"deployment/{profile['environment']}/{base}",
                node_type=NodeKind.K8S_DEPLOYMENT,
                name=base,
                location=location,
                namespace=profile["environment"],
                metadata={"labels": {"app": base, "team": profile["team"]}, "replicas": 2},
            )
        return Node(
            node_id=f"helm_release/{profile['environment']}/{base}",
            node_type=NodeKind.HELM_RELEASE,
            name=base,
            location=location,
            namespace=profile["environment"],
            metadata={"chart": profile["chart"], "version": f"1.{profile['line'] % 9}.0"},
        )

    def _perturb(self, node: Node) -> Node:
        if node.node_type == NodeKind.TERRAFORM_RESOURCE:
            variant = self._rng.choice(["case", "unknown_id", "tag_order"])
            metadata = dict(node.metadata)
            if variant == "case":
                metadata["id"] = str(metadata["id"]).upper()
            elif variant == "unknown_id":
                metadata["id"] = "(known after apply)"
            else:
                metadata["tags"] = dict(reversed(list(metadata["tags"].items())))
            return replace(node, metadata=metadata)

        variant = self._rng.choice(["case", "typo"])
        if variant == "case":
            return replace(node, name=node.name.upper())
        return replace(node, name=_typo(node.name, self._rng))

    def _edges(self, nodes: list[Node]) -> list[Edge]:
        edges: list[Edge] = []
        for i, node in enumerate(nodes[1:], start=1):
            if self._rng.random() < 0.3:
                continue
            target = self._rng.choice(nodes[:i])
            edges.append(
                Edge(
                    source=node.node_id,
                    target=target.node_id,
                    edge_type=_EDGE_TYPES.get(node.node_type, EdgeKind.DEPENDS_ON),
                )
            )
        return edges


def _typo(value: str, rng: random.Random) -> str:
    if len(value) < 6:
        return value
    drop_at = rng.randrange(1, len(value) - 1)
    return value[:drop_at] + value[drop_at + 1 :]
