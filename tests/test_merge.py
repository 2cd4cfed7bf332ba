import pytest
from builders import k8s_node, match, scan, tf_resource

from iac_rollup.config import MergeOptions
from iac_rollup.errors import MergeConflictError
from iac_rollup.rollup import MergeEngine, merge_metadata
from iac_rollup.schema import ConflictResolution, NodeKind


def _three_repo_scans():
    return [
        scan(
            "repo1",
            [tf_resource("a", "aws_s3_bucket", name="logs", region="us-east-1"), tf_resource("x", "aws_iam_role")],
            [("x", "a")],
        ),
        scan(
            "repo2",
            [tf_resource("b", "aws_s3_bucket", name="logs", region="eu-west-1"), tf_resource("y", "aws_iam_role")],
            [("y", "b"), ("b", "y", "references")],
        ),
        scan("repo3", [tf_resource("c", "aws_s3_bucket", name="LOGS")]),
    ]


def test_matches_merge_transitively_with_deterministic_ids() -> None:
    graph = MergeEngine().merge(
        _three_repo_scans(),
        [match(("repo2", "b"), ("repo3", "c"), confidence=90), match(("repo1", "a"), ("repo2", "b"))],
    )

    merged = graph.nodes["merged:repo1:a"]
    assert merged.members == [("repo1", "a"), ("repo2", "b"), ("repo3", "c")]
    assert merged.name == "logs"
    assert merged.resource_type == "aws_s3_bucket"
    assert merged.confidence == 90
    assert merged.match_count == 2
    assert [p.repository_id for p in merged.provenance] == ["repo1", "repo2", "repo3"]
    assert graph.merged_id_for("repo3", "c") == "merged:repo1:a"
    assert graph.merged_id_for("repo1", "x") == "repo1:x"
    assert graph.stats.nodes_before_merge == 5
    assert graph.stats.nodes_after_merge == 3
    assert graph.stats.merged_node_count == 1


def test_edges_are_repointed_and_flag_cross_repository_links() -> None:
    graph = MergeEngine().merge(_three_repo_scans(), [match(("repo1", "a"), ("repo2", "b"))])

    edges = {(e.source, e.target, e.edge_type): e for e in graph.edges}
    assert set(edges) == {
        ("repo1:x", "merged:repo1:a", "depends_on"),
        ("repo2:y", "merged:repo1:a", "depends_on"),
        ("merged:repo1:a", "repo2:y", "references"),
    }
    assert all(edge.cross_repository for edge in graph.edges)
    assert graph.stats.edges_before_merge == 3
    assert graph.stats.cross_repository_edges == 3


def test_parallel_edges_collapse_and_record_their_repositories() -> None:
    scans = [
        scan("repo1", [tf_resource("app", "aws_lambda_function"), tf_resource("bucket", "aws_s3_bucket")], [("app", "bucket")]),
        scan("repo2", [tf_resource("app", "aws_lambda_function"), tf_resource("bucket", "aws_s3_bucket")], [("app", "bucket")]),
    ]
    matches = [match(("repo1", "app"), ("repo2", "app")), match(("repo1", "bucket"), ("repo2", "bucket"))]

    graph = MergeEngine().merge(scans, matches)

    assert len(graph.edges) == 1
    edge = graph.edges[0]
    assert (edge.source, edge.target) == ("merged:repo1:app", "merged:repo1:bucket")
    assert edge.metadata["source_repositories"] == ["repo1", "repo2"]
    assert edge.cross_repository is False


def test_self_loops_from_merging_are_dropped_and_flagged() -> None:
    scans = [
        scan("repo1", [tf_resource("a1", "aws_s3_bucket"), tf_resource("a2", "aws_s3_bucket")], [("a1", "a2")]),
        scan("repo2", [k8s_node("b", "bucket")]),
    ]
    graph = MergeEngine().merge(scans, [match(("repo1", "a1"), ("repo2", "b")), match(("repo1", "a2"), ("repo2", "b"))])

    assert graph.edges == []
    reasons = sorted(warning.reason for warning in graph.warnings)
    assert reasons == ["mixed node types", "several nodes from one repository"]
    assert graph.nodes["merged:repo1:a1"].node_type == NodeKind.TERRAFORM_RESOURCE


def test_edge_filters_from_options() -> None:
    matches = [match(("repo1", "a"), ("repo2", "b"))]

    only_depends = MergeEngine(preserve_edge_types=["references"]).merge(_three_repo_scans(), matches)
    assert [edge.edge_type for edge in only_depends.edges] == ["references"]

    no_cross = MergeEngine(MergeOptions(create_cross_repo_edges=False)).merge(_three_repo_scans(), matches)
    assert no_cross.edges == []

    no_provenance = MergeEngine(MergeOptions(preserve_source_info=False)).merge(_three_repo_scans(), matches)
    assert no_provenance.nodes["merged:repo1:a"].provenance == []


def test_metadata_conflict_policies() -> None:
    values = [
        {"region": "us-east-1", "tags": {"a": "1"}, "ports": [80]},
        {"region": "eu-west-1", "tags": {"b": "2"}, "ports": [80, 443]},
    ]

    merged, conflicts = merge_metadata(values, ConflictResolution.MERGE)
    assert merged == {"region": "us-east-1", "tags": {"a": "1", "b": "2"}, "ports": [80, 443]}
    assert conflicts == 3

    assert merge_metadata(values, ConflictResolution.FIRST)[0]["tags"] == {"a": "1"}
    assert merge_metadata(values, ConflictResolution.LAST)[0]["region"] == "eu-west-1"
    assert merge_metadata([{"k": 1}, {"k": 1, "j": 2}], ConflictResolution.ERROR) == ({"k": 1, "j": 2}, 0)

    with pytest.raises(MergeConflictError) as exc_info:
        merge_metadata(values, ConflictResolution.ERROR, merged_id="merged:repo1:a")
    assert exc_info.value.details["key"] == "region"


def test_error_policy_aborts_the_merge() -> None:
    engine = MergeEngine(MergeOptions(conflict_resolution=ConflictResolution.ERROR))

    with pytest.raises(MergeConflictError):
        engine.merge(_three_repo_scans(), [match(("repo1", "a"), ("repo2", "b"))])


def test_ids_stay_unique_when_parts_contain_the_separator() -> None:
    scans = [
        scan("a", [tf_resource("b:c", "aws_s3_bucket")]),
        scan("a:b", [tf_resource("c", "aws_s3_bucket"), tf_resource("d%3Ae", "aws_s3_bucket")]),
        scan("merged", [tf_resource("a:b:c", "aws_s3_bucket")]),
    ]

    graph = MergeEngine().merge(scans, [match(("a:b", "c"), ("a:b", "d%3Ae"))])

    assert graph.merged_id_for("a", "b:c") == "a:b%3Ac"
    assert graph.merged_id_for("a:b", "c") == "merged:a%3Ab:c"
    assert graph.merged_id_for("merged", "a:b:c") == "merged:a%3Ab%3Ac"
    assert len(graph.nodes) == graph.stats.nodes_after_merge == 3
    assert len(set(graph.membership.values())) == 3
