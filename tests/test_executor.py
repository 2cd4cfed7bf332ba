import threading

import pytest
from builders import scan, tf_resource

from iac_rollup.config import BaseMatcherConfig, RollupSettings
from iac_rollup.errors import (
    MergeConflictError,
    RollupCancelledError,
    RollupExecutionError,
    RollupLimitExceededError,
)
from iac_rollup.matchers import BaseMatcher, MatcherFactory
from iac_rollup.models import Node
from iac_rollup.rollup import RollupExecutor

BUCKET_MATCHER = {"type": "resource_id", "resourceType": "aws_s3_bucket", "idAttribute": "bucket"}


class ExplodingMatcher(BaseMatcher):
    strategy_name = "exploding"
    config_type = BaseMatcherConfig

    def extract_match_key(self, node: Node) -> str | None:
        raise RuntimeError("boom")


class BucketFingerprintMatcher(BaseMatcher):
    strategy_name = "bucket_fingerprint"
    config_type = BaseMatcherConfig

    def extract_match_key(self, node: Node) -> str | None:
        value = node.metadata.get(self.config.options.get("attribute", "id"))
        return str(value).lower() if value else None


def _executor(settings: RollupSettings, factory: MatcherFactory | None = None) -> RollupExecutor:
    return RollupExecutor(factory=factory, settings=settings)


def test_bucket_scans_merge_into_one_node(bucket_scans, serial_settings) -> None:
    result = _executor(serial_settings).execute(bucket_scans, {"rollupId": "buckets", "matchers": [BUCKET_MATCHER]})

    assert result.rollup_id == "buckets"
    assert len(result.matches) == 1
    assert result.matches[0].source_ref == ("repo1", "aws_s3_bucket.assets")
    graph = result.graph
    merged_id = "merged:repo1:aws_s3_bucket.assets"
    assert graph.merged_id_for("repo2", "aws_s3_bucket.shared") == merged_id
    assert {(edge.source, edge.target) for edge in graph.edges} == {
        ("repo1:aws_lambda_function.app", merged_id),
        ("repo2:aws_cloudfront_distribution.cdn", merged_id),
    }
    assert result.stats.node_count == 4
    assert result.stats.unified_node_count == 3
    assert result.stats.merged_node_count == 1
    assert result.stats.cross_repository_edges == 2
    assert [m.strategy for m in result.stats.matchers] == ["resource_id"]
    assert result.excluded_matchers == []


def test_repeated_runs_give_identical_graphs(bucket_scans, serial_settings) -> None:
    executor = _executor(serial_settings)
    config = {"matchers": [BUCKET_MATCHER, {"type": "name"}]}

    first = executor.execute(bucket_scans, config)
    second = executor.execute(bucket_scans, config)

    assert first.graph.nodes == second.graph.nodes
    assert first.graph.edges == second.graph.edges
    assert first.matches == second.matches


def test_concurrency_does_not_change_the_result(reference_scans) -> None:
    config = {"matchers": [BUCKET_MATCHER, {"type": "arn"}, {"type": "name", "fuzzyThreshold": 85}]}

    serial = RollupExecutor(settings=RollupSettings(concurrency=1)).execute(reference_scans, config)
    parallel = RollupExecutor(settings=RollupSettings(concurrency=8)).execute(reference_scans, config)

    assert serial.matches == parallel.matches
    assert serial.graph.membership == parallel.graph.membership
    assert serial.graph.edges == parallel.graph.edges


def test_node_type_filters_limit_matching_only(bucket_scans, serial_settings) -> None:
    result = _executor(serial_settings).execute(
        bucket_scans,
        {"matchers": [BUCKET_MATCHER], "includeNodeTypes": ["k8s_deployment"]},
    )

    assert result.matches == []
    assert result.stats.unified_node_count == 4
    assert len(result.graph.edges) == 2


def test_needs_two_scans(bucket_scans, serial_settings) -> None:
    with pytest.raises(RollupExecutionError) as exc_info:
        _executor(serial_settings).execute(bucket_scans[:1], {"matchers": [BUCKET_MATCHER]})

    assert exc_info.value.code == "INSUFFICIENT_SCANS"


def test_node_limit_from_merge_options_or_settings(bucket_scans, serial_settings) -> None:
    with pytest.raises(RollupLimitExceededError) as exc_info:
        _executor(serial_settings).execute(
            bucket_scans,
            {"matchers": [BUCKET_MATCHER], "mergeOptions": {"maxNodes": 3}},
        )
    assert exc_info.value.code == "NODE_LIMIT_EXCEEDED"
    assert exc_info.value.details == {"node_count": 4, "max_nodes": 3}

    limited = RollupSettings(concurrency=1, max_nodes=2)
    with pytest.raises(RollupLimitExceededError):
        _executor(limited).execute(bucket_scans, {"matchers": [BUCKET_MATCHER]})


def test_invalid_and_unknown_matchers_are_excluded(bucket_scans, serial_settings) -> None:
    config = {
        "matchers": [
            {"type": "name", "fuzzyThreshold": "high"},
            {"type": "resource_id"},
            {"type": "mystery"},
            BUCKET_MATCHER,
            {"type": "arn", "enabled": False},
        ]
    }

    result = _executor(serial_settings).execute(bucket_scans, config)

    excluded = sorted((m.index, m.type, m.code) for m in result.excluded_matchers)
    assert excluded == [
        (0, "name", "INVALID_CONFIGURATION"),
        (1, "resource_id", "INVALID_CONFIGURATION"),
        (2, "mystery", "UNSUPPORTED_STRATEGY"),
    ]
    assert [m.strategy for m in result.stats.matchers] == ["resource_id"]
    assert len(result.matches) == 1


def test_no_usable_matchers(bucket_scans, serial_settings) -> None:
    with pytest.raises(RollupExecutionError) as exc_info:
        _executor(serial_settings).execute(bucket_scans, {"matchers": [{"type": "mystery"}, {"type": "arn", "enabled": False}]})

    assert exc_info.value.code == "NO_ENABLED_MATCHERS"
    assert exc_info.value.details["excluded"] == ["UNSUPPORTED_STRATEGY"]


def test_cancellation_before_matching(bucket_scans, serial_settings) -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RollupCancelledError) as exc_info:
        _executor(serial_settings).execute(bucket_scans, {"matchers": [BUCKET_MATCHER]}, cancel=cancel)

    assert exc_info.value.code == "EXECUTION_CANCELLED"


def test_merge_conflicts_surface_under_the_error_policy(bucket_scans, serial_settings) -> None:
    with pytest.raises(MergeConflictError) as exc_info:
        _executor(serial_settings).execute(
            bucket_scans,
            {"matchers": [BUCKET_MATCHER], "mergeOptions": {"conflictResolution": "error"}},
        )

    assert exc_info.value.code == "MERGE_CONFLICT"
    assert exc_info.value.details["key"] == "bucket"


def test_unexpected_errors_are_wrapped(serial_settings) -> None:
    factory = MatcherFactory()
    factory.register_matcher("exploding", ExplodingMatcher)
    scans = [scan("repo1", [tf_resource("a", "aws_s3_bucket")]), scan("repo2", [tf_resource("b", "aws_s3_bucket")])]

    with pytest.raises(RollupExecutionError) as exc_info:
        _executor(serial_settings, factory).execute(scans, {"matchers": [{"type": "exploding"}]})

    assert exc_info.value.code == "EXECUTION_FAILED"
    assert exc_info.value.details == {"error_type": "RuntimeError"}
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_registered_type_shadowing_a_builtin_keeps_its_own_fields(bucket_scans, serial_settings) -> None:
    factory = MatcherFactory()
    factory.register_matcher("name", BucketFingerprintMatcher)

    result = _executor(serial_settings, factory).execute(
        bucket_scans,
        {"matchers": [{"type": "name", "options": {"attribute": "bucket"}}]},
    )

    assert result.excluded_matchers == []
    assert [m.strategy for m in result.matches] == ["bucket_fingerprint"]
    assert result.graph.merged_id_for("repo2", "aws_s3_bucket.shared") == "merged:repo1:aws_s3_bucket.assets"
