from builders import k8s_node

from iac_rollup.config import NameMatcherConfig
from iac_rollup.matchers import NameMatcher
from iac_rollup.models import Node
from iac_rollup.schema import NodeKind


def _compare(matcher: NameMatcher, left: Node, right: Node):
    left_candidates = matcher.extract_candidates([left], "repo1", "scan1")
    right_candidates = matcher.extract_candidates([right], "repo2", "scan2")
    if not left_candidates or not right_candidates:
        return None
    return matcher.compare(left_candidates[0], right_candidates[0])


def test_same_name_in_same_namespace_matches() -> None:
    matcher = NameMatcher(NameMatcherConfig())
    result = _compare(matcher, k8s_node("d1", "api", "prod"), k8s_node("d2", "API", "prod"))

    assert result is not None
    assert result.confidence == 100
    assert result.details.source_value == "prod/api"
    assert result.details.context["fuzzy_match_used"] is False


def test_case_sensitive_names_must_match_exactly() -> None:
    matcher = NameMatcher(NameMatcherConfig(case_sensitive=True))

    assert _compare(matcher, k8s_node("d1", "api", "prod"), k8s_node("d2", "API", "prod")) is None
    assert _compare(matcher, k8s_node("d1", "api", "prod"), k8s_node("d2", "api", "prod")) is not None


def test_namespace_and_node_type_scope_matches() -> None:
    matcher = NameMatcher(NameMatcherConfig())

    assert _compare(matcher, k8s_node("d1", "api", "prod"), k8s_node("d2", "api", "dev")) is None
    service = k8s_node("s1", "api", "prod", node_type=NodeKind.K8S_SERVICE)
    assert _compare(matcher, k8s_node("d1", "api", "prod"), service) is None

    unscoped = NameMatcher(NameMatcherConfig(include_namespace=False))
    result = _compare(unscoped, k8s_node("d1", "api", "prod"), k8s_node("d2", "api", "dev"))
    assert result is not None
    assert result.details.source_value == "api"


def test_fuzzy_threshold_scores_by_similarity() -> None:
    matcher = NameMatcher(NameMatcherConfig(fuzzy_threshold=80))
    left = k8s_node("d1", "payments-api", "prod")
    right = k8s_node("d2", "payment-api", "prod")

    result = _compare(matcher, left, right)

    assert result is not None
    assert result.confidence == 92
    assert result.details.context["fuzzy_match_used"] is True
    candidate = matcher.extract_candidates([left], "repo1", "scan1")[0]
    assert matcher.blocking_key(candidate) == "k8s_deployment|prod"
    assert _compare(matcher, k8s_node("d1", "payments", "prod"), k8s_node("d2", "ledger", "prod")) is None


def test_patterns_limit_candidates() -> None:
    matcher = NameMatcher(NameMatcherConfig(pattern="api-*", namespace_pattern="prod*"))
    nodes = [
        k8s_node("d1", "api-gateway", "production"),
        k8s_node("d2", "web", "production"),
        k8s_node("d3", "api-auth", "dev"),
        k8s_node("d4", "api-auth"),
        Node(node_id="unnamed", node_type=NodeKind.K8S_DEPLOYMENT, name="  "),
    ]

    candidates = matcher.extract_candidates(nodes, "repo1", "scan1")

    assert [candidate.node.node_id for candidate in candidates] == ["d1"]


def test_regex_syntax_is_kept_in_patterns() -> None:
    matcher = NameMatcher(NameMatcherConfig(pattern=r"web-[0-9]+", include_namespace=False))
    nodes = [k8s_node("d1", "web-12"), k8s_node("d2", "web-ab"), k8s_node("d3", "web-12-old")]

    assert [c.node.node_id for c in matcher.extract_candidates(nodes, "repo1", "scan1")] == ["d1"]


def test_namespace_can_come_from_metadata() -> None:
    matcher = NameMatcher(NameMatcherConfig())
    node = Node(node_id="r1", node_type=NodeKind.HELM_RELEASE, name="redis", metadata={"namespace": "Cache"})

    assert matcher.extract_match_key(node) == "cache/redis"


def test_validation() -> None:
    invalid = NameMatcher(NameMatcherConfig(pattern="(", namespace_pattern="[", fuzzy_threshold=150))
    assert invalid.validate_config().error_codes() == [
        "INVALID_NAME_PATTERN",
        "INVALID_NAMESPACE_PATTERN",
        "INVALID_FUZZY_THRESHOLD",
    ]
    assert invalid.extract_candidates([k8s_node("d1", "api", "prod")], "repo1", "scan1") == []

    loose = NameMatcher(NameMatcherConfig(fuzzy_threshold=30)).validate_config()
    assert loose.is_valid
    assert loose.warning_codes() == ["LOW_FUZZY_THRESHOLD", "BROAD_NAME_MATCHING"]

    scoped = NameMatcher(NameMatcherConfig(pattern="api-*", case_sensitive=True)).validate_config()
    assert scoped.warning_codes() == []
