from concurrent.futures import ThreadPoolExecutor

import pytest

from iac_rollup.config import BaseMatcherConfig, CustomMatcherConfig
from iac_rollup.errors import ConfigurationError, UnsupportedStrategyError
from iac_rollup.matchers import BaseMatcher, MatcherFactory, NameMatcher, ResourceIdMatcher, TagMatcher
from iac_rollup.models import Node

BUCKET_CONFIG = {"type": "resource_id", "resourceType": "aws_s3_bucket", "idAttribute": "bucket"}


class FingerprintMatcher(BaseMatcher):
    strategy_name = "fingerprint"
    config_type = BaseMatcherConfig

    def extract_match_key(self, node: Node) -> str | None:
        value = node.metadata.get("fingerprint")
        return str(value) if value else None


def test_builds_builtin_matchers_from_raw_mappings(factory: MatcherFactory) -> None:
    matcher = factory.create_matcher(BUCKET_CONFIG)

    assert isinstance(matcher, ResourceIdMatcher)
    assert matcher.config.id_attribute == "bucket"


def test_identical_configs_share_one_instance(factory: MatcherFactory) -> None:
    first = factory.create_matcher(BUCKET_CONFIG)
    reordered = factory.create_matcher({"idAttribute": "bucket", "resourceType": "aws_s3_bucket", "type": "resource_id"})

    assert first is reordered
    assert factory.cache_size == 1

    uncached = MatcherFactory(cache_enabled=False)
    assert uncached.create_matcher(BUCKET_CONFIG) is not uncached.create_matcher(BUCKET_CONFIG)
    assert uncached.cache_size == 0


def test_concurrent_creates_return_the_cached_instance(factory: MatcherFactory) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        matchers = list(pool.map(lambda _: factory.create_matcher(BUCKET_CONFIG), range(32)))

    assert all(matcher is matchers[0] for matcher in matchers)
    assert factory.cache_size == 1


def test_unknown_type_is_unsupported(factory: MatcherFactory) -> None:
    with pytest.raises(UnsupportedStrategyError) as exc_info:
        factory.create_matcher({"type": "mystery"})

    assert exc_info.value.code == "UNSUPPORTED_STRATEGY"
    assert exc_info.value.details["type"] == "mystery"
    assert "resource_id" in exc_info.value.details["supported"]


def test_invalid_config_fails_validation(factory: MatcherFactory) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        factory.create_matcher({"type": "resource_id"})

    assert exc_info.value.details["errors"] == ["RESOURCE_TYPE_REQUIRED"]
    assert [issue.code for issue in exc_info.value.issues] == ["RESOURCE_TYPE_REQUIRED"]
    assert factory.cache_size == 0

    with pytest.raises(ConfigurationError):
        factory.create_matcher({"type": "resource_id", "resourceType": "aws_s3_bucket", "bogus": 1})


def test_create_matchers_skips_disabled_and_orders_by_priority(factory: MatcherFactory) -> None:
    matchers = factory.create_matchers(
        [
            {"type": "name", "priority": 50},
            {"type": "arn", "priority": 90, "enabled": False},
            {**BUCKET_CONFIG, "priority": 80},
            {"type": "tag", "priority": 50, "requiredTags": [{"key": "Name"}]},
        ]
    )

    assert [type(matcher) for matcher in matchers] == [ResourceIdMatcher, NameMatcher, TagMatcher]


def test_custom_registration_is_checked_before_builtins(factory: MatcherFactory) -> None:
    factory.register_matcher("fingerprint", FingerprintMatcher)

    custom = factory.create_matcher({"type": "fingerprint", "options": {"salt": 1}})
    assert isinstance(custom, FingerprintMatcher)
    assert isinstance(custom.config, CustomMatcherConfig)
    assert factory.is_supported("fingerprint")
    assert "fingerprint" in factory.registered_types()

    builtin = factory.create_matcher({"type": "name"})
    assert isinstance(builtin, NameMatcher)

    factory.register_matcher("name", FingerprintMatcher)
    assert isinstance(factory.create_matcher({"type": "name"}), FingerprintMatcher)
    shadowed = factory.create_matcher({"type": "name", "options": {"salt": 1}, "fingerprintField": "digest"})
    assert isinstance(shadowed, FingerprintMatcher)
    assert isinstance(shadowed.config, CustomMatcherConfig)
    assert shadowed.config.options == {"salt": 1}
    assert shadowed.config.model_extra == {"fingerprintField": "digest"}

    assert factory.unregister_matcher("name")
    assert isinstance(factory.create_matcher({"type": "name"}), NameMatcher)
    assert not factory.unregister_matcher("name")

    with pytest.raises(ConfigurationError):
        factory.create_matcher({"type": "name", "options": {"salt": 1}})


def test_register_rejects_empty_type(factory: MatcherFactory) -> None:
    with pytest.raises(ValueError):
        factory.register_matcher("", FingerprintMatcher)


def test_clear_cache(factory: MatcherFactory) -> None:
    first = factory.create_matcher(BUCKET_CONFIG)
    factory.clear_cache()

    assert factory.cache_size == 0
    assert factory.create_matcher(BUCKET_CONFIG) is not first
