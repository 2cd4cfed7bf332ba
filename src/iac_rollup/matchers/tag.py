from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from iac_rollup.config import TagMatcherConfig, TagRequirement
from iac_rollup.errors import ValidationIssue
from iac_rollup.matchers.base import BaseMatcher, node_resource_type
from iac_rollup.matchers.patterns import get_nested
from iac_rollup.models import MatchCandidate, Node
from iac_rollup.schema import MatchingStrategy, NodeKind, TagMatchMode

MANY_TAGS_ANY_MODE = 5
TAG_FIELDS = ("tags", "labels", "attributes.tags")


class TagMatcher(BaseMatcher):
    """Matches terraform resources that carry the same values for required tags."""

    strategy_name = MatchingStrategy.TAG
    config_type = TagMatcherConfig
    matched_attribute = "tags"

    config: TagMatcherConfig

    def __init__(self, config: TagMatcherConfig) -> None:
        super().__init__(config)
        ignored = {tag.lower() for tag in config.ignore_tags}
        self._requirements = [
            requirement
            for requirement in config.required_tags
            if requirement.key.strip() and requirement.key.lower() not in ignored
        ]
        self._value_patterns: dict[str, re.Pattern[str] | None] = {}
        for requirement in config.required_tags:
            pattern = requirement.value_pattern
            if pattern is None or pattern in self._value_patterns:
                continue
            try:
                self._value_patterns[pattern] = re.compile(pattern)
            except re.error:
                self._value_patterns[pattern] = None

    def can_handle(self, node: Node) -> bool:
        return node.node_type == NodeKind.TERRAFORM_RESOURCE

    def extract_match_key(self, node: Node) -> str | None:
        pairs = self._satisfied_pairs(read_tags(node.metadata))
        if pairs is None:
            return None
        return ";".join(f"{key}={value}" for key, value in pairs)

    def candidate_attributes(self, node: Node, match_key: str) -> dict[str, Any]:
        pairs = self._satisfied_pairs(read_tags(node.metadata)) or []
        return {
            "resource_type": node_resource_type(node),
            "tags": dict(pairs),
        }

    def calculate_confidence(self, left: MatchCandidate, right: MatchCandidate) -> int:
        left_pairs = set(left.attributes.get("tags", {}).items())
        right_pairs = set(right.attributes.get("tags", {}).items())
        union = left_pairs | right_pairs
        if not union:
            return 0
        shared = len(left_pairs & right_pairs)
        if shared == 0:
            return 0

        confidence = round(90 * shared / len(union))
        resource_type = left.attributes.get("resource_type")
        if resource_type is not None and resource_type == right.attributes.get("resource_type"):
            confidence += 10
        return min(confidence, 100)

    def blocking_key(self, candidate: MatchCandidate) -> str | None:
        if candidate.match_key is None:
            return None
        return candidate.node.node_type

    def match_context(self, left: MatchCandidate, right: MatchCandidate) -> dict[str, Any]:
        left_tags = left.attributes.get("tags", {})
        right_tags = right.attributes.get("tags", {})
        return {
            "source_tags": dict(left_tags),
            "target_tags": dict(right_tags),
            "shared_tags": sorted(key for key, value in left_tags.items() if right_tags.get(key) == value),
            "match_mode": str(self.config.match_mode),
            "required_tag_keys": [requirement.key for requirement in self.config.required_tags],
        }

    def validate_strategy_config(
        self,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        required = self.config.required_tags
        if not required:
            errors.append(
                ValidationIssue(
                    code="NO_REQUIRED_TAGS",
                    message="at least one required tag is needed",
                    path="requiredTags",
                )
            )
            return

        seen: set[str] = set()
        duplicates: set[str] = set()
        for index, requirement in enumerate(required):
            path = f"requiredTags.{index}"
            if not requirement.key.strip():
                errors.append(
                    ValidationIssue(code="EMPTY_TAG_KEY", message="tag key must not be empty", path=f"{path}.key")
                )
                continue
            if requirement.value_pattern is not None and self._value_patterns.get(requirement.value_pattern) is None:
                errors.append(
                    ValidationIssue(
                        code="INVALID_TAG_VALUE_PATTERN",
                        message=f"valuePattern for {requirement.key!r} is not a valid regular expression",
                        path=f"{path}.valuePattern",
                        value=requirement.value_pattern,
                    )
                )
            if requirement.value is not None and requirement.value_pattern is not None:
                warnings.append(
                    ValidationIssue(
                        code="REDUNDANT_TAG_VALUE",
                        message=f"{requirement.key!r} sets both value and valuePattern; value wins",
                        path=path,
                    )
                )
            lowered = requirement.key.lower()
            if lowered in seen:
                duplicates.add(lowered)
            seen.add(lowered)

        if duplicates:
            warnings.append(
                ValidationIssue(
                    code="DUPLICATE_TAG_KEYS",
                    message="tag keys are compared case-insensitively: " + ", ".join(sorted(duplicates)),
                    path="requiredTags",
                )
            )

        if self.config.match_mode == TagMatchMode.ANY and len(required) > MANY_TAGS_ANY_MODE:
            warnings.append(
                ValidationIssue(
                    code="MANY_TAGS_ANY_MODE",
                    message="'any' mode over many tags matches on a single shared tag",
                    path="requiredTags",
                    value=len(required),
                )
            )

    def _satisfied_pairs(self, tags: Mapping[str, str]) -> list[tuple[str, str]] | None:
        if not tags or not self._requirements:
            return None
        by_key = {key.lower(): value for key, value in tags.items()}

        satisfied: dict[str, tuple[str, str]] = {}
        for requirement in self._requirements:
            value = by_key.get(requirement.key.lower())
            if value is None or not self._accepts(requirement, value):
                if self.config.match_mode == TagMatchMode.ALL:
                    return None
                continue
            satisfied.setdefault(requirement.key.lower(), (requirement.key, value))

        if not satisfied:
            return None
        return [satisfied[key] for key in sorted(satisfied)]

    def _accepts(self, requirement: TagRequirement, value: str) -> bool:
        if requirement.value is not None:
            return value == requirement.value
        if requirement.value_pattern is not None:
            pattern = self._value_patterns.get(requirement.value_pattern)
            return pattern is not None and pattern.search(value) is not None
        return True


def read_tags(metadata: Mapping[str, Any]) -> dict[str, str]:
    """Tags from the first of ``tags``, ``labels`` or ``attributes.tags`` that is set."""
    for field in TAG_FIELDS:
        value = get_nested(metadata, field)
        if isinstance(value, Mapping) and value:
            return {str(key): str(tag_value) for key, tag_value in value.items() if tag_value is not None}
    return {}
