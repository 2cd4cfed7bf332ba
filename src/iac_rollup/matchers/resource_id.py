from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from iac_rollup.config import ResourceIdMatcherConfig
from iac_rollup.errors import ValidationIssue
from iac_rollup.matchers.base import BaseMatcher, node_resource_type
from iac_rollup.matchers.patterns import glob_to_regex, has_wildcard, metadata_value
from iac_rollup.models import MatchCandidate, Node
from iac_rollup.schema import MatchingStrategy, NodeKind

PLACEHOLDER_VALUES = frozenset(
    {"<computed>", "(known after apply)", "unknown", "null", "undefined", "n/a"}
)
FALLBACK_ID_FIELDS = ("id", "name", "unique_id", "resource_id")
MAX_KEY_LENGTH = 256

_PREFIX = re.compile(r"^(?:id-|resource-)")
_SUFFIX = re.compile(r"-id$")


class ResourceIdMatcher(BaseMatcher):
    """Matches terraform resources of one (glob) resource type by their cloud id."""

    strategy_name = MatchingStrategy.RESOURCE_ID
    config_type = ResourceIdMatcherConfig

    config: ResourceIdMatcherConfig

    def __init__(self, config: ResourceIdMatcherConfig) -> None:
        super().__init__(config)
        self._type_pattern = glob_to_regex(config.resource_type) if config.resource_type.strip() else None
        self._extraction: re.Pattern[str] | None = None
        self._extraction_invalid = False
        if config.extraction_pattern:
            try:
                self._extraction = re.compile(config.extraction_pattern)
            except re.error:
                self._extraction_invalid = True

    @property
    def matched_attribute(self) -> str:
        return self.config.id_attribute

    def can_handle(self, node: Node) -> bool:
        if node.node_type != NodeKind.TERRAFORM_RESOURCE or self._type_pattern is None:
            return False
        resource_type = node_resource_type(node)
        return resource_type is not None and self._type_pattern.match(resource_type) is not None

    def extract_match_key(self, node: Node) -> str | None:
        if self._extraction_invalid:
            return None

        raw = _raw_id(node.metadata, self.config.id_attribute)
        if raw is None:
            return None

        value = raw.strip()
        if not value or value.lower() in PLACEHOLDER_VALUES:
            return None

        if self._extraction is not None:
            found = self._extraction.search(value)
            if found is None:
                return None
            if found.re.groups and found.group(1) is not None:
                value = found.group(1).strip()
            else:
                value = found.group(0).strip()

        if self.config.normalize:
            value = normalize_identifier(value)

        if not value or len(value) > MAX_KEY_LENGTH or value.lower() in PLACEHOLDER_VALUES:
            return None
        return value

    def candidate_attributes(self, node: Node, match_key: str) -> dict[str, Any]:
        return {
            "resource_type": node_resource_type(node),
            "provider": node.provider,
        }

    def are_compatible(self, left: MatchCandidate, right: MatchCandidate) -> bool:
        if not super().are_compatible(left, right):
            return False
        return left.attributes.get("resource_type") == right.attributes.get("resource_type")

    def calculate_confidence(self, left: MatchCandidate, right: MatchCandidate) -> int:
        left_key = left.match_key or ""
        right_key = right.match_key or ""
        resource_type = left.attributes.get("resource_type")
        same_type = resource_type is not None and resource_type == right.attributes.get("resource_type")

        if left_key == right_key:
            return 100 if same_type else 95
        if not self.config.normalize and left_key.lower() == right_key.lower():
            return 90
        return 0

    def blocking_key(self, candidate: MatchCandidate) -> str | None:
        if candidate.match_key is None:
            return None
        key = candidate.match_key if self.config.normalize else candidate.match_key.lower()
        return f"{candidate.attributes.get('resource_type')}:{key}"

    def match_context(self, left: MatchCandidate, right: MatchCandidate) -> dict[str, Any]:
        return {
            "resource_type": left.attributes.get("resource_type"),
            "id_attribute": self.config.id_attribute,
            "normalized": self.config.normalize,
        }

    def validate_strategy_config(
        self,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        resource_type = self.config.resource_type.strip()
        if not resource_type:
            errors.append(
                ValidationIssue(
                    code="RESOURCE_TYPE_REQUIRED",
                    message="resourceType is required",
                    path="resourceType",
                )
            )
        elif has_wildcard(resource_type):
            warnings.append(
                ValidationIssue(
                    code="WILDCARD_RESOURCE_TYPE",
                    message="wildcard resourceType matches several resource types",
                    path="resourceType",
                    value=resource_type,
                )
            )

        if not self.config.id_attribute.strip():
            errors.append(
                ValidationIssue(
                    code="EMPTY_ID_ATTRIBUTE",
                    message="idAttribute must not be empty",
                    path="idAttribute",
                )
            )

        if self._extraction_invalid:
            errors.append(
                ValidationIssue(
                    code="INVALID_EXTRACTION_PATTERN",
                    message="extractionPattern is not a valid regular expression",
                    path="extractionPattern",
                    value=self.config.extraction_pattern,
                )
            )


def normalize_identifier(value: str) -> str:
    normalized = value.strip().lower()
    normalized = _PREFIX.sub("", normalized)
    normalized = _SUFFIX.sub("", normalized)
    return normalized.strip()


def _raw_id(metadata: Mapping[str, Any], id_attribute: str) -> str | None:
    paths = [id_attribute] if id_attribute.strip() else []
    paths.extend(field for field in FALLBACK_ID_FIELDS if field not in paths)
    for path in paths:
        value = metadata_value(metadata, path)
        if value is None or isinstance(value, (Mapping, list, tuple, bool)):
            continue
        text = str(value)
        if text.strip():
            return text
    return None
