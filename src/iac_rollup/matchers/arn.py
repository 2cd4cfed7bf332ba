from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from iac_rollup.config import ArnComponents, ArnMatcherConfig
from iac_rollup.errors import ValidationIssue
from iac_rollup.interfaces import ReferenceResolver
from iac_rollup.matchers.base import BaseMatcher, node_resource_type
from iac_rollup.matchers.patterns import glob_to_regex, metadata_value
from iac_rollup.models import MatchCandidate, Node
from iac_rollup.schema import MatchingStrategy, NodeKind

logger = logging.getLogger(__name__)

ARN_PARTITIONS = frozenset({"aws", "aws-cn", "aws-us-gov"})
ARN_COMPONENTS = ("partition", "service", "region", "account", "resource")
BROAD_WILDCARD_COUNT = 4

_HANDLED_NODE_TYPES = frozenset({NodeKind.TERRAFORM_RESOURCE, NodeKind.TERRAFORM_DATA})


@dataclass(frozen=True, slots=True)
class ParsedArn:
    partition: str
    service: str
    region: str
    account: str
    resource: str

    @classmethod
    def parse(cls, value: str) -> ParsedArn | None:
        if not value.startswith("arn:"):
            return None
        parts = value.split(":", 5)
        if len(parts) < 6:
            return None
        return cls(*parts[1:])

    def canonical(self, components: ArnComponents) -> str:
        """The ARN with every component the config does not compare replaced by ``*``."""
        values = [
            getattr(self, name) if getattr(components, name) else "*"
            for name in ARN_COMPONENTS
        ]
        return "arn:" + ":".join(values)


class ArnMatcher(BaseMatcher):
    """Matches terraform resources and data sources that carry the same ARN.

    A non-ARN value in the ``arn`` field is treated as a reference and looked
    up through the optional resolver; anything it cannot find is skipped.
    """

    strategy_name = MatchingStrategy.ARN
    config_type = ArnMatcherConfig
    matched_attribute = "arn"

    config: ArnMatcherConfig

    def __init__(self, config: ArnMatcherConfig, resolver: ReferenceResolver | None = None) -> None:
        super().__init__(config)
        self._resolver = resolver
        pattern = config.pattern.strip()
        self._pattern = glob_to_regex(pattern, anchored=not config.allow_partial) if pattern else None

    def can_handle(self, node: Node) -> bool:
        return node.node_type in _HANDLED_NODE_TYPES

    def extract_match_key(self, node: Node) -> str | None:
        arn = self._find_arn(node)
        if arn is None or ParsedArn.parse(arn) is None:
            return None
        if self._pattern is not None and self._pattern.match(arn) is None:
            return None
        return arn

    def candidate_attributes(self, node: Node, match_key: str) -> dict[str, Any]:
        parsed = ParsedArn.parse(match_key)
        return {
            "resource_type": node_resource_type(node),
            "service": parsed.service if parsed else None,
            "canonical_arn": parsed.canonical(self.config.components) if parsed else match_key,
        }

    def are_compatible(self, left: MatchCandidate, right: MatchCandidate) -> bool:
        return True

    def calculate_confidence(self, left: MatchCandidate, right: MatchCandidate) -> int:
        if left.match_key == right.match_key:
            return 100
        if left.attributes.get("canonical_arn") == right.attributes.get("canonical_arn"):
            return 90
        return 0

    def blocking_key(self, candidate: MatchCandidate) -> str | None:
        return candidate.attributes.get("canonical_arn")

    def match_context(self, left: MatchCandidate, right: MatchCandidate) -> dict[str, Any]:
        return {
            "source_arn": left.match_key,
            "target_arn": right.match_key,
            "canonical_arn": left.attributes.get("canonical_arn"),
            "exact": left.match_key == right.match_key,
        }

    def validate_strategy_config(
        self,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        pattern = self.config.pattern.strip()
        if not pattern:
            errors.append(
                ValidationIssue(code="ARN_PATTERN_REQUIRED", message="pattern is required", path="pattern")
            )
            return

        if not pattern.startswith("arn:"):
            errors.append(_invalid_pattern("pattern must start with 'arn:'", pattern))
            return

        parts = pattern.split(":", 5)
        if len(parts) < 6:
            errors.append(_invalid_pattern("pattern must have 6 colon-separated components", pattern))
            return

        partition = parts[1]
        if partition != "*" and partition not in ARN_PARTITIONS:
            errors.append(_invalid_pattern(f"unknown partition {partition!r}", pattern))

        wildcard_count = sum(1 for part in parts[1:] if part == "*")
        if parts[2] == "*" or wildcard_count >= BROAD_WILDCARD_COUNT:
            warnings.append(
                ValidationIssue(
                    code="BROAD_ARN_PATTERN",
                    message="pattern matches ARNs across services",
                    path="pattern",
                    value=pattern,
                )
            )

    def _find_arn(self, node: Node) -> str | None:
        value = metadata_value(node.metadata, "arn")
        if not isinstance(value, str) or not value.strip():
            return None
        value = value.strip()
        if value.startswith("arn:"):
            return value
        return self._resolve(value)

    def _resolve(self, reference: str) -> str | None:
        if self._resolver is None:
            return None
        try:
            resolved = self._resolver.resolve(reference)
        except LookupError:
            resolved = None
        if not isinstance(resolved, Mapping):
            logger.debug("ARN reference %s not found in external index", reference)
            return None
        arn = resolved.get("arn")
        if isinstance(arn, str) and arn.startswith("arn:"):
            return arn
        return None


def _invalid_pattern(message: str, pattern: str) -> ValidationIssue:
    return ValidationIssue(code="INVALID_ARN_PATTERN", message=message, path="pattern", value=pattern)
