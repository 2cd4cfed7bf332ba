from __future__ import annotations

import re
from typing import Any

from iac_rollup.config import NameMatcherConfig
from iac_rollup.errors import ValidationIssue
from iac_rollup.matchers.base import BaseMatcher, node_namespace
from iac_rollup.matchers.patterns import similarity, wildcard_regex
from iac_rollup.models import MatchCandidate, Node
from iac_rollup.schema import MatchingStrategy

LOW_FUZZY_THRESHOLD = 50


class NameMatcher(BaseMatcher):
    """Matches nodes of the same type by name, optionally scoped by namespace.

    With ``fuzzy_threshold`` set, names within that edit-distance similarity
    also match, scored by the similarity itself.
    """

    strategy_name = MatchingStrategy.NAME
    config_type = NameMatcherConfig
    matched_attribute = "name"

    config: NameMatcherConfig

    def __init__(self, config: NameMatcherConfig) -> None:
        super().__init__(config)
        ignore_case = not config.case_sensitive
        self._name_pattern, self._name_pattern_invalid = _compile(config.pattern, ignore_case)
        self._namespace_pattern, self._namespace_pattern_invalid = _compile(config.namespace_pattern, ignore_case)

    def can_handle(self, node: Node) -> bool:
        name = node.name.strip()
        if not name or self._name_pattern_invalid:
            return False
        if self._name_pattern is not None and self._name_pattern.match(name) is None:
            return False

        if self.config.include_namespace and self.config.namespace_pattern:
            namespace = node_namespace(node)
            if self._namespace_pattern_invalid or not namespace:
                return False
            return self._namespace_pattern is not None and self._namespace_pattern.match(namespace) is not None
        return True

    def extract_match_key(self, node: Node) -> str | None:
        name = self._fold(node.name.strip())
        namespace = self._scope(node)
        return f"{namespace}/{name}" if namespace else name

    def candidate_attributes(self, node: Node, match_key: str) -> dict[str, Any]:
        return {
            "namespace": self._scope(node),
            "normalized_name": self._fold(node.name.strip()),
        }

    def calculate_confidence(self, left: MatchCandidate, right: MatchCandidate) -> int:
        if left.match_key == right.match_key:
            return 100
        threshold = self.config.fuzzy_threshold
        if threshold is None:
            return 0
        if left.attributes.get("namespace") != right.attributes.get("namespace"):
            return 0
        score = similarity(left.attributes["normalized_name"], right.attributes["normalized_name"])
        return score if score >= threshold else 0

    def blocking_key(self, candidate: MatchCandidate) -> str | None:
        if self.config.fuzzy_threshold is None:
            return candidate.match_key
        return f"{candidate.node.node_type}|{candidate.attributes.get('namespace') or ''}"

    def match_context(self, left: MatchCandidate, right: MatchCandidate) -> dict[str, Any]:
        return {
            "namespace": left.attributes.get("namespace"),
            "case_sensitive": self.config.case_sensitive,
            "fuzzy_match_used": left.match_key != right.match_key,
            "fuzzy_threshold": self.config.fuzzy_threshold,
        }

    def validate_strategy_config(
        self,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        if self._name_pattern_invalid:
            errors.append(
                ValidationIssue(
                    code="INVALID_NAME_PATTERN",
                    message="pattern is not a valid expression",
                    path="pattern",
                    value=self.config.pattern,
                )
            )
        if self._namespace_pattern_invalid:
            errors.append(
                ValidationIssue(
                    code="INVALID_NAMESPACE_PATTERN",
                    message="namespacePattern is not a valid expression",
                    path="namespacePattern",
                    value=self.config.namespace_pattern,
                )
            )

        threshold = self.config.fuzzy_threshold
        if threshold is not None:
            if not 0 <= threshold <= 100:
                errors.append(
                    ValidationIssue(
                        code="INVALID_FUZZY_THRESHOLD",
                        message="fuzzyThreshold must be between 0 and 100",
                        path="fuzzyThreshold",
                        value=threshold,
                    )
                )
            elif threshold < LOW_FUZZY_THRESHOLD:
                warnings.append(
                    ValidationIssue(
                        code="LOW_FUZZY_THRESHOLD",
                        message="fuzzyThreshold below 50 matches loosely related names",
                        path="fuzzyThreshold",
                        value=threshold,
                    )
                )

        if not self.config.pattern and not self.config.case_sensitive:
            warnings.append(
                ValidationIssue(
                    code="BROAD_NAME_MATCHING",
                    message="no name pattern and case-insensitive matching applies to every named node",
                    path="pattern",
                )
            )

    def _fold(self, value: str) -> str:
        return value if self.config.case_sensitive else value.lower()

    def _scope(self, node: Node) -> str | None:
        if not self.config.include_namespace:
            return None
        namespace = node_namespace(node)
        return self._fold(namespace) if namespace else None


def _compile(pattern: str | None, ignore_case: bool) -> tuple[re.Pattern[str] | None, bool]:
    if not pattern:
        return None, False
    try:
        return wildcard_regex(pattern, ignore_case=ignore_case), False
    except re.error:
        return None, True
