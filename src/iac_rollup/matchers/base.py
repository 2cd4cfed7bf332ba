from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from iac_rollup.config import BaseMatcherConfig
from iac_rollup.errors import ConfigurationError, ValidationIssue, ValidationResult
from iac_rollup.models import MatchCandidate, MatchDetails, MatchResult, Node

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_WARNING_THRESHOLD = 50


class BaseMatcher:
    """Shared candidate extraction, comparison and validation for all strategies.

    Subclasses fill in the hooks below; ``extract_match_key`` is the only one
    without a default.
    """

    strategy_name = ""
    config_type: type[BaseMatcherConfig] = BaseMatcherConfig
    matched_attribute = "match_key"

    def __init__(self, config: BaseMatcherConfig) -> None:
        if not isinstance(config, self.config_type):
            raise ConfigurationError(
                f"Invalid configuration for {type(self).__name__}: got {config.type!r} config",
                details={"type": config.type},
            )
        self.config = config

    @property
    def strategy(self) -> str:
        return self.strategy_name or self.config.type

    def is_enabled(self) -> bool:
        return self.config.enabled

    def get_priority(self) -> int:
        return self.config.priority

    def extract_candidates(
        self,
        nodes: Sequence[Node],
        repository_id: str,
        scan_id: str,
    ) -> list[MatchCandidate]:
        candidates: list[MatchCandidate] = []
        for node in nodes:
            if not self.can_handle(node):
                continue
            match_key = self.extract_match_key(node)
            if match_key is None:
                continue
            attributes: dict[str, Any] = {
                "node_type": node.node_type,
                "name": node.name,
                "source_file": node.location.file,
            }
            attributes.update(self.candidate_attributes(node, match_key))
            candidates.append(
                MatchCandidate(
                    node=node,
                    repository_id=repository_id,
                    scan_id=scan_id,
                    match_key=match_key,
                    attributes=attributes,
                )
            )
        logger.debug(
            "%s matcher kept %d of %d nodes from repository %s",
            self.strategy,
            len(candidates),
            len(nodes),
            repository_id,
        )
        return candidates

    def compare(self, left: MatchCandidate, right: MatchCandidate) -> MatchResult | None:
        if left.repository_id == right.repository_id or left.scan_id == right.scan_id:
            return None
        if left.match_key is None or right.match_key is None:
            return None
        if not self.are_compatible(left, right):
            return None

        confidence = max(0, min(100, int(self.calculate_confidence(left, right))))
        if confidence == 0 or confidence < self.config.min_confidence:
            return None

        return MatchResult(
            source_node_id=left.node.node_id,
            target_node_id=right.node.node_id,
            source_repository_id=left.repository_id,
            target_repository_id=right.repository_id,
            source_scan_id=left.scan_id,
            target_scan_id=right.scan_id,
            strategy=self.strategy,
            confidence=confidence,
            priority=self.config.priority,
            details=MatchDetails(
                matched_attribute=self.matched_attribute,
                source_value=left.match_key,
                target_value=right.match_key,
                context=self.match_context(left, right),
            ),
        )

    def blocking_key(self, candidate: MatchCandidate) -> str | None:
        return candidate.match_key

    def validate_config(self) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        priority = self.config.priority
        if not 0 <= priority <= 100:
            errors.append(
                ValidationIssue(
                    code="INVALID_PRIORITY",
                    message="priority must be between 0 and 100",
                    path="priority",
                    value=priority,
                )
            )

        min_confidence = self.config.min_confidence
        if not 0 <= min_confidence <= 100:
            errors.append(
                ValidationIssue(
                    code="INVALID_MIN_CONFIDENCE",
                    message="minConfidence must be between 0 and 100",
                    path="minConfidence",
                    value=min_confidence,
                )
            )
        elif min_confidence < LOW_CONFIDENCE_WARNING_THRESHOLD:
            warnings.append(
                ValidationIssue(
                    code="LOW_MIN_CONFIDENCE",
                    message="minConfidence below 50 may produce false positives",
                    path="minConfidence",
                    value=min_confidence,
                )
            )

        self.validate_strategy_config(errors, warnings)
        return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))

    def can_handle(self, node: Node) -> bool:
        return True

    def extract_match_key(self, node: Node) -> str | None:
        raise NotImplementedError

    def candidate_attributes(self, node: Node, match_key: str) -> dict[str, Any]:
        return {}

    def are_compatible(self, left: MatchCandidate, right: MatchCandidate) -> bool:
        return left.node.node_type == right.node.node_type

    def calculate_confidence(self, left: MatchCandidate, right: MatchCandidate) -> int:
        return 100 if left.match_key == right.match_key else 0

    def match_context(self, left: MatchCandidate, right: MatchCandidate) -> dict[str, Any]:
        return {}

    def validate_strategy_config(
        self,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        return None


def node_resource_type(node: Node) -> str | None:
    if node.resource_type:
        return node.resource_type
    value = node.metadata.get("resource_type") or node.metadata.get("resourceType")
    return str(value) if value else None


def node_namespace(node: Node) -> str | None:
    if node.namespace:
        return node.namespace
    value = node.metadata.get("namespace")
    return str(value) if value else None
