from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from iac_rollup.config import BaseMatcherConfig
from iac_rollup.errors import ValidationResult
from iac_rollup.models import MatchCandidate, MatchResult, Node


class Matcher(Protocol):
    """One matching strategy: turns nodes into candidates and scores pairs."""

    config: BaseMatcherConfig

    @property
    def strategy(self) -> str:
        ...

    def extract_candidates(
        self,
        nodes: Sequence[Node],
        repository_id: str,
        scan_id: str,
    ) -> list[MatchCandidate]:
        ...

    def compare(self, left: MatchCandidate, right: MatchCandidate) -> MatchResult | None:
        ...

    def blocking_key(self, candidate: MatchCandidate) -> str | None:
        ...

    def validate_config(self) -> ValidationResult:
        ...

    def is_enabled(self) -> bool:
        ...

    def get_priority(self) -> int:
        ...


class MatcherBuilder(Protocol):
    """Callable registered with the factory for a matcher type tag."""

    def __call__(self, config: BaseMatcherConfig) -> Matcher:
        ...


class ReferenceResolver(Protocol):
    """Lookup into the external object index for references outside the scanned graphs.

    Returning ``None`` (or raising ``LookupError``) means "not found".
    """

    def resolve(self, reference: str) -> Mapping[str, Any] | None:
        ...


class CancellationToken(Protocol):
    def is_set(self) -> bool:
        ...
