from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from functools import partial
from typing import Any

from iac_rollup.config import BaseMatcherConfig, config_identity, parse_matcher_config
from iac_rollup.errors import ConfigurationError, UnsupportedStrategyError
from iac_rollup.interfaces import Matcher, MatcherBuilder, ReferenceResolver
from iac_rollup.matchers.arn import ArnMatcher
from iac_rollup.matchers.name import NameMatcher
from iac_rollup.matchers.resource_id import ResourceIdMatcher
from iac_rollup.matchers.tag import TagMatcher
from iac_rollup.schema import MatchingStrategy

logger = logging.getLogger(__name__)

_BUILTIN_MATCHERS: dict[str, MatcherBuilder] = {
    MatchingStrategy.ARN: ArnMatcher,
    MatchingStrategy.RESOURCE_ID: ResourceIdMatcher,
    MatchingStrategy.NAME: NameMatcher,
    MatchingStrategy.TAG: TagMatcher,
}


class MatcherFactory:
    """Builds and caches matchers from config.

    Matchers built from structurally identical configs are shared. Pass
    ``cache_enabled=False`` when each call needs its own instance.
    """

    def __init__(self, resolver: ReferenceResolver | None = None, cache_enabled: bool = True) -> None:
        self._builtins: dict[str, MatcherBuilder] = dict(_BUILTIN_MATCHERS)
        self._builtins[MatchingStrategy.ARN] = partial(ArnMatcher, resolver=resolver)
        self._custom: dict[str, MatcherBuilder] = {}
        self._cache: dict[str, Matcher] = {}
        self._cache_enabled = cache_enabled
        self._lock = threading.Lock()

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def register_matcher(self, type_name: str, builder: MatcherBuilder) -> None:
        """Register a builder for ``type_name``. Registrations shadow built-in types."""
        if not type_name:
            raise ValueError("type_name must not be empty")
        with self._lock:
            self._custom[type_name] = builder
            self._evict(type_name)
        logger.debug("Registered matcher type %s", type_name)

    def unregister_matcher(self, type_name: str) -> bool:
        with self._lock:
            removed = self._custom.pop(type_name, None) is not None
            if removed:
                self._evict(type_name)
        return removed

    def registered_types(self) -> list[str]:
        return sorted(set(self._builtins) | set(self._custom))

    def is_supported(self, type_name: str) -> bool:
        return type_name in self._custom or type_name in self._builtins

    def parse_config(self, config: BaseMatcherConfig | Mapping[str, Any]) -> BaseMatcherConfig:
        """Parse a raw config, treating registered type names as custom even when they shadow a built-in."""
        return parse_matcher_config(config, custom_types=frozenset(self._custom))

    def create_matcher(self, config: BaseMatcherConfig | Mapping[str, Any]) -> Matcher:
        parsed = self.parse_config(config)
        cache_key = config_identity(parsed) if self._cache_enabled else None
        if cache_key is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        matcher = self._build(parsed)
        validation = matcher.validate_config()
        if not validation.is_valid:
            raise ConfigurationError(
                f"Invalid configuration for {parsed.type} matcher: "
                + "; ".join(issue.message for issue in validation.errors),
                issues=validation.errors,
                details={"type": parsed.type, "errors": validation.error_codes()},
            )
        for warning in validation.warnings:
            logger.debug("%s matcher config warning %s: %s", parsed.type, warning.code, warning.message)

        if cache_key is not None:
            with self._lock:
                matcher = self._cache.setdefault(cache_key, matcher)
        return matcher

    def create_matchers(self, configs: Iterable[BaseMatcherConfig | Mapping[str, Any]]) -> list[Matcher]:
        """Build every enabled config, highest priority first (ties keep input order)."""
        matchers: list[Matcher] = []
        for config in configs:
            parsed = self.parse_config(config)
            if not parsed.enabled:
                continue
            matchers.append(self.create_matcher(parsed))
        return sorted(matchers, key=lambda matcher: -matcher.get_priority())

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _build(self, config: BaseMatcherConfig) -> Matcher:
        builder = self._custom.get(config.type) or self._builtins.get(config.type)
        if builder is None:
            raise UnsupportedStrategyError(
                f"Unknown matcher type: {config.type}",
                details={"type": config.type, "supported": self.registered_types()},
            )
        return builder(config)

    def _evict(self, type_name: str) -> None:
        stale = [key for key, matcher in self._cache.items() if matcher.config.type == type_name]
        for key in stale:
            del self._cache[key]
