from __future__ import annotations

import json
from collections.abc import Collection
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from iac_rollup.errors import ConfigurationError, ValidationIssue
from iac_rollup.schema import ConflictResolution, MatchingStrategy, TagMatchMode


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class BaseMatcherConfig(_ConfigModel):
    """Fields shared by every matching strategy.

    Ranges are checked by ``Matcher.validate_config`` rather than here, so an
    out-of-range config can still be constructed and reported per matcher.
    """

    type: str
    enabled: bool = True
    priority: int = 50
    min_confidence: int = 80
    description: str | None = None


class ArnComponents(_ConfigModel):
    partition: bool = True
    service: bool = True
    region: bool = False
    account: bool = False
    resource: bool = True


class ArnMatcherConfig(BaseMatcherConfig):
    type: Literal["arn"] = "arn"
    pattern: str = "arn:aws:*:*:*:*"
    allow_partial: bool = False
    components: ArnComponents = Field(default_factory=ArnComponents)


class ResourceIdMatcherConfig(BaseMatcherConfig):
    type: Literal["resource_id"] = "resource_id"
    resource_type: str = ""
    id_attribute: str = "id"
    normalize: bool = True
    extraction_pattern: str | None = None


class NameMatcherConfig(BaseMatcherConfig):
    type: Literal["name"] = "name"
    pattern: str | None = None
    include_namespace: bool = True
    namespace_pattern: str | None = None
    case_sensitive: bool = False
    fuzzy_threshold: int | None = None


class TagRequirement(_ConfigModel):
    key: str
    value: str | None = None
    value_pattern: str | None = None


class TagMatcherConfig(BaseMatcherConfig):
    type: Literal["tag"] = "tag"
    required_tags: tuple[TagRequirement, ...] = ()
    match_mode: TagMatchMode = TagMatchMode.ALL
    ignore_tags: tuple[str, ...] = ()


class CustomMatcherConfig(BaseMatcherConfig):
    """Config for a strategy registered at runtime under its own type tag."""

    model_config = ConfigDict(extra="allow")

    options: dict[str, Any] = Field(default_factory=dict)


BuiltinMatcherConfig = Annotated[
    Union[ArnMatcherConfig, ResourceIdMatcherConfig, NameMatcherConfig, TagMatcherConfig],
    Field(discriminator="type"),
]

_BUILTIN_ADAPTER: TypeAdapter[Any] = TypeAdapter(BuiltinMatcherConfig)
BUILTIN_TYPES = frozenset(strategy.value for strategy in MatchingStrategy)


def parse_matcher_config(
    data: BaseMatcherConfig | Mapping[str, Any],
    custom_types: Collection[str] = (),
) -> BaseMatcherConfig:
    """Turn a raw mapping into the matching config model.

    Built-in type tags resolve through the discriminated union; any other tag,
    or a tag listed in ``custom_types``, becomes a ``CustomMatcherConfig`` for
    the registry to pick up.
    """
    if isinstance(data, BaseMatcherConfig):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Matcher config must be a mapping, got {type(data).__name__}")

    matcher_type = data.get("type")
    if not isinstance(matcher_type, str) or not matcher_type:
        raise ConfigurationError(
            "Matcher config is missing its type",
            issues=[ValidationIssue(code="MISSING_MATCHER_TYPE", message="type is required", path="type")],
        )

    try:
        if matcher_type in BUILTIN_TYPES and matcher_type not in custom_types:
            return _BUILTIN_ADAPTER.validate_python(dict(data))
        return CustomMatcherConfig.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid {matcher_type} matcher config",
            issues=_issues_from_pydantic(exc),
            details={"type": matcher_type},
        ) from exc


def config_identity(config: BaseMatcherConfig) -> str:
    """Canonical, key-sorted serialization used as the factory cache key."""
    return json.dumps(config.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))


class MergeOptions(_ConfigModel):
    conflict_resolution: ConflictResolution = ConflictResolution.MERGE
    preserve_source_info: bool = True
    create_cross_repo_edges: bool = True
    max_nodes: int | None = Field(default=None, ge=1)


class RollupConfig(_ConfigModel):
    """One rollup: which matchers to run and how to merge their output."""

    rollup_id: str = "adhoc"
    name: str = "adhoc rollup"
    matchers: tuple[SerializeAsAny[BaseMatcherConfig], ...] = ()
    include_node_types: tuple[str, ...] = ()
    exclude_node_types: tuple[str, ...] = ()
    preserve_edge_types: tuple[str, ...] = ()
    merge_options: MergeOptions = Field(default_factory=MergeOptions)

    @field_validator("matchers", mode="before")
    @classmethod
    def _parse_matchers(cls, value: Any) -> tuple[BaseMatcherConfig, ...]:
        if value is None:
            return ()
        return tuple(parse_matcher_config(item) for item in value)


def load_rollup_config(data: Mapping[str, Any]) -> RollupConfig:
    try:
        return RollupConfig.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigurationError("Invalid rollup config", issues=_issues_from_pydantic(exc)) from exc


class RollupSettings(BaseSettings):
    """Engine settings, read from IAC_ROLLUP_* environment variables.

    Example:
        export IAC_ROLLUP_CONCURRENCY=8
        export IAC_ROLLUP_CACHE_MATCHERS=false
        export IAC_ROLLUP_MAX_NODES=250000
    """

    model_config = SettingsConfigDict(
        env_prefix="IAC_ROLLUP_",
        frozen=True,
        extra="forbid",
    )

    concurrency: int = Field(default=4, ge=1, description="Worker threads for bucket comparison")
    cache_matchers: bool = Field(default=True, description="Reuse matcher instances for identical configs")
    max_nodes: int | None = Field(default=None, ge=1, description="Hard ceiling on input nodes per run")
    log_level: str = Field(default="INFO", description="Logging level for the CLI")


def _issues_from_pydantic(exc: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        issues.append(
            ValidationIssue(
                code="SCHEMA_" + str(error.get("type", "invalid")).upper(),
                message=str(error.get("msg", "invalid value")),
                path=path,
                value=error.get("input") if isinstance(error.get("input"), (str, int, float, bool)) else None,
            )
        )
    return issues
