from iac_rollup.matchers.arn import ArnMatcher, ParsedArn
from iac_rollup.matchers.base import BaseMatcher
from iac_rollup.matchers.factory import MatcherFactory
from iac_rollup.matchers.name import NameMatcher
from iac_rollup.matchers.resource_id import ResourceIdMatcher, normalize_identifier
from iac_rollup.matchers.tag import TagMatcher

__all__ = [
    "ArnMatcher",
    "BaseMatcher",
    "MatcherFactory",
    "NameMatcher",
    "ParsedArn",
    "ResourceIdMatcher",
    "TagMatcher",
    "normalize_identifier",
]
