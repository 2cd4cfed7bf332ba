from __future__ import annotations

import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

_MISSING = object()


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str, *, ignore_case: bool = False, anchored: bool = True) -> re.Pattern[str]:
    """Regex for a glob: ``*`` and ``?`` are wildcards, everything else is literal.

    With ``anchored=False`` the glob only has to match a prefix of the subject.
    """
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.IGNORECASE if ignore_case else 0
    suffix = "$" if anchored else ""
    return re.compile("^" + "".join(parts) + suffix, flags)


@lru_cache(maxsize=512)
def wildcard_regex(pattern: str, *, ignore_case: bool = False) -> re.Pattern[str]:
    """Anchored regex where a bare ``*`` widens to ``.*``.

    Raises ``re.error`` when the remainder is not a valid expression.
    """
    widened = re.sub(r"(?<![.\\\])])\*", ".*", pattern)
    flags = re.IGNORECASE if ignore_case else 0
    return re.compile("^(?:" + widened + ")$", flags)


def has_wildcard(pattern: str) -> bool:
    return "*" in pattern or "?" in pattern


def get_nested(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dot-separated path (``a.b.c``) out of nested mappings."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def metadata_value(metadata: Mapping[str, Any], path: str) -> Any:
    """Look ``path`` up in metadata, then in ``metadata["attributes"]``."""
    value = get_nested(metadata, path)
    if value is None:
        attributes = metadata.get("attributes")
        if isinstance(attributes, Mapping):
            value = get_nested(attributes, path)
    return value


def levenshtein(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)

    prev = list(range(len(right) + 1))
    for i, c1 in enumerate(left, start=1):
        curr = [i]
        for j, c2 in enumerate(right, start=1):
            cost = 0 if c1 == c2 else 1
            curr.append(min(curr[j - 1] + 1, prev[j] + 1, prev[j - 1] + cost))
        prev = curr
    return prev[-1]


def similarity(left: str, right: str) -> int:
    """Edit-distance similarity on a 0-100 scale."""
    longest = max(len(left), len(right))
    if longest == 0:
        return 100
    return round(100 * (1 - levenshtein(left, right) / longest))
