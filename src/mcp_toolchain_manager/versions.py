"""Version ordering helpers."""

from functools import cmp_to_key
from typing import Any, Callable, Iterable, List, TypeVar

import packaging.version

T = TypeVar("T")


def _lexical(a: str, b: str) -> int:
    return (a > b) - (a < b)


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings, newest first.

    Falls back to plain string ordering when either side is not a valid
    version, so malformed entries never raise.
    """
    try:
        va = packaging.version.Version(a)
        vb = packaging.version.Version(b)
    except (packaging.version.InvalidVersion, TypeError):
        return _lexical(b, a)
    return (va < vb) - (va > vb)


def sort_newest_first(items: Iterable[T], key: Callable[[T], Any]) -> List[T]:
    return sorted(items, key=cmp_to_key(lambda x, y: compare_versions(key(x), key(y))))
