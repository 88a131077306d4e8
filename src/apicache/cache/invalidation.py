"""Bulk removal of cache entries whose keys match a pattern.

Used after a successful mutating call has made some reads stale, for
example every key under ``/bookings/``. A plain string is matched as a
literal substring (it is escaped before compiling); a compiled
:class:`re.Pattern` is used as given.
"""

from __future__ import annotations

import logging
import re
from typing import Union

from apicache.cache.store import CacheStore
from apicache.exceptions import PatternError

logger = logging.getLogger(__name__)

Pattern = Union[str, re.Pattern]


def compile_pattern(pattern: Pattern, regex: bool = False) -> re.Pattern[str]:
    """Turn *pattern* into a compiled regular expression.

    Args:
        pattern: Literal substring or compiled pattern.
        regex: Treat a string *pattern* as a regular expression instead of
            a literal.

    Raises:
        PatternError: For an empty string, a non-string value or (with
            ``regex=True``) a string that does not compile.
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise PatternError(
            f"Invalidation pattern must be a str or re.Pattern, got {type(pattern).__name__}"
        )
    if not pattern:
        raise PatternError("Invalidation pattern must not be empty")
    if not regex:
        return re.compile(re.escape(pattern))
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise PatternError(f"Invalid invalidation pattern {pattern!r}: {exc}") from exc


def invalidate(store: CacheStore, pattern: Pattern, regex: bool = False) -> int:
    """Delete every entry whose key matches *pattern*; return how many.

    This is a full-table scan, bounded by the store's item cap.

    Raises:
        PatternError: If *pattern* is malformed (see :func:`compile_pattern`).
    """
    compiled = compile_pattern(pattern, regex=regex)
    removed = 0
    for key in store.keys():
        if compiled.search(key):
            store.delete(key)
            removed += 1

    if removed:
        logger.info("Invalidated %d cache entries matching %r", removed, compiled.pattern)
    return removed
