"""Canonical cache keys for (method, URL, parameters).

Keys are human-readable so that pattern invalidation can match on the URL
portion::

    GET:/attenders
    GET:/attenders:{"page":2,"region":"kyoto"}

The method is upper-cased, the URL lower-cased, ``None`` parameters are
dropped and the rest are serialised as compact JSON with sorted keys, so
the same logical request always produces the same key regardless of
parameter ordering.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional


def generate_key(method: str, url: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build the composite cache key for a request.

    Args:
        method: HTTP method, any casing.
        url: Request URL or path, any casing.
        params: Query parameters. ``None`` values are ignored; an empty or
            missing mapping omits the parameter segment entirely.

    Returns:
        ``"{METHOD}:{url}"`` or ``"{METHOD}:{url}:{sorted_params_json}"``.
    """
    base = f"{method.upper()}:{url.lower()}"
    if not params:
        return base

    filtered = {k: params[k] for k in sorted(params) if params[k] is not None}
    serialized = json.dumps(
        filtered,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return f"{base}:{serialized}"
