"""Persistent response cache.

This package provides the pieces behind :class:`~apicache.service.ApiCache`:

* :func:`~apicache.cache.keys.generate_key` -- canonical request keys.
* :class:`~apicache.cache.store.CacheStore` -- the ``response-cache`` table
  on :mod:`diskcache`, with lazy expiry on lookup.
* :class:`~apicache.cache.eviction.Evictor` -- expiry sweep and item cap.
* :func:`~apicache.cache.invalidation.invalidate` -- bulk delete by pattern.
* :class:`~apicache.cache.scheduler.CleanupScheduler` -- background sweeper.
* :mod:`~apicache.cache.diagnostics` -- read-only statistics.
"""

from apicache.cache.eviction import Evictor
from apicache.cache.invalidation import invalidate
from apicache.cache.keys import generate_key
from apicache.cache.scheduler import CleanupScheduler
from apicache.cache.store import CacheStore

__all__ = ["CacheStore", "CleanupScheduler", "Evictor", "generate_key", "invalidate"]
