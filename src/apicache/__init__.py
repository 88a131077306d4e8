"""apicache -- persistent API response cache with an offline write queue.

A client-side cache for API calls that survives restarts:

* responses to safe requests are stored under a canonical key with a TTL
  class (short / medium / long) and expire lazily on lookup and eagerly
  through a background sweeper;
* the table is capped at ``max_items`` entries, oldest-stored evicted
  first;
* writes can invalidate related reads by key pattern;
* writes made while offline are kept in a durable FIFO and replayed on
  reconnect, with a retry cap and a dead-letter table.

Typical use::

    from apicache import ApiCache, CacheConfig

    with ApiCache("/var/cache/myapp", CacheConfig(max_items=1000)) as cache:
        cache.start_cleanup()
        body = cache.lookup("GET", "/attenders", {"page": 1})

Modules:
    service: :class:`ApiCache`, the object callers construct and inject.
    cache: key generation, store, eviction, invalidation, scheduler, stats.
    offline: the offline write queue and its replay driver.
    client: an :mod:`httpx` transport that uses the cache.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    app: the ``apicache`` operator CLI.
"""

__version__ = "0.1.0"

from apicache.models import CacheConfig, TTLClass  # noqa: E402
from apicache.service import ApiCache  # noqa: E402

__all__ = ["ApiCache", "CacheConfig", "TTLClass", "__version__"]
