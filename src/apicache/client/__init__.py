"""HTTP transport that consults the cache before the network.

This package provides :class:`~apicache.client.sync_client.CachingClient`,
a blocking :mod:`httpx` client showing how a transport layer uses
:class:`~apicache.service.ApiCache`: read-through caching for safe calls,
invalidation after writes, and queueing plus replay of writes made offline.
"""

from apicache.client.sync_client import CachingClient

__all__ = ["CachingClient"]
