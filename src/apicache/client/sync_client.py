"""Synchronous HTTP client that routes calls through an :class:`~apicache.service.ApiCache`.

:class:`CachingClient` is the reference transport layer for the cache
boundary. It wraps :class:`httpx.Client` and layers on:

- **Read-through caching** -- safe requests are answered from the cache
  when a live entry exists; 2xx responses are stored under a TTL class.
- **Write invalidation** -- a successful write drops cached reads whose
  key contains the written path (or a caller-supplied pattern).
- **Offline queueing** -- a write that cannot reach the server after all
  retries is queued and ``None`` is returned instead of raising.
- **Replay** -- :meth:`CachingClient.replay` drains the queue over HTTP.
- **Retry with backoff** -- retries on 5xx and network errors with
  exponential delay (1 s, 2 s, 4 s, ...).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from apicache.cache.invalidation import Pattern
from apicache.exceptions import ConnectionError_, ServerError
from apicache.models import QueueEntry, ReplayResult, RequestIntent, TTLClass
from apicache.service import ApiCache

logger = logging.getLogger(__name__)

_NETWORK_ERRORS = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)

# Framing headers describe the original bytes, not the re-encoded body.
_UNCACHED_HEADERS = frozenset({"content-length", "content-encoding", "transfer-encoding"})


class CachingClient:
    """HTTP client backed by a response cache and an offline write queue.

    Must be used as a context manager so that the underlying transport is
    opened and closed.

    Args:
        cache: The cache service to consult and update.
        base_url: Prefix for every request path.
        timeout: Request timeout in seconds.
        verify_ssl: Verify TLS certificates.
        max_retries: Retries after the first attempt on 5xx/network errors.
        backoff: Base delay in seconds; attempt *n* waits ``backoff * 2**n``.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).

    Example::

        with CachingClient(cache, base_url="https://api.example.com") as client:
            response = client.get("/attenders", params={"page": 1}, ttl_class="short")
            client.post("/bookings", json_body={"attender": 7})  # queued if offline
    """

    def __init__(
        self,
        cache: ApiCache,
        base_url: str = "",
        timeout: float = 30.0,
        verify_ssl: bool = True,
        max_retries: int = 3,
        backoff: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._cache = cache
        self._base_url = base_url
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._max_retries = max_retries
        self._backoff = backoff
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> CachingClient:
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            verify=self._verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        ttl_class: Optional[TTLClass | str] = None,
        invalidate: Optional[Pattern] = None,
        queue_offline: bool = True,
    ) -> Optional[httpx.Response]:
        """Send a request through the cache.

        Args:
            method: HTTP method.
            path: URL path appended to ``base_url``.
            params: Query parameters (part of the cache key).
            headers: Extra request headers (kept with queued writes).
            json_body: JSON-serialisable body.
            ttl_class: Freshness class for a cacheable response; the
                cache's default class when omitted.
            invalidate: Pattern to invalidate after a successful write;
                defaults to *path*.
            queue_offline: Queue a write that cannot be delivered instead
                of raising :class:`ConnectionError_`.

        Returns:
            The response (synthesised from the cache on a hit), or ``None``
            when a write was queued for later replay.

        Raises:
            ServerError: On a 4xx/5xx response.
            ConnectionError_: On network failure of a read, or of a write
                when *queue_offline* is false.
        """
        method = method.upper()
        intent = RequestIntent.from_method(method)
        url = f"{self._base_url}{path}"

        if intent is RequestIntent.READ:
            cached = self._cache.lookup(method, url, params)
            if cached is not None:
                logger.debug("Serving %s %s from cache", method, path)
                return httpx.Response(
                    status_code=cached["status_code"],
                    headers=cached.get("headers", {}),
                    json=cached.get("body"),
                    request=httpx.Request(method=method, url=url),
                )

        try:
            response = self._execute_with_retry(method, path, params, headers, json_body)
        except ConnectionError_:
            if intent is RequestIntent.WRITE and queue_offline:
                entry_id = self._cache.enqueue(method, url, json_body, headers)
                logger.info("Queued %s %s for replay (id %s)", method, path, entry_id)
                return None
            raise

        self._map_response_error(response)

        if intent is RequestIntent.READ:
            self._cache.store(method, url, params, _snapshot(response), ttl_class)
        else:
            self._cache.invalidate(invalidate if invalidate is not None else path.lower())

        return response

    def get(self, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        """Send a GET request. See :meth:`request`."""
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        """Send a POST request. See :meth:`request`."""
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        """Send a PUT request. See :meth:`request`."""
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        """Send a PATCH request. See :meth:`request`."""
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        """Send a DELETE request. See :meth:`request`."""
        return self.request("DELETE", path, **kwargs)

    def replay(self) -> ReplayResult:
        """Deliver every queued write once, in FIFO order."""
        return self._cache.replay(self._send_queued)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _send_queued(self, entry: QueueEntry) -> bool:
        """Replay one queued write; True only for a 2xx answer."""
        assert self._client is not None, "Client not initialised -- use as context manager"
        kwargs: dict[str, Any] = {"headers": entry.headers or {}}
        if entry.body is not None:
            kwargs["json"] = entry.body
        response = self._client.request(entry.method, entry.url, **kwargs)
        if response.is_success:
            self._cache.invalidate((httpx.URL(entry.url).path or entry.url).lower())
            return True
        logger.warning("Replay of %d answered HTTP %d", entry.id, response.status_code)
        return False

    def _execute_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
        json_body: Any,
    ) -> httpx.Response:
        """Execute the request, retrying 5xx and network errors with backoff."""
        assert self._client is not None, "Client not initialised -- use as context manager"

        kwargs: dict[str, Any] = {
            "headers": {"Accept": "application/json", **(headers or {})},
            "params": params,
        }
        if json_body is not None:
            kwargs["json"] = json_body

        for attempt in range(self._max_retries + 1):
            try:
                response = self._client.request(method, path, **kwargs)
            except _NETWORK_ERRORS as exc:
                if attempt < self._max_retries:
                    delay = self._backoff * 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt + 1, self._max_retries,
                    )
                    time.sleep(delay)
                    continue
                raise ConnectionError_(
                    f"Connection failed after {self._max_retries + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < self._max_retries:
                delay = self._backoff * 2 ** attempt
                logger.debug(
                    "Server error %d, retrying in %ss (attempt %d/%d)",
                    response.status_code, delay, attempt + 1, self._max_retries,
                )
                time.sleep(delay)
                continue
            return response

        raise ServerError("Request failed after all retries")  # pragma: no cover

    @staticmethod
    def _map_response_error(response: httpx.Response) -> None:
        """Raise :class:`ServerError` for 4xx/5xx responses."""
        status = response.status_code
        if status < 400:
            return
        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""
        raise ServerError(f"HTTP {status}: {msg}" if msg else f"HTTP {status}")


def _snapshot(response: httpx.Response) -> dict[str, Any]:
    """Cacheable view of a response: status, headers and decoded body."""
    try:
        body = response.json()
    except ValueError:
        body = response.text
    headers = {
        name: value
        for name, value in response.headers.items()
        if name.lower() not in _UNCACHED_HEADERS
    }
    return {"status_code": response.status_code, "headers": headers, "body": body}
