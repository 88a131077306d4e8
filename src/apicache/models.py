"""Canonical Pydantic models shared across all apicache modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`TTLConfig`, :class:`CacheConfig`, :class:`OutputConfig` and
    :class:`GlobalConfig`.

**Stored records** -- what the durable tables hold:
    :class:`CacheEntry` in ``response-cache``, :class:`QueueEntry` in
    ``offline-queue`` and :class:`DeadLetter` in ``dead-letter``.

**Reports** -- read-only aggregates returned to callers:
    :class:`CacheStats`, :class:`QueueStats`, :class:`DiagnosticsReport`
    and :class:`ReplayResult`.

All timestamps are integer milliseconds since the epoch.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Request classification ---


class RequestIntent(str, enum.Enum):
    """Whether a request only reads server state or may change it.

    Decided once at the call boundary with :meth:`from_method`; the cache
    store accepts READ entries only and the offline queue holds WRITE
    requests.
    """

    READ = "read"
    WRITE = "write"

    @classmethod
    def from_method(cls, method: str) -> RequestIntent:
        """Classify an HTTP method. Safe methods are READ, all others WRITE."""
        if method.strip().upper() in _SAFE_METHODS:
            return cls.READ
        return cls.WRITE


_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class TTLClass(str, enum.Enum):
    """Freshness class a caller picks for a cacheable call."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


# --- Configuration ---


class TTLConfig(BaseModel):
    """Durations behind each :class:`TTLClass`, in seconds."""

    short_seconds: int = Field(default=5 * 60, gt=0)
    medium_seconds: int = Field(default=30 * 60, gt=0)
    long_seconds: int = Field(default=24 * 60 * 60, gt=0)

    def to_ms(self, ttl_class: TTLClass | str) -> int:
        """Resolve *ttl_class* to a duration in milliseconds."""
        ttl_class = TTLClass(ttl_class)
        seconds = {
            TTLClass.SHORT: self.short_seconds,
            TTLClass.MEDIUM: self.medium_seconds,
            TTLClass.LONG: self.long_seconds,
        }[ttl_class]
        return seconds * 1000


class CacheConfig(BaseModel):
    """Settings for the response cache, the offline queue and the sweeper.

    Stored under the ``cache`` key of :class:`GlobalConfig`. Every field can
    also be overridden per process through ``APICACHE_*`` environment
    variables; see :func:`~apicache.config.resolve_config`.
    """

    enabled: bool = Field(default=True, description="Enable response caching")
    directory: Optional[Path] = Field(
        default=None,
        description="Root directory for the durable tables (default: XDG cache dir)",
    )
    ttl: TTLConfig = Field(default_factory=TTLConfig)
    default_ttl_class: TTLClass = Field(
        default=TTLClass.MEDIUM, description="TTL class used when a caller gives none"
    )
    max_items: int = Field(default=500, ge=1, description="Response cache entry cap")
    max_queue_items: int = Field(
        default=100, ge=1, description="Offline queue soft cap (oldest dropped beyond it)"
    )
    cleanup_interval_ms: int = Field(
        default=15 * 60 * 1000, gt=0, description="Cleanup scheduler tick period"
    )
    max_replay_attempts: int = Field(
        default=5, ge=1, description="Failed replays before an entry is dead-lettered"
    )
    cleanup_on_start: bool = Field(
        default=True, description="Run one eviction pass when the scheduler starts"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/apicache/config.json``.

    Loaded and saved by :func:`~apicache.config.load_global_config` and
    :func:`~apicache.config.save_global_config`.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Stored records ---


class CacheEntry(BaseModel):
    """One cached response in the ``response-cache`` table.

    Immutable once written; storing the same key again replaces the whole
    entry. ``method``, ``url`` and ``params`` record where the entry came
    from and are not consulted for lookups once the key is derived.
    ``intent`` is classified from ``method`` unless given explicitly.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    method: str
    url: str
    params: Optional[dict[str, Any]] = None
    intent: RequestIntent = RequestIntent.READ
    payload: Any = None
    stored_at: int
    expires_at: int

    @model_validator(mode="before")
    @classmethod
    def _derive_intent(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("intent") is None and "method" in data:
            data = {**data, "intent": RequestIntent.from_method(str(data["method"]))}
        return data

    @model_validator(mode="after")
    def _check_window(self) -> CacheEntry:
        if self.expires_at <= self.stored_at:
            raise ValueError(
                f"expires_at ({self.expires_at}) must be after stored_at ({self.stored_at})"
            )
        return self

    @classmethod
    def build(
        cls,
        key: str,
        method: str,
        url: str,
        params: Optional[dict[str, Any]],
        payload: Any,
        ttl_ms: int,
        now: int,
    ) -> CacheEntry:
        """Create an entry stored at *now* that expires *ttl_ms* later."""
        return cls(
            key=key,
            method=method,
            url=url,
            params=params,
            intent=RequestIntent.from_method(method),
            payload=payload,
            stored_at=now,
            expires_at=now + ttl_ms,
        )

    def is_expired(self, now: int) -> bool:
        """True once *now* is past ``expires_at``."""
        return self.expires_at < now


class RequestDescriptor(BaseModel):
    """A mutating request as handed to the offline queue."""

    method: str
    url: str
    body: Any = None
    headers: Optional[dict[str, str]] = None


class QueueEntry(BaseModel):
    """A pending mutating request in the ``offline-queue`` table.

    Ordered for replay by ``id``. Only ``retry_count`` ever changes after
    the entry is written.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    method: str
    url: str
    body: Any = None
    headers: Optional[dict[str, str]] = None
    enqueued_at: int
    retry_count: int = Field(default=0, ge=0)

    def to_request(self) -> RequestDescriptor:
        """Return the request this entry will replay."""
        return RequestDescriptor(
            method=self.method, url=self.url, body=self.body, headers=self.headers
        )


class DeadLetter(BaseModel):
    """A queue entry that exhausted its replay attempts."""

    model_config = ConfigDict(frozen=True)

    entry: QueueEntry
    reason: str
    dead_at: int


# --- Reports ---


class CacheStats(BaseModel):
    """Aggregate view over the response cache."""

    total_items: int = 0
    approx_byte_size: int = 0
    oldest_timestamp: Optional[int] = None
    newest_timestamp: Optional[int] = None
    expiring_within_24h: int = 0


class QueueStats(BaseModel):
    """Aggregate view over the offline queue and its dead letters."""

    pending: int = 0
    dead_letters: int = 0
    dropped_total: int = 0
    dead_letters_discarded: int = 0
    oldest_enqueued_at: Optional[int] = None
    newest_enqueued_at: Optional[int] = None


class DiagnosticsReport(BaseModel):
    """Combined diagnostics for both durable tables."""

    cache: CacheStats = Field(default_factory=CacheStats)
    queue: QueueStats = Field(default_factory=QueueStats)


class ReplayResult(BaseModel):
    """Counters from one pass over the offline queue."""

    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0
    remaining: int = 0
