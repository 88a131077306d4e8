"""Exception hierarchy for apicache.

All exceptions inherit from :class:`ApiCacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`apicache.exit_codes`.

Storage faults raised by :mod:`diskcache` or SQLite during normal cache
operations are *not* translated into these exceptions: the cache is an
optimisation layer, so those faults are logged and degraded to a miss or
a no-op at the point where they occur.  Only programming errors (for
example a malformed invalidation pattern) and explicit lifecycle failures
reach the caller.

Subclass hierarchy::

    ApiCacheError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- PatternError        (exit 2)
    +-- StorageError        (exit 8)
    +-- ConfigError         (exit 1)
    +-- ConnectionError_    (exit 6)
    +-- ServerError         (exit 5)
"""

from apicache.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SERVER_ERROR,
    EXIT_STORAGE_ERROR,
)


class ApiCacheError(Exception):
    """Base exception for all apicache errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(ApiCacheError):
    """Raised for invalid CLI arguments or out-of-range values."""

    exit_code = EXIT_INVALID_USAGE


class PatternError(ApiCacheError, ValueError):
    """Raised when an invalidation pattern cannot be used.

    Also a :class:`ValueError` so library callers can treat it as bad input.
    """

    exit_code = EXIT_INVALID_USAGE


class StorageError(ApiCacheError):
    """Raised when a cache directory cannot be opened."""

    exit_code = EXIT_STORAGE_ERROR


class ConfigError(ApiCacheError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class ConnectionError_(ApiCacheError):
    """Raised by the transport adapter on network-level failures.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ServerError(ApiCacheError):
    """Raised by the transport adapter when the API answers with an HTTP error."""

    exit_code = EXIT_SERVER_ERROR
