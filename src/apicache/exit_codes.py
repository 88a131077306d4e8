"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~apicache.exceptions.ApiCacheError` subclass.
Shell wrappers can inspect the exit code of ``apicache`` to learn the
failure class without parsing stderr.
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or a malformed pattern."""

EXIT_NOT_FOUND = 4
"""A queued request or dead letter with the given id does not exist."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP error while replaying or fetching."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORAGE_ERROR = 8
"""The cache directory could not be opened or closed."""
