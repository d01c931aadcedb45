"""Exception hierarchy for respcache.

All exceptions inherit from :class:`RespcacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`respcache.exit_codes`.
The CLI entry point in :func:`respcache.app.main` catches
``RespcacheError`` and exits with the appropriate code.

Only :class:`TransportError` (and a caller's own :class:`Cancel`) ever
reach code that calls the client.  Cache hits travel as a :class:`Cancel`
whose reason is a :class:`~respcache.cache.store.CacheHitSignal` and are
unwrapped before the caller sees them; :class:`PersistenceError` is
absorbed by the persistent mirror.

Subclass hierarchy::

    RespcacheError (exit 1)
    +-- ConfigError         (exit 2)
    +-- TransportError      (exit 5)
    |   +-- ConnectionError_  (exit 6)
    |   +-- AuthError         (exit 3)
    |   +-- NotFoundError     (exit 4)
    |   +-- ServerError       (exit 5)
    +-- Cancel              (exit 8)
    +-- PersistenceError    (exit 9)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from respcache.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PERSISTENCE_ERROR,
    EXIT_SERVER_ERROR,
)

if TYPE_CHECKING:
    import httpx


class RespcacheError(Exception):
    """Base exception for all respcache errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(RespcacheError):
    """Raised for invalid cache options or a repeated ``use()`` call."""

    exit_code = EXIT_INVALID_USAGE


class TransportError(RespcacheError):
    """A genuine network or server failure.

    Propagated unchanged through the cache's error handler.  When the
    server answered, :attr:`response` holds the :class:`httpx.Response`.
    """

    exit_code = EXIT_SERVER_ERROR

    def __init__(
        self,
        message: str,
        response: Optional[httpx.Response] = None,
        exit_code: int | None = None,
    ):
        super().__init__(message, exit_code=exit_code)
        self.response = response

    @property
    def status_code(self) -> int | None:
        """HTTP status of :attr:`response`, or ``None`` for network failures."""
        return self.response.status_code if self.response is not None else None


class ConnectionError_(TransportError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class AuthError(TransportError):
    """Raised when the API returns HTTP 401 or 403."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(TransportError):
    """Raised when the API returns HTTP 404 (resource not found)."""

    exit_code = EXIT_NOT_FOUND


class ServerError(TransportError):
    """Raised for every other non-2xx status."""

    exit_code = EXIT_SERVER_ERROR


class Cancel(RespcacheError):
    """Raised by the client when a request's cancel token was cancelled.

    Args:
        reason: Whatever was passed to
            :meth:`~respcache.client.cancel.CancelTokenSource.cancel`.
        config: The :class:`~respcache.client.request.RequestConfig` that
            was about to be dispatched.
    """

    exit_code = EXIT_CANCELLED

    def __init__(self, reason: Any = None, config: Any = None):
        super().__init__("Request cancelled" if reason is None else f"Request cancelled: {reason!r}")
        self.reason = reason
        self.config = config


class PersistenceError(RespcacheError):
    """Raised by durable key/value stores when a read or write fails."""

    exit_code = EXIT_PERSISTENCE_ERROR
