"""Cancellation tokens for in-flight requests.

A :class:`CancelTokenSource` owns a :class:`CancelToken`.  The token is
attached to a :class:`~respcache.client.request.RequestConfig`; when the
source is cancelled before dispatch, the client raises
:class:`~respcache.exceptions.Cancel` instead of touching the network and
the cancel reason travels with the exception.
"""

from __future__ import annotations

from typing import Any

from respcache.exceptions import Cancel


class CancelToken:
    """Read-only view of a cancellation request."""

    def __init__(self) -> None:
        self._requested = False
        self._reason: Any = None

    @property
    def requested(self) -> bool:
        return self._requested

    @property
    def reason(self) -> Any:
        return self._reason

    def throw_if_requested(self, config: Any = None) -> None:
        """Raise :class:`Cancel` carrying the reason if cancellation was requested."""
        if self._requested:
            raise Cancel(self._reason, config=config)

    @classmethod
    def source(cls) -> CancelTokenSource:
        return CancelTokenSource(cls())


class CancelTokenSource:
    """Pairs a token with the ability to cancel it."""

    def __init__(self, token: CancelToken) -> None:
        self.token = token

    def cancel(self, reason: Any = None) -> None:
        """Request cancellation.  Only the first call records a reason."""
        if self.token._requested:
            return
        self.token._reason = reason
        self.token._requested = True


def is_cancel(error: BaseException) -> bool:
    """Whether *error* is a cancellation rather than a transport failure."""
    return isinstance(error, Cancel)
