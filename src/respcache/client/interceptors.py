"""Interceptor registries and the promise-style chain that runs them.

Each registered interceptor is a ``(fulfilled, rejected)`` pair.  The
chain carries either a value or an error from link to link:

* while it carries a value, each link's ``fulfilled`` handler may
  transform it (or raise, switching the chain to the error track);
* while it carries an error, the first link with a ``rejected`` handler
  receives it and either re-raises or returns a value, which puts the
  chain back on the value track.

Handlers may be plain functions or coroutine functions.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from respcache.hooks import resolve

Handler = Callable[[Any], Any]


@dataclass(frozen=True)
class Interceptor:
    id: int
    fulfilled: Optional[Handler] = None
    rejected: Optional[Handler] = None


class InterceptorManager:
    """Ordered registry for one phase (request or response)."""

    def __init__(self) -> None:
        self._handlers: dict[int, Interceptor] = {}
        self._ids = itertools.count()

    def use(self, fulfilled: Optional[Handler] = None, rejected: Optional[Handler] = None) -> int:
        """Register a handler pair and return its id for :meth:`eject`."""
        handle = next(self._ids)
        self._handlers[handle] = Interceptor(handle, fulfilled, rejected)
        return handle

    def eject(self, handle: int) -> None:
        self._handlers.pop(handle, None)

    def clear(self) -> None:
        self._handlers.clear()

    def __iter__(self) -> Iterator[Interceptor]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)


class Interceptors:
    """The request and response registries of one client."""

    def __init__(self) -> None:
        self.request = InterceptorManager()
        self.response = InterceptorManager()


async def run_chain(
    manager: InterceptorManager,
    value: Any,
    error: Optional[BaseException] = None,
) -> tuple[Any, Optional[BaseException]]:
    """Run every interceptor in *manager* in registration order.

    Returns:
        ``(value, None)`` when the chain ends on the value track, or
        ``(None, error)`` when it ends on the error track.
    """
    for interceptor in manager:
        try:
            if error is None:
                if interceptor.fulfilled is not None:
                    value = await resolve(interceptor.fulfilled(value))
            elif interceptor.rejected is not None:
                value = await resolve(interceptor.rejected(error))
                error = None
        except Exception as exc:
            value, error = None, exc
    return value, error
