from __future__ import annotations

import contextlib
from typing import Iterator

import trio


class CancellationSignal:
    """A one-shot "done" signal tied to the lifetime of a request.

    The signal is set once, when the server tears down the exchange, and
    is never reset. `reason` is one of "stream reset by peer", "connection
    terminated by peer", "connection closed" or "handler returned". Stopping
    the server closes its connections, so it reports "connection closed".

    Besides being awaitable like a `trio.Event`, the signal can cancel
    cancel scopes opened with `open_cancel_scope`, which is how blocking
    operations are bounded by the request's lifetime.
    """

    def __init__(self) -> None:
        self._event = trio.Event()
        self._reason: str | None = None
        self._scopes: set[trio.CancelScope] = set()

    @property
    def reason(self) -> str | None:
        """Why the signal was set, or None if it is not set."""
        return self._reason

    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self, reason: str) -> None:
        """Set the signal and cancel all scopes opened against it.

        Only the first call has an effect.
        """
        if self._event.is_set():
            return

        self._reason = reason
        self._event.set()

        for scope in self._scopes:
            scope.cancel()

    async def wait(self) -> None:
        """Block until the signal is set."""
        await self._event.wait()

    @contextlib.contextmanager
    def open_cancel_scope(self) -> Iterator[trio.CancelScope]:
        """Open a cancel scope that is cancelled when the signal is set.

        If the signal is already set, the scope starts out cancelled.
        Check `scope.cancelled_caught` after the block to see whether the
        signal interrupted it.
        """
        scope = trio.CancelScope()
        if self._event.is_set():
            scope.cancel()

        self._scopes.add(scope)
        try:
            with scope:
                yield scope
        finally:
            self._scopes.discard(scope)
