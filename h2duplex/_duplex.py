from __future__ import annotations

import trio
from typing_extensions import override

from ._cancellation import CancellationSignal
from ._errors import ConnectionCancelledError, ConnectionClosedError
from ._flushing_writer import FlushingWriter


class _ConflictDetector:
    """Raises BusyResourceError if two tasks enter at once."""

    def __init__(self, msg: str) -> None:
        self._msg = msg
        self._held = False

    def __enter__(self) -> None:
        if self._held:
            raise trio.BusyResourceError(self._msg)
        self._held = True

    def __exit__(self, exc_type, exc, tb) -> None:
        self._held = False


class DuplexConnection(trio.abc.Stream):
    """A full-duplex byte stream over one HTTP/2 request and its response.

    Reading returns the request body as the peer sends it. Writing sends
    response body data and flushes it to the network. Both directions
    end when the connection is closed or the request is done.

    One task may read while another writes. Two concurrent reads, or two
    concurrent writes, raise `trio.BusyResourceError`.

    Closing the connection closes the request body, which wakes up a
    pending read if the body stream supports that. For body streams that
    don't, a pending read only returns once the request is done.
    """

    def __init__(
        self,
        inbound: trio.abc.ReceiveStream,
        outbound: FlushingWriter,
        done: CancellationSignal,
    ) -> None:
        self._inbound = inbound
        self._outbound = outbound
        self._done = done

        self._closed = False
        self._receive_conflict = _ConflictDetector(
            "another task is already reading from this connection"
        )
        self._send_conflict = _ConflictDetector(
            "another task is already writing to this connection"
        )

    @property
    def closed(self) -> bool:
        """Whether the connection was closed or the request is done."""
        return self._closed or self._done.is_set()

    @property
    def cancelled(self) -> bool:
        """Whether the request is done."""
        return self._done.is_set()

    async def wait_cancelled(self) -> None:
        """Block until the request is done.

        Race this against reads in a nursery to react to the request
        ending without waiting for a read or write to fail.
        """
        await self._done.wait()

    @override
    async def receive_some(self, max_bytes: int | None = None) -> bytes:
        """Read the next bytes sent by the peer.

        Returns b"" once the peer has ended the request body.

        Raises:
            ConnectionClosedError: If the connection was closed.
            ConnectionCancelledError: If the request is done, including
                when it ends during the read.
        """
        if max_bytes is not None and max_bytes < 1:
            raise ValueError("max_bytes must be >= 1")

        with self._receive_conflict:
            self._check_open()

            with self._done.open_cancel_scope():
                try:
                    return await self._inbound.receive_some(max_bytes)
                except trio.ClosedResourceError as e:
                    if self._closed:
                        raise ConnectionClosedError("connection was closed") from e
                    raise

            raise self._cancelled_error()

    @override
    async def send_all(self, data: bytes | bytearray | memoryview) -> None:
        """Send bytes to the peer and flush them.

        Raises:
            ConnectionClosedError: If the connection was closed.
            ConnectionCancelledError: If the request is done, including
                when it ends during the write. Part of the data may have
                been sent in that case.
        """
        with self._send_conflict:
            self._check_open()

            with self._done.open_cancel_scope():
                await self._outbound.write(bytes(data))
                return

            raise self._cancelled_error()

    @override
    async def wait_send_all_might_not_block(self) -> None:
        with self._send_conflict:
            self._check_open()
            await trio.lowlevel.checkpoint()

    @override
    async def aclose(self) -> None:
        """Close the connection. Calling this again is a no-op."""
        if self._closed:
            await trio.lowlevel.checkpoint()
            return

        self._closed = True
        try:
            await self._outbound.aclose()
        finally:
            await self._inbound.aclose()

    def _check_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError("connection was closed")
        if self._done.is_set():
            raise self._cancelled_error()

    def _cancelled_error(self) -> ConnectionCancelledError:
        return ConnectionCancelledError(f"request is done: {self._done.reason}")
