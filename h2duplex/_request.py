from __future__ import annotations

import dataclasses
import math
from typing_extensions import override

import trio

from ._cancellation import CancellationSignal


class HTTP2Request:
    """An HTTP/2 request.

    All attributes are read-only and must not be modified.

    Attributes:
        headers: All request headers, in order.
        body: A channel of request body chunks. Reading from it raises EndOfChannel
            after all data has been received. Closing it indicates that the rest of
            the body can be discarded. Every received chunk must be acknowledged by
            setting its `ack` event to emit window updates; failing to do so can result
            in a deadlock if flow control is used.
        trailers: A channel of trailers, closed after the entire request is received.
            This must not be read until the body has been fully read or closed.
            Reading from it raises EndOfChannel after the entire request has been
            received. Closing it indicates that any trailers can be discarded.
        http_version: The (major, minor) protocol version of the request.
        done: Set when the request is over: the stream was reset, the connection
            closed, or the handler returned.
    """

    http_version: tuple[int, int] = (2, 0)

    def __init__(
        self,
        headers: list[Header],
        body: trio.abc.ReceiveChannel[DataChunk],
        trailers: trio.abc.ReceiveChannel[Header],
        done: CancellationSignal,
    ):
        self.headers = headers
        self.body = body
        self.trailers = trailers
        self.done = done

    def body_stream(self) -> DataChunkReceiveStream:
        """The request body as a byte stream that acknowledges what it reads.

        Use either this or `body`, not both.
        """
        return DataChunkReceiveStream(self.body)


@dataclasses.dataclass(frozen=True)
class Header:
    name: bytes
    value: bytes


@dataclasses.dataclass(frozen=True)
class DataChunk:
    data: bytes
    ack: trio.Event


def unbuffered_data_chunk_channel() -> tuple[
    trio.MemorySendChannel[DataChunk],
    DataChunkReceiveChannel,
]:
    send, recv = trio.open_memory_channel[DataChunk](math.inf)
    return send, DataChunkReceiveChannel(recv)


class DataChunkReceiveChannel(trio.abc.ReceiveChannel[DataChunk]):
    """Wraps a receive channel to ack all buffered data chunks on close."""

    def __init__(self, chan: trio.MemoryReceiveChannel[DataChunk]) -> None:
        self._chan = chan

    def close(self) -> None:
        self._ack_all()
        self._chan.close()

    @override
    async def aclose(self) -> None:
        self._ack_all()
        await self._chan.aclose()

    @override
    async def receive(self) -> DataChunk:
        return await self._chan.receive()

    def _ack_all(self) -> None:
        """Acknowledge all buffered chunks."""
        while True:
            try:
                chunk = self._chan.receive_nowait()
                chunk.ack.set()
            except (trio.WouldBlock, trio.EndOfChannel, trio.ClosedResourceError):
                return


class DataChunkReceiveStream(trio.abc.ReceiveStream):
    """A byte stream over a channel of data chunks.

    A chunk is acknowledged once all of its bytes have been returned
    from `receive_some`, or when the stream is closed.
    """

    def __init__(self, chunks: trio.abc.ReceiveChannel[DataChunk]) -> None:
        self._chunks = chunks
        self._pending: DataChunk | None = None
        self._remaining = memoryview(b"")

    @override
    async def receive_some(self, max_bytes: int | None = None) -> bytes:
        if max_bytes is not None and max_bytes < 1:
            raise ValueError("max_bytes must be >= 1")

        if self._pending is not None:
            await trio.lowlevel.checkpoint()

        while self._pending is None:
            try:
                chunk = await self._chunks.receive()
            except trio.EndOfChannel:
                return b""

            # An empty DATA frame must not look like the end of the stream.
            if not chunk.data:
                chunk.ack.set()
                continue

            self._pending = chunk
            self._remaining = memoryview(chunk.data)

        if max_bytes is None:
            max_bytes = len(self._remaining)

        data = bytes(self._remaining[:max_bytes])
        self._remaining = self._remaining[len(data) :]

        if not self._remaining:
            self._pending.ack.set()
            self._pending = None

        return data

    @override
    async def aclose(self) -> None:
        if self._pending:
            self._pending.ack.set()
            self._pending = None
            self._remaining = memoryview(b"")

        await self._chunks.aclose()
