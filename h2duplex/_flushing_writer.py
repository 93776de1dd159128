from __future__ import annotations

import contextlib
from typing import Protocol, runtime_checkable

import trio


class BodyWriter(Protocol):
    """Anything that accepts response body bytes."""

    async def body(self, data: bytes) -> None: ...


@runtime_checkable
class Flushable(Protocol):
    """A response that can push buffered output to the network on demand."""

    async def flush(self) -> None: ...


class FlushingWriter:
    """Writes response body data and flushes after every write.

    This does not own the response. Closing it is a no-op because the
    response stream is ended by the server once the handler returns.
    """

    def __init__(self, writer: BodyWriter, flusher: Flushable) -> None:
        self._writer = writer
        self._flusher = flusher

    async def write(self, data: bytes) -> None:
        """Write `data`, then flush.

        The flush happens even if the write fails or `data` is empty. If
        the write fails, its error propagates and a flush error is
        dropped. Otherwise flush errors propagate.
        """
        try:
            await self._writer.body(data)
        except BaseException:
            with contextlib.suppress(Exception):
                await self._flusher.flush()
            raise

        await self._flusher.flush()

    async def aclose(self) -> None:
        await trio.lowlevel.checkpoint()
