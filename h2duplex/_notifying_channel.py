from __future__ import annotations

import dataclasses

import trio
from typing_extensions import override


@dataclasses.dataclass(frozen=True)
class OutgoingData:
    """Bytes to write to the transport.

    Attributes:
        data: The bytes. May be empty, in which case the entry only marks
            a position in the queue.
        written: Set by the writer once `data` and everything queued before
            it has been handed to the transport.
    """

    data: bytes
    written: trio.Event | None = None

    def mark_written(self) -> None:
        if self.written is not None:
            self.written.set()


def notifying_channel(
    buffer: int | float,
) -> tuple[NotifyingSendChannel, NotifyingReceiveChannel]:
    """A channel of outgoing bytes that notifies once they are written.

    Senders may attach an event to a send. The receiver, which writes the
    bytes to the network, sets that event after the write completes. Since
    the channel is FIFO, sending empty data with an event and waiting on it
    is a flush: it returns once everything sent before it is on the wire.
    """
    send, recv = trio.open_memory_channel[OutgoingData](buffer)
    return (
        NotifyingSendChannel(send),
        NotifyingReceiveChannel(recv),
    )


class NotifyingSendChannel:
    """The sender side of a notifying channel of bytes."""

    def __init__(self, chan: trio.MemorySendChannel[OutgoingData]) -> None:
        self._chan = chan

    async def send(self, data: bytes, written: trio.Event | None = None) -> None:
        """Send data on the channel.

        Args:
            data: The data to send.
            written: An event that is set when that data is written out.

        Raises:
            trio.ClosedResourceError: If this side was closed.
            trio.BrokenResourceError: If the receiver was closed.
        """
        await self._chan.send(OutgoingData(data, written))

    def close(self) -> None:
        """Close the underlying channel, making future send operations fail.

        The receiving end of the channel will raise an EndOfChannel exception
        after it is drained.
        """
        self._chan.close()


class NotifyingReceiveChannel(trio.abc.ReceiveChannel[OutgoingData]):
    """The receiver side of a notifying channel of bytes.

    The receiver must call `mark_written` on every received item after
    writing its data.
    """

    def __init__(self, chan: trio.MemoryReceiveChannel[OutgoingData]) -> None:
        self._chan = chan

    @override
    async def receive(self) -> OutgoingData:
        return await self._chan.receive()

    @override
    async def aclose(self) -> None:
        await self._chan.aclose()

    def close(self) -> None:
        """Close the underlying channel, making future receive operations fail."""
        self._chan.close()
