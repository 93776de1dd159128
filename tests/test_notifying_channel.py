import math

import trio

from h2duplex._notifying_channel import OutgoingData, notifying_channel


async def test_mark_written_sets_event() -> None:
    written = trio.Event()

    OutgoingData(b"", written).mark_written()

    assert written.is_set()


def test_mark_written_without_event() -> None:
    OutgoingData(b"data").mark_written()


async def test_delivers_written_event_in_order() -> None:
    send, receive = notifying_channel(math.inf)
    written = trio.Event()

    await send.send(b"first")
    await send.send(b"", written)

    first = await receive.receive()
    marker = await receive.receive()
    first.mark_written()
    assert not written.is_set()

    marker.mark_written()
    assert marker.data == b""
    assert written.is_set()
