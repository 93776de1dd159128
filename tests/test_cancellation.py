import trio
import trio.testing

import h2duplex


def test_first_reason_wins() -> None:
    signal = h2duplex.CancellationSignal()
    assert not signal.is_set()
    assert signal.reason is None

    signal.set("first")
    signal.set("second")

    assert signal.is_set()
    assert signal.reason == "first"


async def test_wakes_waiters() -> None:
    signal = h2duplex.CancellationSignal()

    async with trio.open_nursery() as nursery:
        nursery.start_soon(signal.wait)
        await trio.testing.wait_all_tasks_blocked()
        signal.set("done")


async def test_cancels_open_scopes() -> None:
    signal = h2duplex.CancellationSignal()
    finished = False

    async def wait_in_scope():
        nonlocal finished
        with signal.open_cancel_scope() as scope:
            await trio.sleep_forever()
        assert scope.cancelled_caught
        finished = True

    async with trio.open_nursery() as nursery:
        nursery.start_soon(wait_in_scope)
        await trio.testing.wait_all_tasks_blocked()
        signal.set("done")

    assert finished


async def test_scope_starts_cancelled_if_already_set() -> None:
    signal = h2duplex.CancellationSignal()
    signal.set("done")

    with signal.open_cancel_scope() as scope:
        await trio.sleep_forever()

    assert scope.cancelled_caught


async def test_scope_is_unaffected_after_exit() -> None:
    signal = h2duplex.CancellationSignal()

    with signal.open_cancel_scope() as scope:
        await trio.lowlevel.checkpoint()

    signal.set("done")
    assert not scope.cancel_called
