from __future__ import annotations

import logging
import math
from typing import Iterable

import hpack
import trio

from ._app_handler import AppHandler
from ._cancellation import CancellationSignal
from ._request import DataChunk, Header, HTTP2Request, unbuffered_data_chunk_channel
from ._response import HTTP2Response
from ._state import HTTP2State
from ._logging import ContextualLogger

_logger = ContextualLogger(logging.getLogger(__name__))


class HTTP2StreamHandler:
    """A handler for a single stream in an HTTP/2 connection."""

    def __init__(
        self,
        state: HTTP2State,
        stream_id: int,
        headers: Iterable[hpack.HeaderTuple],
        ack_nursery: trio.Nursery,
    ) -> None:
        """Initialize the handler.

        Args:
            state: The connection's HTTP/2 state.
            stream_id: The stream to handle.
            headers: The request headers.
            ack_nursery: Nursery for the tasks that return acknowledged body
                data to the peer's flow control window. It must outlive the
                handler.
        """
        self._state = state
        self.id = stream_id
        self._headers = [Header(name, value) for (name, value) in headers]

        self._scope = trio.CancelScope()
        self._ack_nursery = ack_nursery
        self._unacked: set[trio.Event] = set()
        self._finished = False
        self.done = CancellationSignal()

        # We use HTTP/2 flow control to bound the memory usage of request data.
        # The h2 package raises errors if the client sends more data than it's allowed.
        body_in, body_out = unbuffered_data_chunk_channel()
        self._req_body_in = body_in
        self._req_body_out = body_out

        # We also allow infinite-buffering of trailers.
        trailers_in, trailers_out = trio.open_memory_channel[Header](math.inf)
        self._trailers_in = trailers_in
        self._trailers_out = trailers_out

    async def run(self, app: AppHandler) -> None:
        """Run application logic to respond to a request.

        Returns early without error if the stream is cancelled.

        Raises:
            Exception: Any error from the application handler. The stream is not
                automatically reset when this happens.
        """
        try:
            with self._scope:
                await self._run_app(app)

        except trio.Cancelled:
            # Cancellation from outside the handler's own scope means the
            # connection is being torn down, for example by `Server.stop`.
            self.done.set("connection closed")
            raise

        finally:
            self._finished = True
            self.done.set("handler returned")

            # Whatever the app did not consume is discarded.
            self._req_body_out.close()
            self._trailers_out.close()
            for ack_event in self._unacked:
                ack_event.set()
            self._unacked.clear()

    async def _run_app(self, app: AppHandler) -> None:
        req = HTTP2Request(
            self._headers,
            self._req_body_out,
            self._trailers_out,
            self.done,
        )

        resp = HTTP2Response(
            self.id,
            self._state,
        )

        await app(req, resp)

        # The response may only be finished once the request is done, so
        # that a duplex connection escaping the handler stops working first.
        self.done.set("handler returned")

        if not resp.headers_sent:
            _logger.warning("Application did not send a response. Sending status 500.")
            await resp.headers(500, [], end_stream=True)

        elif not resp.ended:
            _logger.debug("Ending response stream after the application returned.")
            await resp.end()

    def cancel(self, reason: str) -> None:
        """Cancel the application logic for the stream.

        This may be called before `run`, in which case `run` returns
        immediately.
        """
        self.done.set(reason)
        self._scope.cancel()

    def push_data(self, data: bytes, flow_controlled_length: int) -> None:
        """Push a request body chunk to the app."""
        ack_event = trio.Event()
        self._ack_nursery.start_soon(self._handle_ack, ack_event, flow_controlled_length)

        if self._finished:
            ack_event.set()
            return

        self._unacked.add(ack_event)

        try:
            self._req_body_in.send_nowait(DataChunk(data, ack_event))
        except (trio.ClosedResourceError, trio.BrokenResourceError):
            # This means the handler will not read the rest of the body,
            # so we can simply ack the data.
            ack_event.set()
            return

    async def _handle_ack(self, ack_event: trio.Event, length: int) -> None:
        await ack_event.wait()
        self._unacked.discard(ack_event)

        async with self._state.use() as state:
            state.acknowledge_received_data(length, self.id)

    def push_trailers(self, trailers: Iterable[hpack.HeaderTuple]) -> None:
        """Push request trailers to the app."""
        try:
            for name, value in trailers:
                self._trailers_in.send_nowait(Header(name, value))
        except (trio.ClosedResourceError, trio.BrokenResourceError):
            # This means the handler will not read the rest of the trailers.
            return

    def mark_complete(self) -> None:
        """Indicate that the request has been fully received."""
        self._req_body_in.close()
        self._trailers_in.close()
