from __future__ import annotations

import dataclasses
import logging
from typing import Iterable, Protocol

import trio

from ._cancellation import CancellationSignal
from ._duplex import DuplexConnection
from ._errors import HTTP2NotSupportedError
from ._flushing_writer import Flushable, FlushingWriter
from ._logging import ContextualLogger

_logger = ContextualLogger(logging.getLogger(__name__))


MIN_HTTP_VERSION = (2, 0)
"""The oldest protocol version that supports full-duplex request bodies."""


class DuplexRequest(Protocol):
    """The parts of a request that `accept` uses."""

    http_version: tuple[int, int]
    done: CancellationSignal

    def body_stream(self) -> trio.abc.ReceiveStream: ...


class DuplexResponse(Protocol):
    """The parts of a response that `accept` uses.

    The response must also be `Flushable` to be accepted.
    """

    async def headers(
        self,
        status: int,
        headers: Iterable[tuple[bytes, bytes]] = (),
    ) -> None: ...

    async def body(self, data: bytes) -> None: ...


@dataclasses.dataclass(frozen=True)
class AcceptConfig:
    """How `accept` starts the response.

    Attributes:
        status: The status code to send. Must be a final status, not 1xx.
        headers: Extra response headers to send with the status.
    """

    status: int = 200
    headers: tuple[tuple[bytes, bytes], ...] = ()

    def __post_init__(self) -> None:
        if not (200 <= self.status < 600):
            raise ValueError(
                f"The status must be a final status code; received {self.status}."
            )


async def accept(
    request: DuplexRequest,
    response: DuplexResponse,
    config: AcceptConfig | None = None,
) -> DuplexConnection:
    """Turn a request and its response into a duplex connection.

    Sends the response headers and flushes them, so that the client sees
    the response start right away. After that, read the request body and
    write the response body through the returned connection.

    This must be called at most once per request, before anything else is
    sent on the response.

    Usage:

        async def app(req, resp):
            try:
                conn = await h2duplex.accept(req, resp)
            except h2duplex.HTTP2NotSupportedError:
                await resp.headers(505, [], end_stream=True)
                return

            async with conn:
                async for data in conn:
                    await conn.send_all(data)

    Args:
        request: The request whose body becomes the inbound stream.
        response: The response whose body becomes the outbound stream.
        config: The status and headers to start the response with.
            Defaults to `AcceptConfig()`, a 200 response with no extra headers.

    Raises:
        HTTP2NotSupportedError: If the request is older than HTTP/2 or the
            response cannot be flushed. Nothing is sent in that case.
    """
    if request.http_version < MIN_HTTP_VERSION:
        raise HTTP2NotSupportedError(
            f"HTTP/{request.http_version[0]}.{request.http_version[1]}"
            " does not support duplex connections."
        )

    if not isinstance(response, Flushable):
        raise HTTP2NotSupportedError("The response does not support flushing.")

    if config is None:
        config = AcceptConfig()

    await response.headers(config.status, config.headers)
    await response.flush()
    _logger.debug("Accepted duplex connection with status %d.", config.status)

    return DuplexConnection(
        request.body_stream(),
        FlushingWriter(response, response),
        request.done,
    )
