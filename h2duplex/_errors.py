from __future__ import annotations

import trio


class HTTP2NotSupportedError(Exception):
    """The exchange cannot be turned into a duplex connection.

    Raised by `accept` when the request's protocol is older than HTTP/2
    or the response cannot be flushed. Nothing has been written to the
    response, so the handler may still answer it some other way.
    """


class ConnectionClosedError(trio.ClosedResourceError):
    """An operation was attempted on a closed duplex connection."""


class ConnectionCancelledError(ConnectionClosedError):
    """The request the duplex connection belongs to is done.

    This happens when the peer resets the stream, the HTTP/2 connection
    goes away, the handler returns or the server stops.
    """
