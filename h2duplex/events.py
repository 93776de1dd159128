"""Events reported on the channel passed to `serve(event_channel=...)`."""

from __future__ import annotations

import dataclasses


class ServerEvent:
    """An event of interest on the server."""


INETSocketAddr = tuple[str, int] | tuple[str, int, int, int]
"""An IPv4 (host, port) or an IPv6 (host, port, flowinfo, scope_id).

See the Python socket module's descriptions of the AF_INET and AF_INET6
socket families.
"""


@dataclasses.dataclass(frozen=True)
class ConnectionError(ServerEvent):
    """A connection was closed due to an error."""

    peer: INETSocketAddr
    exc: Exception


@dataclasses.dataclass(frozen=True)
class StreamError(ServerEvent):
    """A stream was closed due to an error in its handler."""

    peer: INETSocketAddr
    stream_id: int
    exc: Exception
