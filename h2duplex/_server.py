from __future__ import annotations

import functools
import logging
import ssl
from typing import cast

import h2.settings
import trio

from . import _events, events
from ._app_handler import AppHandler
from ._conn_handler import HTTP2ConnectionHandler
from ._logging import ContextualLogger

_logger = ContextualLogger(logging.getLogger(__name__))


class Server:
    def __init__(
        self,
        cancel_scope: trio.CancelScope,
        addresses: list[events.INETSocketAddr],
    ) -> None:
        self._cancel_scope = cancel_scope
        self._addresses = addresses

    @property
    def addresses(self) -> list[events.INETSocketAddr]:
        """All addresses on which new connections are being accepted."""
        return self._addresses

    @property
    def localhost_port(self) -> int:
        """The port on localhost on which the server accepts connections.

        Raises:
            ValueError: If the server is not running on localhost.
        """
        for host, port, *_ in self.addresses:
            if host in ("localhost", "127.0.0.1", "::1"):
                return port

        raise ValueError("The server is not running on localhost.")

    def stop(self) -> None:
        """Close all connections and cancel all handlers.

        Requests still in progress are done with reason "connection closed".
        After calling this, the server can no longer be used.
        Calling this method again is a no-op.
        """
        self._cancel_scope.cancel()


async def serve(
    nursery: trio.Nursery,
    app: AppHandler,
    *,
    host: str | bytes | None,
    port: int,
    ssl_context: ssl.SSLContext | None = None,
    http2_settings: dict[h2.settings.SettingCodes | int, int] | None = None,
    event_channel: trio.abc.SendChannel[events.ServerEvent] | None = None,
) -> Server:
    """Start an HTTP/2 server.

    Args:
        nursery: Parent nursery for the server.
        app: The application logic to run on every request.
        host: The host to listen on. For local testing, you often want the
            string "localhost" or "127.0.0.1", or your IP address on your local
            network (e.g. "192.168.0.<X>"). See `trio.open_tcp_listeners`.
        port: The port to listen on, or 0 to allow the OS to pick a port for you.
        ssl_context: The SSL context to use. It must be a server context (purpose
            set to `ssl.Purpose.CLIENT_AUTH`) with ALPN protocols set to ["h2"].
            If None, the server speaks cleartext HTTP/2 and clients must use
            prior knowledge.
        http2_settings: Initial settings to use on new connections.
            Unspecified settings use their default values.
        event_channel: If given, connection and stream errors are reported
            on this channel.

    Returns:
        A handle to the server.
    """
    server = await nursery.start(
        functools.partial(
            _serve,
            app,
            host=host,
            port=port,
            ssl_context=ssl_context,
            http2_settings=http2_settings,
            event_channel=event_channel,
        )
    )

    assert isinstance(server, Server)
    return server


async def _serve(
    app: AppHandler,
    host: str | bytes | None,
    port: int,
    ssl_context: ssl.SSLContext | None,
    http2_settings: dict[h2.settings.SettingCodes | int, int] | None,
    event_channel: trio.abc.SendChannel[events.ServerEvent] | None,
    *,
    task_status: trio.TaskStatus[Server] = trio.TASK_STATUS_IGNORED,
) -> None:
    listeners: list[trio.SocketListener] | list[trio.SSLListener[trio.SocketStream]]
    if ssl_context is not None:
        listeners = await trio.open_ssl_over_tcp_listeners(
            port,
            ssl_context,
            host=host,
        )
        sockets = [
            cast(trio.SocketListener, listener.transport_listener).socket
            for listener in listeners
        ]
    else:
        listeners = await trio.open_tcp_listeners(port, host=host)
        sockets = [listener.socket for listener in listeners]

    addresses: list[events.INETSocketAddr] = [
        sock.getsockname() for sock in sockets
    ]
    _logger.info("Listening on %s", addresses)

    # Connection tasks inherit this context.
    _events.server_events.set(event_channel)

    cancel_scope = trio.CancelScope()
    task_status.started(
        Server(
            cancel_scope=cancel_scope,
            addresses=addresses,
        )
    )

    async def handle(
        stream: trio.SocketStream | trio.SSLStream[trio.SocketStream],
    ) -> None:
        await HTTP2ConnectionHandler(stream, app).handle_no_except(
            initial_settings=http2_settings
        )

    with cancel_scope:
        await trio.serve_listeners(handle, listeners)
