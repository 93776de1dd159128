from __future__ import annotations

import ssl

import hyperframe.frame
import pytest
import trio
import trustme

import h2duplex

from . import http2tester


@pytest.fixture
def tls_certs() -> tuple[ssl.SSLContext, ssl.SSLContext]:
    """Server and client TLS contexts trusting a throwaway CA.

    ALPN protocols are left unset.
    """
    ca = trustme.CA()
    cert = ca.issue_cert("127.0.0.1", "localhost")

    ssl_server = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)
    cert.configure_cert(ssl_server)

    ssl_client = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)
    ca.configure_trust(ssl_client)

    return ssl_server, ssl_client


@pytest.fixture
def start_test_server(nursery: trio.Nursery):
    """Start a server for the duration of the test.

    Args:
        app: The handler to run on the server.
        initiated: Whether to initiate the connection and handle the initial
            frames. Defaults to False.
        http2_settings: Initial server HTTP/2 setting overrides.
        ssl_server: Server TLS context. The server uses cleartext HTTP/2
            if this is not given.
        ssl_client: Client TLS context, required with `ssl_server`.
        event_channel: Passed to `serve`.

    Returns:
        An HTTP2Tester instance.
    """

    async def fn(
        app,
        *,
        initiated=False,
        http2_settings=None,
        ssl_server=None,
        ssl_client=None,
        event_channel=None,
    ) -> http2tester.HTTP2Tester:
        server = await h2duplex.serve(
            nursery,
            app,
            host="127.0.0.1",
            port=0,
            ssl_context=ssl_server,
            http2_settings=http2_settings,
            event_channel=event_channel,
        )

        stream: trio.abc.Stream
        if ssl_server:
            stream = await trio.open_ssl_over_tcp_stream(
                "127.0.0.1",
                server.localhost_port,
                ssl_context=ssl_client,
            )
        else:
            stream = await trio.open_tcp_stream("127.0.0.1", server.localhost_port)

        tester = http2tester.HTTP2Tester(server, stream)

        if initiated:
            await tester.initiate_connection()
            await tester.expect(hyperframe.frame.SettingsFrame)  # Server
            await tester.expect(hyperframe.frame.SettingsFrame)  # Client ack

        return tester

    return fn


@pytest.fixture
def expect_soon():
    """Retry an assertion until it passes or a second elapses."""

    async def fn(assertion) -> None:
        with trio.move_on_after(1):
            while True:
                try:
                    assertion()
                    return
                except AssertionError:
                    await trio.sleep(0.01)

        assertion()

    return fn
