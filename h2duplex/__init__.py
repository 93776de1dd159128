"""Full-duplex byte streams over HTTP/2 requests, built on trio."""

from ._accept import AcceptConfig, accept
from ._app_handler import AppHandler
from ._cancellation import CancellationSignal
from ._duplex import DuplexConnection
from ._errors import (
    ConnectionCancelledError,
    ConnectionClosedError,
    HTTP2NotSupportedError,
)
from ._flushing_writer import Flushable, FlushingWriter
from ._request import DataChunk, DataChunkReceiveStream, Header, HTTP2Request
from ._response import HTTP2Response
from ._server import Server, serve

__version__ = "0.1.0.dev1"

__all__ = [
    "accept",
    "AcceptConfig",
    "DuplexConnection",
    "FlushingWriter",
    "Flushable",
    "CancellationSignal",
    "HTTP2NotSupportedError",
    "ConnectionClosedError",
    "ConnectionCancelledError",
    "serve",
    "Server",
    "AppHandler",
    "HTTP2Request",
    "HTTP2Response",
    "DataChunk",
    "DataChunkReceiveStream",
    "Header",
]
