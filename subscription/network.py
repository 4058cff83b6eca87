"""Listener setup: socket binding, TLS material and auto-HTTPS sniffing.

With TLS enabled the listener still accepts plain HTTP on the same port.
AutoHttpsProtocol buffers the first bytes of each connection: a TLS
handshake record is replayed into an SSL layer in front of uvicorn's h11
protocol, while a plain HTTP request is answered with a 307 redirect to
the https:// URL and closed.
"""

import asyncio
import logging
import socket
import ssl
from asyncio import sslproto
from typing import Optional

from uvicorn.protocols.http.h11_impl import H11Protocol

logger = logging.getLogger(__name__)

TLS_HANDSHAKE_RECORD = 0x16
MAX_SNIFF_BYTES = 2048

KIND_TLS = "tls"
KIND_HTTP = "http"


def bind_listener(host: str, port: int) -> socket.socket:
    """Bind a TCP listening socket; "" listens on every interface."""
    if not host and socket.has_dualstack_ipv6():
        return socket.create_server(("", port), family=socket.AF_INET6, dualstack_ipv6=True)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, port), family=family)


def load_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Load a server-side TLS context.

    Raises:
        OSError: If a file cannot be read
        ssl.SSLError: If the certificate or key is invalid
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert_file, key_file)
    return context


def sniff(data: bytes) -> Optional[str]:
    """Classify the leading bytes of a connection.

    Returns KIND_TLS, KIND_HTTP, or None when more bytes are needed.
    """
    if not data:
        return None
    if data[0] == TLS_HANDSHAKE_RECORD:
        return KIND_TLS
    if b"\r\n\r\n" in data or b"\n\n" in data or len(data) >= MAX_SNIFF_BYTES:
        return KIND_HTTP
    return None


def build_https_redirect(head: bytes) -> Optional[bytes]:
    """307 response pointing a plain request at https://<Host><target>.

    Returns None when the bytes are not an HTTP request with a Host header.
    """
    text = head.decode("latin-1")
    lines = text.replace("\r\n", "\n").split("\n")
    request_line = lines[0].split(" ")
    if len(request_line) != 3 or not request_line[2].startswith("HTTP/"):
        return None
    target = request_line[1]
    if not target.startswith("/"):
        target = "/"

    host = ""
    for line in lines[1:]:
        if not line:
            break
        name, sep, value = line.partition(":")
        if sep and name.strip().lower() == "host":
            host = value.strip()
            break
    if not host or any(c in host for c in " \t/\\"):
        return None

    location = f"https://{host}{target}"
    return (
        "HTTP/1.1 307 Temporary Redirect\r\n"
        f"Location: {location}\r\n"
        "Content-Length: 0\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode("latin-1")


def _replay(protocol: asyncio.BaseProtocol, data: bytes) -> None:
    """Deliver already-read bytes to a protocol as if they just arrived."""
    if not isinstance(protocol, asyncio.BufferedProtocol):
        protocol.data_received(data)
        return
    view = memoryview(data)
    while view:
        buf = protocol.get_buffer(len(view))
        n = min(len(buf), len(view))
        if not n:
            raise RuntimeError("get_buffer() returned an empty buffer")
        buf[:n] = view[:n]
        protocol.buffer_updated(n)
        view = view[n:]


class AutoHttpsProtocol(asyncio.Protocol):
    """uvicorn http protocol class that serves TLS and redirects plain HTTP.

    Pass functools.partial(AutoHttpsProtocol, ssl_context=ctx) as the
    `http` option of uvicorn.Config; uvicorn itself must run without ssl.
    Until the first bytes are classified the connection is tracked in
    server_state.connections, so server shutdown closes it, and it is
    closed if nothing classifiable arrives within timeout_keep_alive.
    """

    def __init__(self, config, server_state, app_state, _loop=None, *, ssl_context: ssl.SSLContext):
        self.config = config
        self.server_state = server_state
        self.app_state = app_state
        self.loop = _loop or asyncio.get_event_loop()
        self.ssl_context = ssl_context
        self.transport: Optional[asyncio.Transport] = None
        self.buffer = bytearray()
        self.sniff_timeout_task: Optional[asyncio.TimerHandle] = None

    def connection_made(self, transport):
        self.transport = transport
        self.server_state.connections.add(self)
        self.sniff_timeout_task = self.loop.call_later(
            self.config.timeout_keep_alive, self._sniff_timeout
        )

    def data_received(self, data: bytes) -> None:
        self.buffer.extend(data)
        kind = sniff(bytes(self.buffer))
        if kind == KIND_TLS:
            self._start_tls()
        elif kind == KIND_HTTP:
            self._redirect()

    def eof_received(self):
        return False

    def connection_lost(self, exc):
        self._release()
        self.transport = None
        self.buffer.clear()

    def shutdown(self) -> None:
        """Called by uvicorn on server shutdown."""
        if self.transport is not None:
            self.transport.close()

    def _release(self) -> None:
        """Stop tracking this connection; it is closed or handed off."""
        self.server_state.connections.discard(self)
        if self.sniff_timeout_task is not None:
            self.sniff_timeout_task.cancel()
            self.sniff_timeout_task = None

    def _sniff_timeout(self) -> None:
        self.sniff_timeout_task = None
        logger.debug("Closing connection that sent no request in time")
        self.shutdown()

    def _start_tls(self) -> None:
        self._release()
        app_protocol = H11Protocol(
            config=self.config,
            server_state=self.server_state,
            app_state=self.app_state,
            _loop=self.loop,
        )
        tls_protocol = sslproto.SSLProtocol(
            self.loop, app_protocol, self.ssl_context, None, server_side=True
        )
        data = bytes(self.buffer)
        self.buffer.clear()

        transport = self.transport
        transport.set_protocol(tls_protocol)
        tls_protocol.connection_made(transport)
        _replay(tls_protocol, data)

    def _redirect(self) -> None:
        self._release()
        response = build_https_redirect(bytes(self.buffer))
        self.buffer.clear()
        if response is not None:
            self.transport.write(response)
        else:
            logger.debug("Dropping non-HTTP plaintext connection on TLS port")
        self.transport.close()
