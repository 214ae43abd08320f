# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Local HTTP(S) server that records every request it serves.

The server is used to observe whether a client enforces transport trust: a
client that correctly rejects a plaintext server or an untrusted certificate
never gets as far as sending a request, so the request log stays empty.
"""

from __future__ import annotations

import logging
import socket
import ssl
import threading
from concurrent.futures import Future
from contextlib import suppress
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import unquote, urlsplit

from .config import HarnessSettings, load_settings
from .errors import BindError, ServerClosed
from .probe import join_host_port

logger = logging.getLogger(__name__)

_TLS_HANDSHAKE_RECORD = b"\x16"
_TLS_ON_PLAINTEXT_RESPONSE = (
    b"HTTP/1.0 400 Bad Request\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Connection: close\r\n"
    b"\r\n"
    b"Client sent a TLS handshake to an HTTP server.\n"
)


@dataclass(frozen=True)
class TrustServerConfig:
    """Listen address plus optional TLS material; TLS is on iff both paths are set."""

    host: str = "127.0.0.1"
    port: int = 0
    cert_file: str | None = None
    key_file: str | None = None
    body: str = "Hello"

    def __post_init__(self) -> None:
        if (self.cert_file is None) != (self.key_file is None):
            raise ValueError("cert_file and key_file must be given together")

    @property
    def tls_enabled(self) -> bool:
        return self.cert_file is not None and self.key_file is not None


class RequestLog:
    """Append-only, lock-guarded list of request paths; final once closed."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: list[str] = []
        self._closed = False

    def append(self, path: str) -> bool:
        """Record ``path``; returns False (and records nothing) after ``close()``."""
        with self._lock:
            if self._closed:
                return False
            self._paths.append(path)
            return True

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._paths)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __iter__(self):
        return iter(self.snapshot())


@dataclass(frozen=True)
class ShutdownResult:
    """Terminal value of a serve loop; ``clean`` only for an intentional stop."""

    error: BaseException | None = None

    @property
    def clean(self) -> bool:
        return isinstance(self.error, ServerClosed)


class _RecordingHandler(BaseHTTPRequestHandler):
    server_version = "netverify-trust/1.0"
    timeout = 10

    def handle(self) -> None:
        if self.server.ssl_context is None and self._starts_with_tls_handshake():
            self._reject_tls_client()
            return
        super().handle()

    def _starts_with_tls_handshake(self) -> bool:
        try:
            return self.rfile.peek(1)[:1] == _TLS_HANDSHAKE_RECORD
        except OSError:
            return False

    def _reject_tls_client(self) -> None:
        # Consume the ClientHello so closing does not reset the connection before the client reads.
        try:
            self.rfile.read1(65536)
            self.wfile.write(_TLS_ON_PLAINTEXT_RESPONSE)
            self.wfile.flush()
        except OSError as exc:
            logger.debug("could not answer TLS client %s: %s", self.client_address, exc)
        self.close_connection = True

    def _record_and_reply(self) -> None:
        if not self.server.request_log.append(unquote(urlsplit(self.path).path)):
            # The server stopped while this request was in flight.
            self.close_connection = True
            return
        body = self.server.body
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def __getattr__(self, name: str):
        # Every method that parses is served the same way, TRACE and extension methods included.
        if name.startswith("do_"):
            return self._record_and_reply
        raise AttributeError(name)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


class _TrustHTTPServer(ThreadingHTTPServer):
    # server_close() joins the handler threads.
    daemon_threads = False
    block_on_close = True

    def __init__(self, server_address, ssl_context: ssl.SSLContext | None, request_log: RequestLog, body: bytes):
        self.ssl_context = ssl_context
        self.request_log = request_log
        self.body = body
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        self._closing_connections = False
        super().__init__(server_address, _RecordingHandler)

    def _track(self, sock: socket.socket) -> bool:
        with self._connections_lock:
            if self._closing_connections:
                return False
            self._connections.add(sock)
            return True

    def _untrack(self, sock: socket.socket) -> None:
        with self._connections_lock:
            self._connections.discard(sock)

    def process_request(self, request, client_address) -> None:
        if not self._track(request):
            self.shutdown_request(request)
            return
        super().process_request(request, client_address)

    def shutdown_request(self, request) -> None:
        self._untrack(request)
        super().shutdown_request(request)

    def close_connections(self) -> None:
        """Shut down every accepted connection so blocked handlers return."""
        with self._connections_lock:
            self._closing_connections = True
            connections = list(self._connections)
        for sock in connections:
            # Plain socket shutdown, also for SSLSocket: skip the TLS close_notify exchange.
            with suppress(OSError):
                socket.socket.shutdown(sock, socket.SHUT_RDWR)

    def finish_request(self, request, client_address) -> None:
        if self.ssl_context is None:
            super().finish_request(request, client_address)
            return
        request.settimeout(_RecordingHandler.timeout)
        try:
            tls_request = self.ssl_context.wrap_socket(request, server_side=True, do_handshake_on_connect=False)
        except (ssl.SSLError, OSError) as exc:
            logger.debug("TLS setup for %s failed: %s", client_address, exc)
            return
        try:
            if not self._track(tls_request):
                return
            try:
                tls_request.do_handshake()
            except (ssl.SSLError, OSError) as exc:
                # The client rejected us (or never spoke TLS); nothing reaches the handler.
                logger.debug("TLS handshake with %s failed: %s", client_address, exc)
                return
            super().finish_request(tls_request, client_address)
        finally:
            self._untrack(tls_request)
            tls_request.close()

    def handle_error(self, request, client_address) -> None:
        logger.debug("error while serving %s", client_address, exc_info=True)


def _build_ssl_context(config: TrustServerConfig) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile=config.cert_file, keyfile=config.key_file)
    return context


class TrustServer:
    """
    One listener, one background serve loop, one request log.

    The listener is bound in the constructor so ``address`` is known before
    the loop starts; ``start()`` returns immediately. The loop's terminal
    value is delivered once through ``completion``.
    """

    def __init__(self, config: TrustServerConfig | None = None, *, shutdown_timeout: float = 5.0):
        self.config = config or TrustServerConfig()
        self.shutdown_timeout = shutdown_timeout
        self.request_log = RequestLog()
        self.completion: Future[ShutdownResult] = Future()

        try:
            ssl_context = _build_ssl_context(self.config) if self.config.tls_enabled else None
        except (OSError, ssl.SSLError) as exc:
            raise BindError(f"load TLS material {self.config.cert_file}, {self.config.key_file}: {exc}") from exc
        try:
            self._httpd = _TrustHTTPServer(
                (self.config.host, self.config.port),
                ssl_context,
                self.request_log,
                self.config.body.encode("utf-8"),
            )
        except OSError as exc:
            raise BindError(f"listen tcp {join_host_port(self.config.host, self.config.port)}: {exc}") from exc

        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stopping = False

    @property
    def host(self) -> str:
        return str(self._httpd.server_address[0])

    @property
    def port(self) -> int:
        return int(self._httpd.server_address[1])

    @property
    def address(self) -> str:
        return join_host_port(self.host, self.port)

    @property
    def tls_enabled(self) -> bool:
        return self.config.tls_enabled

    @property
    def url(self) -> str:
        scheme = "https" if self.tls_enabled else "http"
        return f"{scheme}://{self.address}/"

    def start(self) -> TrustServer:
        with self._lock:
            if self._stopping:
                raise ServerClosed()
            if self._thread is None:
                self._thread = threading.Thread(target=self._serve, name=f"trust-server-{self.port}", daemon=True)
                self._thread.start()
                logger.info("trust server listening on %s (tls=%s)", self.address, self.tls_enabled)
        return self

    def _serve(self) -> None:
        try:
            self._httpd.serve_forever(poll_interval=0.05)
        except Exception as exc:  # noqa: BLE001
            logger.error("trust server on %s terminated: %s", self.address, exc)
            self.completion.set_result(ShutdownResult(error=exc))
        else:
            self.completion.set_result(ShutdownResult(error=ServerClosed()))

    def stop(self) -> ShutdownResult | None:
        """
        Stop the serve loop, close in-flight connections and the listener.

        Once it returns the request log is final. The first call blocks until the loop has exited and returns its
        ShutdownResult. Later calls return immediately: the same result if it
        is available, otherwise ``None``.
        """
        with self._lock:
            if self._stopping:
                return self.completion.result() if self.completion.done() else None
            self._stopping = True
            thread = self._thread

        if thread is not None and thread.is_alive():
            self._httpd.shutdown()
        # No new connections are accepted past this point; freeze the log, then
        # cut in-flight ones so server_close() can join their handlers.
        self.request_log.close()
        self._httpd.close_connections()
        self._httpd.server_close()

        if thread is None:
            self.completion.set_result(ShutdownResult(error=ServerClosed()))
        else:
            thread.join(self.shutdown_timeout)
        result = self.completion.result(timeout=self.shutdown_timeout)
        logger.info("trust server on %s stopped (%s)", self.address, result.error)
        return result

    close = stop

    def wait(self, timeout: float | None = None) -> ShutdownResult:
        """Block until the serve loop has terminated and return its result."""
        return self.completion.result(timeout=timeout)

    def recorded_paths(self) -> list[str]:
        return self.request_log.snapshot()

    def __enter__(self) -> TrustServer:
        return self.start()

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.stop()


def start_trust_server(
    config: TrustServerConfig | None = None,
    *,
    settings: HarnessSettings | None = None,
) -> TrustServer:
    """Bind and start a TrustServer; bind failures raise BindError before anything runs."""
    settings = settings or load_settings()
    if config is None:
        config = TrustServerConfig(host=settings.server_host, body=settings.server_body)
    return TrustServer(config, shutdown_timeout=settings.shutdown_timeout).start()
