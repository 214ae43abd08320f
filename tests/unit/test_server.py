# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import contextlib
import socket
import ssl
import time

import httpx
import pytest

from netverify.errors import BindError, ErrorCategory, ServerClosed, categorize_exception
from netverify.server import RequestLog, ShutdownResult, TrustServer, TrustServerConfig, start_trust_server


def test_config_tls_requires_both_paths():
    assert TrustServerConfig().tls_enabled is False
    assert TrustServerConfig(cert_file="c", key_file="k").tls_enabled is True
    with pytest.raises(ValueError):
        TrustServerConfig(cert_file="c")
    with pytest.raises(ValueError):
        TrustServerConfig(key_file="k")


def test_request_log_is_append_only_copy():
    log = RequestLog()
    log.append("/a")
    log.append("/b")
    snapshot = log.snapshot()
    snapshot.append("/c")
    assert log.snapshot() == ["/a", "/b"]
    assert len(log) == 2
    assert list(log) == ["/a", "/b"]


def test_shutdown_result_clean_only_for_server_closed():
    assert ShutdownResult(error=ServerClosed()).clean is True
    assert ShutdownResult(error=RuntimeError("boom")).clean is False
    assert ShutdownResult().clean is False


def test_port_known_before_serving():
    server = TrustServer(TrustServerConfig())
    try:
        assert server.port > 0
        assert server.address == f"127.0.0.1:{server.port}"
        assert server.url == f"http://127.0.0.1:{server.port}/"
    finally:
        result = server.stop()
    assert result.clean is True
    assert server.recorded_paths() == []


def test_plaintext_requests_are_logged_and_answered(plain_server):
    with httpx.Client(timeout=3.0, trust_env=False) as client:
        first = client.get(f"http://{plain_server.address}/testimage-id?x=1")
        second = client.post(f"http://{plain_server.address}/v2/", content=b"ignored")
        third = client.get(f"http://{plain_server.address}/")
    result = plain_server.stop()

    assert [r.content for r in (first, second, third)] == [b"Hello"] * 3
    assert all(r.status_code == 200 for r in (first, second, third))
    assert result.clean is True
    assert plain_server.recorded_paths() == ["/testimage-id", "/v2/", "/"]


def test_stop_is_idempotent(plain_server):
    first = plain_server.stop()
    started = time.monotonic()
    second = plain_server.stop()
    assert time.monotonic() - started < 1.0
    assert first.clean is True
    assert second is first
    assert plain_server.close() is first
    assert plain_server.wait(timeout=1.0) is first
    assert isinstance(plain_server.completion.result(), ShutdownResult)


def test_stop_closes_listener(plain_server):
    port = plain_server.port
    plain_server.stop()
    with pytest.raises(httpx.ConnectError):
        httpx.get(f"http://127.0.0.1:{port}/", timeout=3.0, trust_env=False)


def test_start_after_stop_is_rejected():
    server = TrustServer(TrustServerConfig())
    server.stop()
    with pytest.raises(ServerClosed):
        server.start()


def test_context_manager_stops_server():
    with start_trust_server(TrustServerConfig()) as server:
        assert httpx.get(server.url, timeout=3.0, trust_env=False).text == "Hello"
    assert server.completion.done()
    assert server.wait().clean is True


def test_bind_failure_is_reported_synchronously():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        with pytest.raises(BindError, match=f"listen tcp 127.0.0.1:{port}"):
            TrustServer(TrustServerConfig(port=port))
    finally:
        blocker.close()


def test_missing_tls_material_is_a_setup_error(tmp_path):
    with pytest.raises(BindError):
        TrustServer(TrustServerConfig(cert_file=str(tmp_path / "nope.crt"), key_file=str(tmp_path / "nope.key")))


def test_https_client_against_plaintext_server_is_not_logged(plain_server):
    with pytest.raises(httpx.ConnectError) as excinfo:
        httpx.get(f"https://{plain_server.address}/v2/", timeout=3.0, trust_env=False)
    assert categorize_exception(excinfo.value) is ErrorCategory.PROTOCOL_MISMATCH

    # The serve loop survived the bad client.
    assert httpx.get(f"http://{plain_server.address}/after", timeout=3.0, trust_env=False).text == "Hello"
    assert plain_server.stop().clean is True
    assert plain_server.recorded_paths() == ["/after"]


def test_tls_server_serves_trusting_client(tls_server, tls_material):
    context = ssl.create_default_context(cafile=tls_material.cert_file)
    with httpx.Client(verify=context, timeout=3.0, trust_env=False) as client:
        resp = client.get(f"https://{tls_server.address}/v2/")
    assert resp.text == "Hello"
    assert tls_server.url.startswith("https://")
    assert tls_server.stop().clean is True
    assert tls_server.recorded_paths() == ["/v2/"]


def test_untrusting_client_never_reaches_handler(tls_server):
    with pytest.raises(httpx.ConnectError) as excinfo:
        httpx.get(f"https://{tls_server.address}/v2/", timeout=3.0, trust_env=False)
    assert categorize_exception(excinfo.value) is ErrorCategory.TRUST

    # A handshake failure is not a server error: the loop keeps serving.
    with httpx.Client(verify=False, timeout=3.0, trust_env=False) as client:
        assert client.get(f"https://{tls_server.address}/later").text == "Hello"
    assert tls_server.stop().clean is True
    assert tls_server.recorded_paths() == ["/later"]


def test_plain_tcp_client_on_tls_server_is_dropped(tls_server):
    with socket.create_connection(("127.0.0.1", tls_server.port), timeout=3.0) as sock:
        sock.sendall(b"GET / HTTP/1.0\r\n\r\n")
        with contextlib.suppress(ConnectionResetError):
            sock.recv(1024)
    assert tls_server.stop().clean is True
    assert tls_server.recorded_paths() == []


def _raw_exchange(port: int, payload: bytes) -> bytes:
    with socket.create_connection(("127.0.0.1", port), timeout=3.0) as sock:
        sock.sendall(payload)
        chunks = []
        while chunk := sock.recv(4096):
            chunks.append(chunk)
    return b"".join(chunks)


def test_request_log_rejects_appends_after_close():
    log = RequestLog()
    assert log.append("/a") is True
    log.close()
    assert log.closed is True
    assert log.append("/b") is False
    assert log.snapshot() == ["/a"]


@pytest.mark.parametrize(
    ("method", "path"),
    [("TRACE", "/trace"), ("FOO", "/custom"), ("CONNECT", "/connect"), ("DELETE", "/gone")],
)
def test_any_method_is_logged_and_answered(plain_server, method, path):
    reply = _raw_exchange(plain_server.port, f"{method} {path} HTTP/1.0\r\n\r\n".encode())
    assert reply.startswith(b"HTTP/1.0 200 OK\r\n")
    assert reply.endswith(b"\r\n\r\nHello")
    assert plain_server.stop().clean is True
    assert plain_server.recorded_paths() == [path]


def test_head_reply_has_no_body(plain_server):
    reply = _raw_exchange(plain_server.port, b"HEAD /v2/ HTTP/1.0\r\n\r\n")
    assert reply.startswith(b"HTTP/1.0 200 OK\r\n")
    assert b"Content-Length: 5\r\n" in reply
    assert reply.endswith(b"\r\n\r\n")
    assert plain_server.stop().clean is True
    assert plain_server.recorded_paths() == ["/v2/"]


def test_logged_path_is_percent_decoded(plain_server):
    reply = _raw_exchange(plain_server.port, b"GET /v2/library%2Fbusybox/a%20b?q=%2F HTTP/1.0\r\n\r\n")
    assert reply.startswith(b"HTTP/1.0 200 OK\r\n")
    plain_server.stop()
    assert plain_server.recorded_paths() == ["/v2/library/busybox/a b"]


def test_request_completed_after_stop_is_not_logged(plain_server):
    with socket.create_connection(("127.0.0.1", plain_server.port), timeout=3.0) as sock:
        sock.sendall(b"GET /late HTTP/1.0\r\n")
        # Let the handler pick up the request line and block on the headers.
        time.sleep(0.2)
        started = time.monotonic()
        result = plain_server.stop()
        assert time.monotonic() - started < 2.0
        assert result.clean is True
        assert plain_server.recorded_paths() == []

        reply = b""
        with contextlib.suppress(OSError):
            sock.sendall(b"\r\n")
            reply = sock.recv(1024)
    assert b"200" not in reply
    assert plain_server.recorded_paths() == []


def test_stop_cuts_idle_keepalive_connection(plain_server):
    with httpx.Client(timeout=3.0, trust_env=False) as client:
        assert client.get(f"http://{plain_server.address}/first").text == "Hello"
        # The pooled connection is still open on the server side.
        started = time.monotonic()
        assert plain_server.stop().clean is True
        assert time.monotonic() - started < 2.0
    assert plain_server.recorded_paths() == ["/first"]


def test_stop_interrupts_stalled_tls_handshake(tls_server):
    with socket.create_connection(("127.0.0.1", tls_server.port), timeout=3.0):
        time.sleep(0.2)
        started = time.monotonic()
        assert tls_server.stop().clean is True
        assert time.monotonic() - started < 2.0
    assert tls_server.recorded_paths() == []
