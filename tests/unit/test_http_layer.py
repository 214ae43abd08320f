# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import httpx
import pytest

from netverify.config import HarnessSettings
from netverify.errors import ErrorCategory
from netverify.http.client import create_default_http_client
from netverify.http.httpx_client import HttpxClient
from netverify.http.models import BackoffSchedule, HttpRequest, HttpResponse
from netverify.http.retry import build_default_schedule, send_with_retries


class SequenceHttpClient:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = 0

    def request(self, request: HttpRequest) -> HttpResponse:  # noqa: ARG002
        self.calls += 1
        return self._responses[min(self.calls - 1, len(self._responses) - 1)]

    def close(self) -> None:  # pragma: no cover - not used by retry helper
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def test_send_with_retries_success_after_retry():
    sleep = RecordingSleep()
    refused = HttpResponse(ok=False, error_message="connection refused")
    client = SequenceHttpClient([refused, refused, HttpResponse(ok=True, status_code=200, text="done")])
    result = send_with_retries(client, HttpRequest(url="http://example"), schedule=BackoffSchedule(), sleep=sleep)
    assert result.ok is True
    assert client.calls == 3
    assert sleep.calls == [0.25, 0.5]
    assert result.meta["attempts"] == 3
    assert result.meta["retry_count"] == 2
    assert result.meta["delays"] == [0.25, 0.5]
    assert "retry_exhausted" not in result.meta


def test_send_with_retries_exhausts_schedule():
    sleep = RecordingSleep()
    client = SequenceHttpClient([HttpResponse(ok=False, error_message="connection refused")])
    result = send_with_retries(client, HttpRequest(url="http://example"), schedule=BackoffSchedule(), sleep=sleep)
    assert result.ok is False
    assert client.calls == 6
    assert sleep.calls == [0.25, 0.5, 1.0, 2.0, 4.0]
    assert sum(sleep.calls) == pytest.approx(7.75)
    assert result.meta["retry_exhausted"] is True
    assert result.meta["attempts"] == 6


def test_send_with_retries_single_attempt_when_retries_disabled():
    sleep = RecordingSleep()
    client = SequenceHttpClient([HttpResponse(ok=False, error_message="refused"), HttpResponse(ok=True)])
    result = send_with_retries(
        client,
        HttpRequest(url="http://example"),
        schedule=BackoffSchedule(),
        sleep=sleep,
        retry_transport_errors=False,
    )
    assert result.ok is False
    assert client.calls == 1
    assert sleep.calls == []


def test_send_with_retries_does_not_retry_status_code_failures():
    sleep = RecordingSleep()
    client = SequenceHttpClient([HttpResponse(ok=False, status_code=500, error_message="boom"), HttpResponse(ok=True)])
    result = send_with_retries(client, HttpRequest(url="http://example"), schedule=BackoffSchedule(), sleep=sleep)
    assert result.status_code == 500
    assert client.calls == 1
    assert sleep.calls == []


def test_send_with_retries_converts_exceptions():
    class ExceptionThenSuccess:
        def __init__(self):
            self.calls = 0

        def request(self, request: HttpRequest) -> HttpResponse:  # noqa: ARG002
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")
            return HttpResponse(ok=True, status_code=200, text="ok")

    client = ExceptionThenSuccess()
    result = send_with_retries(client, HttpRequest(url="http://example"), schedule=BackoffSchedule(), sleep=RecordingSleep())
    assert result.ok is True
    assert result.meta["retry_count"] == 1
    assert client.calls == 2


def test_build_default_schedule_reads_env(monkeypatch):
    monkeypatch.setenv("NETVERIFY_PROBE_ATTEMPTS", "2")
    assert build_default_schedule().max_attempts == 2


def test_httpx_client_reads_body_and_sets_user_agent():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="20241011\n")

    client = HttpxClient(HarnessSettings(user_agent="UA/1.0"), client=httpx.Client(transport=httpx.MockTransport(handler)))
    resp = client.request(HttpRequest(url="http://localhost:62544/testimage-id"))
    client.close()

    assert resp.ok is True
    assert resp.status_code == 200
    assert resp.text == "20241011\n"
    assert resp.content == b"20241011\n"
    assert resp.meta["body_truncated"] is False
    assert seen[0].headers["User-Agent"] == "UA/1.0"
    assert seen[0].url.path == "/testimage-id"


def test_httpx_client_caps_body():
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(200, content=b"x" * 100)

    client = HttpxClient(HarnessSettings(max_body_bytes=10), client=httpx.Client(transport=httpx.MockTransport(handler)))
    resp = client.request(HttpRequest(url="http://example/"))
    assert resp.content == b"x" * 10
    assert resp.meta["body_truncated"] is True


def test_httpx_client_reports_transport_errors_in_band():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    client = HttpxClient(HarnessSettings(), client=httpx.Client(transport=httpx.MockTransport(handler)))
    resp = client.request(HttpRequest(url="http://localhost:1/testimage-id"))
    assert resp.ok is False
    assert resp.status_code is None
    assert resp.is_transport_error is True
    assert resp.error_type == "ConnectError"
    assert resp.error_category is ErrorCategory.TRANSIENT
    assert resp.error_detail == "[Errno 111] Connection refused"


def test_httpx_client_against_live_server(plain_server):
    client = HttpxClient(HarnessSettings(probe_timeout=3.0))
    try:
        resp = client.request(HttpRequest(url=f"http://{plain_server.address}/v2/"))
    finally:
        client.close()
    assert resp.ok is True
    assert resp.text == "Hello"
    assert plain_server.recorded_paths() == ["/v2/"]


def test_default_client_verify_override_copies_settings():
    settings = HarnessSettings(verify_ssl=True)
    client = create_default_http_client(settings, verify=False)
    try:
        assert isinstance(client, HttpxClient)
        assert client.settings.verify_ssl is False
        assert client.settings is not settings
        assert settings.verify_ssl is True
    finally:
        client.close()

    same = create_default_http_client(settings)
    try:
        assert same.settings is settings
    finally:
        same.close()
