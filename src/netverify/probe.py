# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Reachability probe for port-forwarded services.

A probe fetches ``http://<host>:<port>/testimage-id`` and either expects the
exact body (retrying connection failures with exponential backoff while the
service comes up) or expects the connection to fail (after teardown), in
which case the first transport error settles the outcome.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .config import HarnessSettings, load_settings
from .errors import ProbeError
from .http.client import HttpClient, create_default_http_client
from .http.models import BackoffSchedule, HttpRequest
from .http.retry import send_with_retries

logger = logging.getLogger(__name__)


def join_host_port(host: str, port: int | str) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class ProbeSpec:
    host: str
    port: int | str
    expect_failure: bool = False
    expected_body: str = ""
    path: str = "/testimage-id"

    @property
    def address(self) -> str:
        return join_host_port(self.host, self.port)

    @property
    def url(self) -> str:
        path = self.path if self.path.startswith("/") else "/" + self.path
        return f"http://{self.address}{path}"


@dataclass
class ProbeResult:
    spec: ProbeSpec
    attempts: int
    body: str | None = None
    error: str | None = None
    delays: list[float] = field(default_factory=list)

    @property
    def reachable(self) -> bool:
        return self.error is None


def run_probe(
    spec: ProbeSpec,
    client: HttpClient,
    *,
    schedule: BackoffSchedule,
    sleep: Callable[[float], None] = time.sleep,
) -> ProbeResult:
    """Run one probe described by ``spec``; raise ProbeError when the observation does not match."""
    response = send_with_retries(
        client,
        HttpRequest(url=spec.url),
        schedule=schedule,
        sleep=sleep,
        retry_transport_errors=not spec.expect_failure,
    )
    attempts = int(response.meta.get("attempts", 1))
    delays = list(response.meta.get("delays", []))

    if response.is_transport_error:
        error = response.error_message or response.error_type or "unknown transport error"
        if not spec.expect_failure:
            raise ProbeError(f"{spec.url} unreachable after {attempts} attempts: {error}")
        if spec.expected_body not in error:
            raise ProbeError(f"{spec.url} failed with {error!r}, expected an error containing {spec.expected_body!r}")
        logger.debug("%s unreachable as expected: %s", spec.url, error)
        return ProbeResult(spec=spec, attempts=attempts, error=error, delays=delays)

    if response.meta.get("body_truncated"):
        limit = response.meta.get("body_bytes_limit")
        raise ProbeError(f"{spec.url} returned a body larger than {limit} bytes; it was truncated")
    if response.text != spec.expected_body:
        raise ProbeError(f"{spec.url} returned {response.text!r}, expected {spec.expected_body!r}")
    logger.debug("%s answered after %d attempt(s)", spec.url, attempts)
    return ProbeResult(spec=spec, attempts=attempts, body=response.text, delays=delays)


def probe(
    port: int | str,
    expect_failure: bool,
    expected_body: str,
    *,
    host: str | None = None,
    client: HttpClient | None = None,
    schedule: BackoffSchedule | None = None,
    sleep: Callable[[float], None] = time.sleep,
    settings: HarnessSettings | None = None,
) -> ProbeResult:
    """
    Probe ``host:port`` once the way a port-forward test does.

    With ``expect_failure`` the first transport error must contain
    ``expected_body``; otherwise the body must equal ``expected_body`` exactly,
    after at most ``schedule.max_attempts`` connection attempts.
    """
    settings = settings or load_settings()
    spec = ProbeSpec(
        host=host or settings.probe_host,
        port=port,
        expect_failure=expect_failure,
        expected_body=expected_body,
        path=settings.probe_path,
    )
    owns_client = client is None
    http_client = client or create_default_http_client(settings)
    try:
        return run_probe(
            spec,
            http_client,
            schedule=schedule or BackoffSchedule.from_settings(settings),
            sleep=sleep,
        )
    finally:
        if owns_client:
            http_client.close()
