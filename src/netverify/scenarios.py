# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""End-to-end checks composed from the probe and the trust server."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .certs import TLSMaterial
from .config import HarnessSettings, load_settings
from .errors import ScenarioFailure
from .probe import ProbeResult, probe
from .registry import ClientOutcome, ClientRunner
from .server import ShutdownResult, TrustServerConfig, start_trust_server
from .trust import DEFAULT_CERT_NAME, REJECTED_EXIT_CODE, expected_client_error

logger = logging.getLogger(__name__)


@dataclass
class TrustCheckResult:
    address: str
    tls: bool
    outcome: ClientOutcome
    expected_stderr: str
    recorded_paths: list[str] = field(default_factory=list)
    shutdown: ShutdownResult | None = None


@dataclass
class PortForwardResult:
    up: ProbeResult
    down: ProbeResult


def check_client_trust(
    runner: ClientRunner,
    *,
    tls: TLSMaterial | None = None,
    platform: str | None = None,
    settings: HarnessSettings | None = None,
) -> TrustCheckResult:
    """
    Point ``runner`` at a local server and verify it refuses to talk to it.

    Without ``tls`` the server speaks plaintext and the client must complain
    about an HTTP response to its HTTPS request; with ``tls`` the server uses
    a certificate the client does not trust. Either way the server must not
    have seen a single request.
    """
    settings = settings or load_settings()
    config = TrustServerConfig(
        host=settings.server_host,
        cert_file=tls.cert_file if tls else None,
        key_file=tls.key_file if tls else None,
        body=settings.server_body,
    )
    server = start_trust_server(config, settings=settings)
    try:
        outcome = runner(server.address)
    finally:
        shutdown = server.stop()
    # The serve loop has exited, so the log is final.
    paths = server.recorded_paths()

    expected = expected_client_error(
        server.address,
        tls=tls is not None,
        platform=platform or sys.platform,
        cert_name=tls.common_name if tls else DEFAULT_CERT_NAME,
    )
    problems: list[str] = []
    if outcome.exit_code != REJECTED_EXIT_CODE:
        problems.append(f"client exited {outcome.exit_code}, expected {REJECTED_EXIT_CODE}")
    if outcome.stderr != expected:
        problems.append(f"client error {outcome.stderr!r}, expected {expected!r}")
    if paths:
        problems.append(f"the server should not have processed any request, got {paths}")
    if shutdown is None or not shutdown.clean:
        problems.append(f"server terminated abnormally: {shutdown.error if shutdown else 'no result'}")
    if problems:
        raise ScenarioFailure(problems)

    logger.info("client refused %s server at %s", "TLS" if tls else "plaintext", server.address)
    return TrustCheckResult(
        address=server.address,
        tls=tls is not None,
        outcome=outcome,
        expected_stderr=expected,
        recorded_paths=paths,
        shutdown=shutdown,
    )


def check_port_forward(
    port: int | str,
    expected_body: str,
    teardown: Callable[[], Any],
    **probe_kwargs: Any,
) -> PortForwardResult:
    """Probe the forwarded port while the service is up, tear it down, then probe it again expecting failure."""
    up = probe(port, False, expected_body, **probe_kwargs)
    teardown()
    down = probe(port, True, "", **probe_kwargs)
    return PortForwardResult(up=up, down=down)
