# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""High-level netverify facade for probe and trust workflows."""

from __future__ import annotations

import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from .certs import TLSMaterial
from .config import HarnessSettings, load_settings
from .http.client import HttpClient, create_default_http_client
from .http.models import BackoffSchedule
from .probe import ProbeResult, probe
from .registry import ClientRunner, RegistryPingClient
from .scenarios import PortForwardResult, TrustCheckResult, check_client_trust, check_port_forward
from .server import TrustServer, TrustServerConfig, start_trust_server


class NetVerify:
    """
    Convenience wrapper that shares one settings object and HTTP client across checks.
    """

    def __init__(
        self,
        settings: HarnessSettings | None = None,
        http_client: HttpClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or load_settings()
        self.http_client = http_client or create_default_http_client(self.settings)
        self.schedule = BackoffSchedule.from_settings(self.settings)
        self.sleep = sleep

    def probe(self, port: int | str, expect_failure: bool = False, expected_body: str = "", *, host: str | None = None) -> ProbeResult:
        return probe(
            port,
            expect_failure,
            expected_body,
            host=host,
            client=self.http_client,
            schedule=self.schedule,
            sleep=self.sleep,
            settings=self.settings,
        )

    def start_server(self, tls: TLSMaterial | None = None, *, port: int = 0) -> TrustServer:
        config = TrustServerConfig(
            host=self.settings.server_host,
            port=port,
            cert_file=tls.cert_file if tls else None,
            key_file=tls.key_file if tls else None,
            body=self.settings.server_body,
        )
        return start_trust_server(config, settings=self.settings)

    def check_client_trust(
        self,
        runner: ClientRunner | None = None,
        *,
        tls: TLSMaterial | None = None,
        platform: str | None = None,
    ) -> TrustCheckResult:
        return check_client_trust(
            runner or RegistryPingClient(self.settings),
            tls=tls,
            platform=platform,
            settings=self.settings,
        )

    def check_port_forward(self, port: int | str, expected_body: str, teardown: Callable[[], Any]) -> PortForwardResult:
        return check_port_forward(
            port,
            expected_body,
            teardown,
            client=self.http_client,
            schedule=self.schedule,
            sleep=self.sleep,
            settings=self.settings,
        )

    def close(self) -> None:
        with suppress(Exception):
            if hasattr(self.http_client, "close"):
                self.http_client.close()

    def __enter__(self) -> NetVerify:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.close()
