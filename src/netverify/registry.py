# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Reference registry client.

Pings ``https://<address>/v2/`` the way a container tool does before pulling
an image, and reports a failure the way such a tool does on stderr. It is the
default client for trust checks; real tools plug in through ``ClientRunner``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .config import HarnessSettings, load_settings
from .http.client import HttpClient, create_default_http_client
from .http.models import HttpRequest
from .trust import REJECTED_EXIT_CODE, registry_ping_prefix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientOutcome:
    exit_code: int
    stderr: str = ""


class ClientRunner(Protocol):
    """A client under test: given a registry address, try to use it and report the outcome."""

    def __call__(self, address: str) -> ClientOutcome: ...


def ping_registry(
    address: str,
    *,
    client: HttpClient | None = None,
    settings: HarnessSettings | None = None,
    verify: bool | None = None,
) -> ClientOutcome:
    settings = settings or load_settings()
    owns_client = client is None
    http_client = client or create_default_http_client(settings, verify=verify)
    try:
        response = http_client.request(HttpRequest(url=f"https://{address}/v2/"))
    finally:
        if owns_client:
            http_client.close()

    if response.ok:
        logger.info("registry %s answered %s", address, response.status_code)
        return ClientOutcome(exit_code=0)

    detail = response.error_detail or response.error_message or ""
    logger.debug("registry ping to %s failed (%s): %s", address, response.error_category.value, detail)
    return ClientOutcome(exit_code=REJECTED_EXIT_CODE, stderr=registry_ping_prefix(address) + detail + "\n")


class RegistryPingClient:
    """ClientRunner backed by ``ping_registry``."""

    def __init__(self, settings: HarnessSettings | None = None):
        self.settings = settings or load_settings()

    def __call__(self, address: str) -> ClientOutcome:
        return ping_registry(address, settings=self.settings)
