# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP client abstraction and factory."""

import dataclasses
from typing import Protocol

from ..config import HarnessSettings, load_settings
from .models import HttpRequest, HttpResponse


class HttpClient(Protocol):
    """Minimal protocol for issuing HTTP requests."""

    def request(self, request: HttpRequest) -> HttpResponse: ...

    def close(self) -> None:  # pragma: no cover - optional for test doubles
        ...


def create_default_http_client(settings: HarnessSettings | None = None, *, verify: bool | None = None) -> HttpClient:
    """
    Factory for the default httpx-backed client.

    ``verify`` overrides ``settings.verify_ssl`` for this client only; the
    settings object itself is not modified.
    """
    from .httpx_client import HttpxClient

    settings = settings or load_settings()
    if verify is not None and verify != settings.verify_ssl:
        settings = dataclasses.replace(settings, verify_ssl=verify)
    return HttpxClient(settings)
