# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""httpx-backed HttpClient implementation."""

from __future__ import annotations

import logging

import httpx

from ..config import HarnessSettings, load_settings
from ..errors import categorize_exception, render_transport_error
from .client import HttpClient
from .models import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)


class HttpxClient(HttpClient):
    """Synchronous httpx client wrapper."""

    def __init__(self, settings: HarnessSettings | None = None, client: httpx.Client | None = None):
        self.settings = settings or load_settings()
        # Targets are loopback or port-forwarded addresses; proxies from the environment never apply.
        self._client = client or httpx.Client(
            follow_redirects=False,
            timeout=self.settings.probe_timeout,
            verify=self.settings.verify_ssl,
            trust_env=False,
        )

    def request(self, request: HttpRequest) -> HttpResponse:
        headers = dict(request.headers or {})
        headers.setdefault("User-Agent", self.settings.user_agent)

        try:
            max_body_bytes = self.settings.max_body_bytes
            if max_body_bytes <= 0:
                max_body_bytes = 1024 * 1024

            timeout = request.timeout if request.timeout is not None else self.settings.probe_timeout

            # The body is drained and the connection released inside the block on every path.
            with self._client.stream(
                request.method,
                request.url,
                headers=headers,
                content=request.body,
                timeout=timeout,
            ) as resp:
                content = bytearray()
                truncated = False
                for chunk in resp.iter_bytes():
                    if not chunk:
                        continue
                    remaining = max_body_bytes - len(content)
                    if remaining <= 0:
                        truncated = True
                        break
                    if len(chunk) > remaining:
                        content.extend(chunk[:remaining])
                        truncated = True
                        break
                    content.extend(chunk)

                encoding = resp.encoding or "utf-8"
                try:
                    text = bytes(content).decode(encoding, errors="replace")
                except LookupError:
                    text = bytes(content).decode("utf-8", errors="replace")

            return HttpResponse(
                ok=True,
                status_code=resp.status_code,
                headers=dict(resp.headers),
                text=text,
                content=bytes(content),
                url=str(resp.url),
                meta={
                    "body_truncated": truncated,
                    "body_bytes_read": len(content),
                    "body_bytes_limit": max_body_bytes,
                },
            )
        except Exception as exc:  # noqa: BLE001
            logger.debug("%s %s failed: %s", request.method, request.url, exc)
            return HttpResponse(
                ok=False,
                url=request.url,
                error_message=str(exc),
                error_type=type(exc).__name__,
                error_category=categorize_exception(exc),
                error_detail=render_transport_error(exc),
            )

    def close(self) -> None:
        self._client.close()
