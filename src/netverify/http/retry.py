# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Retry helper for HttpClient implementations."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..config import load_settings
from .client import HttpClient
from .models import BackoffSchedule, HttpRequest, HttpResponse

logger = logging.getLogger(__name__)


def build_default_schedule() -> BackoffSchedule:
    """Create a BackoffSchedule from environment-backed HarnessSettings."""
    return BackoffSchedule.from_settings(load_settings())


def send_with_retries(
    client: HttpClient,
    request: HttpRequest,
    *,
    schedule: BackoffSchedule | None = None,
    sleep: Callable[[float], None] = time.sleep,
    retry_transport_errors: bool = True,
) -> HttpResponse:
    """
    Execute a request, retrying transport failures under ``schedule``.

    Only transport-level failures (no status code) are retried. The returned
    response carries ``attempts``, ``retry_count``, ``delays`` and, when every
    attempt failed, ``retry_exhausted`` in its ``meta``.
    """
    cfg = schedule or build_default_schedule()
    max_attempts = cfg.max_attempts if retry_transport_errors else 1

    delays: list[float] = []
    response: HttpResponse | None = None
    for attempt in range(max_attempts):
        try:
            response = client.request(request)
        except Exception as exc:  # noqa: BLE001
            response = HttpResponse(
                ok=False,
                url=request.url,
                error_message=str(exc),
                error_type=exc.__class__.__name__,
            )

        response.meta["attempts"] = attempt + 1
        response.meta["retry_count"] = attempt
        response.meta["delays"] = list(delays)

        if response.ok or not response.is_transport_error:
            return response

        if attempt + 1 >= max_attempts:
            break
        delay = cfg.delay(attempt)
        logger.debug(
            "attempt %d/%d for %s failed (%s), retrying in %.3fs",
            attempt + 1,
            max_attempts,
            request.url,
            response.error_message,
            delay,
        )
        sleep(delay)
        delays.append(delay)

    assert response is not None
    if retry_transport_errors and max_attempts > 1:
        logger.warning("giving up on %s after %d attempts: %s", request.url, max_attempts, response.error_message)
    response.meta["retry_exhausted"] = True
    return response
