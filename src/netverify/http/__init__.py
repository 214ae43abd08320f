# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP client exports."""

from .client import HttpClient, create_default_http_client
from .httpx_client import HttpxClient
from .models import BackoffSchedule, Headers, HttpRequest, HttpResponse
from .retry import build_default_schedule, send_with_retries

__all__ = [
    "BackoffSchedule",
    "Headers",
    "HttpClient",
    "HttpxClient",
    "HttpRequest",
    "HttpResponse",
    "build_default_schedule",
    "create_default_http_client",
    "send_with_retries",
]
