# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP request/response data models and the probe backoff schedule."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ..config import HarnessSettings
from ..errors import ErrorCategory

Headers = dict[str, str]


@dataclass
class HttpRequest:
    """Normalized request representation consumed by HttpClient implementations."""

    url: str
    method: str = "GET"
    headers: Headers | None = None
    body: bytes | str | None = None
    timeout: float | None = None


@dataclass
class HttpResponse:
    """Normalized HTTP response; transport failures are carried in-band with ``ok=False``."""

    ok: bool
    status_code: int | None = None
    headers: Headers = field(default_factory=dict)
    text: str = ""
    content: bytes = b""
    url: str | None = None
    error_message: str | None = None
    error_type: str | None = None
    error_category: ErrorCategory = ErrorCategory.NONE
    error_detail: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def is_transport_error(self) -> bool:
        return not self.ok and self.status_code is None


@dataclass(frozen=True)
class BackoffSchedule:
    """
    Deterministic retry schedule.

    Attempt ``i`` (0-based) that fails is followed by a wait of
    ``initial_delay * backoff_factor ** i``; no wait follows the last attempt,
    so the worst-case total wait is bounded by ``total_wait``.
    """

    max_attempts: int = 6
    initial_delay: float = 0.25
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_attempts", max(1, int(self.max_attempts)))
        object.__setattr__(self, "initial_delay", max(0.0, float(self.initial_delay)))
        object.__setattr__(self, "backoff_factor", max(0.0, float(self.backoff_factor)))

    def delay(self, index: int) -> float:
        if index < 0:
            raise ValueError("attempt index must be >= 0")
        return self.initial_delay * self.backoff_factor**index

    def delays(self) -> Iterator[float]:
        for index in range(self.max_attempts - 1):
            yield self.delay(index)

    @property
    def total_wait(self) -> float:
        return sum(self.delays())

    @classmethod
    def from_settings(cls, settings: HarnessSettings) -> BackoffSchedule:
        """Build a schedule from the shared HarnessSettings."""
        return cls(
            max_attempts=settings.probe_attempts,
            initial_delay=settings.probe_initial_delay,
            backoff_factor=settings.probe_backoff_factor,
        )
