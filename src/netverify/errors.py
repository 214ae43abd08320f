# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy and exception helpers."""

import socket
import ssl
from enum import Enum
from typing import Optional, TypeVar

import httpx

TLS_VERIFY_PREFIX = "tls: failed to verify certificate: "
UNKNOWN_AUTHORITY = "x509: certificate signed by unknown authority"
HTTP_RESPONSE_TO_HTTPS_CLIENT = "http: server gave HTTP response to HTTPS client"

# OpenSSL verify codes meaning the chain does not end at a trusted root.
_UNKNOWN_AUTHORITY_CODES = frozenset({18, 19, 20, 21})

# OpenSSL reasons seen when a TLS client reads a plaintext HTTP response as a record header.
_PLAINTEXT_RECORD_REASONS = frozenset(
    {
        "WRONG_VERSION_NUMBER",
        "RECORD_LAYER_FAILURE",
        "PACKET_LENGTH_TOO_LONG",
        "UNKNOWN_PROTOCOL",
        "HTTP_REQUEST",
    }
)

E = TypeVar("E", bound=BaseException)


class ErrorCategory(str, Enum):
    TRANSIENT = "TRANSIENT"
    TRUST = "TRUST"
    PROTOCOL_MISMATCH = "PROTOCOL_MISMATCH"
    BIND = "BIND"
    SHUTDOWN = "SHUTDOWN"
    UNKNOWN = "UNKNOWN"
    NONE = "NONE"


class HarnessError(Exception):
    """Base class for harness failures."""


class ProbeError(HarnessError):
    """A reachability probe did not observe what it expected."""


class BindError(HarnessError):
    """The trust server could not bind its listener."""


class ServerClosed(HarnessError):
    """Terminal value of a serve loop that was stopped on purpose."""

    def __init__(self, message: str = "server closed"):
        super().__init__(message)


class ScenarioFailure(HarnessError):
    """A trust or port-forward scenario observed the wrong behaviour."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


def find_in_chain(exc: BaseException, kind: type[E]) -> Optional[E]:
    """Return the first exception of ``kind`` in the cause/context chain of ``exc``."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, kind):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def _is_plaintext_record(error: ssl.SSLError) -> bool:
    reason = getattr(error, "reason", None)
    if reason in _PLAINTEXT_RECORD_REASONS:
        return True
    text = str(error).lower()
    return "wrong version number" in text or "record layer failure" in text


def categorize_exception(exc: BaseException) -> ErrorCategory:
    """
    Map Python/httpx exceptions to ErrorCategory.
    """
    if isinstance(exc, ServerClosed):
        return ErrorCategory.SHUTDOWN
    if isinstance(exc, BindError):
        return ErrorCategory.BIND

    ssl_error = find_in_chain(exc, ssl.SSLError)
    if ssl_error is not None:
        if isinstance(ssl_error, ssl.SSLCertVerificationError):
            return ErrorCategory.TRUST
        if _is_plaintext_record(ssl_error):
            return ErrorCategory.PROTOCOL_MISMATCH
        return ErrorCategory.TRUST

    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, httpx.NetworkError, httpx.RemoteProtocolError)):
        return ErrorCategory.TRANSIENT

    if isinstance(exc, (socket.timeout, TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def render_transport_error(exc: BaseException) -> str:
    """
    Render a transport error using the wording HTTP clients report for trust failures.

    Certificate verification and plaintext-response failures get the canonical
    text; everything else is passed through as ``str(exc)``.
    """
    category = categorize_exception(exc)
    if category is ErrorCategory.PROTOCOL_MISMATCH:
        return HTTP_RESPONSE_TO_HTTPS_CLIENT
    if category is ErrorCategory.TRUST:
        verify_error = find_in_chain(exc, ssl.SSLCertVerificationError)
        if verify_error is not None:
            if getattr(verify_error, "verify_code", None) in _UNKNOWN_AUTHORITY_CODES:
                return TLS_VERIFY_PREFIX + UNKNOWN_AUTHORITY
            message = getattr(verify_error, "verify_message", None) or str(verify_error)
            return TLS_VERIFY_PREFIX + f"x509: {message}"
    return str(exc)


def error_category_to_reason(category: Optional[ErrorCategory]) -> str:
    """User-facing reason string."""
    mapping = {
        ErrorCategory.TRANSIENT: "Target not reachable (yet)",
        ErrorCategory.TRUST: "TLS certificate rejected",
        ErrorCategory.PROTOCOL_MISMATCH: "Plaintext response to a TLS client",
        ErrorCategory.BIND: "Listener could not bind",
        ErrorCategory.SHUTDOWN: "Server closed",
        ErrorCategory.UNKNOWN: "Unexpected transport error",
        ErrorCategory.NONE: "",
        None: "",
    }
    return mapping.get(category, "Unexpected transport error")
