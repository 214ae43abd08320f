# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
netverify package entrypoint.

A small network-verification harness: a backing-off reachability probe for
port-forwarded services, and a recording HTTP(S) server used to check that a
client refuses plaintext or untrusted TLS endpoints. HTTP behavior is
abstracted behind an injectable client interface.
"""

from .certs import TLSMaterial, generate_self_signed
from .config import TESTIMAGE, HarnessSettings, image_id_body, load_settings
from .errors import BindError, ErrorCategory, HarnessError, ProbeError, ScenarioFailure, ServerClosed
from .http import BackoffSchedule, HttpClient, HttpRequest, HttpResponse, HttpxClient, create_default_http_client
from .log import setup_logging
from .probe import ProbeResult, ProbeSpec, probe
from .registry import ClientOutcome, ClientRunner, RegistryPingClient, ping_registry
from .runtime import NetVerify
from .scenarios import PortForwardResult, TrustCheckResult, check_client_trust, check_port_forward
from .server import RequestLog, ShutdownResult, TrustServer, TrustServerConfig, start_trust_server
from .trust import expected_client_error
from .version import __version__

__all__ = [
    "BackoffSchedule",
    "BindError",
    "ClientOutcome",
    "ClientRunner",
    "ErrorCategory",
    "HarnessError",
    "HarnessSettings",
    "HttpClient",
    "HttpRequest",
    "HttpResponse",
    "HttpxClient",
    "NetVerify",
    "PortForwardResult",
    "ProbeError",
    "ProbeResult",
    "ProbeSpec",
    "RegistryPingClient",
    "RequestLog",
    "ScenarioFailure",
    "ServerClosed",
    "ShutdownResult",
    "TESTIMAGE",
    "TLSMaterial",
    "TrustCheckResult",
    "TrustServer",
    "TrustServerConfig",
    "check_client_trust",
    "check_port_forward",
    "create_default_http_client",
    "expected_client_error",
    "generate_self_signed",
    "image_id_body",
    "load_settings",
    "ping_registry",
    "probe",
    "setup_logging",
    "start_trust_server",
    "__version__",
]
