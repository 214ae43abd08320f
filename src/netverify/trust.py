# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Expected client error text for trust-enforcement checks."""

from __future__ import annotations

import sys

from .errors import HTTP_RESPONSE_TO_HTTPS_CLIENT, TLS_VERIFY_PREFIX

DEFAULT_CERT_NAME = "test.podman.io"

# Exit code of a container tool that rejected the registry connection itself.
REJECTED_EXIT_CODE = 125

_DEFAULT_UNTRUSTED_DETAIL = "certificate signed by unknown authority"

# Apple's verifier rejects long-lived certificates before it looks at the issuer.
_UNTRUSTED_DETAIL_BY_PLATFORM: dict[str, str] = {
    "darwin": "“{cert_name}” certificate is not standards compliant",
}


def untrusted_certificate_detail(platform: str | None = None, cert_name: str = DEFAULT_CERT_NAME) -> str:
    """Platform-specific x509 detail reported for a certificate the client does not trust."""
    platform = platform or sys.platform
    template = _UNTRUSTED_DETAIL_BY_PLATFORM.get(platform, _DEFAULT_UNTRUSTED_DETAIL)
    return template.format(cert_name=cert_name)


def registry_ping_prefix(address: str) -> str:
    return f'Error: pinging container registry {address}: Get "https://{address}/v2/": '


def expected_client_error(
    address: str,
    *,
    tls: bool,
    platform: str | None = None,
    cert_name: str = DEFAULT_CERT_NAME,
) -> str:
    """Full stderr a trust-enforcing client prints when it refuses the server at ``address``."""
    if tls:
        detail = TLS_VERIFY_PREFIX + "x509: " + untrusted_certificate_detail(platform, cert_name)
    else:
        detail = HTTP_RESPONSE_TO_HTTPS_CLIENT
    return registry_ping_prefix(address) + detail + "\n"
