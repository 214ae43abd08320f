# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Self-signed TLS material for the trust server.

Produces the same kind of certificate as

    openssl req -x509 -newkey ec -pkeyopt ec_paramgen_curve:secp384r1 -days 3650 \\
        -nodes -keyout test-tls.key -out test-tls.crt \\
        -subj "/CN=test.podman.io" -addext "subjectAltName=IP:127.0.0.1"
"""

from __future__ import annotations

import datetime
import ipaddress
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from .trust import DEFAULT_CERT_NAME

CERT_FILENAME = "test-tls.crt"
KEY_FILENAME = "test-tls.key"


@dataclass(frozen=True)
class TLSMaterial:
    cert_file: str
    key_file: str
    common_name: str = DEFAULT_CERT_NAME


def generate_self_signed(
    directory: str | os.PathLike[str],
    *,
    common_name: str = DEFAULT_CERT_NAME,
    ip_addresses: Iterable[str] = ("127.0.0.1",),
    days: int = 3650,
) -> TLSMaterial:
    """Write a PEM certificate/key pair into ``directory`` and return their paths."""
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)

    key = ec.generate_private_key(ec.SECP384R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    san = x509.SubjectAlternativeName([x509.IPAddress(ipaddress.ip_address(ip)) for ip in ip_addresses])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(san, critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )

    cert_path = target / CERT_FILENAME
    key_path = target / KEY_FILENAME
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    os.chmod(key_path, 0o600)
    return TLSMaterial(cert_file=str(cert_path), key_file=str(key_path), common_name=common_name)
