# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Configuration helpers for netverify."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"netverify/{__version__}"

# Image served by the forwarded httpd in the port-forward scenario.
TESTIMAGE = "quay.io/libpod/testimage:20241011"


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def image_id(image_ref: str) -> str:
    """Return the tag part of an image reference (everything after the first ``:``)."""
    _, _, tag = image_ref.partition(":")
    return tag


def image_id_body(image_ref: str = TESTIMAGE) -> str:
    """Body served at ``/testimage-id`` by a container running ``image_ref``."""
    return image_id(image_ref) + "\n"


@dataclass
class HarnessSettings:
    """Probe and server defaults, overridable via environment variables."""

    probe_attempts: int = 6
    probe_initial_delay: float = 0.25
    probe_backoff_factor: float = 2.0
    probe_timeout: float = 5.0
    probe_host: str = "localhost"
    probe_path: str = "/testimage-id"
    server_host: str = "127.0.0.1"
    server_body: str = "Hello"
    shutdown_timeout: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT
    verify_ssl: bool = True
    max_body_bytes: int = 1024 * 1024

    @classmethod
    def from_env(cls) -> "HarnessSettings":
        """Create settings from environment variables (evaluated at call time)."""
        max_body_bytes = _int_env("NETVERIFY_MAX_BODY_BYTES", cls.max_body_bytes)
        if max_body_bytes <= 0:
            max_body_bytes = cls.max_body_bytes
        return cls(
            probe_attempts=_int_env("NETVERIFY_PROBE_ATTEMPTS", cls.probe_attempts),
            probe_initial_delay=_float_env("NETVERIFY_PROBE_INITIAL_DELAY", cls.probe_initial_delay),
            probe_backoff_factor=_float_env("NETVERIFY_PROBE_BACKOFF", cls.probe_backoff_factor),
            probe_timeout=_float_env("NETVERIFY_PROBE_TIMEOUT", cls.probe_timeout),
            probe_host=os.getenv("NETVERIFY_PROBE_HOST", cls.probe_host),
            probe_path=os.getenv("NETVERIFY_PROBE_PATH", cls.probe_path),
            server_host=os.getenv("NETVERIFY_SERVER_HOST", cls.server_host),
            server_body=os.getenv("NETVERIFY_SERVER_BODY", cls.server_body),
            shutdown_timeout=_float_env("NETVERIFY_SHUTDOWN_TIMEOUT", cls.shutdown_timeout),
            user_agent=os.getenv("NETVERIFY_USER_AGENT", cls.user_agent),
            verify_ssl=_bool_env("NETVERIFY_VERIFY_SSL", cls.verify_ssl),
            max_body_bytes=max_body_bytes,
        )


def load_settings() -> HarnessSettings:
    """Return settings evaluated from the current environment."""
    return HarnessSettings.from_env()
