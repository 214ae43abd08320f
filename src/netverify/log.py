# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging helpers for netverify."""

from __future__ import annotations

import logging
import os

DEFAULT_LOG_LEVEL = os.getenv("NETVERIFY_LOG_LEVEL", "WARNING").upper()

# httpx logs every request at INFO; a backing-off probe would flood the output.
HTTP_STACK_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str | None = None) -> None:
    """
    Configure standard logging for CLI/library use.

    The HTTP stack's own loggers stay at WARNING unless DEBUG is requested.
    """
    effective_level = getattr(logging, (level or DEFAULT_LOG_LEVEL).upper(), logging.WARNING)
    logging.basicConfig(level=effective_level, format="%(levelname)s %(name)s: %(message)s")
    stack_level = logging.DEBUG if effective_level <= logging.DEBUG else max(effective_level, logging.WARNING)
    for name in HTTP_STACK_LOGGERS:
        logging.getLogger(name).setLevel(stack_level)


__all__ = ["HTTP_STACK_LOGGERS", "setup_logging"]
