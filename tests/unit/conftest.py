# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest

from netverify.certs import generate_self_signed
from netverify.config import HarnessSettings
from netverify.server import TrustServer, TrustServerConfig


@pytest.fixture
def fast_settings():
    return HarnessSettings(probe_timeout=3.0, shutdown_timeout=3.0)


@pytest.fixture(scope="session")
def tls_material(tmp_path_factory):
    return generate_self_signed(tmp_path_factory.mktemp("tls"))


@pytest.fixture
def plain_server():
    server = TrustServer(TrustServerConfig(), shutdown_timeout=3.0).start()
    yield server
    server.stop()


@pytest.fixture
def tls_server(tls_material):
    config = TrustServerConfig(cert_file=tls_material.cert_file, key_file=tls_material.key_file)
    server = TrustServer(config, shutdown_timeout=3.0).start()
    yield server
    server.stop()
