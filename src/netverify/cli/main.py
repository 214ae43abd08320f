# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""netverify CLI."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
import tempfile
import threading
from typing import Any

from ..certs import generate_self_signed
from ..config import HarnessSettings, load_settings
from ..errors import HarnessError
from ..log import setup_logging
from ..registry import ping_registry
from ..runtime import NetVerify
from ..server import TrustServerConfig, start_trust_server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Port-forward reachability and client trust checks")
    parser.add_argument("--log-level", default=None, help="Logging level (default from NETVERIFY_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    probe = sub.add_parser("probe", help="Probe http://HOST:PORT/testimage-id")
    probe.add_argument("port", help="Forwarded port")
    probe.add_argument("--host", default=None, help="Host to probe (default localhost)")
    probe.add_argument("--expect-failure", action="store_true", help="Expect the connection to fail")
    probe.add_argument("--body", default="", help="Exact expected body, or expected error substring with --expect-failure")
    probe.add_argument("--json", action="store_true", help="Output JSON instead of a summary line")

    serve = sub.add_parser("serve", help="Run a recording trust server until interrupted")
    serve.add_argument("--cert", default=None, help="PEM certificate (enables TLS together with --key)")
    serve.add_argument("--key", default=None, help="PEM private key")
    serve.add_argument("--port", type=int, default=0, help="Port to bind (default: OS-assigned)")

    ping = sub.add_parser("ping", help="Ping https://ADDRESS/v2/ like a registry client")
    ping.add_argument("address", help="HOST:PORT of the registry")
    ping.add_argument("--insecure", action="store_true", help="Skip TLS verification")

    check = sub.add_parser("check-trust", help="Verify the reference client refuses a local server")
    check.add_argument("--tls", action="store_true", help="Serve TLS with a freshly generated self-signed certificate")
    check.add_argument("--cert-dir", default=None, help="Directory for generated TLS material")
    check.add_argument("--json", action="store_true", help="Output JSON instead of a summary line")
    return parser


def _print_json(data: Any) -> None:
    payload = dataclasses.asdict(data) if dataclasses.is_dataclass(data) else data
    json.dump(payload, sys.stdout, indent=2, sort_keys=True, default=str)
    sys.stdout.write("\n")


def _run_probe(args: argparse.Namespace, settings: HarnessSettings) -> int:
    with NetVerify(settings) as nv:
        result = nv.probe(args.port, args.expect_failure, args.body, host=args.host)
    if args.json:
        _print_json(result)
    elif result.reachable:
        print(f"{result.spec.url}: reachable after {result.attempts} attempt(s)")
    else:
        print(f"{result.spec.url}: unreachable as expected ({result.error})")
    return 0


def _run_serve(args: argparse.Namespace, settings: HarnessSettings) -> int:
    config = TrustServerConfig(
        host=settings.server_host,
        port=args.port,
        cert_file=args.cert,
        key_file=args.key,
        body=settings.server_body,
    )
    server = start_trust_server(config, settings=settings)
    print(f"serving {server.url}", flush=True)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    for path in server.recorded_paths():
        print(path)
    return 0


def _run_ping(args: argparse.Namespace, settings: HarnessSettings) -> int:
    outcome = ping_registry(args.address, settings=settings, verify=False if args.insecure else None)
    sys.stderr.write(outcome.stderr)
    return outcome.exit_code


def _run_check_trust(args: argparse.Namespace, settings: HarnessSettings) -> int:
    with NetVerify(settings) as nv, tempfile.TemporaryDirectory(prefix="netverify-tls-") as tmp:
        tls = generate_self_signed(args.cert_dir or tmp) if args.tls else None
        result = nv.check_client_trust(tls=tls)
    if args.json:
        _print_json(result)
    else:
        mode = "TLS" if result.tls else "plaintext"
        print(f"client refused the {mode} server at {result.address}")
    return 0


_COMMANDS = {
    "probe": _run_probe,
    "serve": _run_serve,
    "ping": _run_ping,
    "check-trust": _run_check_trust,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    settings = load_settings()
    try:
        return _COMMANDS[args.command](args, settings)
    except HarnessError as exc:
        print(f"netverify: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
