"""
=============================================================================
COMMAND LINE
=============================================================================

    # Both proxies on :8080
    python -m espresense_proxy serve

    # Only the release proxy, all interfaces, JSON access logs
    python -m espresense_proxy serve --proxy releases --host 0.0.0.0 --log-format json

    # Check a deployment
    python -m espresense_proxy smoke --base-url https://espresense.com

Settings not given on the command line come from the environment
(see config.py), then from the defaults.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .app import create_app, PROXIES
from .config import ServerConfig, ProxyConfig
from .smoke import DEFAULT_BASE_URL, run_smoke_tests


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="espresense-proxy",
        description="ESP Web Tools manifests and firmware from ESPresense GitHub builds",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"espresense-proxy {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    # ─────────────────────────────────────────────────────────────────────
    # serve
    # ─────────────────────────────────────────────────────────────────────
    serve = commands.add_parser("serve", help="Run the proxy server")
    serve.add_argument(
        "--proxy",
        choices=[*PROXIES, "all"],
        default="all",
        help="Which proxy to host (default: all)",
    )
    serve.add_argument("--host", "-H", default=None, help="Bind address (default: $HTTP_HOST or 127.0.0.1)")
    serve.add_argument("--port", "-p", type=int, default=None, help="Listen port (default: $HTTP_PORT or 8080)")
    serve.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Minimum worker threads; up to twice as many under load",
    )
    serve.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
    )
    serve.add_argument("--log-format", choices=["text", "json"], default=None)

    # ─────────────────────────────────────────────────────────────────────
    # smoke
    # ─────────────────────────────────────────────────────────────────────
    smoke = commands.add_parser("smoke", help="Check a deployed proxy")
    smoke.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"Site to test (default: {DEFAULT_BASE_URL})",
    )

    return parser


def server_config_from_args(args: argparse.Namespace) -> ServerConfig:
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = args.workers * 2
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def serve(args: argparse.Namespace) -> int:
    server_config = server_config_from_args(args)
    proxy_config = ProxyConfig.from_env()

    try:
        server_config.validate()
        proxy_config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    proxies = PROXIES if args.proxy == "all" else (args.proxy,)
    app = create_app(server_config, proxy_config, proxies=proxies)
    app.run()
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        return serve(args)

    return 0 if run_smoke_tests(args.base_url) else 1


if __name__ == "__main__":
    sys.exit(main())
