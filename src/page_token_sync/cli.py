"""Command-line entry point.

Example
-------
    page-token-sync serve --port 5000
    page-token-sync sweep
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import Sequence

from page_token_sync.core.service import CredentialSyncService
from page_token_sync.utils.environment import Settings
from page_token_sync.utils.logging import setup_logging

logger = logging.getLogger("page-token-sync.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="page-token-sync",
        description="Keep delegated page credentials in sync with the authority.",
    )
    parser.add_argument(
        "--log-level", help="Override PAGE_TOKENS_LOG_LEVEL (DEBUG, INFO, ...)"
    )
    parser.add_argument(
        "--storage-dir", help="Override PAGE_TOKENS_STORAGE_DIR for this run"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", help="Bind address (PAGE_TOKENS_HOST)")
    serve.add_argument("--port", type=int, help="Bind port (PAGE_TOKENS_PORT)")

    sub.add_parser("sweep", help="Correct stored active flags once and exit")
    return parser


def _serve(settings: Settings) -> int:
    import uvicorn  # local import keeps `sweep` usable without the server extras

    from page_token_sync.servers.main import create_app

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def _sweep(settings: Settings) -> int:
    svc = CredentialSyncService.from_settings(settings)
    updated = svc.sweep()
    print(updated)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    overrides: dict[str, object] = {}
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if args.storage_dir:
        overrides["storage_dir"] = args.storage_dir
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    settings = dataclasses.replace(settings, **overrides)

    setup_logging(settings.log_level)
    logger.debug(f"Running command {args.command!r}")
    if args.command == "serve":
        return _serve(settings)
    return _sweep(settings)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
