"""Starlette application setup for the page credential service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from page_token_sync.core.service import CredentialSyncService
from page_token_sync.utils.environment import Settings

from .correlation import CorrelationIdMiddleware
from .routes import register_routes

logger = logging.getLogger("page-token-sync.server.main")


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def _sweep_forever(svc: CredentialSyncService, interval: float) -> None:
    """Run ``svc.sweep`` every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            updated = await run_in_threadpool(svc.sweep)
        except Exception as e:  # keep the schedule alive; next tick retries
            logger.error(f"Periodic sweep failed: {e}", exc_info=True)
            continue
        logger.debug(f"Periodic sweep corrected {updated} record(s)")


@asynccontextmanager
async def main_lifespan(app: Starlette) -> AsyncIterator[None]:
    logger.info("Page credential service lifespan starting...")
    settings: Settings = app.state.settings
    svc: CredentialSyncService = app.state.service

    if settings.sweep_on_start:
        updated = await run_in_threadpool(svc.sweep)
        logger.info(f"Startup sweep corrected {updated} record(s)")

    sweeper_task: asyncio.Task | None = None
    if settings.sweep_interval > 0:
        sweeper_task = asyncio.create_task(
            _sweep_forever(svc, settings.sweep_interval)
        )
        logger.info(f"Periodic sweep every {settings.sweep_interval}s")

    try:
        yield
    finally:
        if sweeper_task is not None:
            sweeper_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper_task
        logger.info("Page credential service lifespan shutdown complete.")


def create_app(
    settings: Settings | None = None,
    service: CredentialSyncService | None = None,
) -> Starlette:
    """Build the ASGI application.

    *service* defaults to one wired from *settings* (the on-disk store and the
    Graph API client); tests pass their own.
    """
    settings = settings or Settings.from_env()
    service = service or CredentialSyncService.from_settings(settings)

    app = Starlette(
        middleware=[Middleware(CorrelationIdMiddleware)],
        lifespan=main_lifespan,
    )
    app.state.settings = settings
    app.state.service = service
    app.add_route("/healthz", health_check, methods=["GET"])
    register_routes(app, service)
    return app
