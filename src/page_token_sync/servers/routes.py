"""HTTP endpoints for page credential synchronization.

Handlers are intentionally thin:

1. Parse and validate HTTP-layer parameters.
2. Delegate business logic to ``CredentialSyncService`` in a worker thread.
3. Return a Starlette ``JSONResponse``.

Failures raised by the core as :class:`~page_token_sync.core.errors.PageTokenError`
are rendered from ``to_payload()`` with the status the error type declares.
Anything else propagates to Starlette's 500 handling.

SECURITY NOTE
-------------
No credentials are ever returned or logged.  Correlation IDs, if present in
``request.state.correlation_id``, are included in INFO logs to aid
troubleshooting.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from page_token_sync.core.errors import PageTokenError
from page_token_sync.core.models import AuthSession
from page_token_sync.core.service import CredentialSyncService

_LOG = logging.getLogger("page-token-sync.server.routes")

Handler = Callable[[Request], Awaitable[Response]]


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "bad_request", "message": message},
        status_code=400,
    )


def _error_response(exc: PageTokenError) -> JSONResponse:
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


async def _json_body(request: Request) -> dict[str, Any] | None:
    """Return the JSON object body, ``{}`` when empty, ``None`` when invalid."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "-")


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def register_routes(app: Starlette, svc: CredentialSyncService) -> None:
    """Attach the credential endpoints to *app*."""

    def route(path: str, methods: list[str]) -> Callable[[Handler], Handler]:
        def decorator(func: Handler) -> Handler:
            app.add_route(path, func, methods=methods)
            return func

        return decorator

    # ----- POST /auth ----------------------------------------------------- #
    @route("/auth", methods=["POST"])
    async def _login(request: Request) -> Response:  # noqa: D401
        payload = await _json_body(request)
        if payload is None:
            return _bad_request("body must be a JSON object")
        proof = payload.get("proof")
        if not isinstance(proof, str) or not proof:
            return _bad_request("missing proof")
        claimed = payload.get("external_id")
        session = AuthSession(
            proof=proof, claimed_external_id=str(claimed) if claimed else None
        )
        try:
            principal = await run_in_threadpool(svc.login, session)
        except PageTokenError as exc:
            _LOG.info(
                "Login failed kind=%s correlation_id=%s",
                exc.kind,
                _correlation_id(request),
            )
            return _error_response(exc)
        _LOG.info(
            "Login principal=%s correlation_id=%s",
            principal.id,
            _correlation_id(request),
        )
        return JSONResponse({"success": True, "principal": principal.to_payload()})

    # ----- GET /principals/{principal_id} --------------------------------- #
    @route("/principals/{principal_id}", methods=["GET"])
    async def _principal(request: Request) -> Response:  # noqa: D401
        try:
            principal = await run_in_threadpool(
                svc.get_principal, request.path_params["principal_id"]
            )
        except PageTokenError as exc:
            return _error_response(exc)
        return JSONResponse({"principal": principal.to_payload()})

    # ----- GET /resources/{principal_id} ---------------------------------- #
    @route("/resources/{principal_id}", methods=["GET"])
    async def _sync(request: Request) -> Response:  # noqa: D401
        principal_id = request.path_params["principal_id"]
        try:
            views = await run_in_threadpool(svc.sync_resources, principal_id)
        except PageTokenError as exc:
            _LOG.info(
                "Sync failed kind=%s principal=%s correlation_id=%s",
                exc.kind,
                principal_id,
                _correlation_id(request),
            )
            return _error_response(exc)
        return JSONResponse({"resources": [view.to_payload() for view in views]})

    # ----- POST /resources/{resource_id}/renew ---------------------------- #
    @route("/resources/{resource_id}/renew", methods=["POST"])
    async def _renew(request: Request) -> Response:  # noqa: D401
        resource_id = request.path_params["resource_id"]
        payload = await _json_body(request)
        if payload is None:
            return _bad_request("body must be a JSON object")
        principal_id = payload.get("principal_id")
        if not isinstance(principal_id, str) or not principal_id:
            return _bad_request("missing principal_id")
        try:
            view = await run_in_threadpool(svc.renew, resource_id, principal_id)
        except PageTokenError as exc:
            _LOG.info(
                "Renew failed kind=%s correlation_id=%s",
                exc.kind,
                _correlation_id(request),
            )
            return _error_response(exc)
        return JSONResponse({"success": True, "resource": view.to_payload()})

    # ----- DELETE /resources/{resource_id} -------------------------------- #
    @route("/resources/{resource_id}", methods=["DELETE"])
    async def _delete(request: Request) -> Response:  # noqa: D401
        removed = await run_in_threadpool(
            svc.delete_resource, request.path_params["resource_id"]
        )
        _LOG.info(
            "Delete removed=%s correlation_id=%s", removed, _correlation_id(request)
        )
        return JSONResponse({"success": True})

    # ----- POST /sweep ---------------------------------------------------- #
    @route("/sweep", methods=["POST"])
    async def _sweep(request: Request) -> Response:  # noqa: D401
        updated = await run_in_threadpool(svc.sweep)
        return JSONResponse({"success": True, "updated_count": updated})
