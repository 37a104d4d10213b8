"""
HTTP server implementation for the logbook backup core.

This module provides a small REST API over the BackupService:

    GET    /v1/health
    GET    /v1/snapshots
    POST   /v1/snapshots                      manual backup
    DELETE /v1/snapshots/{snapshot_id}
    POST   /v1/snapshots/{snapshot_id}/restore?confirm=true
    POST   /v1/reset?confirm=true
    GET    /v1/alerts?date=YYYY-MM-DD&sort=urgency&limit=6
    GET    /v1/calendar?month=YYYY-MM&date=YYYY-MM-DD

Invariants:
    - JSON request/response format
    - Destructive actions (restore, reset) require ``confirm=true``
    - Every action response carries ``success`` and ``message``
    - Error codes map to fixed HTTP statuses

How to change safely:
    - Add endpoints, don't change existing response keys
    - Keep status mapping in ERROR_STATUS in sync with service codes
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from aiohttp import web

from ..config import HttpConfig
from ..errors import LogbookError
from ..service import RESTORE_WARNING, ActionOutcome, BackupService

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "STORE_UNAVAILABLE": 503,
    "NOT_FOUND": 404,
    "MALFORMED_PAYLOAD": 422,
    "VALIDATION_ERROR": 400,
    "READ_ERROR": 502,
    "WRITE_ERROR": 502,
    "RESTORE_ERROR": 502,
}


def create_http_app(
    service: BackupService,
    config: HttpConfig | None = None,
    scheduler: Any = None,
    today: Callable[[], date] | None = None,
) -> web.Application:
    """Create the HTTP application.

    Args:
        service: BackupService instance
        config: HTTP server configuration
        scheduler: Optional BackupScheduler, reported by /v1/health
        today: Reference-date provider for alerts and calendar

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    today = today or date.today
    app = web.Application()

    app.router.add_get("/v1/health", lambda r: handle_health(r, service, scheduler))
    app.router.add_get("/v1/snapshots", lambda r: handle_list_snapshots(r, service))
    app.router.add_post("/v1/snapshots", lambda r: handle_create_snapshot(r, service))
    app.router.add_delete(
        "/v1/snapshots/{snapshot_id}", lambda r: handle_delete_snapshot(r, service)
    )
    app.router.add_post(
        "/v1/snapshots/{snapshot_id}/restore", lambda r: handle_restore(r, service)
    )
    app.router.add_post("/v1/reset", lambda r: handle_reset(r, service))
    app.router.add_get("/v1/alerts", lambda r: handle_alerts(r, service, today))
    app.router.add_get("/v1/calendar", lambda r: handle_calendar(r, service, today))

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    app.middlewares.append(cors_middleware)

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except LogbookError as e:
            logger.error(f"HTTP handler error: {e}", extra={"error_code": e.code})
            return web.json_response(
                {"error": e.message, "error_code": e.code},
                status=ERROR_STATUS.get(e.code, 500),
            )
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return web.json_response(
                {"error": str(e), "error_code": "INTERNAL"},
                status=500,
            )

    app.middlewares.insert(0, error_middleware)

    return app


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message, "error_code": "INVALID_ARGUMENT"}),
        content_type="application/json",
    )


def _outcome_response(outcome: ActionOutcome) -> web.Response:
    status = 200 if outcome.success else ERROR_STATUS.get(outcome.error_code or "", 500)
    return web.json_response(outcome.to_dict(), status=status)


def _require_confirmation(request: web.Request) -> None:
    if request.query.get("confirm", "false").lower() != "true":
        raise _bad_request(f"{RESTORE_WARNING} Repeat with confirm=true to proceed.")


def _reference_date(request: web.Request, today: Callable[[], date]) -> date:
    value = request.query.get("date")
    if not value:
        return today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise _bad_request("date must be YYYY-MM-DD") from None


async def handle_health(request: web.Request, service: BackupService, scheduler: Any) -> web.Response:
    """Handle GET /v1/health - Health check."""
    result: dict[str, Any] = {
        "healthy": True,
        "snapshots": service.snapshot_store.stats,
    }
    if scheduler is not None:
        result["scheduler"] = scheduler.stats
    return web.json_response(result)


async def handle_list_snapshots(request: web.Request, service: BackupService) -> web.Response:
    """Handle GET /v1/snapshots - List snapshots, newest first."""
    snapshots = await service.list_snapshots()
    return web.json_response({"snapshots": [s.summary() for s in snapshots]})


async def handle_create_snapshot(request: web.Request, service: BackupService) -> web.Response:
    """Handle POST /v1/snapshots - Manual backup."""
    return _outcome_response(await service.backup_now())


async def handle_delete_snapshot(request: web.Request, service: BackupService) -> web.Response:
    """Handle DELETE /v1/snapshots/{snapshot_id}."""
    snapshot_id = request.match_info["snapshot_id"]
    return _outcome_response(await service.delete(snapshot_id))


async def handle_restore(request: web.Request, service: BackupService) -> web.Response:
    """Handle POST /v1/snapshots/{snapshot_id}/restore."""
    _require_confirmation(request)
    snapshot_id = request.match_info["snapshot_id"]
    return _outcome_response(await service.restore(snapshot_id))


async def handle_reset(request: web.Request, service: BackupService) -> web.Response:
    """Handle POST /v1/reset - Delete every live record."""
    _require_confirmation(request)
    return _outcome_response(await service.reset())


async def handle_alerts(
    request: web.Request,
    service: BackupService,
    today: Callable[[], date],
) -> web.Response:
    """Handle GET /v1/alerts - Critical items and dashboard counters."""
    reference = _reference_date(request, today)
    by_urgency = request.query.get("sort") == "urgency"
    limit = request.query.get("limit")
    try:
        limit_value = int(limit) if limit is not None else None
    except ValueError:
        raise _bad_request("limit must be an integer") from None
    if limit_value is not None and limit_value < 0:
        raise _bad_request("limit must be non-negative")

    result = await service.alerts(reference, by_urgency=by_urgency, limit=limit_value)
    result["date"] = reference.isoformat()
    return web.json_response(result)


async def handle_calendar(
    request: web.Request,
    service: BackupService,
    today: Callable[[], date],
) -> web.Response:
    """Handle GET /v1/calendar - Day status for a month."""
    reference = _reference_date(request, today)
    month = request.query.get("month")
    if month:
        try:
            parsed = datetime.strptime(month, "%Y-%m")
        except ValueError:
            raise _bad_request("month must be YYYY-MM") from None
        year, month_number = parsed.year, parsed.month
    else:
        year, month_number = reference.year, reference.month

    days = await service.calendar(year, month_number, reference)
    return web.json_response({"month": f"{year:04d}-{month_number:02d}", "days": days})


async def start_http_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """Start serving ``app``; the caller cleans up the returned runner.

    Args:
        app: Application from create_http_app()
        host: Host to bind to
        port: Port to listen on
    """
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"HTTP server running on http://{host}:{port}")
    return runner
