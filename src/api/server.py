"""HTTP API for scheduling, cancelling and tracking calls.

Runs in the same asyncio event loop as the scheduler, using aiohttp's
AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from src.calls.engine import CallLifecycleEngine
from src.calls.errors import (
    CallError,
    CallNotFoundError,
    ForbiddenError,
    InvalidScheduleError,
)
from src.calls.schemas import CallResponseParams, ScheduleCallParams, ToggleCallParams
from src.config import settings

logger = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", CallLifecycleEngine)

_ERROR_STATUS: dict[type[CallError], int] = {
    InvalidScheduleError: 400,
    ForbiddenError: 403,
    CallNotFoundError: 404,
}


class _BadRequest(Exception):
    pass


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def _error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map call lifecycle errors onto HTTP status codes."""
    try:
        return await handler(request)
    except _BadRequest as exc:
        return _error(str(exc), 400)
    except ValidationError as exc:
        logger.warning(
            "Rejected %s %s: %d validation error(s)",
            request.method,
            request.path,
            exc.error_count(),
        )
        return _error(str(exc), 400)
    except CallError as exc:
        status = _ERROR_STATUS.get(type(exc), 400)
        logger.info("%s %s -> %d: %s", request.method, request.path, status, exc)
        return _error(str(exc), status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except Exception:
        raise _BadRequest("invalid JSON") from None
    if not isinstance(payload, dict):
        raise _BadRequest("expected a JSON object")
    return payload


def _engine(request: web.Request) -> CallLifecycleEngine:
    return request.app[ENGINE_KEY]


def _recipient_id(request: web.Request) -> int:
    return int(request.match_info["recipient_id"])


# -- Handlers ----------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _schedule(request: web.Request) -> web.Response:
    params = ScheduleCallParams.model_validate(await _read_json(request))
    call = await _engine(request).schedule(params.to_request())
    return web.json_response(call.to_dict(), status=201)


async def _immediate(request: web.Request) -> web.Response:
    params = ScheduleCallParams.model_validate(await _read_json(request))
    call = await _engine(request).schedule_immediate(params.to_request())
    return web.json_response(call.to_dict(), status=201)


async def _list_all(request: web.Request) -> web.Response:
    return web.json_response([c.to_dict() for c in _engine(request).list_all()])


async def _stats(request: web.Request) -> web.Response:
    raw = request.query.get("recipient_id")
    try:
        recipient_id = int(raw) if raw else None
    except ValueError:
        raise _BadRequest(f"invalid recipient_id: {raw}") from None
    return web.json_response(_engine(request).stats(recipient_id).to_dict())


async def _get_call(request: web.Request) -> web.Response:
    call = _engine(request).get(request.match_info["call_id"])
    return web.json_response(call.to_dict())


async def _cancel_call(request: web.Request) -> web.Response:
    call = await _engine(request).cancel(request.match_info["call_id"])
    return web.json_response(call.to_dict())


async def _list_by_recipient(request: web.Request) -> web.Response:
    calls = _engine(request).list_by_recipient(_recipient_id(request))
    return web.json_response([c.to_dict() for c in calls])


async def _cancel_by_recipient(request: web.Request) -> web.Response:
    call = await _engine(request).cancel_by_recipient(_recipient_id(request))
    return web.json_response(call.to_dict())


async def _history(request: web.Request) -> web.Response:
    return web.json_response(_engine(request).history(_recipient_id(request)))


async def _toggle(request: web.Request) -> web.Response:
    params = ToggleCallParams.model_validate(await _read_json(request))
    call = await _engine(request).toggle(params.recipient_id, params.enabled, call_id=params.id)
    return web.json_response(call.to_dict())


async def _response(request: web.Request) -> web.Response:
    params = CallResponseParams.model_validate(await _read_json(request))
    call = await _engine(request).record_response(
        params.id,
        params.status,
        responded_at=params.responded_at_utc(),
        note=params.note,
    )
    return web.json_response(call.to_dict())


def create_app(engine: CallLifecycleEngine) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_error_middleware])
    app[ENGINE_KEY] = engine

    app.router.add_get("/health", _health)
    app.router.add_post("/calls/schedule", _schedule)
    app.router.add_post("/calls/immediate", _immediate)
    app.router.add_post("/calls/toggle", _toggle)
    app.router.add_post("/calls/response", _response)
    app.router.add_get("/calls", _list_all)
    app.router.add_get("/calls/stats", _stats)
    app.router.add_get(r"/calls/recipient/{recipient_id:\d+}", _list_by_recipient)
    app.router.add_delete(r"/calls/recipient/{recipient_id:\d+}", _cancel_by_recipient)
    app.router.add_get(r"/calls/recipient/{recipient_id:\d+}/history", _history)
    app.router.add_get("/calls/{call_id}", _get_call)
    app.router.add_delete("/calls/{call_id}", _cancel_call)
    return app


class ApiServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        engine: CallLifecycleEngine,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self._engine = engine
        self.host = host or settings.api_host
        self.port = port or settings.api_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for API requests."""
        self._runner = web.AppRunner(create_app(self._engine))
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("API server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("API server stopped")
