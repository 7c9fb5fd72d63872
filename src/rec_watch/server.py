"""
HTTP control API and WebSocket live-update channel.

Run with `rec-watch serve`, or `uvicorn rec_watch.server:create_app --factory`.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__, errors
from .config import Settings, load_settings
from .monitor import Monitor

logger = logging.getLogger(__name__)


class PollOverrides(BaseModel):
    url: Optional[str] = None
    interval: Optional[int] = Field(default=None, gt=0)


class BotStartRequest(BaseModel):
    token: Optional[str] = None


def get_monitor(request: Request) -> Monitor:
    return request.app.state.monitor


def _apply_overrides(monitor: Monitor, body: Optional[PollOverrides]) -> None:
    if body is None:
        return
    # Blank URL fields from the form mean "keep the current one".
    monitor.poller.update_config(url=body.url or None, interval_seconds=body.interval)


def _bot_payload(monitor: Monitor) -> Dict[str, Any]:
    return monitor.bot.status().to_dict()


@asynccontextmanager
async def lifespan(app: FastAPI):
    monitor: Monitor = app.state.monitor
    await monitor.startup(start_polling=app.state.start_polling)
    try:
        yield
    finally:
        await monitor.shutdown()


def create_app(
    settings: Optional[Settings] = None,
    *,
    monitor: Optional[Monitor] = None,
    start_polling: bool = False,
) -> FastAPI:
    """Build the FastAPI app around a Monitor (created from settings if not given)."""
    if monitor is None:
        monitor = Monitor(settings or load_settings())

    app = FastAPI(
        title="Rec Center Watch",
        version=__version__,
        description="Polls a recreation-center activity page and pushes availability updates.",
        lifespan=lifespan,
    )
    app.state.monitor = monitor
    app.state.start_polling = start_polling
    app.add_middleware(
        CORSMiddleware, allow_origins=["*"], allow_methods=["GET", "POST"], allow_headers=["*"]
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"success": False, "error": details})

    @app.exception_handler(errors.ValidationError)
    async def validation_handler(_: Request, exc: errors.ValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.get("/api/status")
    async def get_status(monitor: Monitor = Depends(get_monitor)):
        return {"success": True, **monitor.poller.status()}

    @app.post("/api/start")
    async def start_polling_endpoint(
        body: Optional[PollOverrides] = None, monitor: Monitor = Depends(get_monitor)
    ):
        _apply_overrides(monitor, body)
        started = await monitor.poller.start()
        return {"success": True, "isPolling": True, "started": started}

    @app.post("/api/stop")
    async def stop_polling_endpoint(monitor: Monitor = Depends(get_monitor)):
        stopped = await monitor.poller.stop()
        return {"success": True, "isPolling": False, "stopped": stopped}

    @app.post("/api/config")
    async def set_config(
        body: Optional[PollOverrides] = None, monitor: Monitor = Depends(get_monitor)
    ):
        _apply_overrides(monitor, body)
        return {
            "success": True,
            "url": monitor.config.target_url,
            "interval": monitor.config.interval_seconds,
        }

    @app.post("/api/bot/start")
    async def bot_start(
        body: Optional[BotStartRequest] = None, monitor: Monitor = Depends(get_monitor)
    ):
        token = (body.token or "").strip() if body else ""
        if not token:
            return JSONResponse(
                status_code=400, content={"success": False, "error": "Bot token is required"}
            )

        ok = await monitor.bot.start(token)
        await monitor.bot.broadcast_status()
        payload: Dict[str, Any] = {"success": ok, **_bot_payload(monitor)}
        if not ok:
            payload["error"] = monitor.bot.last_error
        return payload

    @app.post("/api/bot/stop")
    async def bot_stop(monitor: Monitor = Depends(get_monitor)):
        await monitor.bot.stop()
        return {"success": True, **_bot_payload(monitor)}

    @app.get("/api/bot/status")
    async def bot_status(monitor: Monitor = Depends(get_monitor)):
        return {"success": True, **_bot_payload(monitor)}

    @app.websocket("/ws")
    async def live_updates(websocket: WebSocket):
        hub = websocket.app.state.monitor.hub
        await websocket.accept()
        await hub.connect(websocket)
        try:
            while True:
                # Clients only listen; drain anything they send.
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            hub.disconnect(websocket)

    return app
