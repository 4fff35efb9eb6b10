"""FastAPI entry-point for the wheel overlay."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import psutil
import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .logging_config import configure_logging
from .overlay_manager import OverlayManager

logger = logging.getLogger(__name__)


class SpinRequest(BaseModel):
    items: List[Any] = Field(default_factory=list)
    actions: Dict[str, Any] = Field(default_factory=dict)


class ConfigModeRequest(BaseModel):
    enabled: bool = True


def create_app(settings: Optional[Settings] = None, manager: Optional[OverlayManager] = None) -> FastAPI:
    settings = settings or get_settings()
    log_file = configure_logging(settings.log_level, settings.log_directory, settings.log_retention_days)
    logger.info("Overlay service logging to %s", log_file)
    app = FastAPI(title="wheel-overlay", version="0.1.0")
    manager = manager or OverlayManager(settings=settings)
    app.state.manager = manager

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Catch-all exception handler to prevent application crashes."""
        logger.exception("Unhandled exception in %s: %s", request.url.path, exc)
        return PlainTextResponse(
            f"Internal server error: {str(exc)}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request validation errors gracefully."""
        logger.warning("Validation error in %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        try:
            await manager.start()
            logger.info("Application started successfully")
        except Exception as e:
            logger.exception("Failed to start overlay manager: %s", e)
            logger.error("Application startup failed - overlay will stay disconnected")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        try:
            await manager.stop()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.exception("Error during shutdown: %s", e)

    @app.get("/healthz")
    async def healthcheck() -> JSONResponse:
        return JSONResponse({"status": "ok", **manager.status()})

    @app.get("/debug/performance")
    async def debug_performance() -> JSONResponse:
        """Host load plus this process's footprint and renderer fan-out."""
        try:
            process = psutil.Process()
            memory = psutil.virtual_memory()
            return JSONResponse({
                "cpu_percent": round(psutil.cpu_percent(interval=0.1), 1),
                "memory_percent": round(memory.percent, 1),
                "memory_total_mb": round(memory.total / (1024 * 1024), 1),
                "process_rss_mb": round(process.memory_info().rss / (1024 * 1024), 1),
                "process_threads": process.num_threads(),
                "ui_subscribers": manager.ui_subscriber_count,
                "phase": manager.phase.value,
            })
        except psutil.Error as e:
            logger.error("Performance monitoring error: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

    @app.post("/debug/spin")
    async def debug_spin(payload: SpinRequest) -> JSONResponse:
        """Spin locally without the controller (same path as a trigger_action)."""
        accepted = manager.trigger_spin(payload.items, payload.actions)
        return JSONResponse({
            "status": "accepted" if accepted else "ignored",
            "phase": manager.phase.value,
        })

    @app.post("/debug/config-mode")
    async def debug_config_mode(payload: ConfigModeRequest) -> JSONResponse:
        enabled = manager.set_config_mode(payload.enabled)
        return JSONResponse({"status": "ok", "config_mode": enabled})

    @app.post("/layout/reset")
    async def reset_layout() -> JSONResponse:
        messages = manager.reset_layout()
        return JSONResponse({"status": "ok", "positions": {m["element"]: m for m in messages}})

    @app.websocket("/ws/ui")
    async def ui_socket(ws: WebSocket) -> None:
        await ws.accept()
        queue = manager.register_ui()
        receiver = asyncio.create_task(_receive_ui_input(ws, manager), name="ui-input")
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break  # UI client went away
                event = getter.result()
                try:
                    await ws.send_json(event.to_payload())
                except Exception as e:
                    # WebSocket closed, break out of loop
                    logger.debug("WebSocket send failed (client disconnected): %s", e)
                    break
        except WebSocketDisconnect:
            pass
        except asyncio.CancelledError:
            pass  # Clean shutdown
        except Exception as e:
            logger.error("Unexpected error in UI websocket: %s", e)
        finally:
            manager.unregister_ui(queue)
            receiver.cancel()
            try:
                await receiver
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass
            except Exception as e:
                logger.debug("UI input task ended with error: %s", e)
            try:
                await ws.close()
            except Exception:
                pass

    return app


async def _receive_ui_input(ws: WebSocket, manager: OverlayManager) -> None:
    while True:
        text = await ws.receive_text()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from UI: %s", text)
            continue
        if not isinstance(payload, dict):
            logger.warning("Ignoring non-object UI message: %s", text)
            continue
        try:
            manager.handle_ui_message(payload)
        except Exception as e:
            logger.exception("Error in UI message handler: %s", e)


def run() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.overlay_host, port=settings.overlay_port)


__all__ = ["create_app", "run"]
