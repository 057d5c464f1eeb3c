"""
P2P File Share — signaling server entry point.

Issues OTPs for announced files, resolves them for downloaders and relays
the WebRTC handshake between the two peers. File bytes never pass
through this process.
"""

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.routes import router
from api.websocket import decode
from config import API_HOST, API_PORT, APP_NAME, APP_VERSION, CORS_ORIGINS, PUBLIC_DIR
from services import Services
from signaling.models import Event

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application around one set of in-memory registries."""
    services = services or Services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop background services."""
        logger.info("Starting signaling services...")
        try:
            await services.start()
            logger.info(f"{APP_NAME} ready on {API_HOST}:{API_PORT}. Files never stored on server.")
            yield
        except Exception as e:
            logger.error(f"Startup failed: {e}", exc_info=True)
            raise
        finally:
            logger.info("Shutting down signaling services...")
            await services.stop()

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials="*" not in CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def malformed_request(request: Request, exc: RequestValidationError):
        fields = ", ".join(
            str(err["loc"][-1]) for err in exc.errors() if err.get("loc")
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"Invalid or missing fields: {fields}"},
        )

    app.include_router(router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        connection_ref = await services.connections.connect(websocket)
        services.lifecycle.connect(connection_ref)
        try:
            while True:
                message = await websocket.receive_text()
                try:
                    event, data = decode(message)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Ignoring malformed frame from {connection_ref}: {e}")
                    services.connections.deliver(connection_ref, Event.ERROR, {
                        "message": "Malformed message",
                    })
                    continue
                services.dispatcher.handle(connection_ref, event, data)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket {connection_ref} failed: {e}", exc_info=True)
        finally:
            # No awaits here: cleanup must finish even when the task is cancelled.
            services.lifecycle.disconnect(connection_ref)
            services.connections.release(connection_ref)

    # --- Static Files (Frontend) ---
    if PUBLIC_DIR.exists():
        assets = PUBLIC_DIR / "assets"
        if assets.exists():
            app.mount("/assets", StaticFiles(directory=assets), name="assets")

        @app.get("/")
        async def read_index():
            return FileResponse(PUBLIC_DIR / "index.html")
    else:
        logger.warning(f"Frontend not found at {PUBLIC_DIR}. API only mode.")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
