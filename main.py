# ─────────────────────────────────────────────────────────────────
# main.py — Application Entry Point
#
# Builds the FastAPI app, plugs in middleware and routers, and
# owns the MonitorService lifecycle:
#   startup  → service.start()  (first sweep + repeating tick)
#   shutdown → service.stop()   (stop ticking, let the last sweep finish)
#
# Run with:  python main.py   or   uvicorn main:create_app --factory --port 3001
# ─────────────────────────────────────────────────────────────────

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from alerts import configure_logging
from auth import Authenticator, LoginRateLimiter
from config import Settings
from routes import auth as auth_routes
from routes import live, servers
from service import MonitorService

logger = logging.getLogger("main")

VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None, service: Optional[MonitorService] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        monitor = app.state.service
        await monitor.start()
        logger.info(f"[MONITOR] Monitoring {len(monitor.registry)} server(s)")
        try:
            yield
        finally:
            await monitor.stop()

    app = FastAPI(
        title="ServerMon",
        description="Live availability monitor for a fixed set of servers",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.service = service or MonitorService(settings)
    app.state.authenticator = Authenticator(settings.users)
    app.state.login_limiter = LoginRateLimiter(settings.login_max_attempts, settings.login_window)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="sessionId",
        max_age=settings.session_ttl,
        same_site="strict",
        https_only=settings.https_only,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(auth_routes.router)
    app.include_router(servers.router)
    app.include_router(live.router)

    # ── Error shapes: {"success": false, "message": ...} everywhere ──

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid input data"},
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
        )

    @app.get("/")
    def root():
        return {
            "message": "ServerMon is running",
            "version": VERSION,
            "docs": "/docs",
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
