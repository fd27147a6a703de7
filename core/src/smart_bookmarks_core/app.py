from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.staticfiles import StaticFiles

from smart_bookmarks_core import __version__
from smart_bookmarks_core.api.models import fail
from smart_bookmarks_core.api.v1.router import router as v1_router
from smart_bookmarks_core.auth import (
    extract_browser_session_id,
    is_exempt_path,
    new_browser_session_id,
)
from smart_bookmarks_core.config import load_core_config
from smart_bookmarks_core.home import ensure_app_layout, resolve_app_home
from smart_bookmarks_core.registry import ClientFactory, ControllerRegistry
from smart_bookmarks_core.supabase_client import build_supabase_client
from smart_bookmarks_core.ui.router import STATIC_DIR as UI_STATIC_DIR
from smart_bookmarks_core.ui.router import router as ui_router

logger = logging.getLogger(__name__)


def create_app(client_factory: ClientFactory = build_supabase_client) -> FastAPI:
    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        home = resolve_app_home()
        paths = ensure_app_layout(home)
        config = load_core_config(paths)

        # Configure Logging
        file_handler = RotatingFileHandler(
            paths.log_path,
            maxBytes=config.logging.max_size_mb * 1024 * 1024,
            backupCount=config.logging.backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(formatter)

        root = logging.getLogger()
        root.setLevel(logging.INFO)
        # Avoid adding duplicate handlers if reloaded
        if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
            root.addHandler(file_handler)

        logger.info("Smart Bookmarks starting up")
        logger.info(f"Logs directory: {paths.logs_dir}")
        if not config.supabase.is_configured:
            logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY missing; sign-in disabled")

        app.state.app_home = home
        app.state.app_paths = paths
        app.state.config = config
        app.state.registry = ControllerRegistry(config, client_factory=client_factory)

        try:
            yield
        finally:
            await app.state.registry.close()
            logger.info("Smart Bookmarks shut down")

    app = FastAPI(title="Smart Bookmarks", version=__version__, lifespan=_lifespan)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    class _BrowserSessionMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next) -> Response:
            if is_exempt_path(request.url.path):
                return await call_next(request)

            session_config = request.app.state.config.session
            session_id = extract_browser_session_id(request, session_config.cookie_name)
            issued = session_id is None
            if issued:
                session_id = new_browser_session_id()
            request.state.browser_session_id = session_id

            response = await call_next(request)
            if issued:
                response.set_cookie(
                    session_config.cookie_name,
                    session_id,
                    httponly=True,
                    samesite="lax",
                    max_age=session_config.cookie_max_age_s,
                )
            return response

    app.add_middleware(_BrowserSessionMiddleware)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=fail(
                code="validation_error",
                message="Request validation failed",
                details=exc.errors(),
            ).model_dump(mode="json"),
        )

    def _status_to_code(status_code: int) -> str:
        if status_code == 401:
            return "unauthorized"
        if status_code == 403:
            return "forbidden"
        if status_code == 404:
            return "not_found"
        if status_code == 405:
            return "method_not_allowed"
        if status_code == 422:
            return "validation_error"
        if 400 <= status_code < 500:
            return "client_error"
        return "server_error"

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=fail(
                code=_status_to_code(exc.status_code),
                message=str(exc.detail),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=fail(
                code=_status_to_code(exc.status_code),
                message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=fail(code="internal_error", message="Internal server error").model_dump(
                mode="json"
            ),
        )

    app.include_router(v1_router)

    if UI_STATIC_DIR.is_dir():
        app.mount(
            "/static",
            StaticFiles(directory=str(UI_STATIC_DIR)),
            name="ui-static",
        )
    else:
        logger.warning(
            "UI static directory is missing (%s); /static will not be served",
            UI_STATIC_DIR,
        )
    app.include_router(ui_router)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app
