from __future__ import annotations

import secrets
from typing import Final

from fastapi import HTTPException, Request

from smart_bookmarks_core.controller import ViewController
from smart_bookmarks_core.registry import ControllerRegistry

_MIN_SESSION_ID_LENGTH: Final[int] = 16


def new_browser_session_id() -> str:
    return secrets.token_urlsafe(32)


def is_exempt_path(path: str) -> bool:
    """Paths that never need a browser session (and never mount a controller)."""

    if path == "/healthz":
        return True
    if path == "/openapi.json":
        return True
    if path.startswith("/docs"):
        return True
    if path.startswith("/redoc"):
        return True
    if path.startswith("/static"):
        return True
    return False


def extract_browser_session_id(request: Request, cookie_name: str) -> str | None:
    raw = (request.cookies.get(cookie_name) or "").strip()
    if len(raw) < _MIN_SESSION_ID_LENGTH:
        return None
    return raw


def _get_registry(request: Request) -> ControllerRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=500, detail="Controller registry not initialized")
    return registry


async def get_controller(request: Request) -> ViewController:
    """FastAPI dependency: the mounted controller for this browser session."""

    session_id = getattr(request.state, "browser_session_id", None)
    if not session_id:
        raise HTTPException(status_code=500, detail="Browser session not initialized")
    return await _get_registry(request).get(session_id)
