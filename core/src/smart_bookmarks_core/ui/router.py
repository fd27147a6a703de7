from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates

from smart_bookmarks_core.auth import get_controller
from smart_bookmarks_core.config import CoreConfig
from smart_bookmarks_core.controller import EVENT_CLOSED, ViewController, ViewPhase
from smart_bookmarks_core.session import SIGN_IN_FAILED_MESSAGE
from smart_bookmarks_core.theme import COLOR_SCHEME_HINT, ThemePreferenceStore, system_prefers_dark

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

APP_TITLE = "Smart Bookmark App"
SSE_KEEPALIVE_S = 15.0

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(tags=["ui"])


def _get_config(request: Request) -> CoreConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise HTTPException(status_code=500, detail="Config not initialized")
    return config


def _theme_store(request: Request) -> ThemePreferenceStore:
    key = _get_config(request).theme.storage_key
    storage: dict[str, str] = {}
    stored = request.cookies.get(key)
    if stored:
        storage[key] = stored
    return ThemePreferenceStore(
        storage,
        system_prefers_dark=system_prefers_dark(request.headers),
        key=key,
    )


def _origin(request: Request) -> str:
    site_url = (_get_config(request).supabase.site_url or "").strip()
    if site_url:
        return site_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def _safe_next(raw: str | None) -> str:
    target = (raw or "").strip()
    if not target.startswith("/") or target.startswith("//"):
        return "/"
    return target


def _page_context(
    request: Request, controller: ViewController, **extra: Any
) -> dict[str, Any]:
    state = controller.snapshot()
    ctx: dict[str, Any] = {
        "title": APP_TITLE,
        "theme": _theme_store(request),
        "state": state,
        "phases": ViewPhase,
        "provider_label": controller.provider.replace("_", " ").title(),
    }
    ctx.update(extra)
    return ctx


@router.get("/", response_class=HTMLResponse)
async def ui_home(
    request: Request,
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> HTMLResponse:
    resp = templates.TemplateResponse(request, "index.html", _page_context(request, controller))
    resp.headers["Accept-CH"] = COLOR_SCHEME_HINT
    resp.headers["Vary"] = COLOR_SCHEME_HINT
    return resp


@router.get("/partials/live", response_class=HTMLResponse)
async def ui_live_partial(
    request: Request,
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> HTMLResponse:
    return templates.TemplateResponse(request, "_live.html", _page_context(request, controller))


@router.get("/events")
async def ui_events(
    request: Request,
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> StreamingResponse:
    queue: asyncio.Queue[str] = asyncio.Queue()
    remove = controller.add_listener(queue.put_nowait)

    async def _stream() -> AsyncIterator[str]:
        try:
            yield "retry: 3000\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_S)
                except TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if event == EVENT_CLOSED:
                    break
                yield "event: refresh\ndata: {}\n\n"
        finally:
            remove()

    return StreamingResponse(
        _stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/login")
async def ui_login(
    request: Request,
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> RedirectResponse:
    target = await controller.login(_origin(request))
    if target is None:
        return RedirectResponse(url="/", status_code=302)
    return RedirectResponse(url=target, status_code=302)


@router.post("/logout")
async def ui_logout(
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> RedirectResponse:
    await controller.logout()
    return RedirectResponse(url="/", status_code=302)


@router.post("/bookmarks")
async def ui_bookmarks_create(
    url: str = Form(default=""),
    title: str = Form(default=""),
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> RedirectResponse:
    await controller.submit(url, title)
    return RedirectResponse(url="/", status_code=302)


@router.post("/bookmarks/{bookmark_id}/delete")
async def ui_bookmarks_delete(
    bookmark_id: str,
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> RedirectResponse:
    await controller.delete(bookmark_id)
    return RedirectResponse(url="/", status_code=302)


@router.post("/theme")
async def ui_theme_toggle(
    request: Request, return_to: str = Form(default="/")
) -> RedirectResponse:
    config = _get_config(request)
    store = _theme_store(request)
    theme = store.toggle()

    resp = RedirectResponse(url=_safe_next(return_to), status_code=302)
    resp.set_cookie(
        store.key,
        theme.value,
        samesite="lax",
        max_age=config.theme.cookie_max_age_s,
    )
    return resp


@router.get("/auth/callback", response_class=HTMLResponse, response_model=None)
async def ui_auth_callback(
    request: Request,
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> HTMLResponse | RedirectResponse:
    provider_error = request.query_params.get("error_description") or request.query_params.get(
        "error"
    )
    if provider_error:
        logger.warning(f"OAuth provider returned an error: {provider_error}")
        completed = False
    else:
        completed = await controller.complete_sign_in(request.query_params.get("code"))

    if completed:
        return RedirectResponse(url="/", status_code=302)

    return templates.TemplateResponse(
        request,
        "callback.html",
        {
            "title": APP_TITLE,
            "theme": _theme_store(request),
            "message": SIGN_IN_FAILED_MESSAGE,
        },
    )
