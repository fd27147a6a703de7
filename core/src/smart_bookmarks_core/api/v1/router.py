from __future__ import annotations

from fastapi import APIRouter, Depends

from smart_bookmarks_core.api.models import ApiResponse, BookmarkOut, ViewStateOut, ok
from smart_bookmarks_core.auth import get_controller
from smart_bookmarks_core.controller import ViewController, ViewPhase

router = APIRouter(prefix="/api/v1", tags=["v1"])


@router.get("/ping", response_model=ApiResponse[dict[str, bool]])
async def ping() -> ApiResponse[dict[str, bool]]:
    return ok({"pong": True})


@router.get("/state", response_model=ApiResponse[ViewStateOut])
async def view_state(
    controller: ViewController = Depends(get_controller),  # noqa: B008
) -> ApiResponse[ViewStateOut]:
    # Read-only mirror of what the page renders; the user id is not exposed.
    state = controller.snapshot()
    out = ViewStateOut(
        phase=state.phase.value,
        configured=state.configured,
        session_loaded=state.session_loaded,
        signed_in=state.phase is ViewPhase.SIGNED_IN,
        bookmarks=[
            BookmarkOut(id=b.id, url=b.url, title=b.title, created_at=b.created_at)
            for b in state.bookmarks
        ],
        url=state.url,
        title=state.title,
        error=state.error,
        loading=state.loading,
    )
    return ok(out)
