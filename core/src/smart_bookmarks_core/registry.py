from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from smart_bookmarks_core.config import CoreConfig, SupabaseConfig
from smart_bookmarks_core.controller import ViewController
from smart_bookmarks_core.repository import BookmarkRepository
from smart_bookmarks_core.session import RemoteSessionClient
from smart_bookmarks_core.supabase_client import build_supabase_client

logger = logging.getLogger(__name__)

ClientFactory = Callable[[SupabaseConfig], Awaitable[Any]]


class ControllerRegistry:
    """One mounted ViewController per browser session id."""

    def __init__(
        self,
        config: CoreConfig,
        *,
        client_factory: ClientFactory = build_supabase_client,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._clock = clock
        self._controllers: dict[str, ViewController] = {}
        self._building: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._controllers)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._controllers

    async def get(self, session_id: str) -> ViewController:
        await self.evict_idle(keep=session_id)

        controller = self._controllers.get(session_id)
        if controller is None:
            # One build per session id even when requests for it arrive together.
            lock = self._building.setdefault(session_id, asyncio.Lock())
            async with lock:
                controller = self._controllers.get(session_id)
                if controller is None:
                    controller = await self._build()
                    self._controllers[session_id] = controller
                    logger.info(f"Mounting view controller ({len(self._controllers)} active)")
                    await controller.mount()
            if not lock.locked():
                self._building.pop(session_id, None)

        controller.last_active = self._clock()
        return controller

    async def _build(self) -> ViewController:
        supabase = self._config.supabase
        if not supabase.is_configured:
            logger.warning("Supabase is not configured; sign-in is disabled")
            return ViewController(None, None, provider=supabase.oauth_provider)

        client = await self._client_factory(supabase)
        return ViewController(
            RemoteSessionClient(client),
            BookmarkRepository(client, table=supabase.table, schema=supabase.schema_name),
            provider=supabase.oauth_provider,
        )

    async def discard(self, session_id: str) -> None:
        controller = self._controllers.pop(session_id, None)
        if controller is not None:
            await controller.teardown()

    async def evict_idle(self, *, keep: str | None = None) -> int:
        timeout = self._config.session.idle_timeout_s
        now = self._clock()
        stale = [
            sid
            for sid, c in self._controllers.items()
            if sid != keep and c.listener_count == 0 and now - c.last_active > timeout
        ]
        for sid in stale:
            await self.discard(sid)
        if stale:
            logger.info(f"Evicted {len(stale)} idle view controller(s)")
        return len(stale)

    async def close(self) -> None:
        for sid in list(self._controllers):
            controller = self._controllers[sid]
            await controller.settle()
            await self.discard(sid)
