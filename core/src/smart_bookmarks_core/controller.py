"""Bookmark view controller.

Owns the in-memory view state of one browser session and binds user actions
to the session and repository clients. The bookmark list is never patched
locally: every change notification triggers a full refetch, so the list
always converges to the rows the service holds for the signed-in user.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from smart_bookmarks_core.errors import (
    BookmarkAppError,
    BookmarkValidationError,
    ConfigurationError,
    RemoteError,
)
from smart_bookmarks_core.models import Bookmark, Session
from smart_bookmarks_core.repository import BookmarkRepository, clean_bookmark_fields
from smart_bookmarks_core.session import RemoteSessionClient
from smart_bookmarks_core.subscriptions import Subscription

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/auth/callback"

EVENT_CHANGED = "changed"
EVENT_CLOSED = "closed"

Listener = Callable[[str], None]


class ViewPhase(StrEnum):
    UNINITIALIZED = "uninitialized"
    CHECKING_SESSION = "checking_session"
    SIGNED_OUT = "signed_out"
    SIGNED_IN = "signed_in"


@dataclass
class ViewState:
    phase: ViewPhase = ViewPhase.UNINITIALIZED
    configured: bool = True
    user_id: str | None = None
    bookmarks: list[Bookmark] = field(default_factory=list)
    url: str = ""
    title: str = ""
    error: str | None = None
    loading: bool = False

    @property
    def session_loaded(self) -> bool:
        return self.phase in (ViewPhase.SIGNED_OUT, ViewPhase.SIGNED_IN)


class ViewController:
    def __init__(
        self,
        sessions: RemoteSessionClient | None,
        repository: BookmarkRepository | None,
        *,
        provider: str = "google",
    ) -> None:
        self._sessions = sessions
        self._repository = repository
        self.provider = provider
        self.state = ViewState(configured=sessions is not None and repository is not None)

        self._mounted = False
        self._torn_down = False
        self._auth_subscription: Subscription | None = None
        self._channel: Subscription | None = None
        # Bumped on every signed-in entry/exit; stale loads compare against it.
        self._generation = 0
        self._transition_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._listeners: list[Listener] = []
        self.last_active = 0.0

    # -- state --------------------------------------------------------------

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def snapshot(self) -> ViewState:
        return replace(self.state, bookmarks=list(self.state.bookmarks))

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _set(self, **changes: Any) -> None:
        if self._torn_down:
            return
        for name, value in changes.items():
            setattr(self.state, name, value)
        for listener in list(self._listeners):
            listener(EVENT_CHANGED)

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def settle(self) -> None:
        """Wait for refetches started by notifications to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- lifecycle ----------------------------------------------------------

    async def mount(self) -> None:
        if self.state.phase is not ViewPhase.UNINITIALIZED or self._torn_down:
            return

        self._mounted = True
        self._set(phase=ViewPhase.CHECKING_SESSION)

        if self._sessions is None:
            self._set(phase=ViewPhase.SIGNED_OUT)
            return

        self._auth_subscription = self._sessions.on_session_change(self._on_session_change)
        session = await self._sessions.get_current_session()
        if not self._mounted:
            return
        await self._apply_session(session)

    async def teardown(self) -> None:
        if not self._mounted:
            self._torn_down = True
            return

        self._mounted = False
        self._generation += 1

        auth_subscription, self._auth_subscription = self._auth_subscription, None
        channel, self._channel = self._channel, None
        if auth_subscription is not None:
            await auth_subscription.unsubscribe()
        if channel is not None:
            await channel.unsubscribe()

        listeners = list(self._listeners)
        self._listeners.clear()
        self._torn_down = True
        for listener in listeners:
            listener(EVENT_CLOSED)
        logger.info("View controller torn down")

    def _on_session_change(self, session: Session | None) -> None:
        if not self._mounted:
            return
        self._spawn(self._apply_session(session))

    async def _apply_session(self, session: Session | None) -> None:
        user_id = session.user_id if session is not None else None

        async with self._transition_lock:
            if not self._mounted:
                return
            if user_id == self.state.user_id and self.state.session_loaded:
                return

            await self._leave_signed_in()
            if user_id is None:
                self._set(phase=ViewPhase.SIGNED_OUT, user_id=None, bookmarks=[])
                return

            self._set(phase=ViewPhase.SIGNED_IN, user_id=user_id, bookmarks=[])
            await self._enter_signed_in(user_id)

    async def _enter_signed_in(self, user_id: str) -> None:
        repository = self._repository
        if repository is None:
            return
        generation = self._generation

        def _refetch() -> None:
            if self._is_current(generation):
                self._spawn(self._load(user_id, generation))

        # The channel is open before the initial list, so a change committed
        # while that list is in flight still triggers a refetch.
        live_error: str | None = None
        try:
            channel = await repository.subscribe_to_changes(user_id, _refetch)
        except RemoteError as e:
            logger.warning("Live updates unavailable: %s", e.message)
            live_error = e.message
        else:
            if not self._is_current(generation):
                await channel.unsubscribe()
                return
            self._channel = channel

        await self._load(user_id, generation)
        if live_error is not None and self._is_current(generation):
            self._set(error=live_error)

    async def _leave_signed_in(self) -> None:
        self._generation += 1
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.unsubscribe()

    async def _load(self, user_id: str, generation: int) -> None:
        repository = self._repository
        if repository is None:
            return
        try:
            bookmarks = await repository.list(user_id)
        except RemoteError as e:
            if not self._is_current(generation):
                return
            logger.warning("Bookmark list failed: %s", e.message)
            self._set(error=e.message)
            return

        if not self._is_current(generation):
            return
        self._set(error=None, bookmarks=bookmarks)

    # -- user actions -------------------------------------------------------

    async def login(self, origin: str) -> str | None:
        """Return the provider URL to redirect to, or None with the banner set."""

        self._set(error=None)
        if self._sessions is None:
            self._set(error=ConfigurationError().message)
            return None

        redirect_to = f"{origin.rstrip('/')}{CALLBACK_PATH}"
        try:
            return await self._sessions.sign_in_with_redirect(self.provider, redirect_to)
        except RemoteError as e:
            logger.warning("Sign-in failed: %s", e.message)
            self._set(error=e.message)
            return None

    async def complete_sign_in(self, auth_code: str | None) -> bool:
        if self._sessions is None:
            return False
        try:
            session = await self._sessions.complete_sign_in(auth_code)
        except RemoteError as e:
            logger.warning("OAuth callback failed: %s", e.message)
            return False
        await self._apply_session(session)
        return True

    async def logout(self) -> None:
        if self._sessions is not None:
            await self._sessions.sign_out()
        await self._apply_session(None)

    async def submit(self, url: str, title: str) -> bool:
        self._set(error=None, url=url, title=title)

        user_id = self.state.user_id
        repository = self._repository
        if user_id is None or repository is None:
            return False

        try:
            clean_url, clean_title = clean_bookmark_fields(url, title)
        except BookmarkValidationError as e:
            self._set(error=e.message)
            return False

        self._set(loading=True)
        try:
            await repository.insert(user_id, clean_url, clean_title)
        except BookmarkAppError as e:
            self._set(loading=False, error=e.message)
            return False

        self._set(loading=False, url="", title="")
        return True

    async def delete(self, bookmark_id: str) -> bool:
        self._set(error=None)
        if self._repository is None or self.state.user_id is None:
            return False

        try:
            await self._repository.delete(bookmark_id)
        except RemoteError as e:
            self._set(error=e.message)
            return False
        return True
