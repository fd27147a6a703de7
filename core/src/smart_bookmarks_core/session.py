from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
from supabase import AsyncClient
from supabase_auth.errors import AuthError

from smart_bookmarks_core.errors import RemoteError, remote_message
from smart_bookmarks_core.models import Session
from smart_bookmarks_core.subscriptions import Subscription

logger = logging.getLogger(__name__)

SIGN_IN_FAILED_MESSAGE = "Sign-in failed. Please try again."

SessionCallback = Callable[[Session | None], None]

_REMOTE_ERRORS = (AuthError, httpx.HTTPError)


class RemoteSessionClient:
    """Sign-in, sign-out and session resolution against the hosted auth service."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def get_current_session(self) -> Session | None:
        try:
            raw = await self._client.auth.get_session()
        except _REMOTE_ERRORS as e:
            # Treated as "no session"; never surfaced to the user.
            logger.warning("Session lookup failed: %s", remote_message(e))
            return None
        return Session.from_auth(raw)

    async def sign_in_with_redirect(
        self,
        provider: str,
        redirect_to: str,
        options: dict[str, Any] | None = None,
    ) -> str:
        """Start the OAuth flow and return the provider URL to redirect the browser to."""

        merged: dict[str, Any] = {"redirect_to": redirect_to}
        if options:
            merged.update(options)

        try:
            response = await self._client.auth.sign_in_with_oauth(
                {"provider": provider, "options": merged}
            )
        except _REMOTE_ERRORS as e:
            raise RemoteError(remote_message(e)) from e

        url = getattr(response, "url", None)
        if not url:
            raise RemoteError(SIGN_IN_FAILED_MESSAGE)
        logger.info(f"OAuth sign-in started with provider {provider}")
        return str(url)

    async def complete_sign_in(self, auth_code: str | None) -> Session:
        """Resolve the session on the OAuth callback route.

        With a PKCE code the code is exchanged for a session; otherwise the
        current session is re-read.
        """

        try:
            if auth_code:
                response = await self._client.auth.exchange_code_for_session(
                    {"auth_code": auth_code}
                )
                raw = getattr(response, "session", None)
            else:
                raw = await self._client.auth.get_session()
        except _REMOTE_ERRORS as e:
            raise RemoteError(remote_message(e)) from e

        session = Session.from_auth(raw)
        if session is None:
            raise RemoteError(SIGN_IN_FAILED_MESSAGE)
        return session

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except _REMOTE_ERRORS as e:
            logger.warning("Sign-out failed (ignored): %s", remote_message(e))

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        def _listener(_event: Any, raw_session: Any) -> None:
            callback(Session.from_auth(raw_session))

        handle = self._client.auth.on_auth_state_change(_listener)
        return Subscription(handle.unsubscribe, name="auth-state")
