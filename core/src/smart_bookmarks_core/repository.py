from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from smart_bookmarks_core.errors import BookmarkValidationError, RemoteError, remote_message
from smart_bookmarks_core.models import Bookmark
from smart_bookmarks_core.subscriptions import Subscription

logger = logging.getLogger(__name__)

CHANNEL_TOPIC = "bookmarks-realtime"
LIST_COLUMNS = "id, url, title, created_at"

ChangeCallback = Callable[[], None]

_REMOTE_ERRORS = (APIError, httpx.HTTPError)


def clean_bookmark_fields(url: str | None, title: str | None) -> tuple[str, str]:
    """Trim both fields; raise BookmarkValidationError if either ends up empty."""

    url = (url or "").strip()
    title = (title or "").strip()
    if not url or not title:
        raise BookmarkValidationError()
    return url, title


class BookmarkRepository:
    """List/insert/delete against the remote bookmark table, scoped by owner.

    Row visibility is enforced by the service; every query still filters on
    user_id so the request matches the row-level policy.
    """

    def __init__(
        self,
        client: AsyncClient,
        *,
        table: str = "bookmarks",
        schema: str = "public",
    ) -> None:
        self._client = client
        self._table = table
        self._schema = schema

    async def list(self, owner_id: str) -> list[Bookmark]:
        try:
            response = await (
                self._client.table(self._table)
                .select(LIST_COLUMNS)
                .eq("user_id", owner_id)
                .order("created_at", desc=True)
                .execute()
            )
        except _REMOTE_ERRORS as e:
            raise RemoteError(remote_message(e)) from e
        return [Bookmark.from_row(row) for row in (response.data or [])]

    async def insert(self, owner_id: str, url: str, title: str) -> None:
        url, title = clean_bookmark_fields(url, title)

        try:
            await (
                self._client.table(self._table)
                .insert({"user_id": owner_id, "url": url, "title": title})
                .execute()
            )
        except _REMOTE_ERRORS as e:
            raise RemoteError(remote_message(e)) from e

    async def delete(self, bookmark_id: str) -> None:
        try:
            await self._client.table(self._table).delete().eq("id", bookmark_id).execute()
        except _REMOTE_ERRORS as e:
            raise RemoteError(remote_message(e)) from e

    async def subscribe_to_changes(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        """Invoke `callback()` on any insert/update/delete of the owner's rows.

        The payload is ignored: consumers refetch the whole list.
        """

        def _on_change(_payload: Any) -> None:
            callback()

        channel = self._client.channel(CHANNEL_TOPIC)
        channel.on_postgres_changes(
            "*",
            schema=self._schema,
            table=self._table,
            filter=f"user_id=eq.{owner_id}",
            callback=_on_change,
        )
        try:
            await channel.subscribe()
        except Exception as e:
            # Realtime transport errors are not part of a stable public hierarchy.
            await self._client.remove_channel(channel)
            raise RemoteError(remote_message(e)) from e

        logger.info(f"Subscribed to bookmark changes for user {owner_id}")

        async def _dispose() -> None:
            await self._client.remove_channel(channel)
            logger.info(f"Unsubscribed from bookmark changes for user {owner_id}")

        return Subscription(_dispose, name=CHANNEL_TOPIC)
