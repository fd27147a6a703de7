from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

LINK_SCHEMES = frozenset({"http", "https"})


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"

    @property
    def opposite(self) -> Theme:
        return Theme.LIGHT if self is Theme.DARK else Theme.DARK


@dataclass(frozen=True)
class Bookmark:
    id: str
    url: str
    title: str
    created_at: str
    user_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Bookmark:
        return cls(
            id=str(row["id"]),
            url=row.get("url") or "",
            title=row.get("title") or "",
            created_at=str(row.get("created_at") or ""),
            user_id=row.get("user_id"),
        )

    @property
    def href(self) -> str | None:
        """The URL when it is safe to render as a link (http or https only)."""

        scheme = self.url.split(":", 1)[0].lower() if ":" in self.url else ""
        return self.url if scheme in LINK_SCHEMES else None


@dataclass(frozen=True)
class Session:
    """The signed-in principal, identified by the auth service's user id."""

    user_id: str
    email: str | None = None

    @classmethod
    def from_auth(cls, session: Any) -> Session | None:
        # Accepts the auth library's Session (session.user.id) or None.
        user = getattr(session, "user", None)
        user_id = getattr(user, "id", None)
        if not user_id:
            return None
        return cls(user_id=str(user_id), email=getattr(user, "email", None))
