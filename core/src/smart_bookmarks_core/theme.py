from __future__ import annotations

from collections.abc import Mapping, MutableMapping

from smart_bookmarks_core.models import Theme

THEME_STORAGE_KEY = "theme"
COLOR_SCHEME_HINT = "Sec-CH-Prefers-Color-Scheme"


def system_prefers_dark(headers: Mapping[str, str]) -> bool | None:
    """Read the browser's color-scheme client hint, if it sent one."""

    raw = headers.get(COLOR_SCHEME_HINT) or headers.get(COLOR_SCHEME_HINT.lower())
    if not raw:
        return None
    value = raw.strip().strip('"').lower()
    if value == "dark":
        return True
    if value == "light":
        return False
    return None


class ThemePreferenceStore:
    """Light/dark preference backed by client-side storage.

    `storage` is the durable store (the browser cookie jar for the web UI);
    pass None when storage is unavailable and the preference will last only
    as long as this store does.
    """

    def __init__(
        self,
        storage: MutableMapping[str, str] | None,
        *,
        system_prefers_dark: bool | None = None,
        key: str = THEME_STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._system_prefers_dark = system_prefers_dark
        self._key = key
        self._applied: Theme | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def applied(self) -> Theme:
        if self._applied is None:
            self._applied = self.read()
        return self._applied

    def read(self) -> Theme:
        if self._applied is not None and self._storage is None:
            return self._applied

        stored = self._storage.get(self._key) if self._storage is not None else None
        if stored in (Theme.LIGHT.value, Theme.DARK.value):
            return Theme(stored)
        if self._system_prefers_dark:
            return Theme.DARK
        return Theme.LIGHT

    def write(self, theme: Theme | str) -> Theme:
        value = Theme(theme)
        self._applied = value
        if self._storage is not None:
            self._storage[self._key] = value.value
        return value

    def toggle(self) -> Theme:
        return self.write(self.applied.opposite)

    def html_attributes(self) -> dict[str, str]:
        theme = self.applied
        return {"data-theme": theme.value, "class": "dark" if theme is Theme.DARK else ""}
