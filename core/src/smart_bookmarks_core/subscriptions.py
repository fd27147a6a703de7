from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

Dispose = Callable[[], Awaitable[None] | None]


class Subscription:
    """Disposable handle returned by listener/channel registrations.

    The owner must call `unsubscribe()` on teardown. Repeated calls are no-ops.
    """

    def __init__(self, dispose: Dispose, *, name: str = "subscription") -> None:
        self._dispose: Dispose | None = dispose
        self.name = name

    @property
    def closed(self) -> bool:
        return self._dispose is None

    async def unsubscribe(self) -> None:
        dispose, self._dispose = self._dispose, None
        if dispose is None:
            return
        result = dispose()
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Subscription {self.name} {state}>"
