from __future__ import annotations

import asyncio

import pytest

from fakes import FakeBackend, FakeSupabase, make_auth_session
from smart_bookmarks_core.controller import (
    EVENT_CHANGED,
    EVENT_CLOSED,
    ViewController,
    ViewPhase,
)
from smart_bookmarks_core.errors import MISSING_CONFIG_MESSAGE, MISSING_FIELDS_MESSAGE
from smart_bookmarks_core.repository import BookmarkRepository
from smart_bookmarks_core.session import RemoteSessionClient


def _make(backend: FakeBackend, user_id: str | None = None) -> tuple[ViewController, FakeSupabase]:
    fake = FakeSupabase(backend)
    if user_id is not None:
        fake.auth.session = make_auth_session(user_id)
    controller = ViewController(RemoteSessionClient(fake), BookmarkRepository(fake))
    return controller, fake


def _titles(controller: ViewController) -> list[str]:
    return [b.title for b in controller.state.bookmarks]


def test_mount_without_session_goes_straight_to_signed_out(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, fake = _make(backend)
        await controller.mount()

        assert controller.state.phase is ViewPhase.SIGNED_OUT
        assert controller.state.configured is True
        assert controller.state.error is None
        assert backend.count("select") == 0
        assert len(fake.auth.listeners) == 1

    asyncio.run(scenario())


def test_mount_with_session_loads_exactly_once(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")
    backend.add_row("u1", "https://b.test", "B")

    async def scenario() -> None:
        controller, fake = _make(backend, "u1")
        await controller.mount()
        await controller.settle()

        assert controller.state.phase is ViewPhase.SIGNED_IN
        assert controller.state.user_id == "u1"
        assert _titles(controller) == ["B", "A"]
        assert backend.count("select") == 1
        assert len(backend.live_channels()) == 1

        # The auth service re-announcing the same user must not reload.
        fake.auth.emit("TOKEN_REFRESHED", make_auth_session("u1"))
        await controller.settle()
        assert backend.count("select") == 1

    asyncio.run(scenario())


def test_mount_with_unavailable_auth_is_signed_out(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, fake = _make(backend, "u1")
        fake.auth.get_session_error = "network down"
        await controller.mount()

        assert controller.state.phase is ViewPhase.SIGNED_OUT
        assert controller.state.error is None

    asyncio.run(scenario())


def test_unconfigured_controller_never_calls_remote() -> None:
    async def scenario() -> None:
        controller = ViewController(None, None)
        await controller.mount()
        assert controller.state.phase is ViewPhase.SIGNED_OUT
        assert controller.state.configured is False

        assert await controller.login("http://localhost:3000") is None
        assert controller.state.error == MISSING_CONFIG_MESSAGE
        assert controller.state.phase is ViewPhase.SIGNED_OUT

        assert await controller.complete_sign_in("code") is False
        assert await controller.submit("https://a.test", "A") is False

    asyncio.run(scenario())


def test_login_requests_redirect_to_callback_route(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, fake = _make(backend)
        await controller.mount()

        target = await controller.login("http://localhost:3000/")

        assert target is not None and target.startswith("https://auth.example.test/")
        request = fake.auth.sign_in_requests[0]
        assert request["provider"] == "google"
        assert request["options"]["redirect_to"] == "http://localhost:3000/auth/callback"
        assert controller.state.phase is ViewPhase.SIGNED_OUT
        assert controller.state.error is None

    asyncio.run(scenario())


def test_login_failure_surfaces_message_and_stays_signed_out(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, fake = _make(backend)
        await controller.mount()
        fake.auth.sign_in_error = "Sign-in failed: network down"

        assert await controller.login("http://localhost:3000") is None
        assert controller.state.error == "Sign-in failed: network down"
        assert controller.state.phase is ViewPhase.SIGNED_OUT

    asyncio.run(scenario())


def test_complete_sign_in_enters_signed_in(backend: FakeBackend) -> None:
    backend.add_row("u7", "https://a.test", "A")
    backend.oauth_codes["good"] = "u7"

    async def scenario() -> None:
        controller, _fake = _make(backend)
        await controller.mount()

        assert await controller.complete_sign_in("bad") is False
        assert controller.state.phase is ViewPhase.SIGNED_OUT

        assert await controller.complete_sign_in("good") is True
        await controller.settle()
        assert controller.state.phase is ViewPhase.SIGNED_IN
        assert _titles(controller) == ["A"]
        assert backend.count("select") == 1

    asyncio.run(scenario())


@pytest.mark.parametrize(("url", "title"), [("", "T"), ("https://a.test", "  "), (" ", "")])
def test_submit_validation_error_keeps_fields(backend: FakeBackend, url: str, title: str) -> None:
    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()

        assert await controller.submit(url, title) is False
        assert controller.state.error == MISSING_FIELDS_MESSAGE
        assert (controller.state.url, controller.state.title) == (url, title)
        assert controller.state.loading is False
        assert backend.count("insert") == 0

    asyncio.run(scenario())


def test_submit_success_clears_fields_without_optimistic_row(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()
        loading_seen: list[bool] = []
        controller.add_listener(lambda _e: loading_seen.append(controller.state.loading))

        assert await controller.submit(" https://a.test ", " A ") is True
        assert (controller.state.url, controller.state.title) == ("", "")
        assert controller.state.error is None
        assert controller.state.bookmarks == []
        assert True in loading_seen
        assert controller.state.loading is False

        backend.notify("u1", "INSERT")
        await controller.settle()
        assert _titles(controller) == ["A"]
        assert controller.state.bookmarks[0].url == "https://a.test"

    asyncio.run(scenario())


def test_submit_remote_failure_keeps_fields(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()
        backend.failures["insert"] = "new row violates row-level security policy"

        assert await controller.submit("https://a.test", "A") is False
        assert controller.state.error == "new row violates row-level security policy"
        assert (controller.state.url, controller.state.title) == ("https://a.test", "A")
        assert controller.state.loading is False

        # The next successful action replaces the banner.
        del backend.failures["insert"]
        assert await controller.submit("https://a.test", "A") is True
        assert controller.state.error is None

    asyncio.run(scenario())


def test_submit_while_signed_out_does_nothing(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, _fake = _make(backend)
        await controller.mount()
        assert await controller.submit("https://a.test", "A") is False
        assert backend.count("insert") == 0

    asyncio.run(scenario())


def test_delete_waits_for_notification(backend: FakeBackend) -> None:
    row = backend.add_row("u1", "https://a.test", "A")

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()
        assert _titles(controller) == ["A"]

        assert await controller.delete(row["id"]) is True
        assert _titles(controller) == ["A"]

        backend.notify("u1", "DELETE")
        await controller.settle()
        assert controller.state.bookmarks == []

    asyncio.run(scenario())


def test_delete_failure_sets_error(backend: FakeBackend) -> None:
    row = backend.add_row("u1", "https://a.test", "A")

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()
        backend.failures["delete"] = "connection reset"

        assert await controller.delete(row["id"]) is False
        assert controller.state.error == "connection reset"
        assert _titles(controller) == ["A"]

    asyncio.run(scenario())


def test_list_failure_keeps_previous_list(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()
        backend.failures["select"] = "upstream timeout"

        backend.notify("u1")
        await controller.settle()
        assert controller.state.error == "upstream timeout"
        assert _titles(controller) == ["A"]

        del backend.failures["select"]
        backend.notify("u1")
        await controller.settle()
        assert controller.state.error is None

    asyncio.run(scenario())


def test_list_converges_to_remote_rows_after_mixed_operations(backend: FakeBackend) -> None:
    backend.auto_notify = True
    backend.add_row("u2", "https://someone-else.test", "Not mine")

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()

        for i in range(4):
            await controller.submit(f"https://site{i}.test", f"Site {i}")
        first, second = backend.rows_for("u1")[2:]
        await controller.delete(first["id"])
        # A concurrent tab deletes the same row again and inserts one of its own.
        await controller.delete(first["id"])
        backend.add_row("u1", "https://other-tab.test", "Other tab")
        backend.notify("u1")
        await controller.delete(second["id"])
        await controller.settle()

        expected = [r["id"] for r in backend.rows_for("u1")]
        assert [b.id for b in controller.state.bookmarks] == expected
        assert "Not mine" not in _titles(controller)
        assert backend.count("select") > 1

    asyncio.run(scenario())


def test_session_absent_forces_signed_out_and_unsubscribes(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")

    async def scenario() -> None:
        controller, fake = _make(backend, "u1")
        await controller.mount()
        assert len(backend.live_channels()) == 1

        fake.auth.emit("SIGNED_OUT", None)
        await controller.settle()

        assert controller.state.phase is ViewPhase.SIGNED_OUT
        assert controller.state.bookmarks == []
        assert backend.live_channels() == []

    asyncio.run(scenario())


def test_switching_users_resubscribes(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")
    backend.add_row("u2", "https://b.test", "B")

    async def scenario() -> None:
        controller, fake = _make(backend, "u1")
        await controller.mount()

        fake.auth.sign_in_as("u2")
        await controller.settle()

        assert controller.state.user_id == "u2"
        assert _titles(controller) == ["B"]
        assert [c.filter for c in backend.live_channels()] == ["user_id=eq.u2"]

    asyncio.run(scenario())


def test_logout_signs_out_even_when_remote_fails(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, fake = _make(backend, "u1")
        await controller.mount()
        fake.auth.sign_out_error = "network down"

        await controller.logout()

        assert fake.auth.sign_out_calls == 1
        assert controller.state.phase is ViewPhase.SIGNED_OUT
        assert controller.state.user_id is None
        assert controller.state.error is None
        assert backend.live_channels() == []

    asyncio.run(scenario())


def test_teardown_is_exhaustive(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")

    async def scenario() -> None:
        controller, fake = _make(backend, "u1")
        events: list[str] = []
        controller.add_listener(events.append)
        await controller.mount()
        before = controller.snapshot()
        selects = backend.count("select")

        await controller.teardown()
        assert events[-1] == EVENT_CLOSED
        assert fake.auth.listeners == []
        assert backend.live_channels() == []

        events.clear()
        backend.add_row("u1", "https://b.test", "B")
        backend.notify("u1")
        fake.auth.emit("SIGNED_OUT", None)
        await controller.mount()
        await controller.settle()

        assert controller.snapshot() == before
        assert backend.count("select") == selects
        assert events == []
        assert controller.listener_count == 0

    asyncio.run(scenario())


def test_in_flight_load_is_discarded_after_teardown(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()

        backend.list_gate = asyncio.Event()
        backend.add_row("u1", "https://b.test", "B")
        backend.notify("u1")
        await asyncio.sleep(0)

        await controller.teardown()
        backend.list_gate.set()
        await controller.settle()

        assert _titles(controller) == ["A"]

    asyncio.run(scenario())


def test_listeners_are_notified_of_changes(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, _fake = _make(backend)
        events: list[str] = []
        remove = controller.add_listener(events.append)

        await controller.mount()
        assert events and set(events) == {EVENT_CHANGED}

        remove()
        events.clear()
        await controller.login("http://localhost:3000")
        assert events == []

    asyncio.run(scenario())


def test_realtime_unavailable_surfaces_error_but_keeps_list(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")
    backend.fail_subscribe = "realtime unavailable"

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()

        assert controller.state.phase is ViewPhase.SIGNED_IN
        assert _titles(controller) == ["A"]
        assert controller.state.error == "realtime unavailable"

    asyncio.run(scenario())


def test_change_during_initial_list_is_not_lost(backend: FakeBackend) -> None:
    backend.add_row("u1", "https://a.test", "A")
    backend.list_gate = asyncio.Event()

    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        mounting = asyncio.create_task(controller.mount())
        while backend.count("select") == 0:
            await asyncio.sleep(0)

        # Another tab commits while the initial list is still in flight.
        backend.add_row("u1", "https://b.test", "B")
        assert backend.notify("u1") == 1

        backend.list_gate.set()
        await mounting
        await controller.settle()

        assert _titles(controller) == ["B", "A"]
        assert [b.id for b in controller.state.bookmarks] == [
            r["id"] for r in backend.rows_for("u1")
        ]

    asyncio.run(scenario())


def test_submit_validation_never_enters_loading(backend: FakeBackend) -> None:
    async def scenario() -> None:
        controller, _fake = _make(backend, "u1")
        await controller.mount()
        events: list[bool] = []
        controller.add_listener(lambda _e: events.append(controller.state.loading))

        assert await controller.submit("https://a.test", "   ") is False

        assert True not in events
        assert len(events) == 2
        assert controller.state.error == MISSING_FIELDS_MESSAGE

    asyncio.run(scenario())


def test_signed_in_without_repository_stays_empty(backend: FakeBackend) -> None:
    async def scenario() -> None:
        fake = FakeSupabase(backend)
        fake.auth.session = make_auth_session("u1")
        controller = ViewController(RemoteSessionClient(fake), None)
        await controller.mount()

        assert controller.state.phase is ViewPhase.SIGNED_IN
        assert controller.state.bookmarks == []
        assert await controller.submit("https://a.test", "A") is False
        assert backend.count("select") == 0
        assert backend.channels == []

    asyncio.run(scenario())
