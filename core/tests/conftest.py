from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from fakes import FakeBackend, FakeClientFactory
from smart_bookmarks_core.app import create_app


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def app_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("SMART_BOOKMARKS_HOME", str(tmp_path))
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    monkeypatch.delenv("SMART_BOOKMARKS_SITE_URL", raising=False)
    return tmp_path


@pytest.fixture
def configured_env(app_home: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.test")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    return app_home


@pytest.fixture
def factory(backend: FakeBackend) -> FakeClientFactory:
    return FakeClientFactory(backend)


@pytest.fixture
def client(configured_env: Path, factory: FakeClientFactory) -> Iterator[TestClient]:
    with TestClient(create_app(client_factory=factory)) as c:
        yield c
