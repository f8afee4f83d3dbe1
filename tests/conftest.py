import pytest
from fastapi.testclient import TestClient
from helpers import FakeAI

from vuln_insight.app import app
from vuln_insight.config import Settings, get_settings
from vuln_insight.deps import get_ai_client, get_cache, get_store
from vuln_insight.storage.backends import FileResultStore, SqlResultStore
from vuln_insight.storage.cache import TTLCache


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openai_api_key="test-key",
        storage_dir=str(tmp_path / "store"),
        database_url=None,
        ai_timeout_seconds=5,
    )


@pytest.fixture
def store(settings):
    return FileResultStore(settings.storage_dir)


@pytest.fixture
def cache():
    return TTLCache(default_ttl=3600)


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def client(settings, store, cache, fake_ai):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_ai_client] = lambda: fake_ai
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sql_store(tmp_path):
    return SqlResultStore(f"sqlite:///{tmp_path / 'app.db'}")


@pytest.fixture
def sql_client(settings, sql_store, cache, fake_ai):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: sql_store
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_ai_client] = lambda: fake_ai
    yield TestClient(app)
    app.dependency_overrides.clear()
