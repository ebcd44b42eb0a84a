import pytest
from fastapi.testclient import TestClient

from mediconnect.core.config import Settings
from mediconnect.main import create_app
from mediconnect.services.context import build_context
from mediconnect.services.store import ClinicStore

from .helpers import sqlite_adapter

@pytest.fixture
def settings():
    """Memory-only settings with seeding left to each test."""
    return Settings(
        TESTING=True,
        USE_DATABASE=False,
        SEED_DEFAULTS=False,
        STRICT_TRANSITIONS=False,
        SERIALIZE_BOOKINGS=False,
    )

@pytest.fixture
def strict_settings(settings):
    return settings.model_copy(update={"STRICT_TRANSITIONS": True})

@pytest.fixture
def db_settings(tmp_path):
    return Settings(
        TESTING=True,
        USE_DATABASE=True,
        TEST_DATABASE_URL=f"sqlite:///{tmp_path / 'clinic.db'}",
        SEED_DEFAULTS=True,
    )

@pytest.fixture
def store(settings):
    return ClinicStore(settings=settings)

@pytest.fixture
def seeded_store(store):
    store.seed_defaults()
    return store

@pytest.fixture
def context(settings):
    ctx = build_context(settings)
    ctx.store.seed_defaults()
    return ctx

@pytest.fixture
def adapter(tmp_path):
    adapter = sqlite_adapter(tmp_path / "mirror.db")
    assert adapter.create_schema()
    return adapter

@pytest.fixture
def client(settings):
    app = create_app(settings.model_copy(update={"SEED_DEFAULTS": True}))
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

