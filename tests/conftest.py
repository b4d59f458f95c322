"""Pytest configuration and fixtures."""

import os
import secrets

import pytest

# Generate a unique secret for this test run; must be set before the app is imported
TEST_API_KEY = f"test-only-{secrets.token_urlsafe(32)}"
os.environ["API_KEY"] = TEST_API_KEY

from blobsync.config import Settings  # noqa: E402
from blobsync.database import DatabaseRouter, JsonDatabase  # noqa: E402
from blobsync.main import create_app  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

STATEMENT_COLLECTIONS = ["statements", "standingorders", "standingorders_statements"]


@pytest.fixture
def data_dir(tmp_path):
    """Directory holding the JSON database files for one test."""
    return tmp_path / "db"


@pytest.fixture
def settings(data_dir):
    """Settings pointing at a per-test data directory."""
    return Settings(api_key=TEST_API_KEY, data_dir=data_dir)


@pytest.fixture
def client(settings):
    """Create a test client with startup (database loading) run."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Auth headers carrying the configured shared secret."""
    return {"Authorization": f"Bearer {TEST_API_KEY}"}


@pytest.fixture
def database(tmp_path):
    """An empty, unloaded statements database backed by a temp file."""
    return JsonDatabase("statements", tmp_path / "statements.json", STATEMENT_COLLECTIONS)


@pytest.fixture
def router(settings):
    """Database router built from settings (call ``await router.open()``)."""
    return DatabaseRouter.from_settings(settings)
