"""
Pytest configuration and shared fixtures.

Every `client` enters the app lifespan, so each test starts with empty
in-memory stores.
"""

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports so test env vars are used
from roomchat.config import get_settings
get_settings.cache_clear()

from roomchat.main import app  # noqa: E402
from roomchat.messages import MessageLog  # noqa: E402
from roomchat.rooms import RoomRegistry  # noqa: E402


@pytest.fixture(scope="function")
def client():
    """Test client with fresh stores for each test."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def log() -> MessageLog:
    return MessageLog()


@pytest.fixture
def registry(log) -> RoomRegistry:
    """Registry wired to drop history from `log` on room deletion."""
    return RoomRegistry(on_room_deleted=log.delete_room_history)
