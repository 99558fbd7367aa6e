"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_FORMAT", "text")

from taskboard.models.identity import Role
from taskboard.services.event_bus import EventBus
from taskboard.services.manual_order import ManualOrderStore
from taskboard.services.notifications import Notifier
from taskboard.services.sync_controller import SyncController
from tests.utils.factories import create_identity
from tests.utils.fake_store import InMemoryRemoteStore
from tests.utils.helpers import TEST_DEBOUNCE_SECONDS


@pytest.fixture
def store():
    """In-memory remote store."""
    return InMemoryRemoteStore()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def order():
    return ManualOrderStore()


@pytest.fixture
def manager():
    """Manager identity in the default sector."""
    return create_identity(role=Role.MANAGER)


@pytest.fixture
def collaborator():
    """Collaborator identity in the default subsector."""
    return create_identity(role=Role.COLLABORATOR)


@pytest.fixture
def controller(store, bus):
    """Sync controller wired to the in-memory store and bus."""
    return SyncController(store, bus, name="test-controller", debounce_seconds=TEST_DEBOUNCE_SECONDS)


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
