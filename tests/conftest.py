"""
Global pytest configuration and fixtures for SOS Beacon testing.
"""
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from src.models.alert import User
from src.services.sos.lifecycle_controller import SOSLifecycleController
from src.services.sos.location_tracker import LocationTracker
from src.services.sos.session import StaticSessionProvider
from tests.mocks.sos_mocks import MockAlertService, MockPositionSource


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config():
    """Provide test configuration."""
    return {
        "api": {
            "base_url": "http://localhost:8000",
            "timeout": 5,
            "max_retries": 0
        },
        "location": {
            "fetch_timeout": 0.2,
            "high_accuracy": True,
            "max_cache_age_ms": 0
        },
        "sos": {
            "cancel_reason": "user safe"
        },
        "logging": {
            "level": "DEBUG",
            "file": None,
            "console": False
        }
    }


@pytest.fixture
def test_user():
    return User(id="u1", name="Test User", email="test@example.com")


@pytest.fixture
def position_source():
    return MockPositionSource()


@pytest.fixture
def alert_service():
    return MockAlertService()


@pytest.fixture
def session(test_user):
    return StaticSessionProvider(test_user)


@pytest_asyncio.fixture
async def tracker(position_source, test_config):
    tracker = LocationTracker(position_source, test_config["location"])
    yield tracker
    tracker.close()


@pytest_asyncio.fixture
async def controller(tracker, alert_service, session, test_config):
    controller = SOSLifecycleController(tracker, alert_service, session, test_config["sos"])
    yield controller
    controller.close()
