"""Pytest configuration for all tests."""

from datetime import datetime, timezone

import pytest
import structlog

from rolekeeper.application.services.admin_service import AdminService, build_admin_service
from rolekeeper.core.clock import FixedClock
from rolekeeper.core.config import Settings, get_settings
from rolekeeper.domain.services import InMemoryCredentialStore

START = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Keep logging configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Default settings in the testing environment."""
    return Settings(environment="testing", _env_file=None)


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at 2024-01-15 10:30 UTC."""
    return FixedClock(START)


@pytest.fixture
def credential_store(clock: FixedClock) -> InMemoryCredentialStore:
    return InMemoryCredentialStore(clock)


@pytest.fixture
def service(
    settings: Settings, clock: FixedClock, credential_store: InMemoryCredentialStore
) -> AdminService:
    """Empty directory holding only the Super Admin system role."""
    return build_admin_service(settings, clock=clock, credentials=credential_store)
