"""Fixtures for unit tests of the registry and directory."""

import pytest

from rolekeeper.core.clock import FixedClock
from rolekeeper.core.config import DEFAULT_DEPARTMENTS, DEFAULT_PERMISSION_CATALOG
from rolekeeper.domain.entities import PermissionCatalog
from rolekeeper.domain.services import (
    InMemoryCredentialStore,
    RoleRegistry,
    UserDirectory,
)


@pytest.fixture
def catalog() -> PermissionCatalog:
    return PermissionCatalog(DEFAULT_PERMISSION_CATALOG)


@pytest.fixture
def registry(catalog: PermissionCatalog) -> RoleRegistry:
    """Registry with the Super Admin system role and an Accountant role."""
    registry = RoleRegistry(catalog)
    registry.create_role("Super Admin", "Full system access", ["All"], is_system=True)
    registry.create_role("Accountant", "Accounting and financial operations", ["Accounting", "Reports"])
    return registry


@pytest.fixture
def directory(
    registry: RoleRegistry,
    credential_store: InMemoryCredentialStore,
    clock: FixedClock,
) -> UserDirectory:
    return UserDirectory(
        roles=registry,
        credentials=credential_store,
        departments=DEFAULT_DEPARTMENTS,
        clock=clock,
    )
