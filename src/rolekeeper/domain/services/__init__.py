"""Domain services for RoleKeeper.

Services hold the directory logic that doesn't fit within a single entity.
"""

from rolekeeper.domain.services.credential_store import (
    CredentialRecord,
    CredentialStore,
    InMemoryCredentialStore,
)
from rolekeeper.domain.services.field_validator import (
    require_non_empty,
    validate_choice,
    validate_email,
)
from rolekeeper.domain.services.id_generator import IdGenerator
from rolekeeper.domain.services.role_registry import RoleRegistry
from rolekeeper.domain.services.user_directory import (
    CredentialResetConfirmation,
    UserDirectory,
    days_until_expiry,
)

__all__ = [
    "CredentialRecord",
    "CredentialResetConfirmation",
    "CredentialStore",
    "IdGenerator",
    "InMemoryCredentialStore",
    "RoleRegistry",
    "UserDirectory",
    "days_until_expiry",
    "require_non_empty",
    "validate_choice",
    "validate_email",
]
