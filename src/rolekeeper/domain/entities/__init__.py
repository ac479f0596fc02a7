"""Domain entities for RoleKeeper.

Entities are pure Python dataclasses that represent core business concepts.
They have no dependencies on infrastructure or external frameworks.
"""

from rolekeeper.domain.entities.permission import ALL_PERMISSIONS, PermissionCatalog
from rolekeeper.domain.entities.role import Role
from rolekeeper.domain.entities.user import NEVER, User, UserStatus

__all__ = [
    "ALL_PERMISSIONS",
    "NEVER",
    "PermissionCatalog",
    "Role",
    "User",
    "UserStatus",
]
