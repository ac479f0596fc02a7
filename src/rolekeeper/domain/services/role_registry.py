"""Role registry.

Owns the authoritative set of roles, keyed by id with a unique name. Each
role's ``user_count`` is derived state: only the user directory moves it,
through ``increment_user_count`` and ``decrement_user_count``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from rolekeeper.core.logging import get_logger
from rolekeeper.domain.entities import PermissionCatalog, Role
from rolekeeper.domain.exceptions import (
    ConflictError,
    InternalConsistencyError,
    InvalidPermissionError,
    NotFoundError,
    RoleInUseError,
    SystemRoleProtectedError,
)
from rolekeeper.domain.services.field_validator import require_non_empty
from rolekeeper.domain.services.id_generator import IdGenerator

logger = get_logger(__name__)


class RoleRegistry:
    """In-memory registry of roles.

    Every read returns a copy, so callers cannot change ``user_count`` or any
    other field behind the registry's back.
    """

    def __init__(self, catalog: PermissionCatalog, ids: IdGenerator | None = None) -> None:
        """Initialize the registry.

        Args:
            catalog: Capability tags that roles may be granted.
            ids: Identifier source for new roles.
        """
        self.catalog = catalog
        self.ids = ids or IdGenerator()
        self._roles: dict[int, Role] = {}
        self._ids_by_name: dict[str, int] = {}

    def _validate_permissions(self, permissions: Iterable[str]) -> frozenset[str]:
        permissions = frozenset(permissions)
        unknown = self.catalog.unknown(permissions)
        if unknown:
            raise InvalidPermissionError(unknown)
        return permissions

    def _get(self, role_id: int) -> Role:
        role = self._roles.get(role_id)
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    def create_role(
        self,
        name: str,
        description: str,
        permissions: Iterable[str] = (),
        is_system: bool = False,
    ) -> Role:
        """Create a role with no users.

        Args:
            name: Unique role name.
            description: Explanation of the role's purpose.
            permissions: Capability tags from the catalog.
            is_system: Register a protected system role. Only used when the
                directory is bootstrapped.

        Returns:
            Copy of the created role.

        Raises:
            ValidationError: If name or description is empty.
            ConflictError: If a role with this name exists.
            InvalidPermissionError: If a tag is not in the catalog.
            SystemRoleProtectedError: If a system role is given no permissions.
        """
        name = require_non_empty("name", name)
        description = require_non_empty("description", description)
        if name in self._ids_by_name:
            raise ConflictError(f"Role '{name}' already exists")
        permissions = self._validate_permissions(permissions)
        if is_system and not permissions:
            raise SystemRoleProtectedError(f"System role '{name}' requires at least one permission")

        role = Role(
            id=self.ids.next(),
            name=name,
            description=description,
            permissions=permissions,
            user_count=0,
            is_system=is_system,
        )
        self._roles[role.id] = role
        self._ids_by_name[name] = role.id

        logger.info("Role created", role_id=role.id, role_name=name, is_system=is_system)
        return replace(role)

    def check_permissions_update(self, role_id: int, permissions: Iterable[str]) -> frozenset[str]:
        """Validate a permission replacement without applying it.

        Raises:
            NotFoundError: If the role does not exist.
            InvalidPermissionError: If a tag is not in the catalog.
            SystemRoleProtectedError: If a system role would be left empty.
        """
        role = self._get(role_id)
        permissions = self._validate_permissions(permissions)
        if role.is_system and not permissions:
            raise SystemRoleProtectedError(
                f"System role '{role.name}' must keep at least one permission"
            )
        return permissions

    def update_role_permissions(self, role_id: int, permissions: Iterable[str]) -> Role:
        """Replace a role's permission set.

        Returns:
            Copy of the updated role.

        Raises:
            NotFoundError: If the role does not exist.
            InvalidPermissionError: If a tag is not in the catalog.
            SystemRoleProtectedError: If a system role would be left empty.
        """
        permissions = self.check_permissions_update(role_id, permissions)
        role = self._roles[role_id]
        role.permissions = permissions
        logger.info(
            "Role permissions updated",
            role_id=role_id,
            permissions=self.catalog.sort(permissions),
        )
        return replace(role)

    def update_role_description(self, role_id: int, description: str) -> Role:
        """Replace a role's description.

        Raises:
            NotFoundError: If the role does not exist.
            ValidationError: If the description is empty.
        """
        role = self._get(role_id)
        role.description = require_non_empty("description", description)
        logger.info("Role description updated", role_id=role_id)
        return replace(role)

    def check_delete(self, role_id: int) -> Role:
        """Validate a deletion without applying it.

        Returns:
            Copy of the role that would be deleted.

        Raises:
            NotFoundError: If the role does not exist.
            SystemRoleProtectedError: If the role is a system role.
            RoleInUseError: If users still reference the role.
        """
        role = self._get(role_id)
        if role.is_system:
            raise SystemRoleProtectedError(f"Cannot delete system role '{role.name}'")
        if role.in_use:
            raise RoleInUseError(role.name, role.user_count)
        return replace(role)

    def delete_role(self, role_id: int) -> None:
        """Delete a role. Users are never reassigned here.

        Raises:
            NotFoundError: If the role does not exist.
            SystemRoleProtectedError: If the role is a system role.
            RoleInUseError: If users still reference the role.
        """
        role = self.check_delete(role_id)
        del self._roles[role_id]
        del self._ids_by_name[role.name]
        logger.info("Role deleted", role_id=role_id, role_name=role.name)

    def increment_user_count(self, role_id: int) -> None:
        """Record one more user referencing the role. Directory use only."""
        role = self._roles.get(role_id)
        if role is None:
            logger.critical("User counted against missing role", role_id=role_id)
            raise InternalConsistencyError(f"Cannot count user against missing role {role_id}")
        role.user_count += 1

    def decrement_user_count(self, role_id: int) -> None:
        """Record one less user referencing the role. Directory use only.

        Raises:
            InternalConsistencyError: If the count would drop below zero.
        """
        role = self._roles.get(role_id)
        if role is None:
            logger.critical("User uncounted from missing role", role_id=role_id)
            raise InternalConsistencyError(f"Cannot uncount user from missing role {role_id}")
        if role.user_count <= 0:
            logger.critical(
                "Role user count would become negative",
                role_id=role_id,
                role_name=role.name,
            )
            raise InternalConsistencyError(
                f"User count of role '{role.name}' would become negative"
            )
        role.user_count -= 1

    def find_by_name(self, name: str) -> Role | None:
        """Get a copy of the role named ``name``, or None."""
        role_id = self._ids_by_name.get(name)
        if role_id is None:
            return None
        return replace(self._roles[role_id])

    def get_by_name(self, name: str) -> Role:
        """Get a copy of the role named ``name``.

        Raises:
            NotFoundError: If no role has this name.
        """
        role = self.find_by_name(name)
        if role is None:
            raise NotFoundError("Role", name)
        return role

    def get(self, role_id: int) -> Role:
        """Get a copy of a role by id.

        Raises:
            NotFoundError: If the role does not exist.
        """
        return replace(self._get(role_id))

    def __len__(self) -> int:
        return len(self._roles)

    def __contains__(self, name: object) -> bool:
        return name in self._ids_by_name

    def list(self) -> list[Role]:
        """Return copies of all roles ordered by id (creation order)."""
        return [replace(self._roles[role_id]) for role_id in sorted(self._roles)]
