"""User directory.

Owns the authoritative set of user accounts, keyed by id with a unique
username. Every user references a role in the ``RoleRegistry`` by name, and
the directory keeps each role's ``user_count`` in step with those references.

All checks run before anything is changed: an operation either applies in
full or raises and leaves the directory untouched.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from pydantic import SecretStr

from rolekeeper.core.clock import Clock, SystemClock
from rolekeeper.core.logging import get_logger
from rolekeeper.domain.entities import Role, User, UserStatus
from rolekeeper.domain.exceptions import (
    CollaboratorError,
    ConflictError,
    InternalConsistencyError,
    InvalidPermissionError,
    NotFoundError,
    UnknownRoleError,
    ValidationError,
)
from rolekeeper.domain.services.credential_store import CredentialStore
from rolekeeper.domain.services.field_validator import (
    require_non_empty,
    validate_choice,
    validate_email,
)
from rolekeeper.domain.services.id_generator import IdGenerator
from rolekeeper.domain.services.role_registry import RoleRegistry

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

UPDATABLE_FIELDS = frozenset({"username", "full_name", "email", "role", "department"})


@dataclass(frozen=True)
class CredentialResetConfirmation:
    """Confirmation that a credential was handed to the credential store.

    Attributes:
        user_id: User whose credential was reset.
        username: Username at the time of the reset.
        reset_at: When the reset was confirmed.
    """

    user_id: int
    username: str
    reset_at: datetime


def as_instant(value: date | datetime) -> datetime:
    """Normalize a date or datetime to a timezone-aware UTC datetime.

    Dates are taken as midnight UTC; naive datetimes are assumed to be UTC.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_until_expiry(user: User, as_of: date | datetime) -> int:
    """Whole days from ``as_of`` until the user's password expires, rounded up.

    Negative for already expired passwords.
    """
    delta = as_instant(user.password_expiry) - as_instant(as_of)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


class UserDirectory:
    """In-memory directory of user accounts.

    Reads return copies. Credentials pass straight through to the
    ``CredentialStore`` and are never kept or logged.
    """

    def __init__(
        self,
        roles: RoleRegistry,
        credentials: CredentialStore,
        departments: Iterable[str],
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        password_expiry_days: int = 90,
    ) -> None:
        """Initialize the directory.

        Args:
            roles: Registry that user role names must resolve against.
            credentials: Collaborator receiving initial and reset credentials.
            departments: Allowed organizational units.
            clock: Time source for timestamps and password expiry.
            ids: Identifier source for new users.
            password_expiry_days: Lifetime of a credential set at creation.
        """
        self.roles = roles
        self.credentials = credentials
        self.departments = tuple(departments)
        if not self.departments:
            raise ValueError("At least one department is required")
        self.clock = clock or SystemClock()
        self.ids = ids or IdGenerator()
        self.password_expiry = timedelta(days=password_expiry_days)
        self._users: dict[int, User] = {}
        self._ids_by_username: dict[str, int] = {}

    # Lookups

    def _get(self, user_id: int) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def _resolve_role(self, role_name: str) -> Role:
        role = self.roles.find_by_name(role_name)
        if role is None:
            raise UnknownRoleError(role_name)
        return role

    def _check_username_free(self, username: str, user_id: int | None = None) -> None:
        owner = self._ids_by_username.get(username)
        if owner is not None and owner != user_id:
            raise ConflictError(f"Username '{username}' already exists")

    def _validate_permissions(self, permissions: Iterable[str]) -> frozenset[str]:
        permissions = frozenset(permissions)
        unknown = self.roles.catalog.unknown(permissions)
        if unknown:
            raise InvalidPermissionError(unknown)
        return permissions

    def get(self, user_id: int) -> User:
        """Get a copy of a user by id.

        Raises:
            NotFoundError: If the user does not exist.
        """
        return replace(self._get(user_id))

    def find_by_username(self, username: str) -> User | None:
        user_id = self._ids_by_username.get(username)
        if user_id is None:
            return None
        return replace(self._users[user_id])

    # Lifecycle

    async def create_user(
        self,
        username: str,
        full_name: str,
        email: str,
        role_name: str,
        department: str,
        initial_password: SecretStr | str,
        permissions: Iterable[str] = (),
        created_at: date | datetime | None = None,
    ) -> User:
        """Create an active user and hand the initial password to the store.

        Args:
            username: Unique login name.
            full_name: Display name.
            email: Contact address.
            role_name: Name of an existing role.
            department: One of the configured departments.
            initial_password: First credential. Passed on, never retained.
            permissions: Capability tags granted directly to the user.
            created_at: When the account was created, for accounts carried
                over from elsewhere. Password expiry counts from it.
                Defaults to now.

        Returns:
            Copy of the created user.

        Raises:
            ValidationError: If a field is blank or malformed.
            ConflictError: If the username is taken.
            UnknownRoleError: If the role does not exist.
            InvalidPermissionError: If a direct permission is not in the catalog.
            CollaboratorError: If the credential store fails.
        """
        username = require_non_empty("username", username)
        full_name = require_non_empty("full_name", full_name)
        email = validate_email(email)
        role_name = require_non_empty("role", role_name)
        department = validate_choice("department", department, self.departments)
        if not isinstance(initial_password, SecretStr):
            initial_password = SecretStr(initial_password)
        if not initial_password.get_secret_value():
            raise ValidationError("Password is required", field="password")
        now = self.clock.now()
        if created_at is not None:
            created_at = as_instant(created_at)
            if created_at > now:
                raise ValidationError("Creation time cannot be in the future", field="created_at")
        self._check_username_free(username)
        role = self._resolve_role(role_name)
        permissions = self._validate_permissions(permissions)

        user_id = self.ids.next()
        await self._call_credential_store(
            "set_initial_credential", user_id, initial_password
        )

        created = created_at or now
        user = User(
            id=user_id,
            username=username,
            full_name=full_name,
            email=email,
            role=role.name,
            department=department,
            password_expiry=created + self.password_expiry,
            status=UserStatus.ACTIVE,
            last_login=None,
            login_count=0,
            permissions=permissions,
            two_factor_enabled=False,
            created_at=created,
            updated_at=created,
        )
        self.roles.increment_user_count(role.id)
        self._users[user_id] = user
        self._ids_by_username[username] = user_id

        logger.info("User created", user_id=user_id, username=username, role=role.name)
        return replace(user)

    def check_update(self, user_id: int, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a partial update without applying it.

        Returns:
            Normalized field values.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If a field is unknown, blank or malformed.
            ConflictError: If the new username is taken.
            UnknownRoleError: If the new role does not exist.
        """
        self._get(user_id)
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        changes: dict[str, Any] = {}
        if "username" in fields:
            changes["username"] = require_non_empty("username", fields["username"])
        if "full_name" in fields:
            changes["full_name"] = require_non_empty("full_name", fields["full_name"])
        if "email" in fields:
            changes["email"] = validate_email(fields["email"])
        if "department" in fields:
            changes["department"] = validate_choice(
                "department", fields["department"], self.departments
            )
        if "role" in fields:
            changes["role"] = require_non_empty("role", fields["role"])

        if "username" in changes:
            self._check_username_free(changes["username"], user_id)
        if "role" in changes:
            self._resolve_role(changes["role"])
        return changes

    def update_user(self, user_id: int, fields: Mapping[str, Any]) -> User:
        """Apply a partial update to username, full_name, email, role or department.

        A role change moves one unit of ``user_count`` from the old role to
        the new one; both counts change or neither does.

        Returns:
            Copy of the updated user.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If a field is unknown, blank or malformed.
            ConflictError: If the new username is taken.
            UnknownRoleError: If the new role does not exist.
        """
        changes = self.check_update(user_id, fields)
        user = self._users[user_id]

        if "role" in changes and changes["role"] != user.role:
            self._move_role_reference(user.role, changes["role"])

        if "username" in changes and changes["username"] != user.username:
            del self._ids_by_username[user.username]
            self._ids_by_username[changes["username"]] = user_id

        for name, value in changes.items():
            setattr(user, name, value)
        user.updated_at = self.clock.now()

        logger.info("User updated", user_id=user_id, fields=sorted(changes))
        return replace(user)

    def _move_role_reference(self, old_role_name: str, new_role_name: str) -> None:
        old_role = self.roles.find_by_name(old_role_name)
        if old_role is None:
            logger.critical("User references missing role", role_name=old_role_name)
            raise InternalConsistencyError(
                f"User references missing role '{old_role_name}'"
            )
        new_role = self._resolve_role(new_role_name)

        self.roles.decrement_user_count(old_role.id)
        try:
            self.roles.increment_user_count(new_role.id)
        except InternalConsistencyError:
            self.roles.increment_user_count(old_role.id)
            raise

    def delete_user(self, user_id: int) -> User:
        """Delete a user and release its role reference.

        Returns:
            Copy of the deleted user.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self._get(user_id)
        role = self.roles.find_by_name(user.role)
        if role is None:
            logger.critical("User references missing role", user_id=user_id, role_name=user.role)
            raise InternalConsistencyError(f"User references missing role '{user.role}'")

        self.roles.decrement_user_count(role.id)
        del self._users[user_id]
        del self._ids_by_username[user.username]

        logger.info("User deleted", user_id=user_id, username=user.username)
        return user

    def set_status(self, user_id: int, status: UserStatus | str) -> User:
        """Set a user Active or Inactive.

        Status flips leave every other field, ``updated_at`` included, as is.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If the status is not a known value.
        """
        user = self._get(user_id)
        try:
            status = UserStatus(status)
        except ValueError as e:
            raise ValidationError(f"Invalid status: '{status}'", field="status") from e
        user.status = status
        logger.info("User status set", user_id=user_id, status=status.value)
        return replace(user)

    def toggle_status(self, user_id: int) -> User:
        """Flip a user between Active and Inactive."""
        return self.set_status(user_id, self._get(user_id).status.toggled())

    async def reset_credential(
        self, user_id: int, new_credential: SecretStr | str
    ) -> CredentialResetConfirmation:
        """Hand a replacement credential to the credential store.

        Nothing is stored locally; the user record is not changed.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If the credential is empty.
            CollaboratorError: If the credential store fails.
        """
        user = self._get(user_id)
        if not isinstance(new_credential, SecretStr):
            new_credential = SecretStr(new_credential)
        if not new_credential.get_secret_value():
            raise ValidationError("Password is required", field="password")

        await self._call_credential_store("reset_credential", user_id, new_credential)

        logger.info("Credential reset", user_id=user_id, username=user.username)
        return CredentialResetConfirmation(
            user_id=user_id,
            username=user.username,
            reset_at=self.clock.now(),
        )

    def set_two_factor(self, user_id: int, enabled: bool) -> User:
        """Turn multi-factor authentication on or off.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self._get(user_id)
        if user.two_factor_enabled != enabled:
            user.two_factor_enabled = bool(enabled)
            user.updated_at = self.clock.now()
        logger.info("Two-factor setting changed", user_id=user_id, enabled=bool(enabled))
        return replace(user)

    def set_permissions(self, user_id: int, permissions: Iterable[str]) -> User:
        """Replace the capability tags granted directly to a user.

        Raises:
            NotFoundError: If the user does not exist.
            InvalidPermissionError: If a tag is not in the catalog.
        """
        user = self._get(user_id)
        user.permissions = self._validate_permissions(permissions)
        user.updated_at = self.clock.now()
        logger.info(
            "User permissions set",
            user_id=user_id,
            permissions=self.roles.catalog.sort(user.permissions),
        )
        return replace(user)

    def record_login(self, user_id: int, at: datetime | None = None) -> User:
        """Record a successful login.

        Called by the authentication collaborator, never by admin operations.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self._get(user_id)
        user.last_login = as_instant(at) if at is not None else self.clock.now()
        user.login_count += 1
        return replace(user)

    async def _call_credential_store(
        self, method: str, user_id: int, credential: SecretStr
    ) -> None:
        try:
            await getattr(self.credentials, method)(user_id, credential)
        except CollaboratorError:
            raise
        except Exception as e:
            logger.warning(
                "Credential store call failed",
                operation=method,
                user_id=user_id,
                error=type(e).__name__,
            )
            raise CollaboratorError("Credential store", str(e) or type(e).__name__) from e

    # Derived views

    def effective_permissions(self, user_id: int) -> frozenset[str]:
        """Role permissions plus direct grants, with ``All`` expanded.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self._get(user_id)
        role = self._resolve_role(user.role)
        return self.roles.catalog.expand(role.permissions | user.permissions)

    def users_needing_password_renewal(
        self, as_of: date | datetime, threshold_days: int = 7
    ) -> list[User]:
        """Users whose password expires within ``threshold_days`` of ``as_of``.

        Already expired passwords are included. Ordered by user id.
        """
        return [
            user
            for user in self.list()
            if days_until_expiry(user, as_of) <= threshold_days
        ]

    def count_total(self) -> int:
        return len(self._users)

    def count_active(self) -> int:
        return sum(1 for user in self._users.values() if user.is_active)

    def count_two_factor(self) -> int:
        return sum(1 for user in self._users.values() if user.two_factor_enabled)

    def role_reference_counts(self) -> dict[str, int]:
        """Count users per role name, computed from the live user set."""
        counts: dict[str, int] = {}
        for user in self._users.values():
            counts[user.role] = counts.get(user.role, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self._users)

    def list(self) -> list[User]:
        """Return copies of all users ordered by id."""
        return [replace(self._users[user_id]) for user_id in sorted(self._users)]
