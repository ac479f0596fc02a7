"""Administrative service for users, roles and permissions.

``AdminService`` is the boundary the presentation layer calls. It owns the
role registry and the user directory, serializes every mutation through a
single ``asyncio.Lock`` and offers side-effect-free previews for the
operations that need a confirmation step.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from rolekeeper.application.schemas import (
    CredentialResetRequest,
    DeletionPreview,
    DirectoryStats,
    PasswordAlert,
    ResetPreview,
    RoleCreateRequest,
    RoleUpdateRequest,
    UserCreateRequest,
    UserUpdateRequest,
)
from rolekeeper.core.clock import Clock, SystemClock
from rolekeeper.core.config import Settings, get_settings
from rolekeeper.core.logging import get_logger
from rolekeeper.domain.entities import ALL_PERMISSIONS, PermissionCatalog, Role, User, UserStatus
from rolekeeper.domain.exceptions import (
    InternalConsistencyError,
    RoleKeeperError,
    UnknownRoleError,
    ValidationError,
)
from rolekeeper.domain.services import (
    CredentialResetConfirmation,
    CredentialStore,
    InMemoryCredentialStore,
    RoleRegistry,
    UserDirectory,
    days_until_expiry,
    require_non_empty,
)

logger = get_logger(__name__)


class AdminService:
    """Coordinates the role registry and user directory.

    Mutations are async and run one at a time. Reads are synchronous and
    return copies, so they always observe a state between two mutations.
    """

    def __init__(
        self,
        roles: RoleRegistry,
        users: UserDirectory,
        clock: Clock | None = None,
        renewal_threshold_days: int = 7,
    ) -> None:
        """Initialize the service.

        Args:
            roles: Role registry shared with ``users``.
            users: User directory.
            clock: Time source for password alerts.
            renewal_threshold_days: Default alert window for password renewal.
        """
        if users.roles is not roles:
            raise ValueError("User directory must resolve roles against the same registry")
        self.roles = roles
        self.users = users
        self.clock = clock or users.clock or SystemClock()
        self.renewal_threshold_days = renewal_threshold_days
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _exclusive(self, operation: str, **context: Any) -> AsyncIterator[None]:
        async with self._lock:
            try:
                yield
            except RoleKeeperError as e:
                logger.info(
                    f"{operation} failed",
                    reason=e.code,
                    detail=e.message,
                    **context,
                )
                raise

    @property
    def catalog(self) -> PermissionCatalog:
        return self.roles.catalog

    @property
    def departments(self) -> tuple[str, ...]:
        return self.users.departments

    # Users

    async def create_user(
        self, request: UserCreateRequest, created_at: date | datetime | None = None
    ) -> User:
        """Create a user from the Add User form.

        ``created_at`` backdates accounts carried over from elsewhere; password
        expiry counts from it.

        Raises:
            ValidationError: If a field is blank or malformed, or the
                passwords do not match.
            ConflictError: If the username is taken.
            UnknownRoleError: If the role does not exist.
            InvalidPermissionError: If a direct permission is not in the catalog.
            CollaboratorError: If the credential store fails.
        """
        async with self._exclusive("Create user", username=request.username):
            if request.password.get_secret_value() != request.confirm_password.get_secret_value():
                raise ValidationError("Passwords do not match", field="confirm_password")
            return await self.users.create_user(
                username=request.username,
                full_name=request.full_name,
                email=request.email,
                role_name=request.role,
                department=request.department,
                initial_password=request.password,
                permissions=request.permissions,
                created_at=created_at,
            )

    async def update_user(
        self, user_id: int, request: UserUpdateRequest | Mapping[str, Any]
    ) -> User:
        """Apply the Edit User form to a user.

        A role change moves the user between role counts atomically.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If a field is blank or malformed.
            ConflictError: If the new username is taken.
            UnknownRoleError: If the new role does not exist.
        """
        if isinstance(request, UserUpdateRequest):
            fields = request.changes()
        else:
            fields = dict(request)
        async with self._exclusive("Update user", user_id=user_id):
            return self.users.update_user(user_id, fields)

    async def delete_user(self, user_id: int) -> User:
        """Delete a user. Call ``preview_user_deletion`` first to confirm.

        Raises:
            NotFoundError: If the user does not exist.
        """
        async with self._exclusive("Delete user", user_id=user_id):
            return self.users.delete_user(user_id)

    async def set_status(self, user_id: int, status: UserStatus | str) -> User:
        async with self._exclusive("Set status", user_id=user_id):
            return self.users.set_status(user_id, status)

    async def toggle_status(self, user_id: int) -> User:
        async with self._exclusive("Toggle status", user_id=user_id):
            return self.users.toggle_status(user_id)

    async def set_two_factor(self, user_id: int, enabled: bool) -> User:
        async with self._exclusive("Set two-factor", user_id=user_id):
            return self.users.set_two_factor(user_id, enabled)

    async def toggle_two_factor(self, user_id: int) -> User:
        async with self._exclusive("Toggle two-factor", user_id=user_id):
            user = self.users.get(user_id)
            return self.users.set_two_factor(user_id, not user.two_factor_enabled)

    async def set_user_permissions(self, user_id: int, permissions: Iterable[str]) -> User:
        async with self._exclusive("Set user permissions", user_id=user_id):
            return self.users.set_permissions(user_id, permissions)

    async def record_login(self, user_id: int, at: datetime | None = None) -> User:
        """Record a successful login reported by the authentication layer."""
        async with self._exclusive("Record login", user_id=user_id):
            return self.users.record_login(user_id, at)

    async def reset_credential(
        self, user_id: int, request: CredentialResetRequest
    ) -> CredentialResetConfirmation:
        """Reset a user's password. Call ``preview_credential_reset`` first.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If the password is empty or the passwords differ.
            CollaboratorError: If the credential store fails.
        """
        async with self._exclusive("Reset credential", user_id=user_id):
            self.users.get(user_id)
            if request.new_password.get_secret_value() != request.confirm_password.get_secret_value():
                raise ValidationError("Passwords do not match", field="confirm_password")
            return await self.users.reset_credential(user_id, request.new_password)

    # Roles

    async def create_role(self, request: RoleCreateRequest) -> Role:
        """Create a role from the Role Manager form.

        Raises:
            ValidationError: If name or description is empty.
            ConflictError: If the name is taken.
            InvalidPermissionError: If a tag is not in the catalog.
        """
        async with self._exclusive("Create role", role_name=request.name):
            return self.roles.create_role(
                name=request.name,
                description=request.description,
                permissions=request.permissions,
            )

    async def update_role_permissions(self, role_id: int, permissions: Iterable[str]) -> Role:
        """Replace a role's permissions.

        Raises:
            NotFoundError: If the role does not exist.
            InvalidPermissionError: If a tag is not in the catalog.
            SystemRoleProtectedError: If a system role would be left empty.
        """
        async with self._exclusive("Update role permissions", role_id=role_id):
            return self.roles.update_role_permissions(role_id, permissions)

    async def update_role(self, role_id: int, request: RoleUpdateRequest) -> Role:
        """Update a role's description and/or permissions as one unit.

        Raises:
            NotFoundError: If the role does not exist.
            ValidationError: If the description is empty.
            InvalidPermissionError: If a tag is not in the catalog.
            SystemRoleProtectedError: If a system role would be left empty.
        """
        fields = request.model_dump(exclude_unset=True)
        async with self._exclusive("Update role", role_id=role_id):
            role = self.roles.get(role_id)
            if "permissions" in fields:
                self.roles.check_permissions_update(role_id, fields["permissions"] or [])
            if "description" in fields:
                require_non_empty("description", fields["description"])

            if "permissions" in fields:
                role = self.roles.update_role_permissions(role_id, fields["permissions"] or [])
            if "description" in fields:
                role = self.roles.update_role_description(role_id, fields["description"])
            return role

    async def delete_role(self, role_id: int) -> None:
        """Delete a role that no user references.

        Users are never reassigned implicitly; see ``reassign_role_users``.

        Raises:
            NotFoundError: If the role does not exist.
            SystemRoleProtectedError: If the role is a system role.
            RoleInUseError: If users still reference the role.
        """
        async with self._exclusive("Delete role", role_id=role_id):
            self.roles.check_delete(role_id)
            self.roles.delete_role(role_id)

    async def reassign_role_users(self, role_id: int, target_role_name: str) -> list[User]:
        """Move every user of one role to another, as one unit.

        Returns:
            Copies of the reassigned users.

        Raises:
            NotFoundError: If the source role does not exist.
            UnknownRoleError: If the target role does not exist.
        """
        async with self._exclusive(
            "Reassign role users", role_id=role_id, target_role=target_role_name
        ):
            source = self.roles.get(role_id)
            if target_role_name not in self.roles:
                raise UnknownRoleError(target_role_name)
            members = [user for user in self.users.list() if user.role == source.name]
            for user in members:
                self.users.check_update(user.id, {"role": target_role_name})
            reassigned = [
                self.users.update_user(user.id, {"role": target_role_name}) for user in members
            ]
            logger.info(
                "Role users reassigned",
                role_id=role_id,
                target_role=target_role_name,
                user_count=len(reassigned),
            )
            return reassigned

    # Confirmation previews

    def preview_user_deletion(self, user_id: int) -> DeletionPreview:
        """Describe a user deletion without performing it.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self.users.get(user_id)
        return DeletionPreview(entity="User", id=user.id, name=user.username, allowed=True)

    def preview_role_deletion(self, role_id: int) -> DeletionPreview:
        """Describe a role deletion without performing it.

        Raises:
            NotFoundError: If the role does not exist.
        """
        role = self.roles.get(role_id)
        preview = DeletionPreview(
            entity="Role",
            id=role.id,
            name=role.name,
            allowed=True,
            affected_users=role.user_count,
        )
        try:
            self.roles.check_delete(role_id)
        except RoleKeeperError as e:
            preview.allowed = False
            preview.reason = e.message
            preview.code = e.code
        return preview

    def preview_credential_reset(self, user_id: int) -> ResetPreview:
        """Identify the target of a credential reset.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self.users.get(user_id)
        return ResetPreview(
            user_id=user.id,
            username=user.username,
            full_name=user.full_name,
            two_factor_enabled=user.two_factor_enabled,
        )

    # Reads

    def get_user(self, user_id: int) -> User:
        return self.users.get(user_id)

    def list_users(self) -> list[User]:
        return self.users.list()

    def get_role(self, role_id: int) -> Role:
        return self.roles.get(role_id)

    def get_role_by_name(self, name: str) -> Role:
        return self.roles.get_by_name(name)

    def list_roles(self) -> list[Role]:
        return self.roles.list()

    def list_permissions(self) -> tuple[str, ...]:
        return self.catalog.list()

    def effective_permissions(self, user_id: int) -> list[str]:
        """Role and direct permissions of a user, in catalog order."""
        return self.catalog.sort(self.users.effective_permissions(user_id))

    def has_permission(self, user_id: int, tag: str) -> bool:
        return tag in self.users.effective_permissions(user_id)

    def users_needing_password_renewal(
        self,
        as_of: date | datetime | None = None,
        threshold_days: int | None = None,
    ) -> list[User]:
        """Users whose password expires within the threshold, expired ones included."""
        if as_of is None:
            as_of = self.clock.now()
        if threshold_days is None:
            threshold_days = self.renewal_threshold_days
        return self.users.users_needing_password_renewal(as_of, threshold_days)

    def password_alerts(
        self,
        as_of: date | datetime | None = None,
        threshold_days: int | None = None,
    ) -> list[PasswordAlert]:
        """Password renewal alerts with the days left for each user."""
        if as_of is None:
            as_of = self.clock.now()
        return [
            PasswordAlert(
                user_id=user.id,
                username=user.username,
                full_name=user.full_name,
                password_expiry=user.password_expiry,
                days_until_expiry=days_until_expiry(user, as_of),
            )
            for user in self.users_needing_password_renewal(as_of, threshold_days)
        ]

    def stats(self, as_of: date | datetime | None = None) -> DirectoryStats:
        """Counters for the statistics cards."""
        return DirectoryStats(
            total_users=self.users.count_total(),
            active_users=self.users.count_active(),
            two_factor_users=self.users.count_two_factor(),
            roles=len(self.roles),
            password_alerts=len(self.users_needing_password_renewal(as_of)),
        )

    def verify_consistency(self) -> None:
        """Check every role's user count against the live user set.

        Raises:
            InternalConsistencyError: If a count differs or a user references
                a missing role.
        """
        live = self.users.role_reference_counts()
        for role in self.roles.list():
            actual = live.pop(role.name, 0)
            if role.user_count != actual:
                logger.critical(
                    "Role user count mismatch",
                    role_id=role.id,
                    role_name=role.name,
                    recorded=role.user_count,
                    actual=actual,
                )
                raise InternalConsistencyError(
                    f"Role '{role.name}' records {role.user_count} user(s) but {actual} reference it"
                )
        if live:
            logger.critical("Users reference missing roles", roles=sorted(live))
            raise InternalConsistencyError(
                f"Users reference missing role(s): {', '.join(sorted(live))}"
            )


def build_admin_service(
    settings: Settings | None = None,
    clock: Clock | None = None,
    credentials: CredentialStore | None = None,
) -> AdminService:
    """Build an empty directory with the configured system role.

    Args:
        settings: Configuration. Loaded from the environment if omitted.
        clock: Time source. The system clock if omitted.
        credentials: Credential collaborator. An in-memory store if omitted.

    Returns:
        A ready ``AdminService``.
    """
    if settings is None:
        settings = get_settings()
    clock = clock or SystemClock()

    catalog = PermissionCatalog(settings.permission_catalog)
    roles = RoleRegistry(catalog)
    roles.create_role(
        name=settings.system_role_name,
        description=settings.system_role_description,
        permissions=[ALL_PERMISSIONS],
        is_system=True,
    )
    users = UserDirectory(
        roles=roles,
        credentials=credentials or InMemoryCredentialStore(clock),
        departments=settings.departments,
        clock=clock,
        password_expiry_days=settings.password_expiry_days,
    )
    return AdminService(
        roles=roles,
        users=users,
        clock=clock,
        renewal_threshold_days=settings.password_renewal_threshold_days,
    )
