"""Exceptions raised by the user and role directory.

Every recoverable failure derives from ``RoleKeeperError`` and carries a
machine-readable ``code`` for the presentation layer. A broken internal
invariant raises ``InternalConsistencyError`` instead, which is not a
``RoleKeeperError`` and must not be handled as one.
"""

from collections.abc import Iterable


class RoleKeeperError(Exception):
    """Base class for all directory errors."""

    code = "rolekeeper_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(RoleKeeperError):
    """Raised when input is missing or malformed."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class ConflictError(RoleKeeperError):
    """Raised when a username or role name is already taken."""

    code = "conflict"


class NotFoundError(RoleKeeperError):
    """Raised when an id does not resolve to an entity."""

    code = "not_found"

    def __init__(self, entity: str, identifier: int | str) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} '{identifier}' not found")


class UnknownRoleError(RoleKeeperError):
    """Raised when a user references a role name that does not exist."""

    code = "unknown_role"

    def __init__(self, role_name: str) -> None:
        self.role_name = role_name
        super().__init__(f"Role '{role_name}' does not exist")


class InvalidPermissionError(RoleKeeperError):
    """Raised when a capability tag is not in the permission catalog."""

    code = "invalid_permission"

    def __init__(self, tags: Iterable[str]) -> None:
        self.tags = sorted(tags)
        super().__init__(f"Unknown permission(s): {', '.join(self.tags)}")


class SystemRoleProtectedError(RoleKeeperError):
    """Raised when an operation would delete or strip a system role."""

    code = "system_role_protected"


class RoleInUseError(RoleKeeperError):
    """Raised when deleting a role that users still reference."""

    code = "role_in_use"

    def __init__(self, role_name: str, user_count: int) -> None:
        self.role_name = role_name
        self.user_count = user_count
        super().__init__(
            f"Role '{role_name}' is assigned to {user_count} user(s) and cannot be deleted"
        )


class CollaboratorError(RoleKeeperError):
    """Raised when an external collaborator call fails.

    The underlying exception is chained as ``__cause__``.
    """

    code = "collaborator_error"

    def __init__(self, collaborator: str, message: str) -> None:
        self.collaborator = collaborator
        super().__init__(f"{collaborator} failed: {message}")


class InternalConsistencyError(RuntimeError):
    """Raised when a directory invariant is found broken.

    This is fatal. It is never retried and never reported as a user error.
    """

    code = "internal_consistency_error"
