"""User entity for the administrative directory.

Users are uniquely identified by ``id`` and by ``username``. Each user
references exactly one role by name. Credentials are never stored here.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

NEVER = "Never"


class UserStatus(str, Enum):
    """Account status."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"

    def toggled(self) -> "UserStatus":
        return UserStatus.INACTIVE if self is UserStatus.ACTIVE else UserStatus.ACTIVE


@dataclass
class User:
    """User account managed by the directory.

    Attributes:
        id: Unique identifier assigned at creation (immutable).
        username: Unique login name (case-sensitive).
        full_name: Display name.
        email: Contact address.
        role: Name of the role this user holds.
        department: Organizational unit.
        password_expiry: Instant after which the credential is due for renewal.
        status: Whether the account is active.
        last_login: Last successful login, or None if the user never logged in.
        login_count: Number of recorded logins.
        permissions: Capability tags granted directly to the user.
        two_factor_enabled: Whether multi-factor authentication is on.
        created_at: When the user was created.
        updated_at: When the user was last modified.
    """

    id: int
    username: str
    full_name: str
    email: str
    role: str
    department: str
    password_expiry: datetime
    status: UserStatus = UserStatus.ACTIVE
    last_login: datetime | None = None
    login_count: int = 0
    permissions: frozenset[str] = field(default_factory=frozenset)
    two_factor_enabled: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate user data after initialization."""
        if not self.username:
            raise ValueError("Username is required")
        if not self.role:
            raise ValueError("Role is required")
        if self.login_count < 0:
            raise ValueError("Login count cannot be negative")
        self.status = UserStatus(self.status)
        self.permissions = frozenset(self.permissions)

    @property
    def is_active(self) -> bool:
        return self.status is UserStatus.ACTIVE

    @property
    def last_login_display(self) -> str:
        """Last login formatted for display, or ``"Never"``."""
        if self.last_login is None:
            return NEVER
        return self.last_login.strftime("%Y-%m-%d %H:%M")
