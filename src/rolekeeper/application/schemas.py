"""Pydantic schemas for the administrative surface.

Request schemas carry raw form input from the presentation layer. They only
fix types and trim whitespace; the directory performs the business
validation and raises its own errors. Result schemas describe what the
surface renders.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class UserCreateRequest(BaseModel):
    """Request schema for adding a user from the Add User form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., description="Unique login name")
    full_name: str = Field(..., description="Display name")
    email: str = Field(..., description="Contact email address")
    role: str = Field(..., description="Name of an existing role")
    department: str = Field(..., description="Organizational unit")
    password: SecretStr = Field(..., description="Initial password")
    confirm_password: SecretStr = Field(..., description="Initial password, repeated")
    permissions: list[str] = Field(
        default_factory=list, description="Capability tags granted directly to the user"
    )


class UserUpdateRequest(BaseModel):
    """Request schema for the Edit User form.

    All fields are optional. Only provided fields will be updated.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str | None = Field(None, description="Unique login name")
    full_name: str | None = Field(None, description="Display name")
    email: str | None = Field(None, description="Contact email address")
    role: str | None = Field(None, description="Name of an existing role")
    department: str | None = Field(None, description="Organizational unit")

    def changes(self) -> dict[str, str | None]:
        """Fields explicitly provided by the caller."""
        return self.model_dump(exclude_unset=True)


class CredentialResetRequest(BaseModel):
    """Request schema for resetting a user's password."""

    new_password: SecretStr = Field(..., description="Replacement password")
    confirm_password: SecretStr = Field(..., description="Replacement password, repeated")


class RoleCreateRequest(BaseModel):
    """Request schema for the Role Manager's Add Role form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., description="Unique role name")
    description: str = Field(..., description="Explanation of the role's purpose")
    permissions: list[str] = Field(default_factory=list, description="Capability tags")


class RoleUpdateRequest(BaseModel):
    """Request schema for editing a role.

    All fields are optional. Only provided fields will be updated.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    description: str | None = Field(None, description="Explanation of the role's purpose")
    permissions: list[str] | None = Field(None, description="Replacement capability tags")


class DirectoryStats(BaseModel):
    """Counters shown above the user table. Recomputed on every request."""

    total_users: int = Field(..., description="Number of users")
    active_users: int = Field(..., description="Users with status Active")
    two_factor_users: int = Field(..., description="Users with two-factor enabled")
    roles: int = Field(..., description="Number of roles")
    password_alerts: int = Field(..., description="Users needing password renewal")


class PasswordAlert(BaseModel):
    """A user whose password is expired or about to expire."""

    user_id: int
    username: str
    full_name: str
    password_expiry: datetime
    days_until_expiry: int = Field(..., description="Negative once expired")

    @property
    def expired(self) -> bool:
        return self.days_until_expiry < 0


class DeletionPreview(BaseModel):
    """Outcome of a deletion dry run, shown in the confirmation step.

    Attributes:
        entity: "User" or "Role".
        id: Target id.
        name: Username or role name.
        allowed: Whether committing the deletion would succeed now.
        reason: Why the deletion would be refused.
        code: Error code the commit would raise.
        affected_users: Users referencing the role (roles only).
    """

    entity: str
    id: int
    name: str
    allowed: bool
    reason: str | None = None
    code: str | None = None
    affected_users: int = 0


class ResetPreview(BaseModel):
    """Target of a credential reset, shown before the new password is entered."""

    user_id: int
    username: str
    full_name: str
    two_factor_enabled: bool
