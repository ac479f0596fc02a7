"""Role entity for authorization.

A role is a named bundle of capability tags. Users reference roles by name.
"""

from dataclasses import dataclass, field


@dataclass
class Role:
    """Role entity for user authorization.

    Attributes:
        id: Unique identifier assigned at creation.
        name: Unique, human-readable role name.
        description: Explanation of the role's purpose.
        permissions: Capability tags granted by the role.
        user_count: Number of users currently referencing this role. Owned by
            the role registry; callers only ever see copies.
        is_system: System roles cannot be deleted or left without permissions.
    """

    id: int
    name: str
    description: str
    permissions: frozenset[str] = field(default_factory=frozenset)
    user_count: int = 0
    is_system: bool = False

    def __post_init__(self) -> None:
        """Validate role data after initialization."""
        if not self.name:
            raise ValueError("Role name is required")
        if not self.description:
            raise ValueError("Role description is required")
        self.permissions = frozenset(self.permissions)

    @property
    def in_use(self) -> bool:
        return self.user_count > 0
