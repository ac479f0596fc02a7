"""RoleKeeper - user, role and permission administration.

An in-memory directory of user accounts and roles with consistent role
assignment counts, credential hand-off and password expiry alerts.
"""

__version__ = "0.1.0"

from rolekeeper.application.services.admin_service import AdminService, build_admin_service

__all__ = ["AdminService", "build_admin_service", "__version__"]
