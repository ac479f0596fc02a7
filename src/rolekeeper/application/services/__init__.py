"""Application services."""

from rolekeeper.application.services.admin_service import AdminService, build_admin_service

__all__ = ["AdminService", "build_admin_service"]
