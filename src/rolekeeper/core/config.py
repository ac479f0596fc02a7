"""Configuration management for RoleKeeper.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. The department list and permission
catalog are part of the deployment configuration and are handed to the
directory at initialization.
"""

import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DEPARTMENTS = ["IT", "Finance", "Sales", "HR", "Operations", "Marketing"]

DEFAULT_PERMISSION_CATALOG = [
    "Dashboard",
    "Accounting",
    "Sales",
    "Customers",
    "Vendors",
    "Banking",
    "Reports",
    "Payroll",
    "Inventory",
    "Company Settings",
    "User Management",
]


class Settings(BaseSettings):
    """Application configuration settings.

    Settings are loaded from environment variables prefixed with
    ``ROLEKEEPER_`` and from a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ROLEKEEPER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "RoleKeeper"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Credential Policy
    password_expiry_days: int = Field(default=90, ge=1)
    password_renewal_threshold_days: int = Field(default=7, ge=0)

    # Directory Configuration
    departments: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_DEPARTMENTS)
    )
    permission_catalog: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_PERMISSION_CATALOG)
    )
    system_role_name: str = "Super Admin"
    system_role_description: str = "Full system access"

    # Demo Data
    seed_demo_data: bool = False

    @field_validator("departments", "permission_catalog", mode="before")
    @classmethod
    def parse_list(cls, v: str | list[str]) -> list[str]:
        """Parse a list from a JSON array or a comma-separated string."""
        if isinstance(v, str):
            text = v.strip()
            if text.startswith("["):
                return json.loads(text)
            return [item.strip() for item in text.split(",") if item.strip()]
        return v

    @field_validator("departments", "permission_catalog")
    @classmethod
    def validate_entries(cls, v: list[str]) -> list[str]:
        """Reject empty lists, blank entries and duplicates."""
        if not v:
            raise ValueError("List must contain at least one entry")
        if any(not item.strip() for item in v):
            raise ValueError("List entries cannot be blank")
        if len(set(v)) != len(v):
            raise ValueError("List entries must be unique")
        return v

    @field_validator("system_role_name", "system_role_description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Validate that system role text is not blank."""
        if not v.strip():
            raise ValueError("System role name and description cannot be empty")
        return v.strip()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached application settings instance.
    """
    return Settings()
