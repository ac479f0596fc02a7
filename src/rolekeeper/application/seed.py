"""Demo directory seeding.

Populates an empty directory with the sample roles and users of the admin
screen. Role user counts come from the users actually created. Account ages
and login history are relative to the seeding time, so the password alerts
of the demo stay the same whenever it runs.
"""

from datetime import timedelta

from pydantic import SecretStr

from rolekeeper.application.schemas import RoleCreateRequest, UserCreateRequest
from rolekeeper.application.services.admin_service import AdminService, build_admin_service
from rolekeeper.core.clock import Clock
from rolekeeper.core.config import Settings, get_settings
from rolekeeper.core.logging import get_logger
from rolekeeper.domain.entities import ALL_PERMISSIONS, UserStatus

logger = get_logger(__name__)

DEMO_ROLES = [
    {
        "name": "Accountant",
        "description": "Accounting and financial operations",
        "permissions": ["Accounting", "Reports", "Banking"],
    },
    {
        "name": "Sales Manager",
        "description": "Sales and customer management",
        "permissions": ["Sales", "Customers", "Reports"],
    },
]

# role None means the system role. With 90-day passwords, jsmith expires in
# 5 days and jdoe expired 10 days ago.
DEMO_USERS = [
    {
        "username": "admin",
        "full_name": "System Administrator",
        "email": "admin@company.com",
        "role": None,
        "department": "IT",
        "permissions": [ALL_PERMISSIONS],
        "two_factor_enabled": True,
        "status": UserStatus.ACTIVE,
        "account_age_days": 30,
        "login_days_ago": [3, 2, 1],
    },
    {
        "username": "jsmith",
        "full_name": "Jane Smith",
        "email": "jane.smith@company.com",
        "role": "Accountant",
        "department": "Finance",
        "permissions": ["Accounting", "Reports"],
        "two_factor_enabled": False,
        "status": UserStatus.ACTIVE,
        "account_age_days": 85,
        "login_days_ago": [6, 1],
    },
    {
        "username": "jdoe",
        "full_name": "John Doe",
        "email": "john.doe@company.com",
        "role": "Sales Manager",
        "department": "Sales",
        "permissions": ["Sales", "Customers"],
        "two_factor_enabled": True,
        "status": UserStatus.INACTIVE,
        "account_age_days": 100,
        "login_days_ago": [12],
    },
]

DEMO_PASSWORD = "ChangeMe!2024"


async def seed_demo_directory(service: AdminService) -> None:
    """Add the demo roles and users to ``service``.

    Tags and departments missing from the configured catalog or department
    list are dropped or replaced by the first configured department.
    """
    catalog = service.catalog
    now = service.clock.now()
    system_role = next(role for role in service.list_roles() if role.is_system)

    for entry in DEMO_ROLES:
        await service.create_role(
            RoleCreateRequest(
                name=entry["name"],
                description=entry["description"],
                permissions=[tag for tag in entry["permissions"] if catalog.contains(tag)],
            )
        )

    for entry in DEMO_USERS:
        department = entry["department"]
        if department not in service.departments:
            department = service.departments[0]
        user = await service.create_user(
            UserCreateRequest(
                username=entry["username"],
                full_name=entry["full_name"],
                email=entry["email"],
                role=entry["role"] or system_role.name,
                department=department,
                password=SecretStr(DEMO_PASSWORD),
                confirm_password=SecretStr(DEMO_PASSWORD),
                permissions=[tag for tag in entry["permissions"] if catalog.contains(tag)],
            ),
            created_at=now - timedelta(days=entry["account_age_days"]),
        )
        for days_ago in entry["login_days_ago"]:
            await service.record_login(user.id, at=now - timedelta(days=days_ago))
        if entry["two_factor_enabled"]:
            await service.set_two_factor(user.id, True)
        if entry["status"] is not UserStatus.ACTIVE:
            await service.set_status(user.id, entry["status"])

    logger.info(
        "Demo directory seeded",
        roles=len(service.list_roles()),
        users=len(service.list_users()),
    )


async def load_directory(
    settings: Settings | None = None,
    clock: Clock | None = None,
    seed: bool | None = None,
) -> AdminService:
    """Build a directory from settings, seeding demo data when asked.

    Args:
        settings: Configuration. Loaded from the environment if omitted.
        clock: Time source. The system clock if omitted.
        seed: Override for ``settings.seed_demo_data``.
    """
    if settings is None:
        settings = get_settings()
    service = build_admin_service(settings, clock=clock)
    if seed is None:
        seed = settings.seed_demo_data
    if seed:
        await seed_demo_directory(service)
    return service
