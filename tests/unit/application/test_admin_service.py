"""Unit tests for AdminService."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from rolekeeper.application.schemas import (
    CredentialResetRequest,
    RoleCreateRequest,
    RoleUpdateRequest,
    UserCreateRequest,
    UserUpdateRequest,
)
from rolekeeper.application.services.admin_service import AdminService, build_admin_service
from rolekeeper.domain.entities import UserStatus
from rolekeeper.domain.exceptions import (
    CollaboratorError,
    ConflictError,
    InternalConsistencyError,
    NotFoundError,
    RoleInUseError,
    SystemRoleProtectedError,
    UnknownRoleError,
    ValidationError,
)
from rolekeeper.domain.services import CredentialStore, RoleRegistry


def user_request(username: str = "asmith", role: str = "Auditor", **overrides) -> UserCreateRequest:
    fields = {
        "username": username,
        "full_name": "Alex Smith",
        "email": f"{username}@company.com",
        "role": role,
        "department": "Finance",
        "password": SecretStr("s3cret!"),
        "confirm_password": SecretStr("s3cret!"),
    }
    fields.update(overrides)
    return UserCreateRequest(**fields)


async def add_role(service: AdminService, name: str, permissions=("Reports",)):
    return await service.create_role(
        RoleCreateRequest(name=name, description=f"{name} role", permissions=list(permissions))
    )


def assert_counts_match(service: AdminService) -> None:
    """Every role's user_count equals the users referencing it."""
    users = service.list_users()
    for role in service.list_roles():
        assert role.user_count == sum(1 for user in users if user.role == role.name)
    service.verify_consistency()


class TestRoleLifecycleScenario:
    @pytest.mark.asyncio
    async def test_reassign_and_delete(self, service: AdminService):
        await add_role(service, "Auditor", ["Reports"])
        user = await service.create_user(user_request("asmith", "Auditor"))
        assert service.get_role_by_name("Auditor").user_count == 1

        billing = await add_role(service, "Billing", ["Accounting"])
        await service.update_user(user.id, UserUpdateRequest(role="Billing"))
        assert service.get_role_by_name("Auditor").user_count == 0
        assert service.get_role_by_name("Billing").user_count == 1

        with pytest.raises(RoleInUseError):
            await service.delete_role(billing.id)
        assert service.get_role_by_name("Billing").user_count == 1
        assert len(service.list_users()) == 1

        await service.delete_user(user.id)
        await service.delete_role(billing.id)
        assert service.roles.find_by_name("Billing") is None
        assert_counts_match(service)


class TestUsers:
    @pytest.mark.asyncio
    async def test_password_mismatch_rejected(self, service: AdminService):
        with pytest.raises(ValidationError, match="Passwords do not match"):
            await service.create_user(
                user_request("jsmith", "Super Admin", confirm_password=SecretStr("other"))
            )
        assert service.list_users() == []

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, service: AdminService):
        with pytest.raises(UnknownRoleError):
            await service.create_user(user_request("jsmith", "Ghost"))
        assert service.list_users() == []

    @pytest.mark.asyncio
    async def test_duplicate_username(self, service: AdminService):
        first = await service.create_user(user_request("jsmith", "Super Admin"))
        with pytest.raises(ConflictError):
            await service.create_user(user_request("jsmith", "Super Admin", full_name="Other"))
        assert service.list_users() == [first]
        assert_counts_match(service)

    @pytest.mark.asyncio
    async def test_request_whitespace_is_trimmed(self, service: AdminService):
        user = await service.create_user(
            user_request("  jsmith  ", " Super Admin ", email=" js@company.com ")
        )
        assert user.username == "jsmith"
        assert user.role == "Super Admin"

    @pytest.mark.asyncio
    async def test_update_only_sent_fields(self, service: AdminService):
        user = await service.create_user(user_request("jsmith", "Super Admin"))
        updated = await service.update_user(user.id, UserUpdateRequest(email="js@company.com"))
        assert updated.email == "js@company.com"
        assert updated.full_name == user.full_name

    @pytest.mark.asyncio
    async def test_update_with_mapping(self, service: AdminService):
        user = await service.create_user(user_request("jsmith", "Super Admin"))
        updated = await service.update_user(user.id, {"department": "IT"})
        assert updated.department == "IT"

    @pytest.mark.asyncio
    async def test_update_rejects_non_text_values(self, service: AdminService):
        user = await service.create_user(user_request("jsmith", "Super Admin"))

        with pytest.raises(ValidationError) as exc_info:
            await service.update_user(user.id, {"username": 5})

        assert exc_info.value.field == "username"
        assert service.get_user(user.id) == user

    @pytest.mark.asyncio
    async def test_toggle_status_twice_restores_user(self, service: AdminService, clock):
        user = await service.create_user(user_request("jsmith", "Super Admin"))

        clock.advance(timedelta(minutes=1))
        await service.toggle_status(user.id)
        clock.advance(timedelta(minutes=1))
        restored = await service.toggle_status(user.id)

        assert restored == user

    @pytest.mark.asyncio
    async def test_toggles(self, service: AdminService):
        user = await service.create_user(user_request("jsmith", "Super Admin"))

        assert (await service.toggle_status(user.id)).status is UserStatus.INACTIVE
        assert (await service.toggle_two_factor(user.id)).two_factor_enabled is True
        assert (await service.set_status(user.id, "Active")).status is UserStatus.ACTIVE
        assert (await service.set_two_factor(user.id, False)).two_factor_enabled is False

    @pytest.mark.asyncio
    async def test_record_login(self, service: AdminService, clock):
        user = await service.create_user(user_request("jsmith", "Super Admin"))
        assert user.last_login_display == "Never"

        updated = await service.record_login(user.id)

        assert updated.last_login == clock.now()
        assert updated.login_count == 1
        assert service.get_user(user.id).last_login_display == "2024-01-15 10:30"

    @pytest.mark.asyncio
    async def test_missing_user(self, service: AdminService):
        with pytest.raises(NotFoundError):
            await service.toggle_status(42)
        with pytest.raises(NotFoundError):
            await service.delete_user(42)


class TestCredentials:
    @pytest.mark.asyncio
    async def test_reset_credential(self, service: AdminService, credential_store):
        user = await service.create_user(user_request("jsmith", "Super Admin"))

        preview = service.preview_credential_reset(user.id)
        confirmation = await service.reset_credential(
            user.id,
            CredentialResetRequest(new_password=SecretStr("n3w"), confirm_password=SecretStr("n3w")),
        )

        assert preview.username == "jsmith"
        assert confirmation.user_id == user.id
        assert credential_store.verify(user.id, SecretStr("n3w")) is True

    @pytest.mark.asyncio
    async def test_reset_mismatch(self, service: AdminService, credential_store):
        user = await service.create_user(user_request("jsmith", "Super Admin"))
        with pytest.raises(ValidationError, match="Passwords do not match"):
            await service.reset_credential(
                user.id,
                CredentialResetRequest(new_password=SecretStr("a"), confirm_password=SecretStr("b")),
            )
        assert credential_store.verify(user.id, SecretStr("s3cret!")) is True

    @pytest.mark.asyncio
    async def test_reset_missing_user(self, service: AdminService):
        with pytest.raises(NotFoundError):
            await service.reset_credential(
                9,
                CredentialResetRequest(new_password=SecretStr("a"), confirm_password=SecretStr("b")),
            )

    @pytest.mark.asyncio
    async def test_collaborator_failure_applies_nothing(self, settings, clock):
        store = MagicMock(spec=CredentialStore)
        store.set_initial_credential = AsyncMock(side_effect=OSError("connection refused"))
        service = build_admin_service(settings, clock=clock, credentials=store)

        with pytest.raises(CollaboratorError) as exc_info:
            await service.create_user(user_request("jsmith", "Super Admin"))

        assert isinstance(exc_info.value.__cause__, OSError)
        assert service.list_users() == []
        assert service.get_role_by_name("Super Admin").user_count == 0
        store.set_initial_credential.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_propagates_and_releases_lock(self, settings, clock):
        store = MagicMock(spec=CredentialStore)
        store.set_initial_credential = AsyncMock(side_effect=[asyncio.CancelledError(), None])
        service = build_admin_service(settings, clock=clock, credentials=store)

        with pytest.raises(asyncio.CancelledError):
            await service.create_user(user_request("jsmith", "Super Admin"))

        user = await service.create_user(user_request("jsmith", "Super Admin"))
        assert service.list_users() == [user]


class TestRoles:
    @pytest.mark.asyncio
    async def test_system_role_bootstrapped(self, service: AdminService):
        (admin,) = service.list_roles()
        assert admin.name == "Super Admin"
        assert admin.is_system is True
        assert admin.permissions == {"All"}

    @pytest.mark.asyncio
    async def test_system_role_protection(self, service: AdminService):
        admin = service.get_role_by_name("Super Admin")

        with pytest.raises(SystemRoleProtectedError):
            await service.update_role_permissions(admin.id, [])
        with pytest.raises(SystemRoleProtectedError):
            await service.delete_role(admin.id)

        assert service.get_role(admin.id).permissions == {"All"}

    @pytest.mark.asyncio
    async def test_update_role_is_all_or_nothing(self, service: AdminService):
        auditor = await add_role(service, "Auditor")

        with pytest.raises(ValidationError):
            await service.update_role(
                auditor.id, RoleUpdateRequest(description=" ", permissions=["Sales"])
            )
        assert service.get_role(auditor.id) == auditor

        updated = await service.update_role(
            auditor.id, RoleUpdateRequest(description="Auditing", permissions=["Sales"])
        )
        assert updated.description == "Auditing"
        assert updated.permissions == {"Sales"}

    @pytest.mark.asyncio
    async def test_duplicate_role(self, service: AdminService):
        await add_role(service, "Auditor")
        with pytest.raises(ConflictError):
            await add_role(service, "Auditor")

    @pytest.mark.asyncio
    async def test_reassign_role_users(self, service: AdminService):
        auditor = await add_role(service, "Auditor")
        await add_role(service, "Billing")
        await service.create_user(user_request("a", "Auditor"))
        await service.create_user(user_request("b", "Auditor"))

        moved = await service.reassign_role_users(auditor.id, "Billing")

        assert [user.role for user in moved] == ["Billing", "Billing"]
        assert service.get_role_by_name("Auditor").user_count == 0
        assert service.get_role_by_name("Billing").user_count == 2
        await service.delete_role(auditor.id)
        assert_counts_match(service)

    @pytest.mark.asyncio
    async def test_reassign_to_unknown_role(self, service: AdminService):
        auditor = await add_role(service, "Auditor")
        await service.create_user(user_request("a", "Auditor"))

        with pytest.raises(UnknownRoleError):
            await service.reassign_role_users(auditor.id, "Ghost")
        assert service.get_role(auditor.id).user_count == 1


class TestPreviews:
    @pytest.mark.asyncio
    async def test_role_deletion_preview(self, service: AdminService):
        auditor = await add_role(service, "Auditor")
        assert service.preview_role_deletion(auditor.id).allowed is True

        await service.create_user(user_request("a", "Auditor"))
        preview = service.preview_role_deletion(auditor.id)

        assert preview.allowed is False
        assert preview.code == "role_in_use"
        assert preview.affected_users == 1
        assert service.get_role(auditor.id).user_count == 1

    @pytest.mark.asyncio
    async def test_system_role_deletion_preview(self, service: AdminService):
        admin = service.get_role_by_name("Super Admin")
        preview = service.preview_role_deletion(admin.id)
        assert preview.allowed is False
        assert preview.code == "system_role_protected"

    @pytest.mark.asyncio
    async def test_user_deletion_preview_has_no_side_effects(self, service: AdminService):
        user = await service.create_user(user_request("jsmith", "Super Admin"))
        preview = service.preview_user_deletion(user.id)

        assert preview.allowed is True
        assert preview.name == "jsmith"
        assert service.list_users() == [user]

    def test_preview_missing(self, service: AdminService):
        with pytest.raises(NotFoundError):
            service.preview_user_deletion(1)
        with pytest.raises(NotFoundError):
            service.preview_role_deletion(99)


class TestReads:
    @pytest.mark.asyncio
    async def test_stats_and_alerts(self, service: AdminService, clock):
        jsmith = await service.create_user(user_request("jsmith", "Super Admin"))
        clock.advance(timedelta(days=10))
        jdoe = await service.create_user(user_request("jdoe", "Super Admin"))
        await service.set_status(jdoe.id, UserStatus.INACTIVE)
        await service.set_two_factor(jsmith.id, True)

        clock.advance(timedelta(days=78))
        alerts = service.password_alerts()
        stats = service.stats()

        assert [alert.username for alert in alerts] == ["jsmith"]
        assert alerts[0].days_until_expiry == 2
        assert alerts[0].expired is False
        assert stats.total_users == 2
        assert stats.active_users == 1
        assert stats.two_factor_users == 1
        assert stats.roles == 1
        assert stats.password_alerts == 1

        assert [u.username for u in service.users_needing_password_renewal(threshold_days=12)] == [
            "jsmith",
            "jdoe",
        ]

    @pytest.mark.asyncio
    async def test_effective_permissions(self, service: AdminService):
        await add_role(service, "Auditor", ["Reports"])
        user = await service.create_user(user_request("a", "Auditor", permissions=["Dashboard"]))

        assert service.effective_permissions(user.id) == ["Dashboard", "Reports"]
        assert service.has_permission(user.id, "Reports") is True
        assert service.has_permission(user.id, "Payroll") is False

        await service.set_user_permissions(user.id, ["All"])
        assert service.has_permission(user.id, "Payroll") is True

    def test_catalog_and_departments(self, service: AdminService):
        assert service.list_permissions()[-1] == "All"
        assert "Finance" in service.departments

    @pytest.mark.asyncio
    async def test_verify_consistency_detects_drift(self, service: AdminService):
        await service.create_user(user_request("jsmith", "Super Admin"))
        admin = service.get_role_by_name("Super Admin")
        service.roles.increment_user_count(admin.id)

        with pytest.raises(InternalConsistencyError):
            service.verify_consistency()


@pytest.mark.asyncio
async def test_concurrent_creates_are_serialized(settings, clock):
    """Two sessions racing for one username: exactly one wins."""

    async def slow_store(user_id, credential):
        await asyncio.sleep(0)

    store = MagicMock(spec=CredentialStore)
    store.set_initial_credential = AsyncMock(side_effect=slow_store)
    service = build_admin_service(settings, clock=clock, credentials=store)

    results = await asyncio.gather(
        service.create_user(user_request("jsmith", "Super Admin")),
        service.create_user(user_request("jsmith", "Super Admin", full_name="Twin")),
        return_exceptions=True,
    )

    assert sum(isinstance(result, ConflictError) for result in results) == 1
    assert len(service.list_users()) == 1
    assert_counts_match(service)


@pytest.mark.asyncio
async def test_counts_hold_after_mixed_operations(service: AdminService):
    await add_role(service, "Auditor")
    await add_role(service, "Billing")
    a = await service.create_user(user_request("a", "Auditor"))
    b = await service.create_user(user_request("b", "Billing"))
    c = await service.create_user(user_request("c", "Super Admin"))

    await service.update_user(a.id, {"role": "Billing"})
    await service.update_user(c.id, {"role": "Auditor"})
    await service.delete_user(b.id)
    with pytest.raises(UnknownRoleError):
        await service.update_user(a.id, {"role": "Ghost"})

    assert_counts_match(service)
    assert service.get_role_by_name("Billing").user_count == 1
    assert service.get_role_by_name("Auditor").user_count == 1
    assert service.get_role_by_name("Super Admin").user_count == 0


def test_service_requires_shared_registry(service: AdminService, catalog):
    with pytest.raises(ValueError):
        AdminService(roles=RoleRegistry(catalog), users=service.users)
