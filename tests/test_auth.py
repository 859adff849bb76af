import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.permissions import Permissions, permissions_for_role
from orca.core.security import create_access_token, create_refresh_token, verify_token
from orca.domain.clinics.models import Clinic, User
from tests.conftest import TEST_PASSWORD


@pytest.mark.auth
@pytest.mark.integration
class TestAuthentication:
    """Login, token refresh and the current user endpoint"""

    async def test_login_success(self, client: AsyncClient, admin_user: User) -> None:
        response = await client.post(
            "/api/v1/auth/login", json={"email": admin_user.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["token_type"] == "bearer"

        payload = verify_token(body["data"]["access_token"], "access")
        assert payload["sub"] == admin_user.id
        assert payload["clinic_id"] == admin_user.clinic_id
        assert Permissions.BILLING_READ in payload["permissions"]

    async def test_login_wrong_password(self, client: AsyncClient, admin_user: User) -> None:
        response = await client.post(
            "/api/v1/auth/login", json={"email": admin_user.email, "password": "wrong-password"}
        )

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "INVALID_CREDENTIALS"

    async def test_login_unknown_email(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/login", json={"email": "nobody@example.com", "password": "whatever"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    async def test_login_inactive_clinic(self, client: AsyncClient, db_session: AsyncSession,
                                         clinic: Clinic, admin_user: User) -> None:
        clinic.is_active = False
        await db_session.commit()

        response = await client.post(
            "/api/v1/auth/login", json={"email": admin_user.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 401

    async def test_refresh_token(self, client: AsyncClient, admin_user: User) -> None:
        refresh = create_refresh_token(admin_user.id, {"clinic_id": admin_user.clinic_id})

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})

        assert response.status_code == 200
        assert verify_token(response.json()["data"]["access_token"], "access")["sub"] == admin_user.id

    async def test_refresh_rejects_access_token(self, client: AsyncClient, admin_user: User) -> None:
        access = create_access_token(admin_user.id, {"clinic_id": admin_user.clinic_id})

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"

    async def test_get_current_user(self, client: AsyncClient, doctor_user: User, doctor_headers: dict) -> None:
        response = await client.get("/api/v1/auth/me", headers=doctor_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == doctor_user.email
        assert data["role"] == "doctor"
        assert sorted(data["permissions"]) == sorted(permissions_for_role("doctor"))

    async def test_missing_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_invalid_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"


@pytest.mark.auth
@pytest.mark.unit
class TestPermissions:
    def test_clinic_admin_has_everything_but_system_admin(self) -> None:
        perms = permissions_for_role("clinic_admin")
        assert Permissions.AUDIT_READ in perms
        assert Permissions.PAYMENT_APPROVE_REFUND in perms
        assert Permissions.SYSTEM_ADMIN not in perms

    def test_extra_grants_are_merged_once(self) -> None:
        perms = permissions_for_role("front_desk", [Permissions.AUDIT_READ, Permissions.PATIENTS_READ])
        assert perms.count(Permissions.PATIENTS_READ) == 1
        assert Permissions.AUDIT_READ in perms

    def test_unknown_role_has_no_permissions(self) -> None:
        assert permissions_for_role("janitor") == []

    async def test_forbidden_response_lists_required_permissions(
        self, client: AsyncClient, front_desk_headers: dict
    ) -> None:
        response = await client.get("/api/v1/audit-logs", headers=front_desk_headers)

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "FORBIDDEN"
        assert error["details"]["required_permissions"] == [Permissions.AUDIT_READ]
