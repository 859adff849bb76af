import pytest
from httpx import AsyncClient

from orca.domain.clinics.models import User


@pytest.mark.audit
@pytest.mark.integration
class TestAuditLog:
    """Mutations leave an audit trail scoped to the clinic"""

    async def test_patient_changes_are_audited(self, client: AsyncClient, admin_headers: dict,
                                               admin_user: User, patient: dict) -> None:
        await client.put(f"/api/v1/patients/{patient['id']}", json={"notes": "Prefers mornings"},
                         headers=admin_headers)

        response = await client.get(
            "/api/v1/audit-logs", params={"entity": "Patient", "entity_id": patient["id"]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        items = response.json()["data"]["items"]
        assert [entry["action"] for entry in items] == ["UPDATE", "CREATE"]
        assert all(entry["user_id"] == admin_user.id for entry in items)
        assert items[0]["details"] == {"fields": ["notes"]}
        assert items[0]["request_id"]

    async def test_login_is_audited(self, client: AsyncClient, admin_headers: dict, front_desk_user: User) -> None:
        await client.post(
            "/api/v1/auth/login", json={"email": front_desk_user.email, "password": "testpassword123"}
        )

        response = await client.get("/api/v1/audit-logs", params={"action": "LOGIN"}, headers=admin_headers)

        items = response.json()["data"]["items"]
        assert len(items) == 1
        assert items[0]["entity_id"] == front_desk_user.id

    async def test_failed_request_leaves_no_entry(self, client: AsyncClient, admin_headers: dict,
                                                  account: dict, patient: dict) -> None:
        await client.post("/api/v1/billing/accounts", json={"patient_id": patient["id"]}, headers=admin_headers)

        response = await client.get(
            "/api/v1/audit-logs", params={"entity": "PatientAccount"}, headers=admin_headers
        )

        assert response.json()["data"]["total"] == 1

    async def test_doctor_cannot_read_audit_log(self, client: AsyncClient, doctor_headers: dict) -> None:
        response = await client.get("/api/v1/audit-logs", headers=doctor_headers)

        assert response.status_code == 403
