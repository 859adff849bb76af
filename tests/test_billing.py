import pytest
from datetime import date, datetime, timedelta
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import uuid4

from orca.core.exceptions import BusinessLogicError
from orca.domain.billing.models import Invoice, InvoiceStatus
from orca.domain.billing.service import (
    CreditService,
    aging_bucket,
    apply_amount_to_invoice,
    reverse_amount_on_invoice,
)
from orca.domain.clinics.models import Clinic
from orca.domain.common.models import utcnow
from tests.conftest import create_invoice


async def _second_account(client: AsyncClient, headers: dict, sample_patient_data: dict) -> dict:
    patient = await client.post(
        "/api/v1/patients",
        json={**sample_patient_data, "first_name": "Noah", "email": "noah@example.com"},
        headers=headers,
    )
    response = await client.post(
        "/api/v1/billing/accounts", json={"patient_id": patient.json()["data"]["id"]}, headers=headers
    )
    return response.json()["data"]


@pytest.mark.billing
@pytest.mark.unit
class TestAging:
    def test_current_balance_is_not_aged(self) -> None:
        assert aging_bucket(-5) is None
        assert aging_bucket(30) is None

    def test_bucket_boundaries(self) -> None:
        assert aging_bucket(31) == "aging_30"
        assert aging_bucket(60) == "aging_30"
        assert aging_bucket(61) == "aging_60"
        assert aging_bucket(90) == "aging_60"
        assert aging_bucket(120) == "aging_90"
        assert aging_bucket(121) == "aging_120_plus"


@pytest.mark.billing
@pytest.mark.unit
class TestInvoiceArithmetic:
    def _invoice(self, paid: float, balance: float) -> Invoice:
        status = InvoiceStatus.PARTIAL if paid else InvoiceStatus.PENDING
        return Invoice(id=str(uuid4()), paid_amount=paid, balance=balance, status=status)

    def test_amount_over_balance_is_refused(self) -> None:
        invoice = self._invoice(paid=40, balance=60)

        with pytest.raises(BusinessLogicError) as exc_info:
            apply_amount_to_invoice(invoice, 60.01, utcnow())

        assert exc_info.value.error_code == "AMOUNT_EXCEEDS_BALANCE"
        assert invoice.balance == 60
        assert invoice.paid_amount == 40

    def test_exact_balance_marks_paid(self) -> None:
        invoice = self._invoice(paid=40, balance=60)

        apply_amount_to_invoice(invoice, 60, utcnow())

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.balance == 0
        assert invoice.paid_at is not None

    def test_reversal_reopens_invoice(self) -> None:
        invoice = self._invoice(paid=100, balance=0)

        reverse_amount_on_invoice(invoice, 100)

        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.balance == 100
        assert invoice.paid_amount == 0
        assert invoice.paid_at is None


@pytest.mark.billing
@pytest.mark.integration
class TestPatientAccounts:
    """Account lifecycle and balance maintenance"""

    async def test_create_account(self, client: AsyncClient, account: dict, patient: dict) -> None:
        assert account["patient_id"] == patient["id"]
        assert account["account_number"].startswith("ACC")
        assert account["status"] == "ACTIVE"
        assert account["current_balance"] == 0

    async def test_one_account_per_patient(self, client: AsyncClient, admin_headers: dict,
                                           account: dict, patient: dict) -> None:
        response = await client.post(
            "/api/v1/billing/accounts", json={"patient_id": patient["id"]}, headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ACCOUNT_EXISTS"

    async def test_account_for_unknown_patient(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.post(
            "/api/v1/billing/accounts", json={"patient_id": str(uuid4())}, headers=admin_headers
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PATIENT_NOT_FOUND"

    async def test_unknown_guarantor(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        response = await client.put(
            f"/api/v1/billing/accounts/{account['id']}",
            json={"guarantor_id": str(uuid4())},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "GUARANTOR_NOT_FOUND"

    async def test_list_accounts_with_stats(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        await create_invoice(client, admin_headers, account["id"], 250)

        response = await client.get("/api/v1/billing/accounts", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["stats"]["total_accounts"] == 1
        assert data["stats"]["total_balance"] == 250
        assert data["stats"]["status_counts"] == {"ACTIVE": 1}

    async def test_outstanding_balance_filter(self, client: AsyncClient, admin_headers: dict,
                                              account: dict, sample_patient_data: dict) -> None:
        await _second_account(client, admin_headers, sample_patient_data)
        await create_invoice(client, admin_headers, account["id"], 80)

        response = await client.get(
            "/api/v1/billing/accounts", params={"has_outstanding_balance": True}, headers=admin_headers
        )

        items = response.json()["data"]["items"]
        assert [a["id"] for a in items] == [account["id"]]

    async def test_recalculate_ages_overdue_invoice(self, client: AsyncClient, admin_headers: dict,
                                                    account: dict) -> None:
        overdue = (date.today() - timedelta(days=45)).isoformat()
        await create_invoice(client, admin_headers, account["id"], 120, due_date=overdue)
        await create_invoice(client, admin_headers, account["id"], 30)

        response = await client.post(
            f"/api/v1/billing/accounts/{account['id']}/recalculate", headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["current_balance"] == 150
        assert data["aging_30"] == 120
        assert data["aging_60"] == 0
        assert data["balance_updated_at"] is not None

    async def test_cannot_delete_account_with_balance(self, client: AsyncClient, admin_headers: dict,
                                                      account: dict) -> None:
        await create_invoice(client, admin_headers, account["id"], 99.5)

        response = await client.delete(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "ACCOUNT_HAS_BALANCE"
        assert error["details"]["current_balance"] == 99.5

    async def test_delete_settled_account(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        response = await client.delete(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert response.status_code == 200

        response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ACCOUNT_NOT_FOUND"

    async def test_front_desk_cannot_delete_account(self, client: AsyncClient, front_desk_headers: dict,
                                                    account: dict) -> None:
        response = await client.delete(f"/api/v1/billing/accounts/{account['id']}", headers=front_desk_headers)
        assert response.status_code == 403


@pytest.mark.billing
@pytest.mark.integration
class TestInvoices:
    async def test_invoice_totals(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        response = await client.post(
            "/api/v1/billing/invoices",
            json={
                "account_id": account["id"],
                "line_items": [
                    {"description": "Comprehensive treatment", "unit_price": 1000, "insurance_amount": 400},
                    {"description": "Retainer", "quantity": 2, "unit_price": 150, "discount": 50},
                ],
                "adjustments": 100,
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        invoice = response.json()["data"]
        assert invoice["status"] == "PENDING"
        assert invoice["subtotal"] == 1250
        assert invoice["total_amount"] == 1150
        assert invoice["insurance_amount"] == 400
        assert invoice["patient_amount"] == 750
        assert invoice["balance"] == 1150
        assert invoice["line_items"][1]["total"] == 250
        assert invoice["invoice_number"].startswith("INV")

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert account_response.json()["data"]["current_balance"] == 1150

    async def test_discount_larger_than_line(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        response = await client.post(
            "/api/v1/billing/invoices",
            json={
                "account_id": account["id"],
                "line_items": [{"description": "Bracket repair", "unit_price": 40, "discount": 60}],
            },
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_LINE_ITEM"

    async def test_void_invoice(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 200)

        response = await client.post(
            f"/api/v1/billing/invoices/{invoice['id']}/void",
            json={"reason": "Entered twice"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "VOID"
        assert "Entered twice" in data["notes"]

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert account_response.json()["data"]["current_balance"] == 0

        again = await client.post(f"/api/v1/billing/invoices/{invoice['id']}/void", headers=admin_headers)
        assert again.json()["error"]["code"] == "INVALID_STATUS"

    async def test_void_paid_invoice_rejected(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 60)
        await client.post(
            "/api/v1/payments",
            json={"account_id": account["id"], "amount": 20, "payment_method_type": "CASH"},
            headers=admin_headers,
        )

        response = await client.post(f"/api/v1/billing/invoices/{invoice['id']}/void", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVOICE_HAS_PAYMENTS"


@pytest.mark.billing
@pytest.mark.integration
class TestCredits:
    """Credit issue, application, transfer and expiry"""

    async def _credit(self, client: AsyncClient, headers: dict, account_id: str, amount: float,
                      source: str = "ADJUSTMENT", expires_at: str = None) -> dict:
        payload = {"account_id": account_id, "amount": amount, "source": source}
        if expires_at:
            payload["expires_at"] = expires_at
        response = await client.post("/api/v1/billing/credits", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    async def test_create_credit_updates_account(self, client: AsyncClient, admin_headers: dict,
                                                 account: dict) -> None:
        credit = await self._credit(client, admin_headers, account["id"], 75)

        assert credit["status"] == "AVAILABLE"
        assert credit["remaining_amount"] == 75

        response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert response.json()["data"]["credit_balance"] == 75

    async def test_overpayment_credit_never_expires(self, client: AsyncClient, admin_headers: dict,
                                                    account: dict) -> None:
        expires = (utcnow() + timedelta(days=10)).isoformat()
        credit = await self._credit(client, admin_headers, account["id"], 10, "OVERPAYMENT", expires)

        assert credit["expires_at"] is None

    async def test_apply_credit_to_invoice(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 100)
        credit = await self._credit(client, admin_headers, account["id"], 60)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/apply",
            json={"invoice_id": invoice["id"], "amount": 60},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["amount_applied"] == 60
        assert data["credit"]["status"] == "APPLIED"
        assert data["credit"]["remaining_amount"] == 0
        assert data["invoice"]["status"] == "PARTIAL"
        assert data["invoice"]["balance"] == 40

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        body = account_response.json()["data"]
        assert body["current_balance"] == 40
        assert body["credit_balance"] == 0

    async def test_apply_more_than_credit(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 100)
        credit = await self._credit(client, admin_headers, account["id"], 20)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/apply",
            json={"invoice_id": invoice["id"], "amount": 25},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_CREDIT"

    async def test_apply_more_than_invoice_balance(self, client: AsyncClient, admin_headers: dict,
                                                   account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 15)
        credit = await self._credit(client, admin_headers, account["id"], 50)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/apply",
            json={"invoice_id": invoice["id"], "amount": 20},
            headers=admin_headers,
        )

        assert response.json()["error"]["code"] == "AMOUNT_EXCEEDS_BALANCE"

    async def test_apply_to_invoice_on_another_account(self, client: AsyncClient, admin_headers: dict,
                                                       account: dict, sample_patient_data: dict) -> None:
        other = await _second_account(client, admin_headers, sample_patient_data)
        invoice = await create_invoice(client, admin_headers, other["id"], 100)
        credit = await self._credit(client, admin_headers, account["id"], 50)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/apply",
            json={"invoice_id": invoice["id"], "amount": 10},
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INVOICE_NOT_FOUND"

    async def test_transfer_credit(self, client: AsyncClient, admin_headers: dict, account: dict,
                                   sample_patient_data: dict) -> None:
        other = await _second_account(client, admin_headers, sample_patient_data)
        expires = (utcnow() + timedelta(days=200)).replace(microsecond=0)
        credit = await self._credit(client, admin_headers, account["id"], 90, expires_at=expires.isoformat())

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/transfer",
            json={"to_account_id": other["id"], "amount": 30},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["source_credit"]["remaining_amount"] == 60
        assert data["source_credit"]["status"] == "AVAILABLE"
        assert data["new_credit"]["account_id"] == other["id"]
        assert data["new_credit"]["source"] == "TRANSFER"
        assert data["new_credit"]["source_id"] == credit["id"]
        assert datetime.fromisoformat(data["new_credit"]["expires_at"]) == expires

        dest = await client.get(f"/api/v1/billing/accounts/{other['id']}", headers=admin_headers)
        assert dest.json()["data"]["credit_balance"] == 30

    async def test_transfer_to_same_account(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        credit = await self._credit(client, admin_headers, account["id"], 40)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/transfer",
            json={"to_account_id": account["id"], "amount": 10},
            headers=admin_headers,
        )

        assert response.json()["error"]["code"] == "SAME_ACCOUNT"

    async def test_transfer_to_unknown_account(self, client: AsyncClient, admin_headers: dict,
                                               account: dict) -> None:
        credit = await self._credit(client, admin_headers, account["id"], 40)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/transfer",
            json={"to_account_id": str(uuid4()), "amount": 10},
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "DEST_ACCOUNT_NOT_FOUND"

    async def test_void_credit(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        credit = await self._credit(client, admin_headers, account["id"], 40)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/void", json={"reason": "Goodwill reversed"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "VOIDED"

        again = await client.post(f"/api/v1/billing/credits/{credit['id']}/void", headers=admin_headers)
        assert again.json()["error"]["code"] == "INVALID_STATUS"

    async def test_expire_credits(self, client: AsyncClient, db_session: AsyncSession, clinic: Clinic,
                                  admin_headers: dict, account: dict) -> None:
        past = (utcnow() - timedelta(days=1)).isoformat()
        lapsed = await self._credit(client, admin_headers, account["id"], 25, expires_at=past)
        kept = await self._credit(client, admin_headers, account["id"], 15)

        expired = await CreditService(db_session).expire_credits(clinic.id)

        assert expired == 1
        lapsed_response = await client.get(f"/api/v1/billing/credits/{lapsed['id']}", headers=admin_headers)
        assert lapsed_response.json()["data"]["status"] == "EXPIRED"
        kept_response = await client.get(f"/api/v1/billing/credits/{kept['id']}", headers=admin_headers)
        assert kept_response.json()["data"]["status"] == "AVAILABLE"

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert account_response.json()["data"]["credit_balance"] == 15

    async def test_expired_credit_cannot_be_applied(self, client: AsyncClient, admin_headers: dict,
                                                    account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 50)
        past = (utcnow() - timedelta(hours=1)).isoformat()
        credit = await self._credit(client, admin_headers, account["id"], 25, expires_at=past)

        response = await client.post(
            f"/api/v1/billing/credits/{credit['id']}/apply",
            json={"invoice_id": invoice["id"], "amount": 10},
            headers=admin_headers,
        )

        assert response.json()["error"]["code"] == "CREDIT_EXPIRED"

    async def test_credit_stats(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        soon = (utcnow() + timedelta(days=5)).isoformat()
        await self._credit(client, admin_headers, account["id"], 20, expires_at=soon)
        await self._credit(client, admin_headers, account["id"], 30)

        response = await client.get(
            "/api/v1/billing/credits", params={"account_id": account["id"]}, headers=admin_headers
        )

        stats = response.json()["data"]["stats"]
        assert stats["available_count"] == 2
        assert stats["available_amount"] == 50
        assert stats["expiring_soon_count"] == 1
        assert stats["expiring_soon_amount"] == 20
