import pytest
from datetime import date, timedelta
from httpx import AsyncClient
from uuid import uuid4

from orca.core.exceptions import ExternalServiceError
from tests.conftest import FakeGateway, create_invoice


async def _pay(client: AsyncClient, headers: dict, account_id: str, amount: float,
               method: str = "CASH", **extra):
    payload = {"account_id": account_id, "amount": amount, "payment_method_type": method, **extra}
    return await client.post("/api/v1/payments", json=payload, headers=headers)


@pytest.mark.billing
@pytest.mark.integration
class TestPayments:
    """Recording payments and allocating them to invoices"""

    async def test_cash_payment_pays_oldest_invoice_first(self, client: AsyncClient, admin_headers: dict,
                                                          account: dict) -> None:
        today = date.today()
        later = await create_invoice(client, admin_headers, account["id"], 100,
                                     due_date=(today + timedelta(days=20)).isoformat())
        sooner = await create_invoice(client, admin_headers, account["id"], 80,
                                      due_date=(today + timedelta(days=5)).isoformat())

        response = await _pay(client, admin_headers, account["id"], 120)

        assert response.status_code == 201
        payment = response.json()["data"]
        assert payment["status"] == "COMPLETED"
        assert payment["payment_number"].startswith("PAY")
        assert payment["processed_at"] is not None
        allocated = {a["invoice_id"]: a["amount"] for a in payment["allocations"]}
        assert allocated == {sooner["id"]: 80, later["id"]: 40}

        paid = await client.get(f"/api/v1/billing/invoices/{sooner['id']}", headers=admin_headers)
        assert paid.json()["data"]["status"] == "PAID"
        partial = await client.get(f"/api/v1/billing/invoices/{later['id']}", headers=admin_headers)
        assert partial.json()["data"]["status"] == "PARTIAL"
        assert partial.json()["data"]["balance"] == 60

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert account_response.json()["data"]["current_balance"] == 60

    async def test_overpayment_becomes_credit(self, client: AsyncClient, admin_headers: dict,
                                              account: dict) -> None:
        await create_invoice(client, admin_headers, account["id"], 50)

        response = await _pay(client, admin_headers, account["id"], 80)
        payment = response.json()["data"]

        credits = await client.get(
            "/api/v1/billing/credits", params={"account_id": account["id"]}, headers=admin_headers
        )
        items = credits.json()["data"]["items"]
        assert len(items) == 1
        assert items[0]["source"] == "OVERPAYMENT"
        assert items[0]["amount"] == 30
        assert items[0]["source_id"] == payment["id"]
        assert items[0]["expires_at"] is None

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        body = account_response.json()["data"]
        assert body["current_balance"] == 0
        assert body["credit_balance"] == 30

    async def test_explicit_allocations(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        first = await create_invoice(client, admin_headers, account["id"], 100)
        second = await create_invoice(client, admin_headers, account["id"], 100)

        response = await _pay(client, admin_headers, account["id"], 70,
                              allocations=[{"invoice_id": second["id"], "amount": 70}])

        assert response.status_code == 201
        allocations = response.json()["data"]["allocations"]
        assert [(a["invoice_id"], a["amount"]) for a in allocations] == [(second["id"], 70)]

        untouched = await client.get(f"/api/v1/billing/invoices/{first['id']}", headers=admin_headers)
        assert untouched.json()["data"]["balance"] == 100

    async def test_allocations_cannot_exceed_payment(self, client: AsyncClient, admin_headers: dict,
                                                     account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 100)

        response = await _pay(client, admin_headers, account["id"], 20,
                              allocations=[{"invoice_id": invoice["id"], "amount": 30}])

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ALLOCATION_EXCEEDS_PAYMENT"

    async def test_allocation_to_unknown_invoice(self, client: AsyncClient, admin_headers: dict,
                                                 account: dict) -> None:
        missing = str(uuid4())
        response = await _pay(client, admin_headers, account["id"], 20,
                              allocations=[{"invoice_id": missing, "amount": 20}])

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_INVOICES"
        assert error["details"]["invoice_ids"] == [missing]

    async def test_check_requires_number(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        response = await _pay(client, admin_headers, account["id"], 20, method="CHECK")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_card_payment_through_gateway(self, client: AsyncClient, admin_headers: dict,
                                                account: dict, gateway: FakeGateway) -> None:
        await create_invoice(client, admin_headers, account["id"], 200)

        response = await _pay(client, admin_headers, account["id"], 200,
                              method="CREDIT_CARD", payment_method_token="tok_visa")

        assert response.status_code == 201
        payment = response.json()["data"]
        assert payment["status"] == "COMPLETED"
        assert payment["gateway"] == "fake"
        assert payment["gateway_payment_id"] == "txn_1"
        assert payment["card_last4"] == "4242"
        assert gateway.charges == [{"amount": 200, "token": "tok_visa"}]

    async def test_declined_card_is_recorded_as_failed(self, client: AsyncClient, admin_headers: dict,
                                                       account: dict, gateway: FakeGateway) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 200)
        gateway.decline_with = "Card declined"

        response = await _pay(client, admin_headers, account["id"], 200,
                              method="CREDIT_CARD", payment_method_token="tok_declined")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "PAYMENT_DECLINED"
        assert error["message"] == "Card declined"

        failed = await client.get(f"/api/v1/payments/{error['details']['payment_id']}", headers=admin_headers)
        assert failed.json()["data"]["status"] == "FAILED"
        assert failed.json()["data"]["failure_reason"] == "Card declined"

        untouched = await client.get(f"/api/v1/billing/invoices/{invoice['id']}", headers=admin_headers)
        assert untouched.json()["data"]["balance"] == 200

    async def test_list_payments_with_stats(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        await _pay(client, admin_headers, account["id"], 25)
        await _pay(client, admin_headers, account["id"], 75, method="CHECK", check_number="1042")

        response = await client.get(
            "/api/v1/payments", params={"payment_method_type": "CHECK"}, headers=admin_headers
        )

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["check_number"] == "1042"
        assert data["stats"]["total_amount"] == 75
        assert data["stats"]["today_count"] == 2
        assert data["stats"]["today_amount"] == 100

    async def test_repeated_invoice_allocations_share_its_balance(self, client: AsyncClient,
                                                                  admin_headers: dict, account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 100)

        response = await _pay(client, admin_headers, account["id"], 160,
                              allocations=[{"invoice_id": invoice["id"], "amount": 80},
                                           {"invoice_id": invoice["id"], "amount": 80}])

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "AMOUNT_EXCEEDS_BALANCE"
        assert error["details"]["invoice_balance"] == 100

        untouched = await client.get(f"/api/v1/billing/invoices/{invoice['id']}", headers=admin_headers)
        assert untouched.json()["data"]["balance"] == 100
        assert untouched.json()["data"]["paid_amount"] == 0

    async def test_repeated_invoice_allocations_within_balance(self, client: AsyncClient,
                                                               admin_headers: dict, account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 100)

        response = await _pay(client, admin_headers, account["id"], 70,
                              allocations=[{"invoice_id": invoice["id"], "amount": 30},
                                           {"invoice_id": invoice["id"], "amount": 40}])

        assert response.status_code == 201
        partial = await client.get(f"/api/v1/billing/invoices/{invoice['id']}", headers=admin_headers)
        assert partial.json()["data"]["status"] == "PARTIAL"
        assert partial.json()["data"]["balance"] == 30
        assert partial.json()["data"]["paid_amount"] == 70

    async def test_gateway_outage_is_unavailable(self, client: AsyncClient, admin_headers: dict,
                                                 account: dict, gateway: FakeGateway) -> None:
        gateway.raise_error = ExternalServiceError(
            "Payment gateway is unavailable", details={"gateway": "fake"}, error_code="GATEWAY_ERROR"
        )

        response = await _pay(client, admin_headers, account["id"], 50,
                              method="CREDIT_CARD", payment_method_token="tok_visa")

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "GATEWAY_ERROR"
        assert error["details"]["gateway"] == "fake"


@pytest.mark.billing
@pytest.mark.integration
class TestRefunds:
    """Refund request, approval and processing"""

    async def _paid(self, client: AsyncClient, headers: dict, account_id: str, amount: float = 100,
                    **extra) -> dict:
        response = await _pay(client, headers, account_id, amount, **extra)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    async def _request(self, client: AsyncClient, headers: dict, payment_id: str, amount: float):
        return await client.post(
            "/api/v1/refunds",
            json={"payment_id": payment_id, "amount": amount, "reason": "Treatment discontinued"},
            headers=headers,
        )

    async def test_request_refund(self, client: AsyncClient, front_desk_headers: dict, admin_headers: dict,
                                  account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"])

        response = await self._request(client, front_desk_headers, payment["id"], 40)

        assert response.status_code == 201
        refund = response.json()["data"]
        assert refund["status"] == "PENDING"
        assert refund["refund_type"] == "PARTIAL"
        assert refund["refund_number"].startswith("REF")

    async def test_refund_cannot_exceed_payment(self, client: AsyncClient, admin_headers: dict,
                                                account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"])
        await self._request(client, admin_headers, payment["id"], 70)

        response = await self._request(client, admin_headers, payment["id"], 40)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "REFUND_EXCEEDS_PAYMENT"
        assert error["details"]["refundable_amount"] == 30

    async def test_rejected_refund_frees_amount(self, client: AsyncClient, admin_headers: dict,
                                                account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"])
        refund = (await self._request(client, admin_headers, payment["id"], 100)).json()["data"]

        rejected = await client.post(
            f"/api/v1/refunds/{refund['id']}/reject", json={"reason": "Duplicate request"}, headers=admin_headers
        )
        assert rejected.json()["data"]["status"] == "REJECTED"
        assert rejected.json()["data"]["rejection_reason"] == "Duplicate request"

        response = await self._request(client, admin_headers, payment["id"], 100)
        assert response.status_code == 201
        assert response.json()["data"]["refund_type"] == "FULL"

    async def test_reject_requires_reason(self, client: AsyncClient, admin_headers: dict, account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"])
        refund = (await self._request(client, admin_headers, payment["id"], 10)).json()["data"]

        response = await client.post(f"/api/v1/refunds/{refund['id']}/reject", headers=admin_headers)

        assert response.json()["error"]["code"] == "REASON_REQUIRED"

    async def test_front_desk_cannot_approve(self, client: AsyncClient, front_desk_headers: dict,
                                             admin_headers: dict, account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"])
        refund = (await self._request(client, front_desk_headers, payment["id"], 10)).json()["data"]

        response = await client.post(f"/api/v1/refunds/{refund['id']}/approve", headers=front_desk_headers)

        assert response.status_code == 403

    async def test_process_requires_approval(self, client: AsyncClient, admin_headers: dict,
                                             account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"])
        refund = (await self._request(client, admin_headers, payment["id"], 10)).json()["data"]

        response = await client.post(f"/api/v1/refunds/{refund['id']}/process", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STATUS"

    async def test_full_card_refund(self, client: AsyncClient, admin_headers: dict, account: dict,
                                    gateway: FakeGateway) -> None:
        payment = await self._paid(client, admin_headers, account["id"], 150,
                                   method="CREDIT_CARD", payment_method_token="tok_visa")
        refund = (await self._request(client, admin_headers, payment["id"], 150)).json()["data"]

        approved = await client.post(
            f"/api/v1/refunds/{refund['id']}/approve", json={"notes": "Approved by office manager"},
            headers=admin_headers,
        )
        assert approved.json()["data"]["status"] == "APPROVED"
        assert approved.json()["data"]["approval_notes"] == "Approved by office manager"

        response = await client.post(f"/api/v1/refunds/{refund['id']}/process", headers=admin_headers)

        assert response.status_code == 200
        processed = response.json()["data"]
        assert processed["status"] == "COMPLETED"
        assert processed["gateway_refund_id"] == "re_1"
        assert gateway.refunds == [{"transaction_id": "txn_1", "amount": 150}]

        refunded = await client.get(f"/api/v1/payments/{payment['id']}", headers=admin_headers)
        assert refunded.json()["data"]["status"] == "REFUNDED"

    async def test_partial_cash_refund(self, client: AsyncClient, admin_headers: dict, account: dict,
                                       gateway: FakeGateway) -> None:
        payment = await self._paid(client, admin_headers, account["id"])
        refund = (await self._request(client, admin_headers, payment["id"], 25)).json()["data"]
        await client.post(f"/api/v1/refunds/{refund['id']}/approve", headers=admin_headers)

        response = await client.post(f"/api/v1/refunds/{refund['id']}/process", headers=admin_headers)

        assert response.json()["data"]["status"] == "COMPLETED"
        assert gateway.refunds == []
        partial = await client.get(f"/api/v1/payments/{payment['id']}", headers=admin_headers)
        assert partial.json()["data"]["status"] == "PARTIALLY_REFUNDED"

    async def test_gateway_refund_failure(self, client: AsyncClient, admin_headers: dict, account: dict,
                                          gateway: FakeGateway) -> None:
        payment = await self._paid(client, admin_headers, account["id"], 60,
                                   method="DEBIT_CARD", payment_method_token="tok_debit")
        refund = (await self._request(client, admin_headers, payment["id"], 60)).json()["data"]
        await client.post(f"/api/v1/refunds/{refund['id']}/approve", headers=admin_headers)
        gateway.refund_error = "Charge already disputed"

        response = await client.post(f"/api/v1/refunds/{refund['id']}/process", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "REFUND_FAILED"

        failed = await client.get(f"/api/v1/refunds/{refund['id']}", headers=admin_headers)
        assert failed.json()["data"]["status"] == "FAILED"
        assert failed.json()["data"]["failure_reason"] == "Charge already disputed"

        still_paid = await client.get(f"/api/v1/payments/{payment['id']}", headers=admin_headers)
        assert still_paid.json()["data"]["status"] == "COMPLETED"

    async def _approved_and_processed(self, client: AsyncClient, headers: dict, payment_id: str,
                                      amount: float):
        refund = (await self._request(client, headers, payment_id, amount)).json()["data"]
        await client.post(f"/api/v1/refunds/{refund['id']}/approve", headers=headers)
        return await client.post(f"/api/v1/refunds/{refund['id']}/process", headers=headers)

    async def test_refund_takes_back_overpayment_credit(self, client: AsyncClient, admin_headers: dict,
                                                        account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"], 100)

        response = await self._approved_and_processed(client, admin_headers, payment["id"], 100)

        assert response.status_code == 200
        credits = await client.get(
            "/api/v1/billing/credits", params={"account_id": account["id"]}, headers=admin_headers
        )
        credit = credits.json()["data"]["items"][0]
        assert credit["status"] == "VOIDED"
        assert credit["remaining_amount"] == 0

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert account_response.json()["data"]["credit_balance"] == 0

    async def test_refund_reopens_paid_invoice(self, client: AsyncClient, admin_headers: dict,
                                               account: dict) -> None:
        invoice = await create_invoice(client, admin_headers, account["id"], 100)
        payment = await self._paid(client, admin_headers, account["id"], 130)

        response = await self._approved_and_processed(client, admin_headers, payment["id"], 70)

        assert response.status_code == 200
        reopened = await client.get(f"/api/v1/billing/invoices/{invoice['id']}", headers=admin_headers)
        body = reopened.json()["data"]
        assert body["status"] == "PARTIAL"
        assert body["balance"] == 40
        assert body["paid_amount"] == 60
        assert body["paid_at"] is None

        account_response = await client.get(f"/api/v1/billing/accounts/{account['id']}", headers=admin_headers)
        assert account_response.json()["data"]["current_balance"] == 40
        assert account_response.json()["data"]["credit_balance"] == 0

        detail = await client.get(f"/api/v1/payments/{payment['id']}", headers=admin_headers)
        amounts = sorted(a["amount"] for a in detail.json()["data"]["allocations"])
        assert amounts == [-40, 100]

    async def test_spent_credit_cannot_be_refunded(self, client: AsyncClient, admin_headers: dict,
                                                   account: dict) -> None:
        payment = await self._paid(client, admin_headers, account["id"], 100)
        invoice = await create_invoice(client, admin_headers, account["id"], 100)
        credits = await client.get(
            "/api/v1/billing/credits", params={"account_id": account["id"]}, headers=admin_headers
        )
        credit_id = credits.json()["data"]["items"][0]["id"]
        applied = await client.post(
            f"/api/v1/billing/credits/{credit_id}/apply",
            json={"invoice_id": invoice["id"], "amount": 60},
            headers=admin_headers,
        )
        assert applied.status_code == 200

        response = await self._request(client, admin_headers, payment["id"], 100)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "REFUND_NOT_REVERSIBLE"
        assert error["details"]["reversible_amount"] == 40
