from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import BusinessLogicError, NotFoundError
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.billing.models import (
    PAYABLE_INVOICE_STATUSES,
    CreditBalance,
    CreditSource,
    CreditStatus,
    Invoice,
    InvoiceStatus,
)
from orca.domain.billing.repository import CreditBalanceRepository, InvoiceRepository
from orca.domain.billing.service import (
    AccountService,
    CreditService,
    apply_amount_to_invoice,
    reverse_amount_on_invoice,
)
from orca.domain.common.models import round_money, utcnow
from orca.domain.payments.models import (
    OFFLINE_METHODS,
    Payment,
    PaymentSourceType,
    PaymentStatus,
    Refund,
    RefundStatus,
    RefundType,
)
from orca.domain.payments.repository import PaymentRepository, RefundRepository
from orca.infrastructure.payments import PaymentGateway

logger = logging.getLogger(__name__)

REFUNDABLE_PAYMENT_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED)
# Refunds that still hold a claim on the payment amount
OPEN_REFUND_STATUSES = (
    RefundStatus.PENDING,
    RefundStatus.APPROVED,
    RefundStatus.PROCESSING,
    RefundStatus.COMPLETED,
)


class PaymentService:
    """Recording payments, routing card charges and applying money to invoices"""

    def __init__(self, db: AsyncSession, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway
        self.payment_repo = PaymentRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.accounts = AccountService(db)
        self.credits = CreditService(db)
        self.audit = AuditLogger(db)

    async def get_payment(self, clinic_id: str, payment_id: str) -> Payment:
        payment = await self.payment_repo.get(clinic_id, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", error_code="PAYMENT_NOT_FOUND")
        return payment

    async def get_allocations(self, payment_id: str):
        return await self.payment_repo.allocations(payment_id)

    async def list_payments(
        self,
        clinic_id: str,
        account_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        payment_type=None,
        payment_method_type=None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        min_amount: Optional[float] = None,
        max_amount: Optional[float] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
    ):
        filters = []
        if account_id:
            filters.append(Payment.account_id == account_id)
        if patient_id:
            filters.append(Payment.patient_id == patient_id)
        if status:
            filters.append(Payment.status == status)
        if payment_type:
            filters.append(Payment.payment_type == payment_type)
        if payment_method_type:
            filters.append(Payment.payment_method_type == payment_method_type)
        if date_from:
            filters.append(Payment.payment_date >= date_from)
        if date_to:
            filters.append(Payment.payment_date <= date_to)
        if min_amount is not None:
            filters.append(Payment.amount >= min_amount)
        if max_amount is not None:
            filters.append(Payment.amount <= max_amount)

        payments, total = await self.payment_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

        start_of_day = datetime.combine(utcnow().date(), time.min)
        total_count, total_amount = await self.payment_repo.totals(clinic_id, *filters)
        today_count, today_amount = await self.payment_repo.totals(
            clinic_id,
            Payment.payment_date >= start_of_day,
            Payment.payment_date < start_of_day + timedelta(days=1),
        )
        stats = {
            "total_count": total_count,
            "total_amount": total_amount,
            "today_count": today_count,
            "today_amount": today_amount,
        }
        return payments, total, stats

    async def _validated_invoices(self, clinic_id: str, account_id: str,
                                  allocations: List[Dict[str, Any]]) -> Dict[str, Invoice]:
        # Several allocations may target the same invoice; they share its balance
        requested: Dict[str, float] = {}
        for allocation in allocations:
            invoice_id = allocation["invoice_id"]
            requested[invoice_id] = round_money(requested.get(invoice_id, 0) + allocation["amount"])

        invoices: Dict[str, Invoice] = {}
        invalid = []
        for invoice_id, amount in requested.items():
            invoice = await self.invoice_repo.get(clinic_id, invoice_id)
            if (not invoice or invoice.account_id != account_id
                    or invoice.status not in PAYABLE_INVOICE_STATUSES):
                invalid.append(invoice_id)
                continue
            if amount > invoice.balance:
                raise BusinessLogicError(
                    "Allocation exceeds invoice balance",
                    details={"invoice_id": invoice.id, "invoice_balance": invoice.balance},
                    error_code="AMOUNT_EXCEEDS_BALANCE",
                )
            invoices[invoice.id] = invoice

        if invalid:
            raise BusinessLogicError(
                "One or more invoices are missing or cannot accept payments",
                details={"invoice_ids": invalid},
                error_code="INVALID_INVOICES",
            )
        return invoices

    async def apply_payment(self, payment: Payment, allocations: List[Dict[str, Any]],
                            invoices: Optional[Dict[str, Invoice]] = None) -> float:
        """Allocate a completed payment to invoices and return the unallocated remainder.

        Without explicit allocations the payment pays down open invoices
        oldest due date first.
        """
        now = utcnow()
        if allocations:
            plan = [(invoices[a["invoice_id"]], round_money(a["amount"])) for a in allocations]
        else:
            open_invoices = await self.invoice_repo.find(
                payment.clinic_id,
                Invoice.account_id == payment.account_id,
                Invoice.status.in_(PAYABLE_INVOICE_STATUSES),
                Invoice.balance > 0,
            )
            open_invoices.sort(key=lambda inv: (inv.due_date, inv.created_at))
            plan = []
            left = payment.amount
            for invoice in open_invoices:
                if left <= 0:
                    break
                portion = round_money(min(left, invoice.balance))
                plan.append((invoice, portion))
                left = round_money(left - portion)

        allocated = 0.0
        for invoice, amount in plan:
            if amount <= 0:
                continue
            await self.payment_repo.add_allocation({
                "clinic_id": payment.clinic_id,
                "payment_id": payment.id,
                "invoice_id": invoice.id,
                "amount": amount,
            })
            apply_amount_to_invoice(invoice, amount, now)
            allocated += amount

        await self.db.flush()
        return round_money(payment.amount - allocated)

    async def create_payment(self, data: Dict[str, Any], user: CurrentUser) -> Payment:
        """Record a payment; offline methods settle now, cards and ACH go through the gateway"""
        clinic_id = user.clinic_id
        account = await self.accounts.get_account(clinic_id, data["account_id"])

        patient_id = data.get("patient_id") or account.patient_id
        if patient_id != account.patient_id:
            raise BusinessLogicError("Patient does not match account", error_code="PATIENT_MISMATCH")

        amount = round_money(data["amount"])
        allocations = data.pop("allocations", None) or []
        if round_money(sum(a["amount"] for a in allocations)) > amount:
            raise BusinessLogicError(
                "Allocations exceed payment amount", error_code="ALLOCATION_EXCEEDS_PAYMENT"
            )
        invoices = await self._validated_invoices(clinic_id, account.id, allocations)

        payment_method_token = data.pop("payment_method_token", None)
        now = utcnow()
        payment = await self.payment_repo.create({
            **data,
            "clinic_id": clinic_id,
            "patient_id": patient_id,
            "amount": amount,
            "payment_number": await self.payment_repo.next_number(clinic_id, "PAY", "payment_number"),
            "payment_date": data.get("payment_date") or now,
            "source_type": data.get("source_type") or PaymentSourceType.MANUAL,
            "status": PaymentStatus.PENDING,
            "created_by": user.id,
            "updated_by": user.id,
        })

        if payment.payment_method_type in OFFLINE_METHODS:
            payment.status = PaymentStatus.COMPLETED
            payment.processed_at = now
        else:
            payment.status = PaymentStatus.PROCESSING
            result = await self.gateway.charge(
                amount,
                payment_method_token,
                description=f"Payment {payment.payment_number}",
                metadata={"clinic_id": clinic_id, "payment_id": payment.id},
            )
            payment.gateway = self.gateway.name
            if result.success:
                payment.status = PaymentStatus.COMPLETED
                payment.gateway_payment_id = result.transaction_id
                payment.card_last4 = payment.card_last4 or result.card_last4
                payment.card_brand = payment.card_brand or result.card_brand
                payment.processed_at = now
            else:
                payment.status = PaymentStatus.FAILED
                payment.failure_reason = result.error
                await self.db.flush()
                await self.audit.record(user, AuditAction.CREATE, "Payment", payment.id, {
                    "status": "FAILED",
                    "error": result.error,
                })
                await self.db.commit()
                logger.warning(f"Payment {payment.payment_number} declined: {result.error}")
                raise BusinessLogicError(
                    result.error or "Payment was declined",
                    details={"payment_id": payment.id},
                    error_code="PAYMENT_DECLINED",
                )

        remainder = await self.apply_payment(payment, allocations, invoices)
        if remainder > 0:
            await self.credits.issue_credit(
                clinic_id=clinic_id,
                account_id=account.id,
                amount=remainder,
                source=CreditSource.OVERPAYMENT,
                description=f"Overpayment on {payment.payment_number}",
                source_id=payment.id,
                user_id=user.id,
            )

        await self.accounts.recalculate_balance(clinic_id, account.id)
        await self.audit.record(user, AuditAction.CREATE, "Payment", payment.id, {
            "payment_number": payment.payment_number,
            "amount": amount,
            "method": payment.payment_method_type.value,
            "unallocated": remainder,
        })
        await self.db.commit()
        logger.info(f"Recorded payment {payment.payment_number} for {amount:.2f}")
        return payment


class RefundService:
    """Refund requests and their approve, reject and process workflow"""

    def __init__(self, db: AsyncSession, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway
        self.refund_repo = RefundRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.credit_repo = CreditBalanceRepository(db)
        self.accounts = AccountService(db)
        self.audit = AuditLogger(db)

    async def get_refund(self, clinic_id: str, refund_id: str) -> Refund:
        refund = await self.refund_repo.get(clinic_id, refund_id)
        if not refund:
            raise NotFoundError("Refund not found", error_code="REFUND_NOT_FOUND")
        return refund

    async def list_refunds(self, clinic_id: str, payment_id: Optional[str] = None,
                           account_id: Optional[str] = None, status: Optional[RefundStatus] = None,
                           search: Optional[str] = None, page: int = 1, page_size: int = 20,
                           sort_by: Optional[str] = None, sort_order: str = "desc"):
        filters = []
        if payment_id:
            filters.append(Refund.payment_id == payment_id)
        if account_id:
            filters.append(Refund.account_id == account_id)
        if status:
            filters.append(Refund.status == status)
        return await self.refund_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def request_refund(self, data: Dict[str, Any], user: CurrentUser) -> Refund:
        payment = await self.payment_repo.get(user.clinic_id, data["payment_id"])
        if not payment:
            raise NotFoundError("Payment not found", error_code="PAYMENT_NOT_FOUND")
        if payment.status not in REFUNDABLE_PAYMENT_STATUSES:
            raise BusinessLogicError(
                f"Cannot refund a payment in {payment.status.value} status",
                error_code="PAYMENT_NOT_REFUNDABLE",
            )

        amount = round_money(data["amount"])
        already_claimed = await self.refund_repo.committed_amount(
            user.clinic_id, payment.id, *OPEN_REFUND_STATUSES
        )
        refundable = round_money(payment.amount - already_claimed)
        if amount > refundable:
            raise BusinessLogicError(
                "Refund exceeds the refundable amount",
                details={"refundable_amount": refundable},
                error_code="REFUND_EXCEEDS_PAYMENT",
            )
        await self._plan_reversal(payment, amount)

        refund = await self.refund_repo.create({
            "clinic_id": user.clinic_id,
            "refund_number": await self.refund_repo.next_number(user.clinic_id, "REF", "refund_number"),
            "payment_id": payment.id,
            "account_id": payment.account_id,
            "amount": amount,
            "reason": data["reason"],
            "refund_type": RefundType.FULL if amount == round_money(payment.amount) else RefundType.PARTIAL,
            "status": RefundStatus.PENDING,
            "requested_by": user.id,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "Refund", refund.id, {
            "refund_number": refund.refund_number,
            "payment_id": payment.id,
            "amount": amount,
        })
        await self.db.commit()
        return refund

    async def _plan_reversal(self, payment: Payment, amount: float):
        """Split a refund into what the payment still funds.

        Unspent overpayment credit issued from the payment is taken back
        first, then invoice allocations, most recent invoice first. Credit
        already spent elsewhere cannot be taken back, so a refund larger
        than the remainder is refused.
        """
        left = round_money(amount)
        credit_steps = []
        credits = await self.credit_repo.find(
            payment.clinic_id,
            CreditBalance.source == CreditSource.OVERPAYMENT,
            CreditBalance.source_id == payment.id,
            CreditBalance.status == CreditStatus.AVAILABLE,
        )
        for credit in credits:
            if left <= 0:
                break
            portion = round_money(min(left, credit.remaining_amount))
            credit_steps.append((credit, portion))
            left = round_money(left - portion)

        # Net per invoice, reversal rows are negative
        funded: Dict[str, float] = {}
        for allocation in await self.payment_repo.allocations(payment.id):
            funded[allocation.invoice_id] = round_money(funded.get(allocation.invoice_id, 0) + allocation.amount)

        invoice_steps = []
        for invoice_id in reversed(list(funded)):
            if left <= 0:
                break
            invoice = await self.invoice_repo.get(payment.clinic_id, invoice_id)
            if not invoice or invoice.status == InvoiceStatus.VOID:
                continue
            portion = round_money(min(left, funded[invoice_id], invoice.paid_amount))
            if portion <= 0:
                continue
            invoice_steps.append((invoice, portion))
            left = round_money(left - portion)

        if left > 0:
            raise BusinessLogicError(
                "Refund exceeds what the payment still funds",
                details={"reversible_amount": round_money(amount - left)},
                error_code="REFUND_NOT_REVERSIBLE",
            )
        return credit_steps, invoice_steps

    async def _reverse_payment(self, payment: Payment, refund: Refund, user: CurrentUser) -> Dict[str, Any]:
        credit_steps, invoice_steps = await self._plan_reversal(payment, refund.amount)

        for credit, portion in credit_steps:
            credit.remaining_amount = round_money(credit.remaining_amount - portion)
            if credit.remaining_amount <= 0:
                credit.remaining_amount = 0
                credit.status = CreditStatus.VOIDED
            note = f"(refunded {portion:.2f} on {refund.refund_number})"
            credit.description = f"{credit.description or ''} {note}".strip()
            credit.updated_by = user.id

        for invoice, portion in invoice_steps:
            reverse_amount_on_invoice(invoice, portion)
            invoice.updated_by = user.id
            await self.payment_repo.add_allocation({
                "clinic_id": payment.clinic_id,
                "payment_id": payment.id,
                "invoice_id": invoice.id,
                "amount": -portion,
            })
        await self.db.flush()

        return {
            "credits_reversed": {credit.id: portion for credit, portion in credit_steps},
            "invoices_reopened": {invoice.id: portion for invoice, portion in invoice_steps},
        }

    def _require_status(self, refund: Refund, expected: RefundStatus, action: str) -> None:
        if refund.status != expected:
            raise BusinessLogicError(
                f"Cannot {action} a refund in {refund.status.value} status",
                details={"status": refund.status.value},
                error_code="INVALID_STATUS",
            )

    async def approve_refund(self, refund_id: str, user: CurrentUser, notes: Optional[str] = None) -> Refund:
        refund = await self.get_refund(user.clinic_id, refund_id)
        self._require_status(refund, RefundStatus.PENDING, "approve")

        refund.status = RefundStatus.APPROVED
        refund.approved_by = user.id
        refund.approved_at = utcnow()
        refund.approval_notes = notes
        refund.updated_by = user.id
        await self.db.flush()

        await self.audit.record(user, AuditAction.APPROVE, "Refund", refund.id, {"notes": notes})
        await self.db.commit()
        return refund

    async def reject_refund(self, refund_id: str, user: CurrentUser, reason: Optional[str]) -> Refund:
        refund = await self.get_refund(user.clinic_id, refund_id)
        self._require_status(refund, RefundStatus.PENDING, "reject")
        if not reason or not reason.strip():
            raise BusinessLogicError("A reason is required to reject a refund", error_code="REASON_REQUIRED")

        refund.status = RefundStatus.REJECTED
        refund.rejected_by = user.id
        refund.rejected_at = utcnow()
        refund.rejection_reason = reason.strip()
        refund.updated_by = user.id
        await self.db.flush()

        await self.audit.record(user, AuditAction.REJECT, "Refund", refund.id, {"reason": refund.rejection_reason})
        await self.db.commit()
        return refund

    async def process_refund(self, refund_id: str, user: CurrentUser) -> Refund:
        """Send an approved refund back to the payer and settle the payment status"""
        refund = await self.get_refund(user.clinic_id, refund_id)
        self._require_status(refund, RefundStatus.APPROVED, "process")
        payment = await self.payment_repo.get(user.clinic_id, refund.payment_id)
        if not payment:
            raise NotFoundError("Payment not found", error_code="PAYMENT_NOT_FOUND")

        # Refuse before money moves at the gateway
        await self._plan_reversal(payment, refund.amount)

        now = utcnow()
        refund.status = RefundStatus.PROCESSING
        if payment.gateway_payment_id and self.gateway is not None:
            result = await self.gateway.refund(payment.gateway_payment_id, refund.amount, refund.reason)
            if not result.success:
                refund.status = RefundStatus.FAILED
                refund.failure_reason = result.error
                refund.updated_by = user.id
                await self.db.flush()
                await self.audit.record(user, AuditAction.PROCESS, "Refund", refund.id, {
                    "status": "FAILED",
                    "error": result.error,
                })
                await self.db.commit()
                raise BusinessLogicError(
                    result.error or "Refund failed at the gateway",
                    details={"refund_id": refund.id},
                    error_code="REFUND_FAILED",
                )
            refund.gateway_refund_id = result.transaction_id

        refund.status = RefundStatus.COMPLETED
        refund.processed_by = user.id
        refund.processed_at = now
        refund.updated_by = user.id
        await self.db.flush()
        reversal = await self._reverse_payment(payment, refund, user)

        refunded = await self.refund_repo.committed_amount(user.clinic_id, payment.id, RefundStatus.COMPLETED)
        payment.status = (
            PaymentStatus.REFUNDED if refunded >= round_money(payment.amount)
            else PaymentStatus.PARTIALLY_REFUNDED
        )
        payment.updated_by = user.id
        await self.db.flush()

        await self.accounts.recalculate_balance(user.clinic_id, payment.account_id)
        await self.audit.record(user, AuditAction.PROCESS, "Refund", refund.id, {
            "amount": refund.amount,
            "payment_status": payment.status.value,
            **reversal,
        })
        await self.db.commit()
        logger.info(f"Processed refund {refund.refund_number} for {refund.amount:.2f}")
        return refund
