from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.config import settings
from orca.core.exceptions import (
    BusinessLogicError,
    ConflictError,
    NotFoundError,
)
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.billing.models import (
    PAYABLE_INVOICE_STATUSES,
    AccountStatus,
    CreditBalance,
    CreditSource,
    CreditStatus,
    Invoice,
    InvoiceStatus,
    PatientAccount,
)
from orca.domain.billing.repository import (
    CreditBalanceRepository,
    InvoiceRepository,
    PatientAccountRepository,
)
from orca.domain.common.models import round_money, utcnow
from orca.domain.patients.repository import PatientRepository

logger = logging.getLogger(__name__)


def aging_bucket(days_past_due: int) -> Optional[str]:
    """Account column an overdue balance ages into, None while current"""
    if days_past_due <= 30:
        return None
    if days_past_due <= 60:
        return "aging_30"
    if days_past_due <= 90:
        return "aging_60"
    if days_past_due <= 120:
        return "aging_90"
    return "aging_120_plus"


def apply_amount_to_invoice(invoice: Invoice, amount: float, now: datetime) -> None:
    """Move ``amount`` from the invoice balance to paid"""
    amount = round_money(amount)
    if amount > invoice.balance:
        raise BusinessLogicError(
            "Amount exceeds invoice balance",
            details={"invoice_id": invoice.id, "invoice_balance": invoice.balance},
            error_code="AMOUNT_EXCEEDS_BALANCE",
        )
    invoice.paid_amount = round_money(invoice.paid_amount + amount)
    invoice.balance = round_money(invoice.balance - amount)
    if invoice.balance == 0:
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = now
    else:
        invoice.status = InvoiceStatus.PARTIAL


def reverse_amount_on_invoice(invoice: Invoice, amount: float) -> None:
    """Move ``amount`` from paid back to the invoice balance"""
    amount = round_money(min(amount, invoice.paid_amount))
    invoice.paid_amount = round_money(invoice.paid_amount - amount)
    invoice.balance = round_money(invoice.balance + amount)
    invoice.paid_at = None
    invoice.status = InvoiceStatus.PARTIAL if invoice.paid_amount > 0 else InvoiceStatus.PENDING


class AccountService:
    """Patient financial accounts and their running balances"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.account_repo = PatientAccountRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.credit_repo = CreditBalanceRepository(db)
        self.patient_repo = PatientRepository(db)
        self.audit = AuditLogger(db)

    async def get_account(self, clinic_id: str, account_id: str, error_code: str = "ACCOUNT_NOT_FOUND") -> PatientAccount:
        account = await self.account_repo.get(clinic_id, account_id)
        if not account:
            raise NotFoundError("Account not found", error_code=error_code)
        return account

    async def list_accounts(
        self,
        clinic_id: str,
        search: Optional[str] = None,
        patient_id: Optional[str] = None,
        guarantor_id: Optional[str] = None,
        status: Optional[AccountStatus] = None,
        account_type=None,
        has_outstanding_balance: Optional[bool] = None,
        min_balance: Optional[float] = None,
        max_balance: Optional[float] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
    ) -> Tuple[List[PatientAccount], int, Dict[str, Any]]:
        filters = []
        if patient_id:
            filters.append(PatientAccount.patient_id == patient_id)
        if guarantor_id:
            filters.append(PatientAccount.guarantor_id == guarantor_id)
        if status:
            filters.append(PatientAccount.status == status)
        if account_type:
            filters.append(PatientAccount.account_type == account_type)
        if has_outstanding_balance is True:
            filters.append(PatientAccount.current_balance > 0)
        elif has_outstanding_balance is False:
            filters.append(PatientAccount.current_balance <= 0)
        if min_balance is not None:
            filters.append(PatientAccount.current_balance >= min_balance)
        if max_balance is not None:
            filters.append(PatientAccount.current_balance <= max_balance)

        accounts, total = await self.account_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )
        stats = await self.account_repo.stats(clinic_id)
        return accounts, total, stats

    async def _check_guarantor(self, clinic_id: str, guarantor_id: Optional[str]) -> None:
        if guarantor_id and not await self.patient_repo.get(clinic_id, guarantor_id):
            raise BusinessLogicError("Guarantor not found", error_code="GUARANTOR_NOT_FOUND")

    async def create_account(self, data: Dict[str, Any], user: CurrentUser) -> PatientAccount:
        """Open the single financial account a patient may hold"""
        clinic_id = user.clinic_id
        if not await self.patient_repo.get(clinic_id, data["patient_id"]):
            raise NotFoundError("Patient not found", error_code="PATIENT_NOT_FOUND")

        if await self.account_repo.get_by_patient(clinic_id, data["patient_id"]):
            raise ConflictError("Patient already has a billing account", error_code="ACCOUNT_EXISTS")

        await self._check_guarantor(clinic_id, data.get("guarantor_id"))

        account = await self.account_repo.create({
            **data,
            "clinic_id": clinic_id,
            "account_number": await self.account_repo.next_number(clinic_id, "ACC", "account_number"),
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "PatientAccount", account.id, {
            "account_number": account.account_number,
            "patient_id": account.patient_id,
        })
        await self.db.commit()
        logger.info(f"Opened account {account.account_number} for patient {account.patient_id}")
        return account

    async def update_account(self, account_id: str, data: Dict[str, Any], user: CurrentUser) -> PatientAccount:
        account = await self.get_account(user.clinic_id, account_id)
        if "guarantor_id" in data:
            await self._check_guarantor(user.clinic_id, data["guarantor_id"])

        account = await self.account_repo.update(account, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "PatientAccount", account.id, {"fields": sorted(data)})
        await self.db.commit()
        return account

    async def delete_account(self, account_id: str, user: CurrentUser) -> None:
        account = await self.get_account(user.clinic_id, account_id)
        if round_money(account.current_balance) != 0:
            raise BusinessLogicError(
                "Account with an outstanding balance cannot be deleted",
                details={"current_balance": account.current_balance},
                error_code="ACCOUNT_HAS_BALANCE",
            )
        await self.account_repo.soft_delete(account, user.id)
        await self.audit.record(user, AuditAction.DELETE, "PatientAccount", account.id)
        await self.db.commit()

    async def recalculate_balance(self, clinic_id: str, account_id: str, today: Optional[date] = None) -> PatientAccount:
        """Rebuild balances, aging buckets and credit total from invoices and credits.

        Flushes only; callers commit alongside the change that triggered it.
        """
        account = await self.get_account(clinic_id, account_id)
        today = today or utcnow().date()

        totals = {
            "current_balance": 0.0,
            "insurance_balance": 0.0,
            "patient_balance": 0.0,
            "aging_30": 0.0,
            "aging_60": 0.0,
            "aging_90": 0.0,
            "aging_120_plus": 0.0,
        }
        for invoice in await self.invoice_repo.open_for_account(clinic_id, account_id):
            totals["current_balance"] += invoice.balance or 0
            totals["insurance_balance"] += invoice.insurance_amount or 0
            totals["patient_balance"] += invoice.patient_amount or 0

            if invoice.balance and invoice.balance > 0 and invoice.due_date:
                bucket = aging_bucket((today - invoice.due_date).days)
                if bucket:
                    totals[bucket] += invoice.balance

        credits = await self.credit_repo.available_for_account(clinic_id, account_id)
        totals["credit_balance"] = sum(credit.remaining_amount or 0 for credit in credits)

        for field, value in totals.items():
            setattr(account, field, round_money(value))
        account.balance_updated_at = utcnow()
        await self.db.flush()
        return account

    async def recalculate_and_commit(self, account_id: str, user: CurrentUser) -> PatientAccount:
        account = await self.recalculate_balance(user.clinic_id, account_id)
        await self.db.commit()
        return account


class InvoiceService:
    """Invoices raised against patient accounts"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.accounts = AccountService(db)
        self.audit = AuditLogger(db)

    @staticmethod
    def price_line_items(line_items: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], float, float]:
        """Total each line and return (lines, subtotal, insurance portion)"""
        priced = []
        subtotal = 0.0
        insurance = 0.0
        for item in line_items:
            line_total = round_money(item["quantity"] * item["unit_price"] - item.get("discount", 0))
            if line_total < 0:
                raise BusinessLogicError("Discount exceeds line amount", error_code="INVALID_LINE_ITEM")
            line_insurance = round_money(min(item.get("insurance_amount", 0), line_total))
            priced.append({**item, "insurance_amount": line_insurance, "total": line_total})
            subtotal += line_total
            insurance += line_insurance
        return priced, round_money(subtotal), round_money(insurance)

    async def get_invoice(self, clinic_id: str, invoice_id: str) -> Invoice:
        invoice = await self.invoice_repo.get(clinic_id, invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found", error_code="INVOICE_NOT_FOUND")
        return invoice

    async def list_invoices(self, clinic_id: str, account_id: Optional[str] = None,
                            patient_id: Optional[str] = None, status: Optional[InvoiceStatus] = None,
                            search: Optional[str] = None, page: int = 1, page_size: int = 20,
                            sort_by: Optional[str] = None, sort_order: str = "desc"):
        filters = []
        if account_id:
            filters.append(Invoice.account_id == account_id)
        if patient_id:
            filters.append(Invoice.patient_id == patient_id)
        if status:
            filters.append(Invoice.status == status)
        return await self.invoice_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def create_invoice(self, data: Dict[str, Any], user: CurrentUser) -> Invoice:
        account = await self.accounts.get_account(user.clinic_id, data["account_id"])
        line_items, subtotal, insurance = self.price_line_items(data.pop("line_items"))

        adjustments = round_money(data.pop("adjustments", 0))
        total = round_money(subtotal - adjustments)
        if total < 0:
            raise BusinessLogicError("Adjustments exceed invoice subtotal", error_code="INVALID_ADJUSTMENT")
        insurance = min(insurance, total)

        invoice_date = data.pop("invoice_date", None) or utcnow().date()
        as_draft = data.pop("draft", False)

        invoice = await self.invoice_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "patient_id": account.patient_id,
            "invoice_number": await self.invoice_repo.next_number(user.clinic_id, "INV", "invoice_number"),
            "status": InvoiceStatus.DRAFT if as_draft else InvoiceStatus.PENDING,
            "invoice_date": invoice_date,
            "due_date": data.get("due_date") or invoice_date + timedelta(days=30),
            "line_items": line_items,
            "subtotal": subtotal,
            "adjustments": adjustments,
            "total_amount": total,
            "insurance_amount": insurance,
            "patient_amount": round_money(total - insurance),
            "paid_amount": 0,
            "balance": total,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.accounts.recalculate_balance(user.clinic_id, account.id)
        await self.audit.record(user, AuditAction.CREATE, "Invoice", invoice.id, {
            "invoice_number": invoice.invoice_number,
            "total_amount": total,
        })
        await self.db.commit()
        return invoice

    async def void_invoice(self, invoice_id: str, reason: Optional[str], user: CurrentUser) -> Invoice:
        invoice = await self.get_invoice(user.clinic_id, invoice_id)
        if invoice.status == InvoiceStatus.VOID:
            raise BusinessLogicError("Invoice is already void", error_code="INVALID_STATUS")
        if invoice.paid_amount > 0:
            raise BusinessLogicError("Invoice has payments applied", error_code="INVOICE_HAS_PAYMENTS")

        invoice.status = InvoiceStatus.VOID
        invoice.voided_at = utcnow()
        invoice.updated_by = user.id
        if reason:
            invoice.notes = f"{invoice.notes}\nVoided: {reason}" if invoice.notes else f"Voided: {reason}"
        await self.db.flush()

        await self.accounts.recalculate_balance(user.clinic_id, invoice.account_id)
        await self.audit.record(user, AuditAction.UPDATE, "Invoice", invoice.id, {"status": "VOID", "reason": reason})
        await self.db.commit()
        return invoice


class CreditService:
    """Account credits: issuing, applying to invoices, transfers and expiry"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.credit_repo = CreditBalanceRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.accounts = AccountService(db)
        self.audit = AuditLogger(db)

    async def get_credit(self, clinic_id: str, credit_id: str) -> CreditBalance:
        credit = await self.credit_repo.get(clinic_id, credit_id)
        if not credit:
            raise NotFoundError("Credit not found", error_code="CREDIT_NOT_FOUND")
        return credit

    async def _available_credit(self, clinic_id: str, credit_id: str, now: datetime) -> CreditBalance:
        credit = await self.credit_repo.get(clinic_id, credit_id)
        if not credit or credit.status != CreditStatus.AVAILABLE:
            raise NotFoundError("Credit not found or not available", error_code="CREDIT_NOT_FOUND")
        if credit.expires_at and credit.expires_at <= now:
            raise BusinessLogicError("Credit has expired", error_code="CREDIT_EXPIRED")
        return credit

    async def list_credits(
        self,
        clinic_id: str,
        account_id: Optional[str] = None,
        status: Optional[CreditStatus] = None,
        source: Optional[CreditSource] = None,
        expiring_before: Optional[datetime] = None,
        min_amount: Optional[float] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
    ):
        filters = []
        if account_id:
            filters.append(CreditBalance.account_id == account_id)
        if status:
            filters.append(CreditBalance.status == status)
        if source:
            filters.append(CreditBalance.source == source)
        if expiring_before:
            filters.append(CreditBalance.expires_at.isnot(None))
            filters.append(CreditBalance.expires_at <= expiring_before)
        if min_amount is not None:
            filters.append(CreditBalance.remaining_amount >= min_amount)

        credits, total = await self.credit_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )
        return credits, total, await self.credit_stats(clinic_id, account_id)

    async def credit_stats(self, clinic_id: str, account_id: Optional[str] = None) -> Dict[str, Any]:
        now = utcnow()
        horizon = now + timedelta(days=settings.CREDIT_EXPIRING_SOON_DAYS)
        filters = [CreditBalance.status == CreditStatus.AVAILABLE]
        if account_id:
            filters.append(CreditBalance.account_id == account_id)
        available = await self.credit_repo.find(clinic_id, *filters)

        expiring = [c for c in available if c.expires_at and now < c.expires_at <= horizon]
        return {
            "available_count": len(available),
            "available_amount": round_money(sum(c.remaining_amount for c in available)),
            "expiring_soon_count": len(expiring),
            "expiring_soon_amount": round_money(sum(c.remaining_amount for c in expiring)),
        }

    async def create_credit(self, data: Dict[str, Any], user: CurrentUser) -> CreditBalance:
        account = await self.accounts.get_account(user.clinic_id, data["account_id"])
        credit = await self.issue_credit(
            clinic_id=user.clinic_id,
            account_id=account.id,
            amount=data["amount"],
            source=data["source"],
            description=data.get("description"),
            expires_at=data.get("expires_at"),
            source_id=data.get("source_id"),
            user_id=user.id,
        )
        await self.accounts.recalculate_balance(user.clinic_id, account.id)
        await self.audit.record(user, AuditAction.CREATE, "CreditBalance", credit.id, {
            "amount": credit.amount,
            "source": credit.source.value,
        })
        await self.db.commit()
        return credit

    async def issue_credit(self, clinic_id: str, account_id: str, amount: float, source: CreditSource,
                           description: Optional[str] = None, expires_at: Optional[datetime] = None,
                           source_id: Optional[str] = None, user_id: Optional[str] = None) -> CreditBalance:
        """Insert an AVAILABLE credit; overpayment credits never expire"""
        amount = round_money(amount)
        if amount <= 0:
            raise BusinessLogicError("Credit amount must be positive", error_code="INVALID_AMOUNT")
        if source == CreditSource.OVERPAYMENT:
            expires_at = None

        return await self.credit_repo.create({
            "clinic_id": clinic_id,
            "account_id": account_id,
            "amount": amount,
            "remaining_amount": amount,
            "source": source,
            "source_id": source_id,
            "description": description,
            "status": CreditStatus.AVAILABLE,
            "expires_at": expires_at,
            "created_by": user_id,
            "updated_by": user_id,
        })

    @staticmethod
    def draw_down(credit: CreditBalance, amount: float) -> None:
        credit.remaining_amount = round_money(credit.remaining_amount - amount)
        credit.status = CreditStatus.APPLIED if credit.remaining_amount <= 0 else CreditStatus.AVAILABLE
        if credit.remaining_amount < 0:
            credit.remaining_amount = 0

    async def apply_credit(self, credit_id: str, invoice_id: str, amount: float, user: CurrentUser) -> Dict[str, Any]:
        """Pay down an invoice on the same account from a credit"""
        now = utcnow()
        amount = round_money(amount)
        credit = await self._available_credit(user.clinic_id, credit_id, now)

        if amount > credit.remaining_amount:
            raise BusinessLogicError(
                "Amount exceeds available credit",
                details={"remaining_amount": credit.remaining_amount},
                error_code="INSUFFICIENT_CREDIT",
            )

        invoice = await self.invoice_repo.get(user.clinic_id, invoice_id)
        if not invoice or invoice.account_id != credit.account_id:
            raise NotFoundError("Invoice not found on this account", error_code="INVOICE_NOT_FOUND")
        if invoice.status not in PAYABLE_INVOICE_STATUSES:
            raise BusinessLogicError("Invoice cannot accept payments", error_code="INVOICE_NOT_PAYABLE")
        if amount > invoice.balance:
            raise BusinessLogicError(
                "Amount exceeds invoice balance",
                details={"invoice_balance": invoice.balance},
                error_code="AMOUNT_EXCEEDS_BALANCE",
            )

        self.draw_down(credit, amount)
        credit.updated_by = user.id
        apply_amount_to_invoice(invoice, amount, now)
        invoice.updated_by = user.id
        await self.db.flush()

        await self.accounts.recalculate_balance(user.clinic_id, credit.account_id)
        await self.audit.record(user, AuditAction.UPDATE, "CreditBalance", credit.id, {
            "applied_to_invoice": invoice.id,
            "amount": amount,
        })
        await self.db.commit()
        return {"credit": credit, "invoice": invoice, "amount_applied": amount}

    async def transfer_credit(self, credit_id: str, to_account_id: str, amount: float,
                              user: CurrentUser) -> Dict[str, Any]:
        """Move part of a credit onto another account as a new TRANSFER credit"""
        now = utcnow()
        amount = round_money(amount)
        credit = await self._available_credit(user.clinic_id, credit_id, now)

        if to_account_id == credit.account_id:
            raise BusinessLogicError("Cannot transfer credit to the same account", error_code="SAME_ACCOUNT")

        destination = await self.accounts.get_account(
            user.clinic_id, to_account_id, error_code="DEST_ACCOUNT_NOT_FOUND"
        )
        if amount > credit.remaining_amount:
            raise BusinessLogicError(
                "Amount exceeds available credit",
                details={"remaining_amount": credit.remaining_amount},
                error_code="INSUFFICIENT_CREDIT",
            )

        source_account = await self.accounts.get_account(user.clinic_id, credit.account_id)
        self.draw_down(credit, amount)
        credit.updated_by = user.id

        new_credit = await self.issue_credit(
            clinic_id=user.clinic_id,
            account_id=destination.id,
            amount=amount,
            source=CreditSource.TRANSFER,
            description=f"Transferred from account {source_account.account_number}",
            expires_at=credit.expires_at,
            source_id=credit.id,
            user_id=user.id,
        )

        await self.accounts.recalculate_balance(user.clinic_id, source_account.id)
        await self.accounts.recalculate_balance(user.clinic_id, destination.id)
        await self.audit.record(user, AuditAction.UPDATE, "CreditBalance", credit.id, {
            "transferred_to": destination.id,
            "new_credit_id": new_credit.id,
            "amount": amount,
        })
        await self.db.commit()
        return {"source_credit": credit, "new_credit": new_credit}

    async def void_credit(self, credit_id: str, reason: Optional[str], user: CurrentUser) -> CreditBalance:
        credit = await self.get_credit(user.clinic_id, credit_id)
        if credit.status != CreditStatus.AVAILABLE:
            raise BusinessLogicError("Only available credits can be voided", error_code="INVALID_STATUS")

        credit.status = CreditStatus.VOIDED
        credit.updated_by = user.id
        if reason:
            credit.description = f"{credit.description or ''} (voided: {reason})".strip()
        await self.db.flush()

        await self.accounts.recalculate_balance(user.clinic_id, credit.account_id)
        await self.audit.record(user, AuditAction.UPDATE, "CreditBalance", credit.id, {"status": "VOIDED"})
        await self.db.commit()
        return credit

    async def expire_credits(self, clinic_id: str, now: Optional[datetime] = None) -> int:
        """Mark available credits past their expiry as EXPIRED"""
        now = now or utcnow()
        expired = await self.credit_repo.find(
            clinic_id,
            CreditBalance.status == CreditStatus.AVAILABLE,
            CreditBalance.expires_at.isnot(None),
            CreditBalance.expires_at <= now,
        )
        for credit in expired:
            credit.status = CreditStatus.EXPIRED
        await self.db.flush()

        for account_id in {credit.account_id for credit in expired}:
            await self.accounts.recalculate_balance(clinic_id, account_id)
        await self.db.commit()

        if expired:
            logger.info(f"Expired {len(expired)} credits in clinic {clinic_id}")
        return len(expired)
