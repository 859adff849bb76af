from typing import List, Optional
from sqlalchemy import select, func, or_, and_

from orca.domain.common.repository import ClinicScopedRepository
from orca.domain.billing.models import (
    PatientAccount,
    Invoice,
    InvoiceStatus,
    CreditBalance,
    CreditStatus,
    PaymentPlan,
    PaymentPlanStatus,
    ScheduledPayment,
    ScheduledPaymentStatus,
)
from orca.domain.patients.models import Patient


class PatientAccountRepository(ClinicScopedRepository[PatientAccount]):
    model = PatientAccount
    sortable_fields = (
        "created_at", "updated_at", "account_number", "current_balance",
        "patient_balance", "insurance_balance", "status",
    )

    def apply_search(self, query, search: Optional[str]):
        if not search:
            return query
        pattern = f"%{search.strip()}%"
        patient_ids = select(Patient.id).where(
            or_(Patient.first_name.ilike(pattern), Patient.last_name.ilike(pattern))
        )
        return query.where(or_(
            PatientAccount.account_number.ilike(pattern),
            PatientAccount.patient_id.in_(patient_ids),
        ))

    async def get_by_patient(self, clinic_id: str, patient_id: str) -> Optional[PatientAccount]:
        result = await self.db.execute(
            self.base_query(clinic_id).where(PatientAccount.patient_id == patient_id)
        )
        return result.scalars().first()

    async def stats(self, clinic_id: str) -> dict:
        """Clinic-wide balance totals and per-status counts"""
        scope = and_(PatientAccount.clinic_id == clinic_id, PatientAccount.deleted_at.is_(None))
        totals = (await self.db.execute(
            select(
                func.count(PatientAccount.id),
                func.coalesce(func.sum(PatientAccount.current_balance), 0),
                func.coalesce(func.sum(PatientAccount.insurance_balance), 0),
                func.coalesce(func.sum(PatientAccount.patient_balance), 0),
                func.coalesce(func.sum(PatientAccount.credit_balance), 0),
            ).where(scope)
        )).one()
        status_rows = (await self.db.execute(
            select(PatientAccount.status, func.count(PatientAccount.id))
            .where(scope)
            .group_by(PatientAccount.status)
        )).all()

        return {
            "total_accounts": totals[0],
            "total_balance": round(float(totals[1]), 2),
            "total_insurance_balance": round(float(totals[2]), 2),
            "total_patient_balance": round(float(totals[3]), 2),
            "total_credit_balance": round(float(totals[4]), 2),
            "status_counts": {status.value: count for status, count in status_rows},
        }


class InvoiceRepository(ClinicScopedRepository[Invoice]):
    model = Invoice
    search_fields = ("invoice_number",)
    sortable_fields = ("created_at", "invoice_date", "due_date", "balance", "invoice_number")

    async def open_for_account(self, clinic_id: str, account_id: str) -> List[Invoice]:
        """Invoices counted toward the account balance"""
        return await self.find(
            clinic_id,
            Invoice.account_id == account_id,
            Invoice.status.notin_([InvoiceStatus.DRAFT, InvoiceStatus.VOID]),
        )


class CreditBalanceRepository(ClinicScopedRepository[CreditBalance]):
    model = CreditBalance
    search_fields = ("description",)
    sortable_fields = ("created_at", "amount", "remaining_amount", "expires_at")

    async def available_for_account(self, clinic_id: str, account_id: str) -> List[CreditBalance]:
        return await self.find(
            clinic_id,
            CreditBalance.account_id == account_id,
            CreditBalance.status == CreditStatus.AVAILABLE,
        )


class PaymentPlanRepository(ClinicScopedRepository[PaymentPlan]):
    model = PaymentPlan
    search_fields = ("plan_number",)
    sortable_fields = ("created_at", "start_date", "next_payment_date", "total_amount", "remaining_balance")


class ScheduledPaymentRepository(ClinicScopedRepository[ScheduledPayment]):
    model = ScheduledPayment
    sortable_fields = ("scheduled_date", "created_at")
    default_sort = "scheduled_date"

    async def for_plan(self, clinic_id: str, plan_id: str, *statuses: ScheduledPaymentStatus) -> List[ScheduledPayment]:
        query = self.base_query(clinic_id).where(ScheduledPayment.payment_plan_id == plan_id)
        if statuses:
            query = query.where(ScheduledPayment.status.in_(statuses))
        result = await self.db.execute(query.order_by(ScheduledPayment.installment_number.asc()))
        return list(result.scalars().all())

    async def due(self, clinic_id: str, now) -> List[ScheduledPayment]:
        """Pending installments due at or before ``now`` on active plans, oldest first"""
        active_plans = select(PaymentPlan.id).where(
            PaymentPlan.clinic_id == clinic_id,
            PaymentPlan.deleted_at.is_(None),
            PaymentPlan.status == PaymentPlanStatus.ACTIVE,
        )
        result = await self.db.execute(
            self.base_query(clinic_id)
            .where(
                ScheduledPayment.status == ScheduledPaymentStatus.PENDING,
                ScheduledPayment.scheduled_date <= now,
                ScheduledPayment.payment_plan_id.in_(active_plans),
            )
            .order_by(ScheduledPayment.scheduled_date.asc())
        )
        return list(result.scalars().all())

    async def hard_delete_for_plan(self, clinic_id: str, plan_id: str) -> None:
        for scheduled in await self.for_plan(clinic_id, plan_id):
            await self.db.delete(scheduled)
        await self.db.flush()
