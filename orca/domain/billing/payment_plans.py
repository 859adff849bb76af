from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
import calendar
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import BusinessLogicError, NotFoundError
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.billing.models import (
    PaymentFrequency,
    PaymentPlan,
    PaymentPlanStatus,
    ScheduledPayment,
    ScheduledPaymentStatus,
)
from orca.domain.billing.repository import PaymentPlanRepository, ScheduledPaymentRepository
from orca.domain.billing.service import AccountService
from orca.domain.common.models import round_money, utcnow
from orca.domain.treatment.repository import TreatmentPlanRepository

logger = logging.getLogger(__name__)

LOCKED_PLAN_STATUSES = (PaymentPlanStatus.COMPLETED, PaymentPlanStatus.CANCELLED)
CANCELLABLE_PLAN_STATUSES = tuple(s for s in PaymentPlanStatus if s not in LOCKED_PLAN_STATUSES)


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def installment_dates(start: date, count: int, frequency: PaymentFrequency) -> List[date]:
    if frequency == PaymentFrequency.WEEKLY:
        return [start + timedelta(days=7 * i) for i in range(count)]
    if frequency == PaymentFrequency.BIWEEKLY:
        return [start + timedelta(days=14 * i) for i in range(count)]
    return [add_months(start, i) for i in range(count)]


def calculate_plan_amounts(total_amount: float, down_payment: float, number_of_payments: int) -> Dict[str, Any]:
    """Financed amount and installment split; the last installment absorbs rounding"""
    if number_of_payments < 1:
        raise BusinessLogicError("A plan needs at least one payment", error_code="INVALID_PAYMENT_COUNT")
    if down_payment < 0 or down_payment >= total_amount:
        raise BusinessLogicError(
            "Down payment must be at least zero and less than the total",
            error_code="INVALID_DOWN_PAYMENT",
        )

    financed = round_money(total_amount - down_payment)
    installment = round_money(financed / number_of_payments)
    last_installment = round_money(financed - installment * (number_of_payments - 1))
    return {
        "financed_amount": financed,
        "installment_amount": installment,
        "last_installment_amount": last_installment,
        "remaining_balance": financed,
    }


class PaymentPlanService:
    """Payment plans, their installment schedules and status changes"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.plan_repo = PaymentPlanRepository(db)
        self.scheduled_repo = ScheduledPaymentRepository(db)
        self.treatment_repo = TreatmentPlanRepository(db)
        self.accounts = AccountService(db)
        self.audit = AuditLogger(db)

    async def get_plan(self, clinic_id: str, plan_id: str) -> PaymentPlan:
        plan = await self.plan_repo.get(clinic_id, plan_id)
        if not plan:
            raise NotFoundError("Payment plan not found", error_code="PLAN_NOT_FOUND")
        return plan

    async def get_scheduled_payment(self, clinic_id: str, scheduled_id: str) -> ScheduledPayment:
        scheduled = await self.scheduled_repo.get(clinic_id, scheduled_id)
        if not scheduled:
            raise NotFoundError("Scheduled payment not found", error_code="SCHEDULED_PAYMENT_NOT_FOUND")
        return scheduled

    async def list_plans(self, clinic_id: str, account_id: Optional[str] = None,
                         status: Optional[PaymentPlanStatus] = None, search: Optional[str] = None,
                         page: int = 1, page_size: int = 20, sort_by: Optional[str] = None,
                         sort_order: str = "desc"):
        filters = []
        if account_id:
            filters.append(PaymentPlan.account_id == account_id)
        if status:
            filters.append(PaymentPlan.status == status)
        return await self.plan_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def get_schedule(self, clinic_id: str, plan_id: str) -> List[ScheduledPayment]:
        return await self.scheduled_repo.for_plan(clinic_id, plan_id)

    async def get_progress(self, clinic_id: str, plan: PaymentPlan) -> Dict[str, Any]:
        schedule = await self.scheduled_repo.for_plan(clinic_id, plan.id)
        completed = [s for s in schedule if s.status == ScheduledPaymentStatus.COMPLETED]
        pending = sorted(
            (s for s in schedule if s.status == ScheduledPaymentStatus.PENDING),
            key=lambda s: s.scheduled_date,
        )
        total_payments = plan.number_of_payments
        return {
            "completed_payments": len(completed),
            "total_payments": total_payments,
            "percent_complete": round(len(completed) / total_payments * 100) if total_payments else 0,
            "total_paid": round_money(plan.total_amount - plan.remaining_balance),
            "next_payment": pending[0] if pending else None,
        }

    async def refresh_next_payment_date(self, plan: PaymentPlan) -> None:
        pending = await self.scheduled_repo.for_plan(plan.clinic_id, plan.id, ScheduledPaymentStatus.PENDING)
        next_due = min((s.scheduled_date for s in pending), default=None)
        plan.next_payment_date = next_due.date() if next_due else None

    async def complete_if_settled(self, plan: PaymentPlan, now: datetime) -> bool:
        """Mark an active plan COMPLETED once no installment is left to charge"""
        if plan.status != PaymentPlanStatus.ACTIVE:
            return False
        outstanding = await self.scheduled_repo.for_plan(
            plan.clinic_id, plan.id, ScheduledPaymentStatus.PENDING, ScheduledPaymentStatus.PROCESSING
        )
        if outstanding:
            return False
        plan.status = PaymentPlanStatus.COMPLETED
        plan.completed_at = now
        logger.info(f"Payment plan {plan.plan_number} completed")
        return True

    async def create_plan(self, data: Dict[str, Any], user: CurrentUser) -> PaymentPlan:
        account = await self.accounts.get_account(user.clinic_id, data["account_id"])
        treatment_plan_id = data.get("treatment_plan_id")
        if treatment_plan_id and not await self.treatment_repo.get(user.clinic_id, treatment_plan_id):
            raise NotFoundError("Treatment plan not found", error_code="TREATMENT_PLAN_NOT_FOUND")
        amounts = calculate_plan_amounts(
            data["total_amount"], data.get("down_payment", 0), data["number_of_payments"]
        )
        frequency = data.get("frequency") or PaymentFrequency.MONTHLY
        dates = installment_dates(data["start_date"], data["number_of_payments"], frequency)

        plan = await self.plan_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "account_id": account.id,
            "plan_number": await self.plan_repo.next_number(user.clinic_id, "PLN", "plan_number"),
            "frequency": frequency,
            "financed_amount": amounts["financed_amount"],
            "installment_amount": amounts["installment_amount"],
            "remaining_balance": amounts["remaining_balance"],
            "next_payment_date": dates[0],
            "status": PaymentPlanStatus.PENDING,
            "created_by": user.id,
            "updated_by": user.id,
        })

        for number, due_on in enumerate(dates, start=1):
            is_last = number == len(dates)
            await self.scheduled_repo.create({
                "clinic_id": user.clinic_id,
                "payment_plan_id": plan.id,
                "installment_number": number,
                "amount": amounts["last_installment_amount"] if is_last else amounts["installment_amount"],
                "scheduled_date": datetime.combine(due_on, time.min),
                "status": ScheduledPaymentStatus.PENDING,
                "created_by": user.id,
            })

        await self.audit.record(user, AuditAction.CREATE, "PaymentPlan", plan.id, {
            "plan_number": plan.plan_number,
            "financed_amount": plan.financed_amount,
            "number_of_payments": plan.number_of_payments,
        })
        await self.db.commit()
        logger.info(f"Created payment plan {plan.plan_number} with {len(dates)} installments")
        return plan

    async def update_plan(self, plan_id: str, data: Dict[str, Any], user: CurrentUser) -> PaymentPlan:
        plan = await self.get_plan(user.clinic_id, plan_id)
        if plan.status in LOCKED_PLAN_STATUSES:
            raise BusinessLogicError(
                f"Cannot modify a {plan.status.value.lower()} payment plan", error_code="PLAN_LOCKED"
            )
        plan = await self.plan_repo.update(plan, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "PaymentPlan", plan.id, {"fields": sorted(data)})
        await self.db.commit()
        return plan

    def _require_status(self, plan: PaymentPlan, allowed, action: str) -> None:
        if plan.status not in allowed:
            raise BusinessLogicError(
                f"Cannot {action} a plan in {plan.status.value} status",
                details={"status": plan.status.value},
                error_code="INVALID_STATUS",
            )

    @staticmethod
    def _append_note(plan: PaymentPlan, note: str) -> None:
        plan.notes = f"{plan.notes}\n{note}" if plan.notes else note

    async def _cancel_pending(self, plan: PaymentPlan) -> int:
        pending = await self.scheduled_repo.for_plan(plan.clinic_id, plan.id, ScheduledPaymentStatus.PENDING)
        for scheduled in pending:
            scheduled.status = ScheduledPaymentStatus.CANCELLED
        plan.next_payment_date = None
        return len(pending)

    async def change_status(self, plan_id: str, action: str, user: CurrentUser,
                            reason: Optional[str] = None) -> PaymentPlan:
        """Apply activate, pause, resume or cancel to a plan"""
        plan = await self.get_plan(user.clinic_id, plan_id)
        now = utcnow()

        if action == "activate":
            self._require_status(plan, (PaymentPlanStatus.PENDING,), action)
            plan.status = PaymentPlanStatus.ACTIVE
            plan.activated_at = now
        elif action == "pause":
            self._require_status(plan, (PaymentPlanStatus.ACTIVE,), action)
            plan.status = PaymentPlanStatus.PAUSED
            self._append_note(plan, f"Paused: {reason or 'No reason given'}")
        elif action == "resume":
            self._require_status(plan, (PaymentPlanStatus.PAUSED,), action)
            plan.status = PaymentPlanStatus.ACTIVE
        elif action == "cancel":
            self._require_status(plan, CANCELLABLE_PLAN_STATUSES, action)
            plan.status = PaymentPlanStatus.CANCELLED
            plan.cancelled_at = now
            self._append_note(plan, f"Cancelled: {reason or 'No reason given'}")
            await self._cancel_pending(plan)
        else:
            raise BusinessLogicError(f"Unknown action '{action}'", error_code="INVALID_ACTION")

        plan.updated_by = user.id
        await self.db.flush()
        await self.audit.record(user, AuditAction.UPDATE, "PaymentPlan", plan.id, {
            "action": action,
            "status": plan.status.value,
            "reason": reason,
        })
        await self.db.commit()
        return plan

    async def delete_plan(self, plan_id: str, user: CurrentUser) -> PaymentPlan:
        """Cancel a plan with payment history; soft delete one without"""
        plan = await self.get_plan(user.clinic_id, plan_id)
        completed = await self.scheduled_repo.for_plan(
            user.clinic_id, plan.id, ScheduledPaymentStatus.COMPLETED
        )

        if completed:
            plan.status = PaymentPlanStatus.CANCELLED
            plan.cancelled_at = utcnow()
            await self._cancel_pending(plan)
            outcome = "cancelled"
        else:
            plan.status = PaymentPlanStatus.CANCELLED
            await self.scheduled_repo.hard_delete_for_plan(user.clinic_id, plan.id)
            await self.plan_repo.soft_delete(plan, user.id)
            outcome = "deleted"

        plan.updated_by = user.id
        await self.db.flush()
        await self.audit.record(user, AuditAction.DELETE, "PaymentPlan", plan.id, {"outcome": outcome})
        await self.db.commit()
        return plan

    async def skip_scheduled_payment(self, scheduled_id: str, user: CurrentUser,
                                     reason: Optional[str] = None) -> ScheduledPayment:
        scheduled = await self.get_scheduled_payment(user.clinic_id, scheduled_id)
        if scheduled.status != ScheduledPaymentStatus.PENDING:
            raise BusinessLogicError("Only pending payments can be skipped", error_code="INVALID_STATUS")

        scheduled.status = ScheduledPaymentStatus.SKIPPED
        scheduled.failure_reason = reason
        scheduled.updated_by = user.id
        await self.db.flush()

        plan = await self.get_plan(user.clinic_id, scheduled.payment_plan_id)
        await self.refresh_next_payment_date(plan)
        await self.complete_if_settled(plan, utcnow())
        await self.audit.record(user, AuditAction.UPDATE, "ScheduledPayment", scheduled.id, {
            "status": "SKIPPED",
            "reason": reason,
        })
        await self.db.commit()
        return scheduled

    async def payments_needing_attention(self, clinic_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """Counts for the billing dashboard"""
        now = now or utcnow()
        start_of_day = datetime.combine(now.date(), time.min)
        end_of_day = start_of_day + timedelta(days=1)
        week_out = start_of_day + timedelta(days=7)

        pending = ScheduledPayment.status == ScheduledPaymentStatus.PENDING
        return {
            "failed": await self.scheduled_repo.count(
                clinic_id, ScheduledPayment.status == ScheduledPaymentStatus.FAILED
            ),
            "overdue": await self.scheduled_repo.count(
                clinic_id, pending, ScheduledPayment.scheduled_date < start_of_day
            ),
            "due_today": await self.scheduled_repo.count(
                clinic_id, pending,
                ScheduledPayment.scheduled_date >= start_of_day,
                ScheduledPayment.scheduled_date < end_of_day,
            ),
            "upcoming_week": await self.scheduled_repo.count(
                clinic_id, pending,
                ScheduledPayment.scheduled_date >= start_of_day,
                ScheduledPayment.scheduled_date < week_out,
            ),
        }
