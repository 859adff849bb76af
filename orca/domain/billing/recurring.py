from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.config import settings
from orca.core.exceptions import BusinessLogicError
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.billing.models import (
    CreditSource,
    PaymentPlan,
    PaymentPlanStatus,
    ScheduledPayment,
    ScheduledPaymentStatus,
)
from orca.domain.billing.payment_plans import PaymentPlanService
from orca.domain.billing.repository import PaymentPlanRepository, ScheduledPaymentRepository
from orca.domain.billing.service import AccountService
from orca.domain.common.models import round_money, utcnow
from orca.domain.payments.models import (
    PaymentMethodType,
    PaymentSourceType,
    PaymentStatus,
    PaymentType,
)
from orca.domain.payments.repository import PaymentRepository
from orca.domain.payments.service import PaymentService
from orca.infrastructure.payments import GatewayResult, PaymentGateway

logger = logging.getLogger(__name__)


class RecurringBillingService:
    """Charges due payment plan installments and reschedules failures.

    Each installment is committed on its own so one decline never rolls
    back the charges that already went through.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        max_retry_attempts: Optional[int] = None,
        retry_delay_days: Optional[List[int]] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.max_retry_attempts = (
            settings.BILLING_MAX_RETRY_ATTEMPTS if max_retry_attempts is None else max_retry_attempts
        )
        self.retry_delay_days = retry_delay_days if retry_delay_days is not None else settings.BILLING_RETRY_DELAY_DAYS
        self.plan_repo = PaymentPlanRepository(db)
        self.scheduled_repo = ScheduledPaymentRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.plans = PaymentPlanService(db)
        self.payments = PaymentService(db, gateway)
        self.accounts = AccountService(db)
        self.audit = AuditLogger(db)

    def retry_delay(self, attempt_count: int) -> timedelta:
        if attempt_count < len(self.retry_delay_days):
            return timedelta(days=self.retry_delay_days[attempt_count])
        return timedelta(days=7)

    async def process_due_payments(self, clinic_id: str, now: Optional[datetime] = None,
                                   user_id: Optional[str] = None) -> Dict[str, Any]:
        now = now or utcnow()
        due = await self.scheduled_repo.due(clinic_id, now)
        logger.info(f"Processing {len(due)} due installments for clinic {clinic_id}")

        results = []
        for scheduled in due:
            plan = await self.plan_repo.get(clinic_id, scheduled.payment_plan_id)
            results.append(await self._process_one(plan, scheduled, now, user_id))

        summary = {
            "processed": len(results),
            "succeeded": sum(1 for r in results if r["success"]),
            "failed": sum(1 for r in results if not r["success"]),
            "results": results,
        }
        if results:
            await self.audit.log(
                clinic_id=clinic_id,
                action=AuditAction.SYSTEM,
                entity="ScheduledPayment",
                user_id=user_id,
                details={k: v for k, v in summary.items() if k != "results"},
            )
            await self.db.commit()
        return summary

    async def retry_scheduled_payment(self, clinic_id: str, scheduled_id: str,
                                      user_id: Optional[str] = None) -> Dict[str, Any]:
        """Charge one installment now, whatever its schedule says"""
        scheduled = await self.plans.get_scheduled_payment(clinic_id, scheduled_id)
        if scheduled.status in (ScheduledPaymentStatus.COMPLETED, ScheduledPaymentStatus.CANCELLED):
            raise BusinessLogicError(
                f"Cannot retry a {scheduled.status.value.lower()} payment",
                error_code="INVALID_STATUS",
            )
        plan = await self.plans.get_plan(clinic_id, scheduled.payment_plan_id)
        if plan.status != PaymentPlanStatus.ACTIVE:
            raise BusinessLogicError("Payment plan is not active", error_code="PLAN_NOT_ACTIVE")

        now = utcnow()
        scheduled.status = ScheduledPaymentStatus.PENDING
        scheduled.scheduled_date = now
        await self.db.flush()
        return await self._process_one(plan, scheduled, now, user_id)

    async def _process_one(self, plan: PaymentPlan, scheduled: ScheduledPayment,
                           now: datetime, user_id: Optional[str]) -> Dict[str, Any]:
        result = {
            "scheduled_payment_id": scheduled.id,
            "payment_plan_id": plan.id,
            "amount": scheduled.amount,
        }

        if not plan.auto_pay_enabled:
            return {**result, "success": False, "error": "Auto-pay is not enabled"}

        if not plan.payment_method_token:
            scheduled.status = ScheduledPaymentStatus.FAILED
            scheduled.failure_reason = "No payment method on file"
            scheduled.last_attempt_at = now
            await self.db.commit()
            return {**result, "success": False, "error": scheduled.failure_reason}

        scheduled.status = ScheduledPaymentStatus.PROCESSING
        await self.db.flush()

        try:
            charge = await self.gateway.charge(
                scheduled.amount,
                plan.payment_method_token,
                description=f"{plan.plan_number} installment {scheduled.installment_number}",
                metadata={"clinic_id": plan.clinic_id, "scheduled_payment_id": scheduled.id},
            )
        except Exception as e:
            logger.exception(f"Gateway error charging installment {scheduled.id}")
            charge = GatewayResult(success=False, error=str(e))

        if charge.success:
            payment_id = await self._record_success(plan, scheduled, charge, now, user_id)
            await self.db.commit()
            return {**result, "success": True, "payment_id": payment_id}

        status = self._record_failure(scheduled, charge.error or "Payment declined", now)
        await self.plans.refresh_next_payment_date(plan)
        await self.db.commit()
        logger.warning(f"Installment {scheduled.id} failed: {charge.error}")
        return {**result, "success": False, "error": charge.error, "status": status.value}

    async def _record_success(self, plan: PaymentPlan, scheduled: ScheduledPayment,
                              charge: GatewayResult, now: datetime, user_id: Optional[str]) -> str:
        account = await self.accounts.get_account(plan.clinic_id, plan.account_id)
        payment = await self.payment_repo.create({
            "clinic_id": plan.clinic_id,
            "payment_number": await self.payment_repo.next_number(plan.clinic_id, "PAY", "payment_number"),
            "account_id": account.id,
            "patient_id": account.patient_id,
            "amount": scheduled.amount,
            "payment_date": now,
            "payment_type": PaymentType.PATIENT,
            "payment_method_type": PaymentMethodType.CREDIT_CARD,
            "source_type": PaymentSourceType.PAYMENT_PLAN,
            "source_id": plan.id,
            "gateway": self.gateway.name,
            "gateway_payment_id": charge.transaction_id,
            "card_last4": charge.card_last4,
            "card_brand": charge.card_brand,
            "status": PaymentStatus.COMPLETED,
            "processed_at": now,
            "created_by": user_id,
        })
        remainder = await self.payments.apply_payment(payment, [])
        if remainder > 0:
            await self.payments.credits.issue_credit(
                clinic_id=plan.clinic_id,
                account_id=account.id,
                amount=remainder,
                source=CreditSource.OVERPAYMENT,
                description=f"Unapplied installment on {plan.plan_number}",
                source_id=payment.id,
                user_id=user_id,
            )

        scheduled.status = ScheduledPaymentStatus.COMPLETED
        scheduled.processed_at = now
        scheduled.last_attempt_at = now
        scheduled.attempt_count = (scheduled.attempt_count or 0) + 1
        scheduled.result_payment_id = payment.id
        scheduled.failure_reason = None

        plan.remaining_balance = round_money(max(0.0, plan.remaining_balance - scheduled.amount))
        await self.db.flush()
        await self.plans.refresh_next_payment_date(plan)
        await self.plans.complete_if_settled(plan, now)

        await self.accounts.recalculate_balance(plan.clinic_id, account.id)
        return payment.id

    def _record_failure(self, scheduled: ScheduledPayment, error: str,
                        now: datetime) -> ScheduledPaymentStatus:
        attempts = scheduled.attempt_count or 0
        scheduled.last_attempt_at = now
        if attempts < self.max_retry_attempts:
            scheduled.status = ScheduledPaymentStatus.PENDING
            scheduled.scheduled_date = now + self.retry_delay(attempts)
            scheduled.failure_reason = error
        else:
            scheduled.status = ScheduledPaymentStatus.FAILED
            scheduled.failure_reason = f"Max retries reached: {error}"
        scheduled.attempt_count = attempts + 1
        return scheduled.status
