from typing import List
from sqlalchemy import select, func

from orca.domain.common.repository import ClinicScopedRepository
from orca.domain.payments.models import (
    Payment,
    PaymentAllocation,
    PaymentStatus,
    Refund,
    RefundStatus,
)


class PaymentRepository(ClinicScopedRepository[Payment]):
    model = Payment
    search_fields = ("payment_number", "check_number", "gateway_payment_id", "notes")
    sortable_fields = ("created_at", "payment_date", "amount", "payment_number")
    default_sort = "payment_date"

    async def add_allocation(self, data: dict) -> PaymentAllocation:
        allocation = PaymentAllocation(**data)
        self.db.add(allocation)
        await self.db.flush()
        return allocation

    async def allocations(self, payment_id: str) -> List[PaymentAllocation]:
        result = await self.db.execute(
            select(PaymentAllocation)
            .where(PaymentAllocation.payment_id == payment_id)
            .order_by(PaymentAllocation.created_at.asc())
        )
        return list(result.scalars().all())

    async def totals(self, clinic_id: str, *filters) -> tuple:
        """(count, amount) of completed payments matching ``filters``"""
        row = (await self.db.execute(
            select(func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.clinic_id == clinic_id,
                Payment.deleted_at.is_(None),
                Payment.status == PaymentStatus.COMPLETED,
                *filters,
            )
        )).one()
        return row[0], round(float(row[1]), 2)


class RefundRepository(ClinicScopedRepository[Refund]):
    model = Refund
    search_fields = ("refund_number", "reason")
    sortable_fields = ("created_at", "amount", "status", "processed_at")

    async def committed_amount(self, clinic_id: str, payment_id: str, *statuses: RefundStatus) -> float:
        """Sum of refunds against a payment in the given statuses"""
        total = await self.db.scalar(
            select(func.coalesce(func.sum(Refund.amount), 0)).where(
                Refund.clinic_id == clinic_id,
                Refund.deleted_at.is_(None),
                Refund.payment_id == payment_id,
                Refund.status.in_(statuses),
            )
        )
        return round(float(total or 0), 2)
