from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime, date

from orca.domain.billing.models import PaymentFrequency, PaymentPlanStatus, ScheduledPaymentStatus


class PaymentPlanCreate(BaseModel):
    account_id: str
    treatment_plan_id: Optional[str] = None
    total_amount: float = Field(..., gt=0)
    down_payment: float = Field(0, ge=0)
    number_of_payments: int = Field(..., ge=1, le=120)
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    start_date: date
    auto_pay_enabled: bool = False
    payment_method_token: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class PaymentPlanUpdate(BaseModel):
    """Only billing preferences change after creation; the schedule is fixed"""
    auto_pay_enabled: Optional[bool] = None
    payment_method_token: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class PlanActionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ScheduledPaymentResponse(BaseModel):
    id: str
    payment_plan_id: str
    installment_number: int
    amount: float
    scheduled_date: datetime
    status: ScheduledPaymentStatus
    attempt_count: int
    last_attempt_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    result_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentPlanResponse(BaseModel):
    id: str
    plan_number: str
    account_id: str
    treatment_plan_id: Optional[str] = None
    total_amount: float
    down_payment: float
    financed_amount: float
    installment_amount: float
    number_of_payments: int
    frequency: PaymentFrequency
    start_date: date
    next_payment_date: Optional[date] = None
    remaining_balance: float
    auto_pay_enabled: bool
    status: PaymentPlanStatus
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanProgress(BaseModel):
    completed_payments: int
    total_payments: int
    percent_complete: int
    total_paid: float
    next_payment: Optional[ScheduledPaymentResponse] = None


class PaymentPlanDetail(PaymentPlanResponse):
    progress: PlanProgress
    scheduled_payments: List[ScheduledPaymentResponse]


class AttentionCounts(BaseModel):
    failed: int
    overdue: int
    due_today: int
    upcoming_week: int


class ProcessResult(BaseModel):
    scheduled_payment_id: str
    payment_plan_id: str
    amount: float
    success: bool
    payment_id: Optional[str] = None
    error: Optional[str] = None
    status: Optional[str] = None


class ProcessSummary(BaseModel):
    processed: int
    succeeded: int
    failed: int
    results: List[ProcessResult]


class DeletePlanResult(BaseModel):
    id: str
    status: PaymentPlanStatus
    deleted: bool


def plan_detail(plan, progress: Dict[str, Any], schedule) -> PaymentPlanDetail:
    return PaymentPlanDetail(
        **PaymentPlanResponse.model_validate(plan).model_dump(),
        progress=PlanProgress.model_validate(progress, from_attributes=True),
        scheduled_payments=[ScheduledPaymentResponse.model_validate(s) for s in schedule],
    )
