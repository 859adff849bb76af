from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime

from orca.api.v1.common import Page, naive_utc
from orca.domain.payments.models import (
    OFFLINE_METHODS,
    PaymentMethodType,
    PaymentSourceType,
    PaymentStatus,
    PaymentType,
    RefundStatus,
    RefundType,
)


class AllocationRequest(BaseModel):
    invoice_id: str
    amount: float = Field(..., gt=0)


class PaymentCreate(BaseModel):
    account_id: str
    patient_id: Optional[str] = None
    amount: float = Field(..., gt=0)
    payment_date: Optional[datetime] = None
    payment_type: PaymentType = PaymentType.PATIENT
    payment_method_type: PaymentMethodType
    source_type: PaymentSourceType = PaymentSourceType.MANUAL
    source_id: Optional[str] = None
    payment_method_token: Optional[str] = Field(None, max_length=255)
    card_last4: Optional[str] = Field(None, min_length=4, max_length=4)
    card_brand: Optional[str] = Field(None, max_length=32)
    check_number: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None
    allocations: Optional[List[AllocationRequest]] = None

    normalize_payment_date = field_validator("payment_date")(naive_utc)

    @model_validator(mode="after")
    def check_method_details(self):
        if self.payment_method_type == PaymentMethodType.CHECK and not self.check_number:
            raise ValueError("check_number is required for check payments")
        if self.payment_method_type not in OFFLINE_METHODS and not self.payment_method_token:
            raise ValueError("payment_method_token is required for card and ACH payments")
        return self


class AllocationResponse(BaseModel):
    id: str
    invoice_id: str
    amount: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: str
    payment_number: str
    account_id: str
    patient_id: str
    amount: float
    payment_date: datetime
    payment_type: PaymentType
    payment_method_type: PaymentMethodType
    source_type: PaymentSourceType
    source_id: Optional[str] = None
    gateway: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    status: PaymentStatus
    failure_reason: Optional[str] = None
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None
    check_number: Optional[str] = None
    notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentDetail(PaymentResponse):
    allocations: List[AllocationResponse] = []


class PaymentStats(BaseModel):
    total_count: int
    total_amount: float
    today_count: int
    today_amount: float


class PaymentPage(Page[PaymentResponse]):
    stats: PaymentStats


# Refunds

class RefundCreate(BaseModel):
    payment_id: str
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)


class RefundApproveRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class RefundRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RefundResponse(BaseModel):
    id: str
    refund_number: str
    payment_id: str
    account_id: str
    amount: float
    reason: str
    refund_type: RefundType
    status: RefundStatus
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    gateway_refund_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
