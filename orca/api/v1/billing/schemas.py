from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime, date

from orca.api.v1.common import Page, naive_utc
from orca.domain.billing.models import (
    AccountStatus,
    AccountType,
    CreditSource,
    CreditStatus,
    InvoiceStatus,
)


# Accounts

class AccountCreate(BaseModel):
    patient_id: str
    account_type: AccountType = AccountType.INDIVIDUAL
    guarantor_id: Optional[str] = None
    status: AccountStatus = AccountStatus.ACTIVE
    notes: Optional[str] = None


class AccountUpdate(BaseModel):
    account_type: Optional[AccountType] = None
    guarantor_id: Optional[str] = None
    status: Optional[AccountStatus] = None
    notes: Optional[str] = None


class AccountResponse(BaseModel):
    id: str
    clinic_id: str
    account_number: str
    patient_id: str
    guarantor_id: Optional[str] = None
    account_type: AccountType
    status: AccountStatus
    current_balance: float
    insurance_balance: float
    patient_balance: float
    credit_balance: float
    aging_30: float
    aging_60: float
    aging_90: float
    aging_120_plus: float
    balance_updated_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccountStats(BaseModel):
    total_accounts: int
    total_balance: float
    total_insurance_balance: float
    total_patient_balance: float
    total_credit_balance: float
    status_counts: Dict[str, int]


class AccountPage(Page[AccountResponse]):
    stats: AccountStats


# Invoices

class LineItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    procedure_code: Optional[str] = Field(None, max_length=20)
    quantity: float = Field(1, gt=0)
    unit_price: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    insurance_amount: float = Field(0, ge=0)


class InvoiceCreate(BaseModel):
    account_id: str
    line_items: List[LineItem] = Field(..., min_length=1)
    adjustments: float = Field(0, ge=0)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    draft: bool = False
    notes: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: str
    invoice_number: str
    account_id: str
    patient_id: str
    status: InvoiceStatus
    invoice_date: date
    due_date: date
    line_items: List[dict]
    subtotal: float
    adjustments: float
    total_amount: float
    insurance_amount: float
    patient_amount: float
    paid_amount: float
    balance: float
    paid_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Credits

class CreditCreate(BaseModel):
    account_id: str
    amount: float = Field(..., gt=0)
    source: CreditSource
    description: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None
    source_id: Optional[str] = None

    normalize_expiry = field_validator("expires_at")(naive_utc)


class CreditApplyRequest(BaseModel):
    invoice_id: str
    amount: float = Field(..., gt=0)


class CreditTransferRequest(BaseModel):
    to_account_id: str
    amount: float = Field(..., gt=0)


class CreditResponse(BaseModel):
    id: str
    account_id: str
    amount: float
    remaining_amount: float
    source: CreditSource
    source_id: Optional[str] = None
    description: Optional[str] = None
    status: CreditStatus
    expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditStats(BaseModel):
    available_count: int
    available_amount: float
    expiring_soon_count: int
    expiring_soon_amount: float


class CreditPage(Page[CreditResponse]):
    stats: CreditStats


class CreditApplyResult(BaseModel):
    credit: CreditResponse
    invoice: InvoiceResponse
    amount_applied: float


class CreditTransferResult(BaseModel):
    source_credit: CreditResponse
    new_credit: CreditResponse
