from sqlalchemy import Column, String, Integer, DateTime, Date, ForeignKey, Text, Boolean, Enum, JSON
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import ClinicScopedMixin, Money


class AccountType(str, enum.Enum):
    INDIVIDUAL = "INDIVIDUAL"
    FAMILY = "FAMILY"
    INSURANCE_ONLY = "INSURANCE_ONLY"
    COURTESY = "COURTESY"


class AccountStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    COLLECTIONS = "COLLECTIONS"
    CLOSED = "CLOSED"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


# Invoices that can still take money
PAYABLE_INVOICE_STATUSES = (
    InvoiceStatus.PENDING,
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIAL,
    InvoiceStatus.OVERDUE,
)


class CreditSource(str, enum.Enum):
    OVERPAYMENT = "OVERPAYMENT"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"
    PROMOTIONAL = "PROMOTIONAL"
    TRANSFER = "TRANSFER"


class CreditStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    APPLIED = "APPLIED"
    EXPIRED = "EXPIRED"
    VOIDED = "VOIDED"


class PaymentPlanStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DEFAULTED = "DEFAULTED"


class PaymentFrequency(str, enum.Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class ScheduledPaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"


class PatientAccount(ClinicScopedMixin, Base):
    """Financial account for a patient; one per patient per clinic"""
    __tablename__ = "patient_accounts"

    account_number = Column(String(32), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    guarantor_id = Column(String(36), ForeignKey("patients.id"), nullable=True, index=True)
    account_type = Column(Enum(AccountType), nullable=False, default=AccountType.INDIVIDUAL)
    status = Column(Enum(AccountStatus), nullable=False, default=AccountStatus.ACTIVE, index=True)

    current_balance = Column(Money, nullable=False, default=0)
    insurance_balance = Column(Money, nullable=False, default=0)
    patient_balance = Column(Money, nullable=False, default=0)
    credit_balance = Column(Money, nullable=False, default=0)

    aging_30 = Column(Money, nullable=False, default=0)
    aging_60 = Column(Money, nullable=False, default=0)
    aging_90 = Column(Money, nullable=False, default=0)
    aging_120_plus = Column(Money, nullable=False, default=0)

    balance_updated_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)


class Invoice(ClinicScopedMixin, Base):
    __tablename__ = "invoices"

    invoice_number = Column(String(32), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("patient_accounts.id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.PENDING, index=True)

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    # [{description, quantity, unit_price, discount, insurance_amount, total}]
    line_items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Money, nullable=False, default=0)
    adjustments = Column(Money, nullable=False, default=0)
    total_amount = Column(Money, nullable=False, default=0)
    insurance_amount = Column(Money, nullable=False, default=0)
    patient_amount = Column(Money, nullable=False, default=0)
    paid_amount = Column(Money, nullable=False, default=0)
    balance = Column(Money, nullable=False, default=0)

    paid_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)


class CreditBalance(ClinicScopedMixin, Base):
    __tablename__ = "credit_balances"

    account_id = Column(String(36), ForeignKey("patient_accounts.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    remaining_amount = Column(Money, nullable=False)
    source = Column(Enum(CreditSource), nullable=False)
    source_id = Column(String(36), nullable=True)
    description = Column(String(500), nullable=True)
    status = Column(Enum(CreditStatus), nullable=False, default=CreditStatus.AVAILABLE, index=True)
    expires_at = Column(DateTime, nullable=True)


class PaymentPlan(ClinicScopedMixin, Base):
    __tablename__ = "payment_plans"

    plan_number = Column(String(32), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("patient_accounts.id"), nullable=False, index=True)
    treatment_plan_id = Column(String(36), ForeignKey("treatment_plans.id"), nullable=True)

    total_amount = Column(Money, nullable=False)
    down_payment = Column(Money, nullable=False, default=0)
    financed_amount = Column(Money, nullable=False)
    installment_amount = Column(Money, nullable=False)
    number_of_payments = Column(Integer, nullable=False)
    frequency = Column(Enum(PaymentFrequency), nullable=False, default=PaymentFrequency.MONTHLY)

    start_date = Column(Date, nullable=False)
    next_payment_date = Column(Date, nullable=True)
    remaining_balance = Column(Money, nullable=False)

    auto_pay_enabled = Column(Boolean, nullable=False, default=False)
    payment_method_token = Column(String(255), nullable=True)

    status = Column(Enum(PaymentPlanStatus), nullable=False, default=PaymentPlanStatus.PENDING, index=True)
    activated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)


class ScheduledPayment(ClinicScopedMixin, Base):
    """One installment of a payment plan"""
    __tablename__ = "scheduled_payments"

    payment_plan_id = Column(String(36), ForeignKey("payment_plans.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    amount = Column(Money, nullable=False)
    scheduled_date = Column(DateTime, nullable=False, index=True)
    status = Column(Enum(ScheduledPaymentStatus), nullable=False,
                    default=ScheduledPaymentStatus.PENDING, index=True)

    attempt_count = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    result_payment_id = Column(String(36), nullable=True)
    failure_reason = Column(String(500), nullable=True)
