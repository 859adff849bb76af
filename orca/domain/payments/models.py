from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Enum
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import ClinicScopedMixin, Money, gen_uuid, utcnow


class PaymentType(str, enum.Enum):
    PATIENT = "PATIENT"
    INSURANCE = "INSURANCE"
    OTHER = "OTHER"


class PaymentMethodType(str, enum.Enum):
    CASH = "CASH"
    CHECK = "CHECK"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    ACH = "ACH"
    OTHER = "OTHER"


# Settled at the front desk without a gateway round trip
OFFLINE_METHODS = (PaymentMethodType.CASH, PaymentMethodType.CHECK, PaymentMethodType.OTHER)


class PaymentSourceType(str, enum.Enum):
    MANUAL = "MANUAL"
    PAYMENT_PLAN = "PAYMENT_PLAN"
    PAYMENT_LINK = "PAYMENT_LINK"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    CANCELLED = "CANCELLED"


class RefundType(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


class RefundStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Payment(ClinicScopedMixin, Base):
    __tablename__ = "payments"

    payment_number = Column(String(32), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("patient_accounts.id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)

    amount = Column(Money, nullable=False)
    payment_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    payment_type = Column(Enum(PaymentType), nullable=False, default=PaymentType.PATIENT)
    payment_method_type = Column(Enum(PaymentMethodType), nullable=False)
    source_type = Column(Enum(PaymentSourceType), nullable=False, default=PaymentSourceType.MANUAL)
    source_id = Column(String(36), nullable=True)

    gateway = Column(String(32), nullable=True)
    gateway_payment_id = Column(String(100), nullable=True)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    failure_reason = Column(String(500), nullable=True)

    card_last4 = Column(String(4), nullable=True)
    card_brand = Column(String(32), nullable=True)
    check_number = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)


class PaymentAllocation(Base):
    """Portion of a payment applied to an invoice"""
    __tablename__ = "payment_allocations"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    clinic_id = Column(String(36), ForeignKey("clinics.id"), nullable=False, index=True)
    payment_id = Column(String(36), ForeignKey("payments.id"), nullable=False, index=True)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Refund(ClinicScopedMixin, Base):
    __tablename__ = "refunds"

    refund_number = Column(String(32), nullable=False, index=True)
    payment_id = Column(String(36), ForeignKey("payments.id"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("patient_accounts.id"), nullable=False, index=True)

    amount = Column(Money, nullable=False)
    reason = Column(String(500), nullable=False)
    refund_type = Column(Enum(RefundType), nullable=False)
    status = Column(Enum(RefundStatus), nullable=False, default=RefundStatus.PENDING, index=True)

    requested_by = Column(String(36), nullable=True)
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approval_notes = Column(Text, nullable=True)
    rejected_by = Column(String(36), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    processed_by = Column(String(36), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    gateway_refund_id = Column(String(100), nullable=True)
    failure_reason = Column(String(500), nullable=True)
