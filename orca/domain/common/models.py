from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric
from sqlalchemy.orm import declared_attr

# Money is stored as NUMERIC(12, 2) and surfaced as float
Money = Numeric(12, 2, asdecimal=False)


def gen_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def round_money(value) -> float:
    return round(float(value or 0), 2)


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    deleted_at = Column(DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ClinicScopedMixin(TimestampMixin, SoftDeleteMixin):
    """Primary key, tenant scope, audit stamps and soft delete for clinic-owned rows"""

    id = Column(String(36), primary_key=True, default=gen_uuid)

    @declared_attr
    def clinic_id(cls):
        return Column(String(36), ForeignKey("clinics.id"), nullable=False, index=True)

    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)
