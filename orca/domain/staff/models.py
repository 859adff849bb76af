from sqlalchemy import Column, String, Integer, Float, Date, ForeignKey, Text, Boolean, Enum
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import ClinicScopedMixin


class TrainingStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"
    WAIVED = "WAIVED"


# Training no longer counted as outstanding
CLOSED_TRAINING_STATUSES = (TrainingStatus.COMPLETED, TrainingStatus.WAIVED)


class TrainingRecord(ClinicScopedMixin, Base):
    """Compliance training assigned to a staff member"""
    __tablename__ = "training_records"

    staff_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, index=True)
    provider = Column(String(200), nullable=True)
    duration_hours = Column(Float, nullable=True)
    credits = Column(Float, nullable=True)

    assigned_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True, index=True)
    started_date = Column(Date, nullable=True)
    completed_date = Column(Date, nullable=True)
    expiration_date = Column(Date, nullable=True, index=True)

    status = Column(Enum(TrainingStatus), nullable=False, default=TrainingStatus.ASSIGNED, index=True)
    score = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)
    certificate_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
