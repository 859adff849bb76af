from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Text, Enum, JSON
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import ClinicScopedMixin, Money


class TreatmentPlanStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PRESENTED = "PRESENTED"
    ACCEPTED = "ACCEPTED"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    DISCONTINUED = "DISCONTINUED"


class ProgressNoteType(str, enum.Enum):
    INITIAL_EXAM = "INITIAL_EXAM"
    CONSULTATION = "CONSULTATION"
    RECORDS_APPOINTMENT = "RECORDS_APPOINTMENT"
    BONDING = "BONDING"
    ADJUSTMENT = "ADJUSTMENT"
    EMERGENCY = "EMERGENCY"
    DEBOND = "DEBOND"
    RETENTION_CHECK = "RETENTION_CHECK"
    OBSERVATION = "OBSERVATION"
    GENERAL = "GENERAL"


class NoteStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"
    PENDING_COSIGN = "PENDING_COSIGN"
    COSIGNED = "COSIGNED"
    AMENDED = "AMENDED"


# Notes whose clinical content can no longer be edited in place
LOCKED_NOTE_STATUSES = (
    NoteStatus.SIGNED,
    NoteStatus.PENDING_COSIGN,
    NoteStatus.COSIGNED,
    NoteStatus.AMENDED,
)


class TreatmentPlan(ClinicScopedMixin, Base):
    __tablename__ = "treatment_plans"

    plan_number = Column(String(32), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    primary_provider_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    supervising_provider_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    plan_name = Column(String(200), nullable=False)
    plan_type = Column(String(100), nullable=True)
    status = Column(Enum(TreatmentPlanStatus), nullable=False, default=TreatmentPlanStatus.DRAFT, index=True)

    chief_complaint = Column(Text, nullable=True)
    diagnosis = Column(JSON, nullable=False, default=list)
    treatment_goals = Column(JSON, nullable=False, default=list)
    treatment_description = Column(Text, nullable=True)

    # months
    estimated_duration = Column(Integer, nullable=True)
    estimated_visits = Column(Integer, nullable=True)
    total_fee = Column(Money, nullable=True)

    start_date = Column(Date, nullable=True)
    estimated_end_date = Column(Date, nullable=True)
    actual_end_date = Column(Date, nullable=True)
    presented_date = Column(Date, nullable=True)
    accepted_date = Column(Date, nullable=True)
    status_notes = Column(Text, nullable=True)


class ProgressNote(ClinicScopedMixin, Base):
    """SOAP note written at a visit"""
    __tablename__ = "progress_notes"

    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    treatment_plan_id = Column(String(36), ForeignKey("treatment_plans.id"), nullable=True, index=True)
    provider_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    supervising_provider_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    note_date = Column(DateTime, nullable=False)
    note_type = Column(Enum(ProgressNoteType), nullable=False)
    status = Column(Enum(NoteStatus), nullable=False, default=NoteStatus.DRAFT, index=True)

    chief_complaint = Column(Text, nullable=True)
    subjective = Column(Text, nullable=True)
    objective = Column(Text, nullable=True)
    assessment = Column(Text, nullable=True)
    plan = Column(Text, nullable=True)
    procedures_summary = Column(Text, nullable=True)

    signed_at = Column(DateTime, nullable=True)
    signed_by = Column(String(36), nullable=True)
    cosigned_at = Column(DateTime, nullable=True)
    cosigned_by = Column(String(36), nullable=True)
    amended_at = Column(DateTime, nullable=True)
    amendment_reason = Column(Text, nullable=True)
