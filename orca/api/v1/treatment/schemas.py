from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime, date

from orca.api.v1.common import naive_utc
from orca.domain.treatment.models import NoteStatus, ProgressNoteType, TreatmentPlanStatus


class TreatmentPlanCreate(BaseModel):
    patient_id: str
    plan_name: str = Field(..., min_length=1, max_length=200)
    plan_type: Optional[str] = Field(None, max_length=100)
    primary_provider_id: Optional[str] = None
    supervising_provider_id: Optional[str] = None
    chief_complaint: Optional[str] = None
    diagnosis: List[str] = []
    treatment_goals: List[str] = []
    treatment_description: Optional[str] = None
    estimated_duration: Optional[int] = Field(None, ge=1, le=120)
    estimated_visits: Optional[int] = Field(None, ge=1)
    total_fee: Optional[float] = Field(None, ge=0)
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None


class TreatmentPlanUpdate(BaseModel):
    plan_name: Optional[str] = Field(None, min_length=1, max_length=200)
    plan_type: Optional[str] = Field(None, max_length=100)
    primary_provider_id: Optional[str] = None
    supervising_provider_id: Optional[str] = None
    chief_complaint: Optional[str] = None
    diagnosis: Optional[List[str]] = None
    treatment_goals: Optional[List[str]] = None
    treatment_description: Optional[str] = None
    estimated_duration: Optional[int] = Field(None, ge=1, le=120)
    estimated_visits: Optional[int] = Field(None, ge=1)
    total_fee: Optional[float] = Field(None, ge=0)
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None


class PlanStatusRequest(BaseModel):
    new_status: TreatmentPlanStatus
    effective_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class TreatmentPlanResponse(BaseModel):
    id: str
    plan_number: str
    patient_id: str
    primary_provider_id: Optional[str] = None
    supervising_provider_id: Optional[str] = None
    plan_name: str
    plan_type: Optional[str] = None
    status: TreatmentPlanStatus
    chief_complaint: Optional[str] = None
    diagnosis: List[str]
    treatment_goals: List[str]
    treatment_description: Optional[str] = None
    estimated_duration: Optional[int] = None
    estimated_visits: Optional[int] = None
    total_fee: Optional[float] = None
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    presented_date: Optional[date] = None
    accepted_date: Optional[date] = None
    status_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Progress notes

class ProgressNoteCreate(BaseModel):
    patient_id: str
    treatment_plan_id: Optional[str] = None
    provider_id: Optional[str] = None
    supervising_provider_id: Optional[str] = None
    note_date: Optional[datetime] = None
    note_type: ProgressNoteType = ProgressNoteType.GENERAL
    status: Optional[NoteStatus] = None
    chief_complaint: Optional[str] = None
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    procedures_summary: Optional[str] = None

    normalize_note_date = field_validator("note_date")(naive_utc)


class ProgressNoteUpdate(BaseModel):
    treatment_plan_id: Optional[str] = None
    supervising_provider_id: Optional[str] = None
    note_date: Optional[datetime] = None
    note_type: Optional[ProgressNoteType] = None
    status: Optional[NoteStatus] = None
    chief_complaint: Optional[str] = None
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    procedures_summary: Optional[str] = None

    normalize_note_date = field_validator("note_date")(naive_utc)


class NoteContent(BaseModel):
    """Fields an amendment may change"""
    chief_complaint: Optional[str] = None
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    procedures_summary: Optional[str] = None


class AmendNoteRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    changes: NoteContent = NoteContent()


class ProgressNoteResponse(BaseModel):
    id: str
    patient_id: str
    treatment_plan_id: Optional[str] = None
    provider_id: str
    supervising_provider_id: Optional[str] = None
    note_date: datetime
    note_type: ProgressNoteType
    status: NoteStatus
    chief_complaint: Optional[str] = None
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    procedures_summary: Optional[str] = None
    signed_at: Optional[datetime] = None
    signed_by: Optional[str] = None
    cosigned_at: Optional[datetime] = None
    cosigned_by: Optional[str] = None
    amended_at: Optional[datetime] = None
    amendment_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
