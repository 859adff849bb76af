from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, date

from orca.domain.staff.models import TrainingStatus


class TrainingCreate(BaseModel):
    staff_user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: str = Field(..., min_length=1, max_length=50)
    provider: Optional[str] = Field(None, max_length=200)
    duration_hours: Optional[float] = Field(None, ge=0)
    credits: Optional[float] = Field(None, ge=0)
    assigned_date: Optional[date] = None
    due_date: Optional[date] = None
    started_date: Optional[date] = None
    completed_date: Optional[date] = None
    expiration_date: Optional[date] = None
    status: TrainingStatus = TrainingStatus.ASSIGNED
    score: Optional[int] = Field(None, ge=0, le=100)
    passed: Optional[bool] = None
    certificate_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class TrainingUpdate(BaseModel):
    staff_user_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    provider: Optional[str] = Field(None, max_length=200)
    duration_hours: Optional[float] = Field(None, ge=0)
    credits: Optional[float] = Field(None, ge=0)
    due_date: Optional[date] = None
    started_date: Optional[date] = None
    completed_date: Optional[date] = None
    expiration_date: Optional[date] = None
    status: Optional[TrainingStatus] = None
    score: Optional[int] = Field(None, ge=0, le=100)
    passed: Optional[bool] = None
    certificate_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class TrainingResponse(BaseModel):
    id: str
    staff_user_id: str
    name: str
    description: Optional[str] = None
    category: str
    provider: Optional[str] = None
    duration_hours: Optional[float] = None
    credits: Optional[float] = None
    assigned_date: date
    due_date: Optional[date] = None
    started_date: Optional[date] = None
    completed_date: Optional[date] = None
    expiration_date: Optional[date] = None
    status: TrainingStatus
    score: Optional[int] = None
    passed: Optional[bool] = None
    certificate_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
