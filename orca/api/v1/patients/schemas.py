from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime, date


def check_email(v: Optional[str]) -> Optional[str]:
    if v and '@' not in v:
        raise ValueError('Invalid email format')
    return v


def check_phone(v: Optional[str]) -> Optional[str]:
    if v and not v.replace('+', '').replace('-', '').replace(' ', '').replace('(', '').replace(')', '').isdigit():
        raise ValueError('Phone number must contain only digits, +, -, parentheses and spaces')
    return v


class BasePatientSchema(BaseModel):
    """Base schema for patient data"""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class PatientCreate(BasePatientSchema):
    is_active: bool = True

    validate_email = field_validator('email')(check_email)
    validate_phone = field_validator('phone')(check_phone)


class PatientUpdate(BaseModel):
    """Schema for updating patient information"""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    validate_email = field_validator('email')(check_email)
    validate_phone = field_validator('phone')(check_phone)


class PatientResponse(BasePatientSchema):
    id: str
    clinic_id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
