from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from orca.domain.clinics.models import UserRole


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Signed-in staff member"""
    id: str
    clinic_id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    permissions: List[str]
    is_active: bool
    last_login_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
