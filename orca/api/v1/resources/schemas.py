from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, date

from orca.domain.resources.models import ChairCondition, ChairStatus, RoomStatus, RoomType


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    room_number: str = Field(..., min_length=1, max_length=20)
    room_type: RoomType = RoomType.OPERATORY
    status: RoomStatus = RoomStatus.ACTIVE
    floor: Optional[str] = Field(None, max_length=20)
    wing: Optional[str] = Field(None, max_length=50)
    capacity: int = Field(1, ge=1, le=50)
    is_available: bool = True
    capabilities: List[str] = []
    notes: Optional[str] = None


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    room_number: Optional[str] = Field(None, min_length=1, max_length=20)
    room_type: Optional[RoomType] = None
    status: Optional[RoomStatus] = None
    floor: Optional[str] = Field(None, max_length=20)
    wing: Optional[str] = Field(None, max_length=50)
    capacity: Optional[int] = Field(None, ge=1, le=50)
    is_available: Optional[bool] = None
    capabilities: Optional[List[str]] = None
    notes: Optional[str] = None


class RoomResponse(BaseModel):
    id: str
    name: str
    room_number: str
    room_type: RoomType
    status: RoomStatus
    floor: Optional[str] = None
    wing: Optional[str] = None
    capacity: int
    is_available: bool
    capabilities: List[str]
    notes: Optional[str] = None
    chair_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChairCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    chair_number: str = Field(..., min_length=1, max_length=20)
    status: ChairStatus = ChairStatus.ACTIVE
    condition: ChairCondition = ChairCondition.GOOD
    manufacturer: Optional[str] = Field(None, max_length=100)
    model_number: Optional[str] = Field(None, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)
    has_delivery_unit: bool = True
    has_suction: bool = True
    has_light: bool = True
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None
    notes: Optional[str] = None


class ChairUpdate(BaseModel):
    room_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    chair_number: Optional[str] = Field(None, min_length=1, max_length=20)
    status: Optional[ChairStatus] = None
    condition: Optional[ChairCondition] = None
    manufacturer: Optional[str] = Field(None, max_length=100)
    model_number: Optional[str] = Field(None, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)
    has_delivery_unit: Optional[bool] = None
    has_suction: Optional[bool] = None
    has_light: Optional[bool] = None
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None
    notes: Optional[str] = None


class ChairResponse(BaseModel):
    id: str
    room_id: str
    name: str
    chair_number: str
    status: ChairStatus
    condition: ChairCondition
    manufacturer: Optional[str] = None
    model_number: Optional[str] = None
    serial_number: Optional[str] = None
    has_delivery_unit: bool
    has_suction: bool
    has_light: bool
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
