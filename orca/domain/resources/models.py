from sqlalchemy import Column, String, Integer, Date, ForeignKey, Text, Boolean, Enum, JSON
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import ClinicScopedMixin


class RoomType(str, enum.Enum):
    OPERATORY = "OPERATORY"
    CONSULTATION = "CONSULTATION"
    X_RAY = "X_RAY"
    STERILIZATION = "STERILIZATION"
    LAB = "LAB"
    STORAGE = "STORAGE"
    RECEPTION = "RECEPTION"
    OFFICE = "OFFICE"


class RoomStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    CLOSED = "CLOSED"
    RENOVATION = "RENOVATION"


class ChairStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    IN_REPAIR = "IN_REPAIR"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    RETIRED = "RETIRED"


class ChairCondition(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class Room(ClinicScopedMixin, Base):
    __tablename__ = "rooms"

    name = Column(String(100), nullable=False)
    room_number = Column(String(20), nullable=False, index=True)
    room_type = Column(Enum(RoomType), nullable=False, default=RoomType.OPERATORY)
    status = Column(Enum(RoomStatus), nullable=False, default=RoomStatus.ACTIVE, index=True)
    floor = Column(String(20), nullable=True)
    wing = Column(String(50), nullable=True)
    capacity = Column(Integer, nullable=False, default=1)
    is_available = Column(Boolean, nullable=False, default=True)
    capabilities = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)


class TreatmentChair(ClinicScopedMixin, Base):
    """Dental chair installed in a room"""
    __tablename__ = "treatment_chairs"

    room_id = Column(String(36), ForeignKey("rooms.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    chair_number = Column(String(20), nullable=False)
    status = Column(Enum(ChairStatus), nullable=False, default=ChairStatus.ACTIVE, index=True)
    condition = Column(Enum(ChairCondition), nullable=False, default=ChairCondition.GOOD)
    manufacturer = Column(String(100), nullable=True)
    model_number = Column(String(100), nullable=True)
    serial_number = Column(String(100), nullable=True)
    has_delivery_unit = Column(Boolean, nullable=False, default=True)
    has_suction = Column(Boolean, nullable=False, default=True)
    has_light = Column(Boolean, nullable=False, default=True)
    last_maintenance_date = Column(Date, nullable=True)
    next_maintenance_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
