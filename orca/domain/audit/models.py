from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Enum
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import gen_uuid, utcnow


class AuditAction(str, enum.Enum):
    """Audit action types"""
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    PROCESS = "PROCESS"
    SIGN = "SIGN"
    SYSTEM = "SYSTEM"


class AuditLog(Base):
    """Append-only record of who changed what inside a clinic"""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    clinic_id = Column(String(36), ForeignKey("clinics.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)

    action = Column(Enum(AuditAction), nullable=False, index=True)
    entity = Column(String(64), nullable=False, index=True)
    entity_id = Column(String(36), nullable=True, index=True)
    details = Column(JSON, nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    request_id = Column(String(64), nullable=True)

    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
