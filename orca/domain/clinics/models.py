from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, JSON, Enum
import enum

from orca.infrastructure.database import Base
from orca.domain.common.models import TimestampMixin, gen_uuid


class UserRole(str, enum.Enum):
    """Staff roles within a clinic"""
    SUPER_ADMIN = "super_admin"
    CLINIC_ADMIN = "clinic_admin"
    DOCTOR = "doctor"
    CLINICAL_STAFF = "clinical_staff"
    FRONT_DESK = "front_desk"
    BILLING = "billing"


class Clinic(TimestampMixin, Base):
    """A practice location; every tenant-owned row points at one"""
    __tablename__ = "clinics"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    is_active = Column(Boolean, nullable=False, default=True)


class User(TimestampMixin, Base):
    """Staff member able to sign in to a clinic"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    clinic_id = Column(String(36), ForeignKey("clinics.id"), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.FRONT_DESK)
    # Grants on top of the role template
    permissions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def get_permissions(self) -> list:
        from orca.core.permissions import permissions_for_role
        role = self.role.value if isinstance(self.role, UserRole) else self.role
        return permissions_for_role(role, self.permissions)
