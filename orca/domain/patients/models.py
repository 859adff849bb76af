from sqlalchemy import Column, String, Boolean, Date, Text

from orca.infrastructure.database import Base
from orca.domain.common.models import ClinicScopedMixin


class Patient(ClinicScopedMixin, Base):
    """Patient demographics; billing and treatment rows hang off this"""
    __tablename__ = "patients"

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
