from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from orca.domain.clinics.models import Clinic, User


class ClinicRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, clinic_id: str) -> Optional[Clinic]:
        result = await self.db.execute(select(Clinic).where(Clinic.id == clinic_id))
        return result.scalar_one_or_none()

    async def list_active_ids(self) -> list:
        result = await self.db.execute(select(Clinic.id).where(Clinic.is_active.is_(True)))
        return list(result.scalars().all())

    async def create(self, data: dict) -> Clinic:
        clinic = Clinic(**data)
        self.db.add(clinic)
        await self.db.flush()
        return clinic


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_in_clinic(self, clinic_id: str, user_id: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.clinic_id == clinic_id)
        )
        return result.scalar_one_or_none()

    async def create(self, data: dict) -> User:
        user = User(**data)
        self.db.add(user)
        await self.db.flush()
        return user
