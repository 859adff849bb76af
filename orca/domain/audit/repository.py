from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from orca.domain.audit.models import AuditLog, AuditAction


class AuditLogRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: dict) -> AuditLog:
        entry = AuditLog(**data)
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list(
        self,
        clinic_id: str,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[AuditLog], int]:
        query = select(AuditLog).where(AuditLog.clinic_id == clinic_id)

        if entity:
            query = query.where(AuditLog.entity == entity)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        if user_id:
            query = query.where(AuditLog.user_id == user_id)
        if action:
            query = query.where(AuditLog.action == action)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(AuditLog.timestamp.desc()).offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0
