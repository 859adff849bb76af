from typing import Any, Dict, Optional
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.tenant import get_request_id
from orca.domain.audit.models import AuditAction, AuditLog
from orca.domain.audit.repository import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes audit entries inside the caller's transaction"""

    def __init__(self, db: AsyncSession):
        self.repo = AuditLogRepository(db)

    async def log(
        self,
        clinic_id: str,
        action: AuditAction,
        entity: str,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        entry = await self.repo.create({
            "clinic_id": clinic_id,
            "action": action,
            "entity": entity,
            "entity_id": entity_id,
            "user_id": user_id,
            "details": details,
            "ip_address": ip_address,
            "user_agent": user_agent[:500] if user_agent else None,
            "request_id": get_request_id(),
        })
        logger.debug(f"audit {action.value} {entity} {entity_id}")
        return entry

    async def record(self, user, action: AuditAction, entity: str, entity_id: Optional[str] = None,
                     details: Optional[Dict[str, Any]] = None) -> AuditLog:
        """Log an action on behalf of the authenticated user"""
        return await self.log(
            clinic_id=user.clinic_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            user_id=user.id,
            details=details,
            ip_address=user.ip_address,
            user_agent=user.user_agent,
        )

    async def list_logs(self, clinic_id: str, **filters):
        return await self.repo.list(clinic_id, **filters)
