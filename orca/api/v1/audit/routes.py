from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from orca.api.v1.audit.schemas import AuditLogResponse
from orca.api.v1.common import DataResponse, Page, paginate
from orca.core.config import settings
from orca.core.permissions import require_permissions, Permissions
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


class AuditPageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    ):
        self.page = page
        self.page_size = page_size


@router.get("", response_model=DataResponse[Page[AuditLogResponse]])
async def list_audit_logs(
    request: Request,
    params: AuditPageParams = Depends(),
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    db: AsyncSession = Depends(get_db)
):
    """Newest entries first"""
    user = require_permissions([Permissions.AUDIT_READ])(request)
    logs, total = await AuditLogger(db).list_logs(
        user.clinic_id,
        entity=entity,
        entity_id=entity_id,
        user_id=user_id,
        action=action,
        page=params.page,
        page_size=params.page_size,
    )
    return {"success": True, "data": paginate(AuditLogResponse, logs, total, params)}
