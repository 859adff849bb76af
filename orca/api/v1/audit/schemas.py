from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Optional
from datetime import datetime

from orca.domain.audit.models import AuditAction


class AuditLogResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    action: AuditAction
    entity: str
    entity_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)
