from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import NotFoundError
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.clinics.repository import UserRepository
from orca.domain.common.models import utcnow
from orca.domain.staff.models import CLOSED_TRAINING_STATUSES, TrainingRecord, TrainingStatus
from orca.domain.staff.repository import TrainingRecordRepository

EXPIRING_SOON_DAYS = 30


def stamp_status_dates(record_data: Dict[str, Any], current: Optional[TrainingRecord], today: date) -> None:
    """Fill started/completed dates implied by a status change"""
    status = record_data.get("status")
    if status == TrainingStatus.COMPLETED:
        if not record_data.get("completed_date") and not (current and current.completed_date):
            record_data["completed_date"] = today
    elif status == TrainingStatus.IN_PROGRESS:
        if not record_data.get("started_date") and not (current and current.started_date):
            record_data["started_date"] = today


class TrainingService:
    """Staff compliance training records"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.training_repo = TrainingRecordRepository(db)
        self.user_repo = UserRepository(db)
        self.audit = AuditLogger(db)

    async def get_record(self, clinic_id: str, record_id: str) -> TrainingRecord:
        record = await self.training_repo.get(clinic_id, record_id)
        if not record:
            raise NotFoundError("Training record not found", error_code="TRAINING_NOT_FOUND")
        return record

    async def list_records(
        self,
        clinic_id: str,
        staff_user_id: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[TrainingStatus] = None,
        overdue: Optional[bool] = None,
        expiring_soon: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: Optional[str] = None,
        sort_order: str = "asc",
        today: Optional[date] = None,
    ) -> Tuple[List[TrainingRecord], int]:
        today = today or utcnow().date()
        filters = []
        if staff_user_id:
            filters.append(TrainingRecord.staff_user_id == staff_user_id)
        if category:
            filters.append(TrainingRecord.category == category)
        if status:
            filters.append(TrainingRecord.status == status)
        if overdue:
            filters.append(TrainingRecord.due_date < today)
            filters.append(TrainingRecord.status.notin_(CLOSED_TRAINING_STATUSES))
        elif overdue is False:
            filters.append(or_(
                TrainingRecord.due_date.is_(None),
                TrainingRecord.due_date >= today,
                TrainingRecord.status.in_(CLOSED_TRAINING_STATUSES),
            ))
        if expiring_soon:
            filters.append(TrainingRecord.expiration_date >= today)
            filters.append(TrainingRecord.expiration_date <= today + timedelta(days=EXPIRING_SOON_DAYS))

        return await self.training_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def _check_staff(self, clinic_id: str, staff_user_id: str) -> None:
        if not await self.user_repo.get_in_clinic(clinic_id, staff_user_id):
            raise NotFoundError("Staff member not found", error_code="STAFF_NOT_FOUND")

    async def create_record(self, data: Dict[str, Any], user: CurrentUser) -> TrainingRecord:
        await self._check_staff(user.clinic_id, data["staff_user_id"])
        today = utcnow().date()
        if not data.get("assigned_date"):
            data["assigned_date"] = today
        stamp_status_dates(data, None, today)

        record = await self.training_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "TrainingRecord", record.id, {
            "staff_user_id": record.staff_user_id,
            "name": record.name,
        })
        await self.db.commit()
        return record

    async def update_record(self, record_id: str, data: Dict[str, Any], user: CurrentUser) -> TrainingRecord:
        record = await self.get_record(user.clinic_id, record_id)
        if data.get("staff_user_id") and data["staff_user_id"] != record.staff_user_id:
            await self._check_staff(user.clinic_id, data["staff_user_id"])
        stamp_status_dates(data, record, utcnow().date())

        record = await self.training_repo.update(record, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "TrainingRecord", record.id, {"fields": sorted(data)})
        await self.db.commit()
        return record

    async def delete_record(self, record_id: str, user: CurrentUser) -> None:
        record = await self.get_record(user.clinic_id, record_id)
        await self.training_repo.soft_delete(record, user.id)
        await self.audit.record(user, AuditAction.DELETE, "TrainingRecord", record.id)
        await self.db.commit()
