from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from orca.api.v1.common import DataResponse, DeletedData, Page, PageParams, deleted, paginate
from orca.api.v1.staff.schemas import TrainingCreate, TrainingResponse, TrainingUpdate
from orca.core.permissions import require_permissions, Permissions
from orca.domain.staff.models import TrainingStatus
from orca.domain.staff.service import TrainingService
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/staff", tags=["Staff"])


@router.get("/training", response_model=DataResponse[Page[TrainingResponse]])
async def list_training_records(
    request: Request,
    params: PageParams = Depends(),
    staff_user_id: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[TrainingStatus] = None,
    overdue: Optional[bool] = None,
    expiring_soon: Optional[bool] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    List training records.

    `overdue` keeps records past their due date that are not completed or waived;
    `expiring_soon` keeps certifications expiring within 30 days.
    """
    user = require_permissions([Permissions.STAFF_READ])(request)
    records, total = await TrainingService(db).list_records(
        user.clinic_id,
        staff_user_id=staff_user_id,
        category=category,
        status=status,
        overdue=overdue,
        expiring_soon=expiring_soon,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(TrainingResponse, records, total, params)}


@router.post("/training", response_model=DataResponse[TrainingResponse], status_code=status.HTTP_201_CREATED)
async def create_training_record(
    record_data: TrainingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.STAFF_CREATE])(request)
    record = await TrainingService(db).create_record(record_data.model_dump(), user)
    return {"success": True, "data": TrainingResponse.model_validate(record)}


@router.get("/training/{record_id}", response_model=DataResponse[TrainingResponse])
async def get_training_record(
    record_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.STAFF_READ])(request)
    record = await TrainingService(db).get_record(user.clinic_id, record_id)
    return {"success": True, "data": TrainingResponse.model_validate(record)}


@router.put("/training/{record_id}", response_model=DataResponse[TrainingResponse])
async def update_training_record(
    record_id: str,
    record_data: TrainingUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.STAFF_UPDATE])(request)
    record = await TrainingService(db).update_record(record_id, record_data.model_dump(exclude_unset=True), user)
    return {"success": True, "data": TrainingResponse.model_validate(record)}


@router.delete("/training/{record_id}", response_model=DataResponse[DeletedData])
async def delete_training_record(
    record_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.STAFF_DELETE])(request)
    await TrainingService(db).delete_record(record_id, user)
    return deleted(record_id)
