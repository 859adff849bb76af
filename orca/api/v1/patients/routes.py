from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from orca.api.v1.common import DataResponse, DeletedData, Page, PageParams, deleted, paginate
from orca.api.v1.patients.schemas import PatientCreate, PatientResponse, PatientUpdate
from orca.core.permissions import require_permissions, Permissions
from orca.domain.patients.service import PatientService
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.post("", response_model=DataResponse[PatientResponse], status_code=status.HTTP_201_CREATED)
async def create_patient(
    patient_data: PatientCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Create a new patient"""
    user = require_permissions([Permissions.PATIENTS_CREATE])(request)
    patient = await PatientService(db).create_patient(patient_data.model_dump(), user)
    return {"success": True, "data": PatientResponse.model_validate(patient)}


@router.get("", response_model=DataResponse[Page[PatientResponse]])
async def list_patients(
    request: Request,
    params: PageParams = Depends(),
    is_active: Optional[bool] = None,
    db: AsyncSession = Depends(get_db)
):
    """List patients with search and pagination"""
    user = require_permissions([Permissions.PATIENTS_READ])(request)
    patients, total = await PatientService(db).list_patients(
        user.clinic_id, is_active=is_active, **params.as_kwargs()
    )
    return {"success": True, "data": paginate(PatientResponse, patients, total, params)}


@router.get("/{patient_id}", response_model=DataResponse[PatientResponse])
async def get_patient(
    patient_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PATIENTS_READ])(request)
    patient = await PatientService(db).get_patient(user.clinic_id, patient_id)
    return {"success": True, "data": PatientResponse.model_validate(patient)}


@router.put("/{patient_id}", response_model=DataResponse[PatientResponse])
async def update_patient(
    patient_id: str,
    patient_data: PatientUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Update patient information"""
    user = require_permissions([Permissions.PATIENTS_UPDATE])(request)
    patient = await PatientService(db).update_patient(
        patient_id, patient_data.model_dump(exclude_unset=True), user
    )
    return {"success": True, "data": PatientResponse.model_validate(patient)}


@router.delete("/{patient_id}", response_model=DataResponse[DeletedData])
async def delete_patient(
    patient_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete a patient"""
    user = require_permissions([Permissions.PATIENTS_DELETE])(request)
    await PatientService(db).delete_patient(patient_id, user)
    return deleted(patient_id)
