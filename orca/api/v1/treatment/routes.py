from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date, datetime

from orca.api.v1.common import DataResponse, DeletedData, Page, PageParams, deleted, naive_utc, paginate
from orca.api.v1.treatment.schemas import (
    AmendNoteRequest,
    PlanStatusRequest,
    ProgressNoteCreate,
    ProgressNoteResponse,
    ProgressNoteUpdate,
    TreatmentPlanCreate,
    TreatmentPlanResponse,
    TreatmentPlanUpdate,
)
from orca.core.permissions import require_permissions, Permissions
from orca.domain.treatment.models import NoteStatus, ProgressNoteType, TreatmentPlanStatus
from orca.domain.treatment.service import ProgressNoteService, TreatmentPlanService
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/treatment", tags=["Treatment"])


# Treatment plans
@router.get("/plans", response_model=DataResponse[Page[TreatmentPlanResponse]])
async def list_treatment_plans(
    request: Request,
    params: PageParams = Depends(),
    patient_id: Optional[str] = None,
    status: Optional[TreatmentPlanStatus] = None,
    primary_provider_id: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_READ])(request)
    plans, total = await TreatmentPlanService(db).list_plans(
        user.clinic_id,
        patient_id=patient_id,
        status=status,
        primary_provider_id=primary_provider_id,
        from_date=from_date,
        to_date=to_date,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(TreatmentPlanResponse, plans, total, params)}


@router.post("/plans", response_model=DataResponse[TreatmentPlanResponse], status_code=status.HTTP_201_CREATED)
async def create_treatment_plan(
    plan_data: TreatmentPlanCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Create a treatment plan in DRAFT status"""
    user = require_permissions([Permissions.TREATMENT_CREATE])(request)
    plan = await TreatmentPlanService(db).create_plan(plan_data.model_dump(), user)
    return {"success": True, "data": TreatmentPlanResponse.model_validate(plan)}


@router.get("/plans/{plan_id}", response_model=DataResponse[TreatmentPlanResponse])
async def get_treatment_plan(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_READ])(request)
    plan = await TreatmentPlanService(db).get_plan(user.clinic_id, plan_id)
    return {"success": True, "data": TreatmentPlanResponse.model_validate(plan)}


@router.put("/plans/{plan_id}", response_model=DataResponse[TreatmentPlanResponse])
async def update_treatment_plan(
    plan_id: str,
    plan_data: TreatmentPlanUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_UPDATE])(request)
    plan = await TreatmentPlanService(db).update_plan(plan_id, plan_data.model_dump(exclude_unset=True), user)
    return {"success": True, "data": TreatmentPlanResponse.model_validate(plan)}


@router.post("/plans/{plan_id}/status", response_model=DataResponse[TreatmentPlanResponse])
async def change_treatment_plan_status(
    plan_id: str,
    status_data: PlanStatusRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_UPDATE])(request)
    plan = await TreatmentPlanService(db).change_status(
        plan_id, status_data.new_status, user, status_data.effective_date, status_data.notes
    )
    return {"success": True, "data": TreatmentPlanResponse.model_validate(plan)}


@router.delete("/plans/{plan_id}", response_model=DataResponse[DeletedData])
async def delete_treatment_plan(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_DELETE])(request)
    await TreatmentPlanService(db).delete_plan(plan_id, user)
    return deleted(plan_id)


# Progress notes
@router.get("/notes", response_model=DataResponse[Page[ProgressNoteResponse]])
async def list_progress_notes(
    request: Request,
    params: PageParams = Depends(),
    patient_id: Optional[str] = None,
    treatment_plan_id: Optional[str] = None,
    provider_id: Optional[str] = None,
    note_type: Optional[ProgressNoteType] = None,
    status: Optional[NoteStatus] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_READ])(request)
    notes, total = await ProgressNoteService(db).list_notes(
        user.clinic_id,
        patient_id=patient_id,
        treatment_plan_id=treatment_plan_id,
        provider_id=provider_id,
        note_type=note_type,
        status=status,
        from_date=naive_utc(from_date),
        to_date=naive_utc(to_date),
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(ProgressNoteResponse, notes, total, params)}


@router.post("/notes", response_model=DataResponse[ProgressNoteResponse], status_code=status.HTTP_201_CREATED)
async def create_progress_note(
    note_data: ProgressNoteCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_CREATE])(request)
    note = await ProgressNoteService(db).create_note(note_data.model_dump(), user)
    return {"success": True, "data": ProgressNoteResponse.model_validate(note)}


@router.get("/notes/{note_id}", response_model=DataResponse[ProgressNoteResponse])
async def get_progress_note(
    note_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_READ])(request)
    note = await ProgressNoteService(db).get_note(user.clinic_id, note_id)
    return {"success": True, "data": ProgressNoteResponse.model_validate(note)}


@router.put("/notes/{note_id}", response_model=DataResponse[ProgressNoteResponse])
async def update_progress_note(
    note_id: str,
    note_data: ProgressNoteUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Edit an unsigned note"""
    user = require_permissions([Permissions.TREATMENT_UPDATE])(request)
    note = await ProgressNoteService(db).update_note(note_id, note_data.model_dump(exclude_unset=True), user)
    return {"success": True, "data": ProgressNoteResponse.model_validate(note)}


@router.post("/notes/{note_id}/sign", response_model=DataResponse[ProgressNoteResponse])
async def sign_progress_note(
    note_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_SIGN])(request)
    note = await ProgressNoteService(db).sign_note(note_id, user)
    return {"success": True, "data": ProgressNoteResponse.model_validate(note)}


@router.post("/notes/{note_id}/cosign", response_model=DataResponse[ProgressNoteResponse])
async def cosign_progress_note(
    note_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_SIGN])(request)
    note = await ProgressNoteService(db).cosign_note(note_id, user)
    return {"success": True, "data": ProgressNoteResponse.model_validate(note)}


@router.post("/notes/{note_id}/amend", response_model=DataResponse[ProgressNoteResponse])
async def amend_progress_note(
    note_id: str,
    amendment: AmendNoteRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Change a signed note, keeping the reason on record"""
    user = require_permissions([Permissions.TREATMENT_SIGN])(request)
    note = await ProgressNoteService(db).amend_note(
        note_id, amendment.reason, amendment.changes.model_dump(exclude_unset=True), user
    )
    return {"success": True, "data": ProgressNoteResponse.model_validate(note)}


@router.delete("/notes/{note_id}", response_model=DataResponse[DeletedData])
async def delete_progress_note(
    note_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.TREATMENT_DELETE])(request)
    await ProgressNoteService(db).delete_note(note_id, user)
    return deleted(note_id)
