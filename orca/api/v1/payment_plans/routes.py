from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from orca.api.v1.common import DataResponse, Page, PageParams, paginate
from orca.api.v1.payment_plans.schemas import (
    AttentionCounts,
    DeletePlanResult,
    PaymentPlanCreate,
    PaymentPlanDetail,
    PaymentPlanResponse,
    PaymentPlanUpdate,
    PlanActionRequest,
    ProcessResult,
    ProcessSummary,
    ScheduledPaymentResponse,
    plan_detail,
)
from orca.core.permissions import require_permissions, Permissions
from orca.domain.billing.models import PaymentPlanStatus
from orca.domain.billing.payment_plans import PaymentPlanService
from orca.domain.billing.recurring import RecurringBillingService
from orca.domain.common.models import utcnow
from orca.infrastructure.database import get_db
from orca.infrastructure.payments import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/billing/payment-plans", tags=["Payment Plans"])


async def _detail(service: PaymentPlanService, plan) -> PaymentPlanDetail:
    progress = await service.get_progress(plan.clinic_id, plan)
    schedule = await service.get_schedule(plan.clinic_id, plan.id)
    return plan_detail(plan, progress, schedule)


@router.get("/attention", response_model=DataResponse[AttentionCounts])
async def payments_needing_attention(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Failed, overdue and upcoming installment counts"""
    user = require_permissions([Permissions.BILLING_READ])(request)
    counts = await PaymentPlanService(db).payments_needing_attention(user.clinic_id)
    return {"success": True, "data": counts}


@router.post("/process-due", response_model=DataResponse[ProcessSummary])
async def process_due_payments(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Charge every installment that is due now"""
    user = require_permissions([Permissions.PAYMENT_PROCESS])(request)
    summary = await RecurringBillingService(db, gateway).process_due_payments(
        user.clinic_id, utcnow(), user_id=user.id
    )
    return {"success": True, "data": summary}


@router.post("/scheduled/{scheduled_id}/skip", response_model=DataResponse[ScheduledPaymentResponse])
async def skip_scheduled_payment(
    scheduled_id: str,
    request: Request,
    body: Optional[PlanActionRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    scheduled = await PaymentPlanService(db).skip_scheduled_payment(
        scheduled_id, user, body.reason if body else None
    )
    return {"success": True, "data": ScheduledPaymentResponse.model_validate(scheduled)}


@router.post("/scheduled/{scheduled_id}/retry", response_model=DataResponse[ProcessResult])
async def retry_scheduled_payment(
    scheduled_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Charge a failed or pending installment immediately"""
    user = require_permissions([Permissions.PAYMENT_PROCESS])(request)
    result = await RecurringBillingService(db, gateway).retry_scheduled_payment(
        user.clinic_id, scheduled_id, user_id=user.id
    )
    return {"success": True, "data": result}


@router.get("", response_model=DataResponse[Page[PaymentPlanResponse]])
async def list_payment_plans(
    request: Request,
    params: PageParams = Depends(),
    account_id: Optional[str] = None,
    status: Optional[PaymentPlanStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    plans, total = await PaymentPlanService(db).list_plans(
        user.clinic_id, account_id=account_id, status=status, **params.as_kwargs()
    )
    return {"success": True, "data": paginate(PaymentPlanResponse, plans, total, params)}


@router.post("", response_model=DataResponse[PaymentPlanDetail], status_code=status.HTTP_201_CREATED)
async def create_payment_plan(
    plan_data: PaymentPlanCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Create a plan and its installment schedule"""
    user = require_permissions([Permissions.BILLING_CREATE])(request)
    service = PaymentPlanService(db)
    plan = await service.create_plan(plan_data.model_dump(), user)
    return {"success": True, "data": await _detail(service, plan)}


@router.get("/{plan_id}", response_model=DataResponse[PaymentPlanDetail])
async def get_payment_plan(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    service = PaymentPlanService(db)
    plan = await service.get_plan(user.clinic_id, plan_id)
    return {"success": True, "data": await _detail(service, plan)}


@router.get("/{plan_id}/schedule", response_model=DataResponse[List[ScheduledPaymentResponse]])
async def get_payment_schedule(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    service = PaymentPlanService(db)
    plan = await service.get_plan(user.clinic_id, plan_id)
    schedule = await service.get_schedule(user.clinic_id, plan.id)
    return {"success": True, "data": [ScheduledPaymentResponse.model_validate(s) for s in schedule]}


@router.put("/{plan_id}", response_model=DataResponse[PaymentPlanResponse])
async def update_payment_plan(
    plan_id: str,
    plan_data: PaymentPlanUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    plan = await PaymentPlanService(db).update_plan(plan_id, plan_data.model_dump(exclude_unset=True), user)
    return {"success": True, "data": PaymentPlanResponse.model_validate(plan)}


@router.delete("/{plan_id}", response_model=DataResponse[DeletePlanResult])
async def delete_payment_plan(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Cancel a plan with payment history, remove one without"""
    user = require_permissions([Permissions.BILLING_DELETE])(request)
    plan = await PaymentPlanService(db).delete_plan(plan_id, user)
    return {
        "success": True,
        "data": {"id": plan.id, "status": plan.status, "deleted": plan.deleted_at is not None},
    }


async def _change_status(plan_id: str, action: str, request: Request, db: AsyncSession,
                         body: Optional[PlanActionRequest]):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    plan = await PaymentPlanService(db).change_status(plan_id, action, user, body.reason if body else None)
    return {"success": True, "data": PaymentPlanResponse.model_validate(plan)}


@router.post("/{plan_id}/activate", response_model=DataResponse[PaymentPlanResponse])
async def activate_payment_plan(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    return await _change_status(plan_id, "activate", request, db, None)


@router.post("/{plan_id}/pause", response_model=DataResponse[PaymentPlanResponse])
async def pause_payment_plan(
    plan_id: str,
    request: Request,
    body: Optional[PlanActionRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    return await _change_status(plan_id, "pause", request, db, body)


@router.post("/{plan_id}/resume", response_model=DataResponse[PaymentPlanResponse])
async def resume_payment_plan(
    plan_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    return await _change_status(plan_id, "resume", request, db, None)


@router.post("/{plan_id}/cancel", response_model=DataResponse[PaymentPlanResponse])
async def cancel_payment_plan(
    plan_id: str,
    request: Request,
    body: Optional[PlanActionRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    return await _change_status(plan_id, "cancel", request, db, body)
