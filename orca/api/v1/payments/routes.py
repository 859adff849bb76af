from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import datetime

from orca.api.v1.common import DataResponse, Page, PageParams, naive_utc, paginate
from orca.api.v1.payments.schemas import (
    AllocationResponse,
    PaymentCreate,
    PaymentDetail,
    PaymentPage,
    PaymentResponse,
    RefundApproveRequest,
    RefundCreate,
    RefundRejectRequest,
    RefundResponse,
)
from orca.core.permissions import require_permissions, Permissions
from orca.domain.payments.models import PaymentMethodType, PaymentStatus, PaymentType, RefundStatus
from orca.domain.payments.service import PaymentService, RefundService
from orca.infrastructure.database import get_db
from orca.infrastructure.payments import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/payments", tags=["Payments"])
refunds_router = APIRouter(prefix="/refunds", tags=["Refunds"])


async def _detail(service: PaymentService, payment) -> PaymentDetail:
    allocations = await service.get_allocations(payment.id)
    return PaymentDetail(
        **PaymentResponse.model_validate(payment).model_dump(),
        allocations=[AllocationResponse.model_validate(a) for a in allocations],
    )


@router.get("", response_model=DataResponse[PaymentPage])
async def list_payments(
    request: Request,
    params: PageParams = Depends(),
    account_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    payment_type: Optional[PaymentType] = None,
    payment_method_type: Optional[PaymentMethodType] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    db: AsyncSession = Depends(get_db)
):
    """List payments with totals for the filter and for today"""
    user = require_permissions([Permissions.PAYMENT_READ])(request)
    payments, total, stats = await PaymentService(db).list_payments(
        user.clinic_id,
        account_id=account_id,
        patient_id=patient_id,
        status=status,
        payment_type=payment_type,
        payment_method_type=payment_method_type,
        date_from=naive_utc(date_from),
        date_to=naive_utc(date_to),
        min_amount=min_amount,
        max_amount=max_amount,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(PaymentResponse, payments, total, params, stats=stats)}


@router.post("", response_model=DataResponse[PaymentDetail], status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment_data: PaymentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Record a payment and apply it to invoices"""
    user = require_permissions([Permissions.PAYMENT_PROCESS])(request)
    service = PaymentService(db, gateway)
    payment = await service.create_payment(payment_data.model_dump(), user)
    return {"success": True, "data": await _detail(service, payment)}


@router.get("/{payment_id}", response_model=DataResponse[PaymentDetail])
async def get_payment(
    payment_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PAYMENT_READ])(request)
    service = PaymentService(db)
    payment = await service.get_payment(user.clinic_id, payment_id)
    return {"success": True, "data": await _detail(service, payment)}


@refunds_router.get("", response_model=DataResponse[Page[RefundResponse]])
async def list_refunds(
    request: Request,
    params: PageParams = Depends(),
    payment_id: Optional[str] = None,
    account_id: Optional[str] = None,
    status: Optional[RefundStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PAYMENT_READ])(request)
    refunds, total = await RefundService(db).list_refunds(
        user.clinic_id, payment_id=payment_id, account_id=account_id, status=status,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(RefundResponse, refunds, total, params)}


@refunds_router.post("", response_model=DataResponse[RefundResponse], status_code=status.HTTP_201_CREATED)
async def request_refund(
    refund_data: RefundCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PAYMENT_REQUEST_REFUND])(request)
    refund = await RefundService(db).request_refund(refund_data.model_dump(), user)
    return {"success": True, "data": RefundResponse.model_validate(refund)}


@refunds_router.get("/{refund_id}", response_model=DataResponse[RefundResponse])
async def get_refund(
    refund_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PAYMENT_READ])(request)
    refund = await RefundService(db).get_refund(user.clinic_id, refund_id)
    return {"success": True, "data": RefundResponse.model_validate(refund)}


@refunds_router.post("/{refund_id}/approve", response_model=DataResponse[RefundResponse])
async def approve_refund(
    refund_id: str,
    request: Request,
    body: Optional[RefundApproveRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PAYMENT_APPROVE_REFUND])(request)
    refund = await RefundService(db).approve_refund(refund_id, user, body.notes if body else None)
    return {"success": True, "data": RefundResponse.model_validate(refund)}


@refunds_router.post("/{refund_id}/reject", response_model=DataResponse[RefundResponse])
async def reject_refund(
    refund_id: str,
    request: Request,
    body: Optional[RefundRejectRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.PAYMENT_APPROVE_REFUND])(request)
    refund = await RefundService(db).reject_refund(refund_id, user, body.reason if body else None)
    return {"success": True, "data": RefundResponse.model_validate(refund)}


@refunds_router.post("/{refund_id}/process", response_model=DataResponse[RefundResponse])
async def process_refund(
    refund_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Return an approved refund to the payer"""
    user = require_permissions([Permissions.PAYMENT_APPROVE_REFUND])(request)
    refund = await RefundService(db, gateway).process_refund(refund_id, user)
    return {"success": True, "data": RefundResponse.model_validate(refund)}
