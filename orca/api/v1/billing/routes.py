from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import datetime

from orca.api.v1.billing.schemas import (
    AccountCreate,
    AccountPage,
    AccountResponse,
    AccountUpdate,
    CreditApplyRequest,
    CreditApplyResult,
    CreditCreate,
    CreditPage,
    CreditResponse,
    CreditTransferRequest,
    CreditTransferResult,
    InvoiceCreate,
    InvoiceResponse,
)
from orca.api.v1.common import (
    DataResponse,
    DeletedData,
    Page,
    PageParams,
    ReasonRequest,
    deleted,
    naive_utc,
    paginate,
)
from orca.core.permissions import require_permissions, Permissions
from orca.domain.billing.models import AccountStatus, AccountType, CreditSource, CreditStatus, InvoiceStatus
from orca.domain.billing.service import AccountService, CreditService, InvoiceService
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/billing", tags=["Billing"])


# Patient accounts
@router.get("/accounts", response_model=DataResponse[AccountPage])
async def list_accounts(
    request: Request,
    params: PageParams = Depends(),
    patient_id: Optional[str] = None,
    guarantor_id: Optional[str] = None,
    status: Optional[AccountStatus] = None,
    account_type: Optional[AccountType] = None,
    has_outstanding_balance: Optional[bool] = None,
    min_balance: Optional[float] = None,
    max_balance: Optional[float] = None,
    db: AsyncSession = Depends(get_db)
):
    """List accounts with clinic-wide balance stats"""
    user = require_permissions([Permissions.BILLING_READ])(request)
    accounts, total, stats = await AccountService(db).list_accounts(
        user.clinic_id,
        patient_id=patient_id,
        guarantor_id=guarantor_id,
        status=status,
        account_type=account_type,
        has_outstanding_balance=has_outstanding_balance,
        min_balance=min_balance,
        max_balance=max_balance,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(AccountResponse, accounts, total, params, stats=stats)}


@router.post("/accounts", response_model=DataResponse[AccountResponse], status_code=status.HTTP_201_CREATED)
async def create_account(
    account_data: AccountCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_CREATE])(request)
    account = await AccountService(db).create_account(account_data.model_dump(), user)
    return {"success": True, "data": AccountResponse.model_validate(account)}


@router.get("/accounts/{account_id}", response_model=DataResponse[AccountResponse])
async def get_account(
    account_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    account = await AccountService(db).get_account(user.clinic_id, account_id)
    return {"success": True, "data": AccountResponse.model_validate(account)}


@router.put("/accounts/{account_id}", response_model=DataResponse[AccountResponse])
async def update_account(
    account_id: str,
    account_data: AccountUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    account = await AccountService(db).update_account(
        account_id, account_data.model_dump(exclude_unset=True), user
    )
    return {"success": True, "data": AccountResponse.model_validate(account)}


@router.delete("/accounts/{account_id}", response_model=DataResponse[DeletedData])
async def delete_account(
    account_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_DELETE])(request)
    await AccountService(db).delete_account(account_id, user)
    return deleted(account_id)


@router.post("/accounts/{account_id}/recalculate", response_model=DataResponse[AccountResponse])
async def recalculate_account(
    account_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Rebuild balances and aging from invoices and credits"""
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    account = await AccountService(db).recalculate_and_commit(account_id, user)
    return {"success": True, "data": AccountResponse.model_validate(account)}


# Invoices
@router.get("/invoices", response_model=DataResponse[Page[InvoiceResponse]])
async def list_invoices(
    request: Request,
    params: PageParams = Depends(),
    account_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    status: Optional[InvoiceStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    invoices, total = await InvoiceService(db).list_invoices(
        user.clinic_id, account_id=account_id, patient_id=patient_id, status=status,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(InvoiceResponse, invoices, total, params)}


@router.post("/invoices", response_model=DataResponse[InvoiceResponse], status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Raise an invoice from line items"""
    user = require_permissions([Permissions.BILLING_CREATE])(request)
    invoice = await InvoiceService(db).create_invoice(invoice_data.model_dump(), user)
    return {"success": True, "data": InvoiceResponse.model_validate(invoice)}


@router.get("/invoices/{invoice_id}", response_model=DataResponse[InvoiceResponse])
async def get_invoice(
    invoice_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    invoice = await InvoiceService(db).get_invoice(user.clinic_id, invoice_id)
    return {"success": True, "data": InvoiceResponse.model_validate(invoice)}


@router.post("/invoices/{invoice_id}/void", response_model=DataResponse[InvoiceResponse])
async def void_invoice(
    invoice_id: str,
    request: Request,
    body: Optional[ReasonRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    invoice = await InvoiceService(db).void_invoice(invoice_id, body.reason if body else None, user)
    return {"success": True, "data": InvoiceResponse.model_validate(invoice)}


# Credit balances
@router.get("/credits", response_model=DataResponse[CreditPage])
async def list_credits(
    request: Request,
    params: PageParams = Depends(),
    account_id: Optional[str] = None,
    status: Optional[CreditStatus] = None,
    source: Optional[CreditSource] = None,
    expiring_before: Optional[datetime] = None,
    min_amount: Optional[float] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    credits, total, stats = await CreditService(db).list_credits(
        user.clinic_id,
        account_id=account_id,
        status=status,
        source=source,
        expiring_before=naive_utc(expiring_before),
        min_amount=min_amount,
        **params.as_kwargs(),
    )
    return {"success": True, "data": paginate(CreditResponse, credits, total, params, stats=stats)}


@router.post("/credits", response_model=DataResponse[CreditResponse], status_code=status.HTTP_201_CREATED)
async def create_credit(
    credit_data: CreditCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_CREATE])(request)
    credit = await CreditService(db).create_credit(credit_data.model_dump(), user)
    return {"success": True, "data": CreditResponse.model_validate(credit)}


@router.get("/credits/{credit_id}", response_model=DataResponse[CreditResponse])
async def get_credit(
    credit_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_READ])(request)
    credit = await CreditService(db).get_credit(user.clinic_id, credit_id)
    return {"success": True, "data": CreditResponse.model_validate(credit)}


@router.post("/credits/{credit_id}/apply", response_model=DataResponse[CreditApplyResult])
async def apply_credit(
    credit_id: str,
    apply_data: CreditApplyRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Pay down an invoice from an available credit"""
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    result = await CreditService(db).apply_credit(credit_id, apply_data.invoice_id, apply_data.amount, user)
    return {"success": True, "data": result}


@router.post("/credits/{credit_id}/transfer", response_model=DataResponse[CreditTransferResult])
async def transfer_credit(
    credit_id: str,
    transfer_data: CreditTransferRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    result = await CreditService(db).transfer_credit(
        credit_id, transfer_data.to_account_id, transfer_data.amount, user
    )
    return {"success": True, "data": result}


@router.post("/credits/{credit_id}/void", response_model=DataResponse[CreditResponse])
async def void_credit(
    credit_id: str,
    request: Request,
    body: Optional[ReasonRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.BILLING_UPDATE])(request)
    credit = await CreditService(db).void_credit(credit_id, body.reason if body else None, user)
    return {"success": True, "data": CreditResponse.model_validate(credit)}
