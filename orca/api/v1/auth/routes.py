from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orca.api.v1.auth.schemas import LoginRequest, RefreshRequest, TokenResponse, UserResponse
from orca.api.v1.common import DataResponse
from orca.core.permissions import require_permissions
from orca.domain.clinics.service import AuthenticationService
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=DataResponse[TokenResponse], status_code=status.HTTP_200_OK)
async def login(
    login_data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Authenticate user and return tokens"""
    auth_service = AuthenticationService(db)
    tokens = await auth_service.authenticate_user(
        email=login_data.email,
        password=login_data.password,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"success": True, "data": tokens}


@router.post("/refresh", response_model=DataResponse[TokenResponse], status_code=status.HTTP_200_OK)
async def refresh_token(
    refresh_data: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    """Refresh access token using refresh token"""
    auth_service = AuthenticationService(db)
    tokens = await auth_service.refresh_access_token(refresh_data.refresh_token)
    return {"success": True, "data": tokens}


@router.get("/me", response_model=DataResponse[UserResponse], status_code=status.HTTP_200_OK)
async def get_me(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Get current user information"""
    current_user = require_permissions([])(request)
    user = await AuthenticationService(db).get_user(current_user.clinic_id, current_user.id)
    data = UserResponse.model_validate(user).model_copy(update={"permissions": user.get_permissions()})
    return {"success": True, "data": data}
