from typing import Dict, Any
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import AuthenticationError, NotFoundError
from orca.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.clinics.models import User
from orca.domain.clinics.repository import ClinicRepository, UserRepository
from orca.domain.common.models import utcnow

logger = logging.getLogger(__name__)


class AuthenticationService:
    """Sign-in and token issuance for clinic staff"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)
        self.clinic_repo = ClinicRepository(db)
        self.audit = AuditLogger(db)

    @staticmethod
    def _token_claims(user: User) -> Dict[str, Any]:
        return {
            "clinic_id": user.clinic_id,
            "email": user.email,
            "role": user.role.value,
            "permissions": user.get_permissions(),
        }

    def issue_tokens(self, user: User) -> Dict[str, Any]:
        claims = self._token_claims(user)
        return {
            "access_token": create_access_token(user.id, claims),
            "refresh_token": create_refresh_token(user.id, {"clinic_id": user.clinic_id}),
            "token_type": "bearer",
        }

    async def authenticate_user(self, email: str, password: str, ip_address: str = None,
                                user_agent: str = None) -> Dict[str, Any]:
        """Authenticate user and return tokens"""
        user = await self.user_repo.get_by_email(email)

        if not user or not verify_password(password, user.hashed_password):
            logger.info(f"Failed login for {email}")
            raise AuthenticationError("Invalid email or password", error_code="INVALID_CREDENTIALS")

        if not user.is_active:
            raise AuthenticationError("Account is not active", error_code="INVALID_CREDENTIALS")

        clinic = await self.clinic_repo.get_by_id(user.clinic_id)
        if not clinic or not clinic.is_active:
            raise AuthenticationError("Clinic is not active", error_code="INVALID_CREDENTIALS")

        user.last_login_at = utcnow()
        await self.audit.log(
            clinic_id=user.clinic_id,
            action=AuditAction.LOGIN,
            entity="User",
            entity_id=user.id,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.db.commit()

        return self.issue_tokens(user)

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Trade a refresh token for a fresh token pair"""
        payload = verify_token(refresh_token, "refresh")
        if not payload:
            raise AuthenticationError("Invalid or expired refresh token", error_code="INVALID_TOKEN")

        user = await self.user_repo.get_by_id(payload["sub"])
        if not user or not user.is_active:
            raise AuthenticationError("Invalid or expired refresh token", error_code="INVALID_TOKEN")

        return self.issue_tokens(user)

    async def get_user(self, clinic_id: str, user_id: str) -> User:
        user = await self.user_repo.get_in_clinic(clinic_id, user_id)
        if not user:
            raise NotFoundError("User not found", error_code="USER_NOT_FOUND")
        return user
