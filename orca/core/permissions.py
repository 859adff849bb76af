from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from fastapi import Request

from orca.core.exceptions import AuthenticationError, AuthorizationError
from orca.core.security import verify_token
from orca.core.tenant import set_clinic_id


class Permissions:
    """Permission constants for the practice management system"""

    # Patients
    PATIENTS_CREATE = "patients:create"
    PATIENTS_READ = "patients:read"
    PATIENTS_UPDATE = "patients:update"
    PATIENTS_DELETE = "patients:delete"

    # Billing: accounts, invoices, credits, payment plans
    BILLING_READ = "billing:read"
    BILLING_CREATE = "billing:create"
    BILLING_UPDATE = "billing:update"
    BILLING_DELETE = "billing:delete"

    # Payments and refunds
    PAYMENT_READ = "payment:read"
    PAYMENT_PROCESS = "payment:process"
    PAYMENT_REQUEST_REFUND = "payment:request_refund"
    PAYMENT_APPROVE_REFUND = "payment:approve_refund"

    # Rooms and chairs
    RESOURCES_READ = "resources:read"
    RESOURCES_CREATE = "resources:create"
    RESOURCES_UPDATE = "resources:update"
    RESOURCES_DELETE = "resources:delete"

    # Staff training
    STAFF_READ = "staff:read"
    STAFF_CREATE = "staff:create"
    STAFF_UPDATE = "staff:update"
    STAFF_DELETE = "staff:delete"

    # Treatment plans and progress notes
    TREATMENT_READ = "treatment:read"
    TREATMENT_CREATE = "treatment:create"
    TREATMENT_UPDATE = "treatment:update"
    TREATMENT_DELETE = "treatment:delete"
    TREATMENT_SIGN = "treatment:sign"

    # System
    AUDIT_READ = "audit:read"
    SYSTEM_ADMIN = "system:admin"


_CLINICAL = [
    Permissions.PATIENTS_READ, Permissions.PATIENTS_CREATE, Permissions.PATIENTS_UPDATE,
    Permissions.TREATMENT_READ, Permissions.TREATMENT_CREATE, Permissions.TREATMENT_UPDATE,
    Permissions.RESOURCES_READ,
]

_BILLING = [
    Permissions.PATIENTS_READ,
    Permissions.BILLING_READ, Permissions.BILLING_CREATE, Permissions.BILLING_UPDATE,
    Permissions.PAYMENT_READ, Permissions.PAYMENT_PROCESS, Permissions.PAYMENT_REQUEST_REFUND,
]

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "super_admin": [Permissions.SYSTEM_ADMIN],
    "clinic_admin": [
        value for name, value in vars(Permissions).items()
        if name.isupper() and value != Permissions.SYSTEM_ADMIN
    ],
    "doctor": _CLINICAL + [
        Permissions.TREATMENT_SIGN, Permissions.TREATMENT_DELETE,
        Permissions.BILLING_READ, Permissions.STAFF_READ,
    ],
    "clinical_staff": _CLINICAL + [Permissions.STAFF_READ],
    "billing": _BILLING + [Permissions.BILLING_DELETE],
    "front_desk": _BILLING + [
        Permissions.PATIENTS_CREATE, Permissions.PATIENTS_UPDATE,
        Permissions.RESOURCES_READ, Permissions.TREATMENT_READ,
    ],
}


def permissions_for_role(role: str, extra: Optional[List[str]] = None) -> List[str]:
    """Role template permissions merged with per-user grants"""
    merged = list(ROLE_PERMISSIONS.get(role, []))
    for perm in extra or []:
        if perm not in merged:
            merged.append(perm)
    return merged


@dataclass
class CurrentUser:
    """Authenticated principal taken from an access token"""
    id: str
    clinic_id: str
    role: str
    permissions: List[str] = field(default_factory=list)
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CurrentUser":
        return cls(
            id=payload["sub"],
            clinic_id=payload["clinic_id"],
            role=payload.get("role", ""),
            permissions=list(payload.get("permissions", [])),
            email=payload.get("email"),
        )

    def has_any(self, required_permissions: List[str]) -> bool:
        if not required_permissions or Permissions.SYSTEM_ADMIN in self.permissions:
            return True
        return any(perm in self.permissions for perm in required_permissions)


def get_current_user(request: Request) -> CurrentUser:
    """Extract and validate user from request"""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthenticationError("Authentication required")

    token = auth_header.split(" ", 1)[1]
    payload = verify_token(token, "access")

    if not payload or "clinic_id" not in payload:
        raise AuthenticationError("Invalid or expired token", error_code="INVALID_TOKEN")

    user = CurrentUser.from_payload(payload)
    user.ip_address = request.client.host if request.client else None
    user.user_agent = request.headers.get("user-agent")
    return user


def require_permissions(required_permissions: List[str]):
    """Build a checker that authenticates the request and enforces any-of permissions"""
    def permission_checker(request: Request) -> CurrentUser:
        user = get_current_user(request)
        request.state.user = user
        set_clinic_id(user.clinic_id)

        if not user.has_any(required_permissions):
            raise AuthorizationError(details={"required_permissions": required_permissions})

        return user

    return permission_checker
