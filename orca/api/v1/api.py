from fastapi import APIRouter

from orca.api.v1.audit import routes as audit
from orca.api.v1.auth import routes as auth
from orca.api.v1.billing import routes as billing
from orca.api.v1.patients import routes as patients
from orca.api.v1.payment_plans import routes as payment_plans
from orca.api.v1.payments import routes as payments
from orca.api.v1.resources import routes as resources
from orca.api.v1.staff import routes as staff
from orca.api.v1.treatment import routes as treatment

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(patients.router)
api_router.include_router(payment_plans.router)
api_router.include_router(billing.router)
api_router.include_router(payments.router)
api_router.include_router(payments.refunds_router)
api_router.include_router(resources.router)
api_router.include_router(staff.router)
api_router.include_router(treatment.router)
api_router.include_router(audit.router)
