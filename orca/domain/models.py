"""Every mapped model, imported so Base.metadata knows all tables"""
from orca.domain.clinics.models import Clinic, User  # noqa: F401
from orca.domain.patients.models import Patient  # noqa: F401
from orca.domain.audit.models import AuditLog  # noqa: F401
from orca.domain.billing.models import (  # noqa: F401
    CreditBalance,
    Invoice,
    PatientAccount,
    PaymentPlan,
    ScheduledPayment,
)
from orca.domain.payments.models import Payment, PaymentAllocation, Refund  # noqa: F401
from orca.domain.resources.models import Room, TreatmentChair  # noqa: F401
from orca.domain.staff.models import TrainingRecord  # noqa: F401
from orca.domain.treatment.models import ProgressNote, TreatmentPlan  # noqa: F401
