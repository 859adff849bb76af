from orca.domain.common.repository import ClinicScopedRepository
from orca.domain.patients.models import Patient


class PatientRepository(ClinicScopedRepository[Patient]):
    """Repository for patient data access operations"""
    model = Patient
    search_fields = ("first_name", "last_name", "email", "phone")
    sortable_fields = ("created_at", "updated_at", "last_name", "first_name", "date_of_birth")
