from orca.domain.common.repository import ClinicScopedRepository
from orca.domain.treatment.models import ProgressNote, TreatmentPlan


class TreatmentPlanRepository(ClinicScopedRepository[TreatmentPlan]):
    model = TreatmentPlan
    search_fields = ("plan_number", "plan_name", "plan_type", "chief_complaint")
    sortable_fields = ("created_at", "updated_at", "plan_name", "status", "start_date")


class ProgressNoteRepository(ClinicScopedRepository[ProgressNote]):
    model = ProgressNote
    search_fields = ("chief_complaint", "subjective", "assessment", "plan")
    sortable_fields = ("note_date", "created_at", "updated_at", "status")
    default_sort = "note_date"
