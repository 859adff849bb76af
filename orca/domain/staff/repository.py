from orca.domain.common.repository import ClinicScopedRepository
from orca.domain.staff.models import TrainingRecord


class TrainingRecordRepository(ClinicScopedRepository[TrainingRecord]):
    model = TrainingRecord
    search_fields = ("name", "description", "provider")
    sortable_fields = (
        "created_at", "updated_at", "name", "category", "assigned_date",
        "due_date", "completed_date", "expiration_date",
    )
    default_sort = "due_date"
