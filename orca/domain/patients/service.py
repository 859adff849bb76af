from typing import Optional, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import NotFoundError
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.patients.models import Patient
from orca.domain.patients.repository import PatientRepository


class PatientService:
    """Service layer for patient management operations"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.patient_repo = PatientRepository(db)
        self.audit = AuditLogger(db)

    async def get_patient(self, clinic_id: str, patient_id: str) -> Patient:
        patient = await self.patient_repo.get(clinic_id, patient_id)
        if not patient:
            raise NotFoundError("Patient not found", error_code="PATIENT_NOT_FOUND")
        return patient

    async def list_patients(
        self,
        clinic_id: str,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
    ) -> Tuple[List[Patient], int]:
        filters = []
        if is_active is not None:
            filters.append(Patient.is_active == is_active)
        return await self.patient_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def create_patient(self, data: dict, user: CurrentUser) -> Patient:
        patient = await self.patient_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "Patient", patient.id)
        await self.db.commit()
        return patient

    async def update_patient(self, patient_id: str, data: dict, user: CurrentUser) -> Patient:
        patient = await self.get_patient(user.clinic_id, patient_id)
        patient = await self.patient_repo.update(patient, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "Patient", patient.id, {"fields": sorted(data)})
        await self.db.commit()
        return patient

    async def delete_patient(self, patient_id: str, user: CurrentUser) -> None:
        patient = await self.get_patient(user.clinic_id, patient_id)
        await self.patient_repo.soft_delete(patient, user.id)
        await self.audit.record(user, AuditAction.DELETE, "Patient", patient.id)
        await self.db.commit()
