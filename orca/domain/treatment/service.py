from datetime import date
from typing import Any, Dict, List, Optional, Tuple
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import AuthorizationError, BusinessLogicError, NotFoundError
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.clinics.repository import UserRepository
from orca.domain.common.models import round_money, utcnow
from orca.domain.patients.repository import PatientRepository
from orca.domain.treatment.models import (
    LOCKED_NOTE_STATUSES,
    NoteStatus,
    ProgressNote,
    ProgressNoteType,
    TreatmentPlan,
    TreatmentPlanStatus,
)
from orca.domain.treatment.repository import ProgressNoteRepository, TreatmentPlanRepository

logger = logging.getLogger(__name__)

PLAN_TRANSITIONS = {
    TreatmentPlanStatus.DRAFT: (TreatmentPlanStatus.PRESENTED, TreatmentPlanStatus.DISCONTINUED),
    TreatmentPlanStatus.PRESENTED: (
        TreatmentPlanStatus.ACCEPTED, TreatmentPlanStatus.DRAFT, TreatmentPlanStatus.DISCONTINUED,
    ),
    TreatmentPlanStatus.ACCEPTED: (TreatmentPlanStatus.ACTIVE, TreatmentPlanStatus.DISCONTINUED),
    TreatmentPlanStatus.ACTIVE: (
        TreatmentPlanStatus.ON_HOLD, TreatmentPlanStatus.COMPLETED, TreatmentPlanStatus.DISCONTINUED,
    ),
    TreatmentPlanStatus.ON_HOLD: (TreatmentPlanStatus.ACTIVE, TreatmentPlanStatus.DISCONTINUED),
    TreatmentPlanStatus.COMPLETED: (),
    TreatmentPlanStatus.DISCONTINUED: (),
}

SIGNABLE_NOTE_STATUSES = (NoteStatus.DRAFT, NoteStatus.PENDING_SIGNATURE)
AMENDABLE_NOTE_STATUSES = (NoteStatus.SIGNED, NoteStatus.COSIGNED, NoteStatus.AMENDED)


class TreatmentPlanService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.plan_repo = TreatmentPlanRepository(db)
        self.patient_repo = PatientRepository(db)
        self.user_repo = UserRepository(db)
        self.audit = AuditLogger(db)

    async def get_plan(self, clinic_id: str, plan_id: str) -> TreatmentPlan:
        plan = await self.plan_repo.get(clinic_id, plan_id)
        if not plan:
            raise NotFoundError("Treatment plan not found", error_code="TREATMENT_PLAN_NOT_FOUND")
        return plan

    async def list_plans(self, clinic_id: str, patient_id: Optional[str] = None,
                         status: Optional[TreatmentPlanStatus] = None,
                         primary_provider_id: Optional[str] = None,
                         from_date: Optional[date] = None, to_date: Optional[date] = None,
                         search: Optional[str] = None, page: int = 1, page_size: int = 20,
                         sort_by: Optional[str] = None, sort_order: str = "desc") -> Tuple[List[TreatmentPlan], int]:
        filters = []
        if patient_id:
            filters.append(TreatmentPlan.patient_id == patient_id)
        if status:
            filters.append(TreatmentPlan.status == status)
        if primary_provider_id:
            filters.append(TreatmentPlan.primary_provider_id == primary_provider_id)
        if from_date:
            filters.append(TreatmentPlan.start_date >= from_date)
        if to_date:
            filters.append(TreatmentPlan.start_date <= to_date)
        return await self.plan_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def _check_provider(self, clinic_id: str, provider_id: Optional[str]) -> None:
        if provider_id and not await self.user_repo.get_in_clinic(clinic_id, provider_id):
            raise NotFoundError("Provider not found", error_code="PROVIDER_NOT_FOUND")

    async def create_plan(self, data: Dict[str, Any], user: CurrentUser) -> TreatmentPlan:
        if not await self.patient_repo.get(user.clinic_id, data["patient_id"]):
            raise NotFoundError("Patient not found", error_code="PATIENT_NOT_FOUND")
        await self._check_provider(user.clinic_id, data.get("primary_provider_id"))
        await self._check_provider(user.clinic_id, data.get("supervising_provider_id"))
        if data.get("total_fee") is not None:
            data["total_fee"] = round_money(data["total_fee"])

        plan = await self.plan_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "plan_number": await self.plan_repo.next_number(user.clinic_id, "TP", "plan_number"),
            "status": TreatmentPlanStatus.DRAFT,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "TreatmentPlan", plan.id, {
            "plan_number": plan.plan_number,
            "patient_id": plan.patient_id,
        })
        await self.db.commit()
        return plan

    async def update_plan(self, plan_id: str, data: Dict[str, Any], user: CurrentUser) -> TreatmentPlan:
        plan = await self.get_plan(user.clinic_id, plan_id)
        if plan.status in (TreatmentPlanStatus.COMPLETED, TreatmentPlanStatus.DISCONTINUED):
            raise BusinessLogicError(
                f"Cannot modify a {plan.status.value.lower()} treatment plan", error_code="PLAN_LOCKED"
            )
        if "primary_provider_id" in data:
            await self._check_provider(user.clinic_id, data["primary_provider_id"])
        if "supervising_provider_id" in data:
            await self._check_provider(user.clinic_id, data["supervising_provider_id"])
        if data.get("total_fee") is not None:
            data["total_fee"] = round_money(data["total_fee"])

        plan = await self.plan_repo.update(plan, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "TreatmentPlan", plan.id, {"fields": sorted(data)})
        await self.db.commit()
        return plan

    async def change_status(self, plan_id: str, new_status: TreatmentPlanStatus, user: CurrentUser,
                            effective_date: Optional[date] = None, notes: Optional[str] = None) -> TreatmentPlan:
        """Move a plan along its lifecycle and stamp the matching date"""
        plan = await self.get_plan(user.clinic_id, plan_id)
        old_status = plan.status
        if new_status not in PLAN_TRANSITIONS[old_status]:
            raise BusinessLogicError(
                f"Cannot change a plan from {old_status.value} to {new_status.value}",
                details={
                    "status": old_status.value,
                    "allowed": [s.value for s in PLAN_TRANSITIONS[old_status]],
                },
                error_code="INVALID_STATUS_TRANSITION",
            )

        on = effective_date or utcnow().date()
        if new_status == TreatmentPlanStatus.PRESENTED:
            plan.presented_date = on
        elif new_status == TreatmentPlanStatus.ACCEPTED:
            plan.accepted_date = on
        elif new_status == TreatmentPlanStatus.ACTIVE and not plan.start_date:
            plan.start_date = on
        elif new_status in (TreatmentPlanStatus.COMPLETED, TreatmentPlanStatus.DISCONTINUED):
            plan.actual_end_date = on

        if notes:
            entry = f"{new_status.value}: {notes}"
            plan.status_notes = f"{plan.status_notes}\n{entry}" if plan.status_notes else entry
        plan.status = new_status
        plan.updated_by = user.id
        await self.db.flush()

        await self.audit.record(user, AuditAction.UPDATE, "TreatmentPlan", plan.id, {
            "from": old_status.value,
            "to": new_status.value,
        })
        await self.db.commit()
        logger.info(f"Treatment plan {plan.plan_number} moved {old_status.value} -> {new_status.value}")
        return plan

    async def delete_plan(self, plan_id: str, user: CurrentUser) -> None:
        plan = await self.get_plan(user.clinic_id, plan_id)
        if plan.status in (TreatmentPlanStatus.ACTIVE, TreatmentPlanStatus.ON_HOLD):
            raise BusinessLogicError(
                "An active treatment plan must be completed or discontinued first",
                error_code="PLAN_IN_PROGRESS",
            )
        await self.plan_repo.soft_delete(plan, user.id)
        await self.audit.record(user, AuditAction.DELETE, "TreatmentPlan", plan.id)
        await self.db.commit()


class ProgressNoteService:
    """Visit notes; once signed the content only changes through an amendment"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.note_repo = ProgressNoteRepository(db)
        self.plan_repo = TreatmentPlanRepository(db)
        self.patient_repo = PatientRepository(db)
        self.user_repo = UserRepository(db)
        self.audit = AuditLogger(db)

    async def get_note(self, clinic_id: str, note_id: str) -> ProgressNote:
        note = await self.note_repo.get(clinic_id, note_id)
        if not note:
            raise NotFoundError("Progress note not found", error_code="NOTE_NOT_FOUND")
        return note

    async def list_notes(self, clinic_id: str, patient_id: Optional[str] = None,
                         treatment_plan_id: Optional[str] = None, provider_id: Optional[str] = None,
                         note_type: Optional[ProgressNoteType] = None, status: Optional[NoteStatus] = None,
                         from_date=None, to_date=None, search: Optional[str] = None,
                         page: int = 1, page_size: int = 20, sort_by: Optional[str] = None,
                         sort_order: str = "desc") -> Tuple[List[ProgressNote], int]:
        filters = []
        if patient_id:
            filters.append(ProgressNote.patient_id == patient_id)
        if treatment_plan_id:
            filters.append(ProgressNote.treatment_plan_id == treatment_plan_id)
        if provider_id:
            filters.append(ProgressNote.provider_id == provider_id)
        if note_type:
            filters.append(ProgressNote.note_type == note_type)
        if status:
            filters.append(ProgressNote.status == status)
        if from_date:
            filters.append(ProgressNote.note_date >= from_date)
        if to_date:
            filters.append(ProgressNote.note_date <= to_date)
        return await self.note_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def _check_links(self, clinic_id: str, patient_id: str, data: Dict[str, Any]) -> None:
        if data.get("treatment_plan_id"):
            plan = await self.plan_repo.get(clinic_id, data["treatment_plan_id"])
            if not plan or plan.patient_id != patient_id:
                raise NotFoundError("Treatment plan not found for this patient",
                                    error_code="TREATMENT_PLAN_NOT_FOUND")
        for field in ("provider_id", "supervising_provider_id"):
            if data.get(field) and not await self.user_repo.get_in_clinic(clinic_id, data[field]):
                raise NotFoundError("Provider not found", error_code="PROVIDER_NOT_FOUND")

    @staticmethod
    def _ensure_editable(note: ProgressNote) -> None:
        if note.status in LOCKED_NOTE_STATUSES:
            raise BusinessLogicError(
                "Signed notes cannot be edited; amend the note instead",
                details={"status": note.status.value},
                error_code="NOTE_LOCKED",
            )

    async def create_note(self, data: Dict[str, Any], user: CurrentUser) -> ProgressNote:
        if not await self.patient_repo.get(user.clinic_id, data["patient_id"]):
            raise NotFoundError("Patient not found", error_code="PATIENT_NOT_FOUND")
        data["provider_id"] = data.get("provider_id") or user.id
        await self._check_links(user.clinic_id, data["patient_id"], data)

        status = data.pop("status", None) or NoteStatus.DRAFT
        if status not in SIGNABLE_NOTE_STATUSES:
            raise BusinessLogicError("New notes must be drafts; sign them afterwards",
                                     error_code="INVALID_STATUS")

        note = await self.note_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "note_date": data.get("note_date") or utcnow(),
            "status": status,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "ProgressNote", note.id, {
            "patient_id": note.patient_id,
            "note_type": note.note_type.value,
        })
        await self.db.commit()
        return note

    async def update_note(self, note_id: str, data: Dict[str, Any], user: CurrentUser) -> ProgressNote:
        note = await self.get_note(user.clinic_id, note_id)
        self._ensure_editable(note)
        if "status" in data and data["status"] not in SIGNABLE_NOTE_STATUSES:
            raise BusinessLogicError("Use the sign endpoint to sign a note", error_code="INVALID_STATUS")
        await self._check_links(user.clinic_id, note.patient_id, data)

        note = await self.note_repo.update(note, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "ProgressNote", note.id, {"fields": sorted(data)})
        await self.db.commit()
        return note

    async def sign_note(self, note_id: str, user: CurrentUser, signed_at=None) -> ProgressNote:
        """Sign a draft; notes with a supervising provider then wait for a co-signature"""
        note = await self.get_note(user.clinic_id, note_id)
        if note.status not in SIGNABLE_NOTE_STATUSES:
            raise BusinessLogicError(
                f"Cannot sign a note in {note.status.value} status",
                error_code="INVALID_STATUS",
            )

        note.signed_at = signed_at or utcnow()
        note.signed_by = user.id
        note.status = NoteStatus.PENDING_COSIGN if note.supervising_provider_id else NoteStatus.SIGNED
        note.updated_by = user.id
        await self.db.flush()

        await self.audit.record(user, AuditAction.SIGN, "ProgressNote", note.id, {"status": note.status.value})
        await self.db.commit()
        return note

    async def cosign_note(self, note_id: str, user: CurrentUser, cosigned_at=None) -> ProgressNote:
        note = await self.get_note(user.clinic_id, note_id)
        if note.status != NoteStatus.PENDING_COSIGN:
            raise BusinessLogicError(
                f"Cannot co-sign a note in {note.status.value} status",
                error_code="INVALID_STATUS",
            )
        if note.supervising_provider_id != user.id:
            raise AuthorizationError(
                "Only the supervising provider can co-sign this note",
                error_code="NOT_SUPERVISING_PROVIDER",
            )

        note.cosigned_at = cosigned_at or utcnow()
        note.cosigned_by = user.id
        note.status = NoteStatus.COSIGNED
        note.updated_by = user.id
        await self.db.flush()

        await self.audit.record(user, AuditAction.SIGN, "ProgressNote", note.id, {"status": "COSIGNED"})
        await self.db.commit()
        return note

    async def amend_note(self, note_id: str, reason: str, changes: Dict[str, Any],
                         user: CurrentUser) -> ProgressNote:
        note = await self.get_note(user.clinic_id, note_id)
        if note.status not in AMENDABLE_NOTE_STATUSES:
            raise BusinessLogicError(
                "Only signed notes can be amended",
                details={"status": note.status.value},
                error_code="INVALID_STATUS",
            )

        now = utcnow()
        for field, value in changes.items():
            setattr(note, field, value)
        entry = f"[{now:%Y-%m-%d %H:%M}] {reason}"
        note.amendment_reason = f"{note.amendment_reason}\n{entry}" if note.amendment_reason else entry
        note.amended_at = now
        note.status = NoteStatus.AMENDED
        note.updated_by = user.id
        await self.db.flush()

        await self.audit.record(user, AuditAction.UPDATE, "ProgressNote", note.id, {
            "amended": sorted(changes),
            "reason": reason,
        })
        await self.db.commit()
        return note

    async def delete_note(self, note_id: str, user: CurrentUser) -> None:
        note = await self.get_note(user.clinic_id, note_id)
        self._ensure_editable(note)
        await self.note_repo.soft_delete(note, user.id)
        await self.audit.record(user, AuditAction.DELETE, "ProgressNote", note.id)
        await self.db.commit()
