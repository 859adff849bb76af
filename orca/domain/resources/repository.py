from typing import Dict, List, Optional
from sqlalchemy import select, func

from orca.domain.common.repository import ClinicScopedRepository
from orca.domain.resources.models import ChairStatus, Room, TreatmentChair


class RoomRepository(ClinicScopedRepository[Room]):
    model = Room
    search_fields = ("name", "room_number", "wing")
    sortable_fields = ("created_at", "updated_at", "name", "room_number", "floor")
    default_sort = "room_number"

    async def get_by_number(self, clinic_id: str, room_number: str) -> Optional[Room]:
        result = await self.db.execute(
            self.base_query(clinic_id).where(func.lower(Room.room_number) == room_number.strip().lower())
        )
        return result.scalars().first()


class ChairRepository(ClinicScopedRepository[TreatmentChair]):
    model = TreatmentChair
    search_fields = ("name", "chair_number", "manufacturer", "model_number")
    sortable_fields = ("created_at", "updated_at", "name", "chair_number", "next_maintenance_date")
    default_sort = "chair_number"

    async def get_by_number(self, clinic_id: str, room_id: str, chair_number: str) -> Optional[TreatmentChair]:
        result = await self.db.execute(
            self.base_query(clinic_id).where(
                TreatmentChair.room_id == room_id,
                func.lower(TreatmentChair.chair_number) == chair_number.strip().lower(),
            )
        )
        return result.scalars().first()

    async def count_in_room(self, clinic_id: str, room_id: str, exclude_retired: bool = False) -> int:
        filters = [TreatmentChair.room_id == room_id]
        if exclude_retired:
            filters.append(TreatmentChair.status != ChairStatus.RETIRED)
        return await self.count(clinic_id, *filters)

    async def counts_by_room(self, clinic_id: str, room_ids: List[str]) -> Dict[str, int]:
        if not room_ids:
            return {}
        rows = (await self.db.execute(
            select(TreatmentChair.room_id, func.count(TreatmentChair.id))
            .where(
                TreatmentChair.clinic_id == clinic_id,
                TreatmentChair.deleted_at.is_(None),
                TreatmentChair.room_id.in_(room_ids),
            )
            .group_by(TreatmentChair.room_id)
        )).all()
        return {room_id: count for room_id, count in rows}
