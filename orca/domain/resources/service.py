from typing import Any, Dict, List, Optional, Tuple
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from orca.core.exceptions import BusinessLogicError, ConflictError, NotFoundError
from orca.core.permissions import CurrentUser
from orca.domain.audit.models import AuditAction
from orca.domain.audit.service import AuditLogger
from orca.domain.resources.models import (
    ChairStatus,
    Room,
    RoomStatus,
    RoomType,
    TreatmentChair,
)
from orca.domain.resources.repository import ChairRepository, RoomRepository

logger = logging.getLogger(__name__)


class ResourceService:
    """Rooms and the treatment chairs installed in them"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.room_repo = RoomRepository(db)
        self.chair_repo = ChairRepository(db)
        self.audit = AuditLogger(db)

    # Rooms

    async def get_room(self, clinic_id: str, room_id: str) -> Room:
        room = await self.room_repo.get(clinic_id, room_id)
        if not room:
            raise NotFoundError("Room not found", error_code="ROOM_NOT_FOUND")
        return room

    async def list_rooms(self, clinic_id: str, room_type: Optional[RoomType] = None,
                         status: Optional[RoomStatus] = None, is_available: Optional[bool] = None,
                         search: Optional[str] = None, page: int = 1, page_size: int = 20,
                         sort_by: Optional[str] = None, sort_order: str = "asc") -> Tuple[List[Room], int]:
        filters = []
        if room_type:
            filters.append(Room.room_type == room_type)
        if status:
            filters.append(Room.status == status)
        if is_available is not None:
            filters.append(Room.is_available == is_available)
        return await self.room_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def chair_counts(self, clinic_id: str, rooms: List[Room]) -> Dict[str, int]:
        counts = await self.chair_repo.counts_by_room(clinic_id, [room.id for room in rooms])
        return {room.id: counts.get(room.id, 0) for room in rooms}

    async def _check_room_number(self, clinic_id: str, room_number: str, room_id: Optional[str] = None) -> None:
        existing = await self.room_repo.get_by_number(clinic_id, room_number)
        if existing and existing.id != room_id:
            raise ConflictError(
                f"Room number '{room_number}' is already in use",
                error_code="ROOM_NUMBER_EXISTS",
            )

    async def create_room(self, data: Dict[str, Any], user: CurrentUser) -> Room:
        await self._check_room_number(user.clinic_id, data["room_number"])
        room = await self.room_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "Room", room.id, {"room_number": room.room_number})
        await self.db.commit()
        return room

    async def update_room(self, room_id: str, data: Dict[str, Any], user: CurrentUser) -> Room:
        room = await self.get_room(user.clinic_id, room_id)
        if data.get("room_number"):
            await self._check_room_number(user.clinic_id, data["room_number"], room.id)

        room = await self.room_repo.update(room, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "Room", room.id, {"fields": sorted(data)})
        await self.db.commit()
        return room

    async def delete_room(self, room_id: str, user: CurrentUser) -> None:
        room = await self.get_room(user.clinic_id, room_id)
        active_chairs = await self.chair_repo.count_in_room(user.clinic_id, room.id, exclude_retired=True)
        if active_chairs:
            raise BusinessLogicError(
                "Room still has chairs assigned",
                details={"chair_count": active_chairs},
                error_code="ROOM_HAS_CHAIRS",
            )
        await self.room_repo.soft_delete(room, user.id)
        await self.audit.record(user, AuditAction.DELETE, "Room", room.id)
        await self.db.commit()

    # Chairs

    async def get_chair(self, clinic_id: str, chair_id: str) -> TreatmentChair:
        chair = await self.chair_repo.get(clinic_id, chair_id)
        if not chair:
            raise NotFoundError("Chair not found", error_code="CHAIR_NOT_FOUND")
        return chair

    async def list_chairs(self, clinic_id: str, room_id: Optional[str] = None,
                          status: Optional[ChairStatus] = None, search: Optional[str] = None,
                          page: int = 1, page_size: int = 20, sort_by: Optional[str] = None,
                          sort_order: str = "asc") -> Tuple[List[TreatmentChair], int]:
        filters = []
        if room_id:
            await self.get_room(clinic_id, room_id)
            filters.append(TreatmentChair.room_id == room_id)
        if status:
            filters.append(TreatmentChair.status == status)
        return await self.chair_repo.list(
            clinic_id, filters, search=search, page=page, page_size=page_size,
            sort_by=sort_by, sort_order=sort_order,
        )

    async def _check_chair_number(self, clinic_id: str, room_id: str, chair_number: str,
                                  chair_id: Optional[str] = None) -> None:
        existing = await self.chair_repo.get_by_number(clinic_id, room_id, chair_number)
        if existing and existing.id != chair_id:
            raise ConflictError(
                f"Chair number '{chair_number}' is already in use in this room",
                error_code="CHAIR_NUMBER_EXISTS",
            )

    async def create_chair(self, room_id: str, data: Dict[str, Any], user: CurrentUser) -> TreatmentChair:
        room = await self.get_room(user.clinic_id, room_id)
        await self._check_chair_number(user.clinic_id, room.id, data["chair_number"])

        chair = await self.chair_repo.create({
            **data,
            "clinic_id": user.clinic_id,
            "room_id": room.id,
            "created_by": user.id,
            "updated_by": user.id,
        })
        await self.audit.record(user, AuditAction.CREATE, "TreatmentChair", chair.id, {
            "room_id": room.id,
            "chair_number": chair.chair_number,
        })
        await self.db.commit()
        return chair

    async def update_chair(self, chair_id: str, data: Dict[str, Any], user: CurrentUser) -> TreatmentChair:
        chair = await self.get_chair(user.clinic_id, chair_id)
        room_id = data.get("room_id") or chair.room_id
        if room_id != chair.room_id:
            await self.get_room(user.clinic_id, room_id)
        if room_id != chair.room_id or data.get("chair_number"):
            await self._check_chair_number(
                user.clinic_id, room_id, data.get("chair_number") or chair.chair_number, chair.id
            )

        chair = await self.chair_repo.update(chair, {**data, "updated_by": user.id})
        await self.audit.record(user, AuditAction.UPDATE, "TreatmentChair", chair.id, {"fields": sorted(data)})
        await self.db.commit()
        return chair

    async def delete_chair(self, chair_id: str, user: CurrentUser) -> None:
        chair = await self.get_chair(user.clinic_id, chair_id)
        await self.chair_repo.soft_delete(chair, user.id)
        await self.audit.record(user, AuditAction.DELETE, "TreatmentChair", chair.id)
        await self.db.commit()
