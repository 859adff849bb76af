from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from orca.api.v1.common import DataResponse, DeletedData, Page, PageParams, deleted, paginate
from orca.api.v1.resources.schemas import (
    ChairCreate,
    ChairResponse,
    ChairUpdate,
    RoomCreate,
    RoomResponse,
    RoomUpdate,
)
from orca.core.permissions import require_permissions, Permissions
from orca.domain.resources.models import ChairStatus, RoomStatus, RoomType
from orca.domain.resources.service import ResourceService
from orca.infrastructure.database import get_db

router = APIRouter(prefix="/resources", tags=["Resources"])


def _room(room, chair_count: int) -> RoomResponse:
    return RoomResponse.model_validate(room).model_copy(update={"chair_count": chair_count})


# Rooms
@router.get("/rooms", response_model=DataResponse[Page[RoomResponse]])
async def list_rooms(
    request: Request,
    params: PageParams = Depends(),
    room_type: Optional[RoomType] = None,
    status: Optional[RoomStatus] = None,
    is_available: Optional[bool] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_READ])(request)
    service = ResourceService(db)
    rooms, total = await service.list_rooms(
        user.clinic_id, room_type=room_type, status=status, is_available=is_available,
        **params.as_kwargs(),
    )
    counts = await service.chair_counts(user.clinic_id, rooms)
    data = paginate(RoomResponse, rooms, total, params)
    data["items"] = [_room(room, counts[room.id]) for room in rooms]
    return {"success": True, "data": data}


@router.post("/rooms", response_model=DataResponse[RoomResponse], status_code=status.HTTP_201_CREATED)
async def create_room(
    room_data: RoomCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_CREATE])(request)
    room = await ResourceService(db).create_room(room_data.model_dump(), user)
    return {"success": True, "data": _room(room, 0)}


@router.get("/rooms/{room_id}", response_model=DataResponse[RoomResponse])
async def get_room(
    room_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_READ])(request)
    service = ResourceService(db)
    room = await service.get_room(user.clinic_id, room_id)
    counts = await service.chair_counts(user.clinic_id, [room])
    return {"success": True, "data": _room(room, counts[room.id])}


@router.put("/rooms/{room_id}", response_model=DataResponse[RoomResponse])
async def update_room(
    room_id: str,
    room_data: RoomUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_UPDATE])(request)
    service = ResourceService(db)
    room = await service.update_room(room_id, room_data.model_dump(exclude_unset=True), user)
    counts = await service.chair_counts(user.clinic_id, [room])
    return {"success": True, "data": _room(room, counts[room.id])}


@router.delete("/rooms/{room_id}", response_model=DataResponse[DeletedData])
async def delete_room(
    room_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete a room that no longer holds chairs"""
    user = require_permissions([Permissions.RESOURCES_DELETE])(request)
    await ResourceService(db).delete_room(room_id, user)
    return deleted(room_id)


# Chairs
@router.get("/rooms/{room_id}/chairs", response_model=DataResponse[Page[ChairResponse]])
async def list_room_chairs(
    room_id: str,
    request: Request,
    params: PageParams = Depends(),
    status: Optional[ChairStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_READ])(request)
    chairs, total = await ResourceService(db).list_chairs(
        user.clinic_id, room_id=room_id, status=status, **params.as_kwargs()
    )
    return {"success": True, "data": paginate(ChairResponse, chairs, total, params)}


@router.post("/rooms/{room_id}/chairs", response_model=DataResponse[ChairResponse],
             status_code=status.HTTP_201_CREATED)
async def create_chair(
    room_id: str,
    chair_data: ChairCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_CREATE])(request)
    chair = await ResourceService(db).create_chair(room_id, chair_data.model_dump(), user)
    return {"success": True, "data": ChairResponse.model_validate(chair)}


@router.get("/chairs", response_model=DataResponse[Page[ChairResponse]])
async def list_chairs(
    request: Request,
    params: PageParams = Depends(),
    status: Optional[ChairStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_READ])(request)
    chairs, total = await ResourceService(db).list_chairs(user.clinic_id, status=status, **params.as_kwargs())
    return {"success": True, "data": paginate(ChairResponse, chairs, total, params)}


@router.get("/chairs/{chair_id}", response_model=DataResponse[ChairResponse])
async def get_chair(
    chair_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_READ])(request)
    chair = await ResourceService(db).get_chair(user.clinic_id, chair_id)
    return {"success": True, "data": ChairResponse.model_validate(chair)}


@router.put("/chairs/{chair_id}", response_model=DataResponse[ChairResponse])
async def update_chair(
    chair_id: str,
    chair_data: ChairUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_UPDATE])(request)
    chair = await ResourceService(db).update_chair(chair_id, chair_data.model_dump(exclude_unset=True), user)
    return {"success": True, "data": ChairResponse.model_validate(chair)}


@router.delete("/chairs/{chair_id}", response_model=DataResponse[DeletedData])
async def delete_chair(
    chair_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = require_permissions([Permissions.RESOURCES_DELETE])(request)
    await ResourceService(db).delete_chair(chair_id, user)
    return deleted(chair_id)
