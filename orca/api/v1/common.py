from datetime import datetime, timezone
from typing import Any, Generic, List, Literal, Optional, Type, TypeVar
import math

from fastapi import Query
from pydantic import BaseModel

from orca.core.config import settings

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Envelope for successful responses"""
    success: bool = True
    data: T


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int


class DeletedData(BaseModel):
    id: str


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class PageParams:
    """Common list query parameters"""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
        search: Optional[str] = Query(None, max_length=200),
        sort_by: Optional[str] = None,
        sort_order: Literal["asc", "desc"] = "desc",
    ):
        self.page = page
        self.page_size = page_size
        self.search = search
        self.sort_by = sort_by
        self.sort_order = sort_order

    def as_kwargs(self) -> dict:
        return {
            "search": self.search,
            "page": self.page,
            "page_size": self.page_size,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
        }


def paginate(schema: Type[BaseModel], items: List[Any], total: int, params: PageParams, **extra) -> dict:
    """Build the ``{items, total, page, page_size, total_pages}`` payload"""
    return {
        "items": [schema.model_validate(item) for item in items],
        "total": total,
        "page": params.page,
        "page_size": params.page_size,
        "total_pages": math.ceil(total / params.page_size) if total else 0,
        **extra,
    }


def deleted(entity_id: str) -> dict:
    return {"success": True, "data": {"id": entity_id}}


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
