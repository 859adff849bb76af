from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from orca.core.exceptions import ValidationError
from orca.domain.common.models import utcnow

ModelType = TypeVar("ModelType")


class ClinicScopedRepository(Generic[ModelType]):
    """Data access for rows owned by a clinic and hidden once soft-deleted.

    Subclasses set ``model`` and may declare ``search_fields`` (columns
    matched with ILIKE) and ``sortable_fields`` (whitelist for ``sort_by``).
    Repositories flush; the calling service owns the transaction.
    """

    model: Type[ModelType]
    search_fields: Sequence[str] = ()
    sortable_fields: Sequence[str] = ("created_at", "updated_at")
    default_sort: str = "created_at"

    def __init__(self, db: AsyncSession):
        self.db = db

    def base_query(self, clinic_id: str):
        return select(self.model).where(
            self.model.clinic_id == clinic_id,
            self.model.deleted_at.is_(None),
        )

    def apply_search(self, query, search: Optional[str]):
        if not search or not self.search_fields:
            return query
        pattern = f"%{search.strip()}%"
        return query.where(or_(*[getattr(self.model, name).ilike(pattern) for name in self.search_fields]))

    def apply_sort(self, query, sort_by: Optional[str], sort_order: str = "desc"):
        sort_by = sort_by or self.default_sort
        if sort_by not in self.sortable_fields:
            raise ValidationError(
                f"Cannot sort by '{sort_by}'",
                details={"allowed": list(self.sortable_fields)},
                error_code="INVALID_SORT_FIELD"
            )
        column = getattr(self.model, sort_by)
        return query.order_by(column.asc() if sort_order == "asc" else column.desc())

    async def get(self, clinic_id: str, entity_id: str) -> Optional[ModelType]:
        result = await self.db.execute(
            self.base_query(clinic_id).where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        clinic_id: str,
        filters: Optional[List[Any]] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
    ) -> Tuple[List[ModelType], int]:
        """Return one page of matches and the total match count"""
        query = self.base_query(clinic_id)
        if filters:
            query = query.where(*filters)
        query = self.apply_search(query, search)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = self.apply_sort(query, sort_by, sort_order)
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def find(self, clinic_id: str, *filters) -> List[ModelType]:
        result = await self.db.execute(self.base_query(clinic_id).where(*filters))
        return list(result.scalars().all())

    async def count(self, clinic_id: str, *filters) -> int:
        query = select(func.count(self.model.id)).where(
            self.model.clinic_id == clinic_id,
            self.model.deleted_at.is_(None),
            *filters,
        )
        return await self.db.scalar(query) or 0

    async def create(self, data: Dict[str, Any]) -> ModelType:
        entity = self.model(**data)
        self.db.add(entity)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def update(self, entity: ModelType, data: Dict[str, Any]) -> ModelType:
        for key, value in data.items():
            setattr(entity, key, value)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def soft_delete(self, entity: ModelType, user_id: Optional[str] = None) -> ModelType:
        entity.deleted_at = utcnow()
        if user_id:
            entity.updated_by = user_id
        await self.db.flush()
        return entity

    async def next_number(self, clinic_id: str, prefix: str, column_name: str) -> str:
        """Next ``{PREFIX}-{YYYY}-{NNNNN}`` for the clinic, deleted rows included"""
        year = utcnow().year
        stem = f"{prefix}-{year}-"
        column = getattr(self.model, column_name)
        last = await self.db.scalar(
            select(func.max(column)).where(
                self.model.clinic_id == clinic_id,
                column.like(f"{stem}%"),
            )
        )
        sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
        return f"{stem}{sequence:05d}"
