import uuid
from datetime import datetime, timedelta

from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from search_service.db.models import SearchItem
from common.errors import FatalStoreError


async def commit(db: AsyncSession):
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise FatalStoreError(f"Database commit failed: {e}") from e


async def get_item(db: AsyncSession, auction_id: uuid.UUID, for_update: bool = False) -> SearchItem | None:
    query = select(SearchItem).where(SearchItem.id == auction_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_visible_item(db: AsyncSession, auction_id: uuid.UUID) -> SearchItem | None:
    item = await get_item(db, auction_id)
    if item is None or item.deleted:
        return None
    return item


async def get_latest_updated_at(db: AsyncSession) -> datetime | None:
    return await db.scalar(select(func.max(SearchItem.updated_at)))


async def search_items(
    db: AsyncSession,
    now: datetime,
    search_term: str | None = None,
    seller: str | None = None,
    winner: str | None = None,
    order_by: str | None = None,
    filter_by: str | None = None,
    page_number: int = 1,
    page_size: int = 4,
    ending_soon_hours: int = 6,
) -> tuple[list[SearchItem], int]:
    """Query the read model. Returns (page of items, total matching count)."""
    query = select(SearchItem).where(SearchItem.deleted.is_(False))

    if search_term:
        pattern = f"%{search_term}%"
        query = query.where(or_(
            SearchItem.make.ilike(pattern),
            SearchItem.model.ilike(pattern),
            SearchItem.color.ilike(pattern),
        ))
    if seller:
        query = query.where(SearchItem.seller == seller)
    if winner:
        query = query.where(SearchItem.winner == winner)

    if filter_by == "finished":
        query = query.where(SearchItem.auction_end < now)
    elif filter_by == "ending_soon":
        query = query.where(
            SearchItem.auction_end > now,
            SearchItem.auction_end < now + timedelta(hours=ending_soon_hours),
        )
    else:
        query = query.where(SearchItem.auction_end > now)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    if order_by == "make":
        query = query.order_by(SearchItem.make, SearchItem.model)
    elif order_by == "new":
        query = query.order_by(SearchItem.created_at.desc())
    else:
        query = query.order_by(SearchItem.auction_end)

    result = await db.execute(query.offset((page_number - 1) * page_size).limit(page_size))
    return list(result.scalars().all()), total or 0
