import uuid
from datetime import datetime, timezone, timedelta
from typing import AsyncIterator

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auction_service.db.models import Auction, OutboxMessage
from common.errors import FatalStoreError


async def commit(db: AsyncSession):
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise FatalStoreError(f"Database commit failed: {e}") from e


# --- Seed data ---

SEED_AUCTIONS = [
    {
        "id": uuid.UUID("afbee524-5972-4075-8800-7d1f9d7b0a0c"),
        "make": "Ford", "model": "GT", "color": "White", "mileage": 50000, "year": 2020,
        "seller": "bob", "reserve_price": 20000, "auction_end_days": 10,
        "image_url": "https://cdn.pixabay.com/photo/2016/05/06/16/32/car-1376190_960_720.jpg",
    },
    {
        "id": uuid.UUID("c8c3ec17-01bf-49db-82aa-1ef80b833a9f"),
        "make": "Bugatti", "model": "Veyron", "color": "Black", "mileage": 15035, "year": 2018,
        "seller": "alice", "reserve_price": 90000, "auction_end_days": 60,
        "image_url": "https://cdn.pixabay.com/photo/2012/05/29/00/43/car-49278_960_720.jpg",
    },
    {
        "id": uuid.UUID("bbab4d5a-8565-48b1-9450-5ac2a5c4a654"),
        "make": "Ford", "model": "Mustang", "color": "Black", "mileage": 65125, "year": 2023,
        "seller": "bob", "reserve_price": 0, "auction_end_days": 4,
        "image_url": "https://cdn.pixabay.com/photo/2012/11/02/13/02/car-63930_960_720.jpg",
    },
]


async def seed_auctions(db: AsyncSession) -> int:
    """Insert the demo auctions when the table is empty. Returns the number inserted."""
    count = await db.scalar(select(func.count()).select_from(Auction))
    if count:
        return 0
    now = datetime.now(timezone.utc)
    for data in SEED_AUCTIONS:
        data = dict(data)
        days = data.pop("auction_end_days")
        db.add(Auction(**data, auction_end=now + timedelta(days=days), created_at=now, updated_at=now))
    await commit(db)
    return len(SEED_AUCTIONS)


# --- Auctions ---

async def add_auction(db: AsyncSession, auction: Auction) -> Auction:
    db.add(auction)
    await commit(db)
    await db.refresh(auction)
    return auction


async def get_auction(db: AsyncSession, auction_id: uuid.UUID, for_update: bool = False) -> Auction | None:
    query = select(Auction).where(Auction.id == auction_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def stream_auctions(
    db: AsyncSession,
    updated_after: datetime | None = None,
    seller: str | None = None,
    make: str | None = None,
    model: str | None = None,
) -> AsyncIterator[Auction]:
    """Yield auctions matching the filter, ordered by make and model.

    Rows are fetched lazily; calling again issues a fresh query.
    """
    query = select(Auction)
    if updated_after:
        query = query.where(Auction.updated_at > updated_after)
    if seller:
        query = query.where(Auction.seller == seller)
    if make:
        query = query.where(Auction.make == make)
    if model:
        query = query.where(Auction.model == model)

    result = await db.stream_scalars(query.order_by(Auction.make, Auction.model))
    async for auction in result:
        yield auction


async def remove_auction(db: AsyncSession, auction: Auction):
    await db.delete(auction)
    await commit(db)


# --- Outbox ---

async def add_outbox_message(db: AsyncSession, topic: str, payload: str, error: str) -> OutboxMessage:
    message = OutboxMessage(topic=topic, payload=payload, last_error=error)
    db.add(message)
    await commit(db)
    return message


async def get_pending_outbox_messages(db: AsyncSession, limit: int = 100) -> list[OutboxMessage]:
    result = await db.execute(
        select(OutboxMessage)
        .where(OutboxMessage.dispatched_at.is_(None))
        .order_by(OutboxMessage.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_outbox_dispatched(db: AsyncSession, message: OutboxMessage):
    message.dispatched_at = datetime.now(timezone.utc)
    await commit(db)


async def mark_outbox_failed(db: AsyncSession, message: OutboxMessage, error: str):
    message.attempts = (message.attempts or 0) + 1
    message.last_error = error
    await commit(db)
