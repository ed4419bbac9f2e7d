"""Auction store operations.

Every successful mutation is committed first and then handed to the event
publisher. Mutations are gated on ownership: only the seller recorded at
creation may update or delete an auction.
"""

import logging
import uuid
from datetime import datetime, timezone, timedelta
from typing import AsyncIterator

from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession

from auction_service.config import settings
from auction_service.db import crud
from auction_service.db.models import Auction
from auction_service.schemas.auction import AuctionUpdateRequest
from auction_service.services.publisher import EventPublisher
from common.errors import Forbidden, NotFound, ValidationError
from common.events import AuctionCreated, AuctionDeleted, AuctionSnapshot, AuctionUpdated

logger = logging.getLogger(__name__)

CREATE_FIELDS = ("make", "model", "color", "mileage", "year", "image_url", "reserve_price", "auction_end")
UPDATABLE_FIELDS = CREATE_FIELDS
REQUIRED_FIELDS = ("make", "model")


def to_snapshot(auction: Auction) -> AuctionSnapshot:
    return AuctionSnapshot.model_validate(auction, from_attributes=True)


def validate_attributes(attributes: dict, partial: bool = False):
    for name in REQUIRED_FIELDS:
        if partial and name not in attributes:
            continue
        value = attributes.get(name)
        if value is None or not str(value).strip():
            raise ValidationError(f"{name} must not be empty")

    if not partial or "reserve_price" in attributes:
        reserve_price = attributes.get("reserve_price", 0)
        if reserve_price is None or reserve_price < 0:
            raise ValidationError("reserve_price must be zero or positive")

    mileage = attributes.get("mileage")
    if mileage is not None and mileage < 0:
        raise ValidationError("mileage must be zero or positive")


def parse_patch(patch: dict) -> dict:
    try:
        request = AuctionUpdateRequest.model_validate(patch)
    except SchemaError as e:
        problems = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
        raise ValidationError(problems) from e
    return request.model_dump(exclude_unset=True)


def ensure_owner(auction: Auction, caller: str):
    if auction.seller != caller:
        raise Forbidden(f"{caller} is not the seller of auction {auction.id}")


async def create_auction(db: AsyncSession, publisher: EventPublisher, attributes: dict, seller: str) -> Auction:
    validate_attributes(attributes)
    values = {k: attributes[k] for k in CREATE_FIELDS if attributes.get(k) is not None}
    now = datetime.now(timezone.utc)
    values.setdefault("auction_end", now + timedelta(days=settings.AUCTION_DEFAULT_DURATION_DAYS))

    auction = Auction(
        id=uuid.uuid4(),
        version=1,
        seller=seller,
        status="Live",
        created_at=now,
        updated_at=now,
        **values,
    )
    auction = await crud.add_auction(db, auction)
    logger.info(f"Auction {auction.id} created by {seller}")

    await publisher.publish(AuctionCreated.from_snapshot(to_snapshot(auction)), db)
    return auction


async def get_auction(db: AsyncSession, auction_id: uuid.UUID) -> Auction:
    auction = await crud.get_auction(db, auction_id)
    if not auction:
        raise NotFound(f"Auction {auction_id} not found")
    return auction


def list_auctions(
    db: AsyncSession,
    updated_after: datetime | None = None,
    seller: str | None = None,
    make: str | None = None,
    model: str | None = None,
) -> AsyncIterator[Auction]:
    return crud.stream_auctions(db, updated_after=updated_after, seller=seller, make=make, model=model)


async def update_auction(
    db: AsyncSession,
    publisher: EventPublisher,
    auction_id: uuid.UUID,
    caller: str,
    patch: dict,
) -> Auction:
    auction = await crud.get_auction(db, auction_id, for_update=True)
    if not auction:
        raise NotFound(f"Auction {auction_id} not found")
    ensure_owner(auction, caller)

    changes = {k: v for k, v in parse_patch(patch).items() if k in UPDATABLE_FIELDS}
    validate_attributes(changes, partial=True)

    for name, value in changes.items():
        setattr(auction, name, value)
    auction.version += 1
    auction.updated_at = datetime.now(timezone.utc)
    await crud.commit(db)
    logger.info(f"Auction {auction.id} updated by {caller} to v{auction.version}")

    await publisher.publish(AuctionUpdated.from_snapshot(to_snapshot(auction)), db)
    return auction


async def delete_auction(db: AsyncSession, publisher: EventPublisher, auction_id: uuid.UUID, caller: str):
    auction = await crud.get_auction(db, auction_id, for_update=True)
    if not auction:
        raise NotFound(f"Auction {auction_id} not found")
    ensure_owner(auction, caller)

    snapshot = to_snapshot(auction)
    await crud.remove_auction(db, auction)
    logger.info(f"Auction {auction_id} deleted by {caller}")

    # Deletion supersedes the last stored version
    await publisher.publish(AuctionDeleted.from_snapshot(snapshot, version=snapshot.version + 1), db)
