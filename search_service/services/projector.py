import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from search_service.db import crud
from search_service.db.models import SearchItem
from common.events import AuctionDeleted, AuctionEvent, AuctionSnapshot, AuctionUpdated

logger = logging.getLogger(__name__)

APPLIED = "applied"
STALE = "stale"

SNAPSHOT_FIELDS = (
    "reserve_price", "seller", "winner", "sold_amount", "current_high_bid", "status",
    "auction_end", "make", "model", "color", "mileage", "year", "image_url",
    "created_at", "updated_at",
)


class SearchProjector:
    """Keeps the search read model in line with auction events.

    Last write wins on the version carried by the event, not on delivery
    order, so redelivered and out-of-order events are harmless:

    - Created/Updated upsert the item, synthesizing it when missing
    - Deleted tombstones the item, creating the tombstone when missing
    - anything at or below the stored version is ignored
    """

    async def apply(self, db: AsyncSession, event: AuctionEvent) -> str:
        item = await crud.get_item(db, event.auction_id, for_update=True)
        if item is not None and event.version <= item.version:
            logger.debug(
                f"Ignoring {event.topic} v{event.version} for {event.auction_id}, have v{item.version}"
            )
            return STALE

        if item is None:
            item = SearchItem(id=event.auction_id)
            db.add(item)

        _copy_snapshot(item, event.auction)
        item.version = event.version
        item.deleted = isinstance(event, AuctionDeleted)
        item.projected_at = datetime.now(timezone.utc)
        await crud.commit(db)

        logger.info(f"Applied {event.topic} v{event.version} for {event.auction_id}")
        return APPLIED

    async def apply_snapshot(self, db: AsyncSession, snapshot: AuctionSnapshot) -> str:
        """Project a snapshot fetched from the auction service directly."""
        return await self.apply(db, AuctionUpdated.from_snapshot(snapshot))


def _copy_snapshot(item: SearchItem, snapshot: AuctionSnapshot):
    for name in SNAPSHOT_FIELDS:
        setattr(item, name, getattr(snapshot, name))
