import logging

from sqlalchemy.ext.asyncio import AsyncSession

from search_service.db.crud import get_latest_updated_at
from search_service.services.auction_client import AuctionServiceClient
from search_service.services.projector import APPLIED, SearchProjector

logger = logging.getLogger(__name__)


async def reconcile(db: AsyncSession, client: AuctionServiceClient, projector: SearchProjector) -> int:
    """Pull auctions changed since the newest projected one and apply them.

    Catches up on events missed while the search service or the bus was
    down. Returns the number of items that changed.
    """
    since = await get_latest_updated_at(db)
    snapshots = await client.get_auctions_updated_after(since)
    logger.info(f"[Sync] {len(snapshots)} auctions returned from the auction service (since {since})")

    applied = 0
    for snapshot in snapshots:
        if await projector.apply_snapshot(db, snapshot) == APPLIED:
            applied += 1
    return applied
