import logging

from sqlalchemy.ext.asyncio import AsyncSession

from auction_service.db.crud import add_outbox_message
from common.errors import FatalStoreError, TransientTransportError
from common.events import AuctionEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publishes auction events after the mutation has been committed.

    A transport failure never undoes the mutation: the event is parked in the
    outbox for the relay to retry and the caller gets ``False`` back.
    """

    def __init__(self, bus):
        self.bus = bus

    async def publish(self, event: AuctionEvent, db: AsyncSession) -> bool:
        try:
            await self.bus.publish(event)
            return True
        except TransientTransportError as e:
            error = str(e)
            logger.warning(
                f"Publishing {event.topic} v{event.version} for auction {event.auction_id} failed, "
                f"queued in outbox: {error}"
            )

        try:
            await add_outbox_message(db, event.topic, event.model_dump_json(), error)
        except FatalStoreError as store_error:
            logger.error(
                f"Could not store {event.topic} v{event.version} for auction {event.auction_id} "
                f"in outbox, search will need reconciliation: {store_error}"
            )
        return False
