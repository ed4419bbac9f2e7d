import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from auction_service.config import settings
from auction_service.db.crud import (
    get_pending_outbox_messages, mark_outbox_dispatched, mark_outbox_failed,
)
from auction_service.db.database import async_session
from common.errors import TransientTransportError, ValidationError
from common.events import parse_event

logger = logging.getLogger(__name__)


async def relay_pending(db: AsyncSession, bus, limit: int = 100) -> int:
    """Re-publish undispatched outbox messages in order. Returns how many went out."""
    messages = await get_pending_outbox_messages(db, limit=limit)
    dispatched = 0
    for message in messages:
        try:
            event = parse_event(message.topic, message.payload)
        except ValidationError as e:
            # Can never be delivered, so it must not hold back the rest
            await mark_outbox_failed(db, message, e.detail)
            logger.error(f"[Outbox] Message {message.id} is unreadable: {e.detail}")
            continue
        try:
            await bus.publish(event)
        except TransientTransportError as e:
            await mark_outbox_failed(db, message, str(e))
            logger.warning(f"[Outbox] Message {message.id} still undeliverable (attempt {message.attempts}): {e}")
            # Keep ordering: later messages wait for this one
            break
        await mark_outbox_dispatched(db, message)
        dispatched += 1
    return dispatched


async def run_outbox_relay(bus):
    """Background task that retries failed publishes until they go through."""
    interval = settings.OUTBOX_RELAY_INTERVAL_SECONDS
    while True:
        try:
            async with async_session() as db:
                dispatched = await relay_pending(db, bus, limit=settings.OUTBOX_RELAY_BATCH_SIZE)
            if dispatched:
                logger.info(f"[Outbox] Relayed {dispatched} events")
        except Exception as e:
            logger.error(f"[Outbox] Relay pass failed: {e}")

        await asyncio.sleep(interval)
