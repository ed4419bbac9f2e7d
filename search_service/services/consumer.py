import asyncio
import logging

from search_service.config import settings
from search_service.db.database import async_session
from search_service.services.projector import SearchProjector
from common.bus import BusMessage
from common.errors import TransientTransportError, ValidationError
from common.events import AUCTION_TOPICS, parse_event

logger = logging.getLogger(__name__)

DEAD_LETTERED = "dead_lettered"


class EventConsumer:
    """Reads auction events for one consumer group and feeds the projector."""

    def __init__(
        self,
        bus,
        projector: SearchProjector,
        session_factory=async_session,
        group: str = settings.CONSUMER_GROUP,
        consumer: str = settings.CONSUMER_NAME,
        max_attempts: int = settings.CONSUMER_MAX_ATTEMPTS,
        retry_interval: float = settings.CONSUMER_RETRY_INTERVAL_SECONDS,
    ):
        self.bus = bus
        self.projector = projector
        self.session_factory = session_factory
        self.group = group
        self.consumer = consumer
        self.max_attempts = max_attempts
        self.retry_interval = retry_interval

    async def handle(self, message: BusMessage) -> str:
        """Apply one message with bounded retry, dead-lettering it on final failure."""
        try:
            event = parse_event(message.topic, message.payload)
        except ValidationError as e:
            logger.error(f"[{self.group}] Malformed message {message.message_id} on {message.topic}: {e.detail}")
            await self.bus.dead_letter(self.group, message, e.detail, attempts=0)
            await self.bus.ack(message.topic, self.group, message.message_id)
            return DEAD_LETTERED

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session_factory() as db:
                    outcome = await self.projector.apply(db, event)
                break
            except Exception as e:
                logger.warning(
                    f"[{self.group}] Attempt {attempt}/{self.max_attempts} for {message.topic} "
                    f"{message.message_id} failed: {e}"
                )
                if attempt == self.max_attempts:
                    await self.bus.dead_letter(self.group, message, str(e), attempts=attempt)
                    logger.error(f"[{self.group}] {message.message_id} moved to dead-letter")
                    outcome = DEAD_LETTERED
                    break
                await asyncio.sleep(self.retry_interval)

        await self.bus.ack(message.topic, self.group, message.message_id)
        return outcome

    async def poll_once(self, block_ms: int = settings.CONSUMER_BLOCK_MS) -> int:
        messages = await self.bus.read(
            AUCTION_TOPICS,
            self.group,
            self.consumer,
            count=settings.CONSUMER_BATCH_SIZE,
            block_ms=block_ms,
        )
        for message in messages:
            await self.handle(message)
        return len(messages)

    async def drain_pending(self) -> int:
        """Handle messages delivered to this consumer earlier but never acked."""
        handled = 0
        while True:
            messages = await self.bus.read(
                AUCTION_TOPICS,
                self.group,
                self.consumer,
                count=settings.CONSUMER_BATCH_SIZE,
                start_id="0",
            )
            if not messages:
                return handled
            for message in messages:
                await self.handle(message)
            handled += len(messages)

    async def run(self):
        """Consume until cancelled; transport outages are logged and waited out."""
        while True:
            try:
                await self.bus.ensure_group(AUCTION_TOPICS, self.group)
                break
            except TransientTransportError as e:
                logger.error(f"[{self.group}] Could not create consumer group: {e}")
                await asyncio.sleep(self.retry_interval)

        logger.info(f"[{self.group}] Consuming {', '.join(AUCTION_TOPICS)} as {self.consumer}")
        recovering = True
        while True:
            try:
                # A crash or failed ack leaves messages pending on this consumer
                if recovering:
                    redelivered = await self.drain_pending()
                    if redelivered:
                        logger.info(f"[{self.group}] Handled {redelivered} pending messages")
                    recovering = False
                await self.poll_once()
            except TransientTransportError as e:
                logger.error(f"[{self.group}] Bus unavailable: {e}")
                recovering = True
                await asyncio.sleep(self.retry_interval)
