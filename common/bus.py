"""Message bus on Redis streams.

Each event type is published to its own stream (the topic). Consumers read
through a consumer group, one group per projector, and ack messages once
they are applied or dead-lettered. Anything delivered but not acked stays
in the consumer's pending list and is read again from id "0".

Message fields:
- type: the topic the event belongs to
- data: the event serialized as JSON
"""

import logging
from dataclasses import dataclass, field

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from common.errors import TransientTransportError
from common.events import AuctionEvent

logger = logging.getLogger(__name__)


@dataclass
class BusMessage:
    topic: str
    message_id: str
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def payload(self) -> str:
        return self.fields.get("data", "")


class RedisStreamBus:
    """Redis streams transport for auction events."""

    def __init__(self, redis_url: str = "redis://localhost:6379", max_stream_length: int = 100_000):
        self._redis_url = redis_url
        self._max_stream_length = max_stream_length
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info(f"Connected to Redis at {self._redis_url}")

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    async def publish(self, event: AuctionEvent) -> str:
        """Append the event to its topic stream and return the message id."""
        try:
            message_id = await self.client.xadd(
                event.topic,
                {"type": event.topic, "data": event.model_dump_json()},
                maxlen=self._max_stream_length,
                approximate=True,
            )
        except RedisError as e:
            raise TransientTransportError(f"Publish to {event.topic} failed: {e}") from e
        logger.debug(f"Published {event.topic} v{event.version} for {event.auction_id} as {message_id}")
        return message_id

    async def ensure_group(self, topics: list[str], group: str) -> None:
        for topic in topics:
            try:
                await self.client.xgroup_create(topic, group, id="0", mkstream=True)
                logger.info(f"Created consumer group {group} on {topic}")
            except ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise TransientTransportError(str(e)) from e
            except RedisError as e:
                raise TransientTransportError(str(e)) from e

    async def read(
        self,
        topics: list[str],
        group: str,
        consumer: str,
        count: int = 10,
        block_ms: int = 5000,
        start_id: str = ">",
    ) -> list[BusMessage]:
        """Read new messages, or with start_id "0" the ones delivered to this consumer but never acked."""
        try:
            response = await self.client.xreadgroup(
                group,
                consumer,
                {topic: start_id for topic in topics},
                count=count,
                # pending history never blocks
                block=block_ms if start_id == ">" else None,
            )
        except RedisError as e:
            raise TransientTransportError(f"Read from {group} failed: {e}") from e

        messages = []
        for topic, entries in response or []:
            for message_id, fields in entries:
                messages.append(BusMessage(topic=topic, message_id=message_id, fields=fields or {}))
        return messages

    async def ack(self, topic: str, group: str, message_id: str) -> None:
        try:
            await self.client.xack(topic, group, message_id)
        except RedisError as e:
            raise TransientTransportError(f"Ack of {message_id} on {topic} failed: {e}") from e

    async def dead_letter(self, group: str, message: BusMessage, error: str, attempts: int) -> str:
        stream = f"{group}-dead-letter"
        try:
            return await self.client.xadd(
                stream,
                {
                    "topic": message.topic,
                    "message_id": message.message_id,
                    "data": message.payload,
                    "error": error,
                    "attempts": str(attempts),
                },
            )
        except RedisError as e:
            raise TransientTransportError(f"Dead-letter to {stream} failed: {e}") from e
