import uuid
from datetime import datetime, timezone
from typing import ClassVar

from pydantic import BaseModel, Field

from common.errors import ValidationError


class AuctionSnapshot(BaseModel):
    """Full state of an auction at the moment an event was raised."""

    id: uuid.UUID
    version: int
    reserve_price: float = 0
    seller: str
    winner: str | None = None
    sold_amount: float | None = None
    current_high_bid: float | None = None
    status: str = "Live"
    auction_end: datetime | None = None
    make: str
    model: str
    color: str | None = None
    mileage: int | None = None
    year: int | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AuctionEvent(BaseModel):
    TOPIC: ClassVar[str] = ""

    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    auction_id: uuid.UUID
    version: int
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    auction: AuctionSnapshot

    @classmethod
    def from_snapshot(cls, snapshot: AuctionSnapshot, version: int | None = None):
        return cls(
            auction_id=snapshot.id,
            version=version if version is not None else snapshot.version,
            auction=snapshot,
        )

    @property
    def topic(self) -> str:
        return self.TOPIC


class AuctionCreated(AuctionEvent):
    TOPIC: ClassVar[str] = "auction-created"


class AuctionUpdated(AuctionEvent):
    TOPIC: ClassVar[str] = "auction-updated"


class AuctionDeleted(AuctionEvent):
    TOPIC: ClassVar[str] = "auction-deleted"


EVENT_TYPES: dict[str, type[AuctionEvent]] = {
    cls.TOPIC: cls for cls in (AuctionCreated, AuctionUpdated, AuctionDeleted)
}

AUCTION_TOPICS = list(EVENT_TYPES)


def parse_event(topic: str, payload: str) -> AuctionEvent:
    event_cls = EVENT_TYPES.get(topic)
    if event_cls is None:
        raise ValidationError(f"Unknown event topic: {topic}")
    try:
        return event_cls.model_validate_json(payload)
    except ValueError as e:
        raise ValidationError(f"Malformed {topic} payload: {e}") from e
