import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, Uuid, Index
)
from auction_service.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Auction(Base):
    __tablename__ = "auctions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    version = Column(Integer, nullable=False, default=1)
    reserve_price = Column(Float, nullable=False, default=0)
    seller = Column(String(200), nullable=False)
    winner = Column(String(200))
    sold_amount = Column(Float)
    current_high_bid = Column(Float)
    status = Column(String(20), nullable=False, default="Live")  # Live, Finished, ReserveNotMet
    auction_end = Column(DateTime(timezone=True))
    make = Column(String(100), nullable=False)
    model = Column(String(200), nullable=False)
    color = Column(String(100))
    mileage = Column(Integer)
    year = Column(Integer)
    image_url = Column(String(1000))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_auction_make_model", "make", "model"),
        Index("ix_auction_seller", "seller"),
        Index("ix_auction_updated_at", "updated_at"),
    )

    def has_reserve_price(self) -> bool:
        return (self.reserve_price or 0) > 0


class OutboxMessage(Base):
    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic = Column(String(100), nullable=False)
    payload = Column(Text, nullable=False)  # event JSON
    attempts = Column(Integer, default=1)
    last_error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    dispatched_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_outbox_dispatched_at", "dispatched_at"),
    )
