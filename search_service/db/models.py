from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, Uuid, Index
)
from search_service.db.database import Base


class SearchItem(Base):
    """Denormalized copy of an auction, rebuilt from auction events.

    Deleted auctions stay as tombstones (``deleted=True``) so that older
    events arriving late for the same id are recognised as stale.
    """

    __tablename__ = "search_items"

    id = Column(Uuid, primary_key=True)  # auction id
    version = Column(Integer, nullable=False)
    deleted = Column(Boolean, nullable=False, default=False)
    reserve_price = Column(Float, default=0)
    seller = Column(String(200))
    winner = Column(String(200))
    sold_amount = Column(Float)
    current_high_bid = Column(Float)
    status = Column(String(20))
    auction_end = Column(DateTime(timezone=True))
    make = Column(String(100))
    model = Column(String(200))
    color = Column(String(100))
    mileage = Column(Integer)
    year = Column(Integer)
    image_url = Column(String(1000))
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    projected_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_search_make_model", "make", "model"),
        Index("ix_search_seller", "seller"),
        Index("ix_search_auction_end", "auction_end"),
    )
