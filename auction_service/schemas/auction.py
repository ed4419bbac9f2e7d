import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class AuctionCreateRequest(BaseModel):
    make: str = Field(min_length=1, max_length=100)
    model: str = Field(min_length=1, max_length=200)
    color: str | None = None
    mileage: int | None = Field(default=None, ge=0)
    year: int | None = None
    image_url: str | None = None
    reserve_price: float = Field(default=0, ge=0)
    auction_end: datetime | None = None


class AuctionUpdateRequest(BaseModel):
    # Value checks happen after the ownership check, see services.auctions
    make: str | None = None
    model: str | None = None
    color: str | None = None
    mileage: int | None = None
    year: int | None = None
    image_url: str | None = None
    reserve_price: float | None = None
    auction_end: datetime | None = None


class AuctionResponse(BaseModel):
    id: uuid.UUID
    version: int
    reserve_price: float
    has_reserve_price: bool
    seller: str
    winner: str | None
    sold_amount: float | None
    current_high_bid: float | None
    status: str
    auction_end: datetime | None
    make: str
    model: str
    color: str | None
    mileage: int | None
    year: int | None
    image_url: str | None
    created_at: datetime | None
    updated_at: datetime | None
