import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class SearchParams(BaseModel):
    search_term: str | None = None
    seller: str | None = None
    winner: str | None = None
    order_by: Literal["make", "new", "ending"] | None = None
    filter_by: Literal["finished", "ending_soon", "live"] | None = None
    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=4, ge=1, le=100)


class SearchItemResponse(BaseModel):
    id: uuid.UUID
    version: int
    reserve_price: float | None
    seller: str | None
    winner: str | None
    sold_amount: float | None
    current_high_bid: float | None
    status: str | None
    auction_end: datetime | None
    make: str | None
    model: str | None
    color: str | None
    mileage: int | None
    year: int | None
    image_url: str | None
    created_at: datetime | None
    updated_at: datetime | None


class SearchResultsResponse(BaseModel):
    results: list[SearchItemResponse]
    page_count: int
    total_count: int
