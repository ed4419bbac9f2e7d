import math
import uuid
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from search_service.config import settings
from search_service.db.database import get_db
from search_service.db.crud import get_visible_item, search_items
from search_service.db.models import SearchItem
from search_service.schemas.search import SearchParams, SearchItemResponse, SearchResultsResponse
from common.errors import NotFound

router = APIRouter(prefix="/api/v1/search", tags=["search"])


def _to_response(item: SearchItem) -> SearchItemResponse:
    return SearchItemResponse.model_validate(item, from_attributes=True)


@router.get("", response_model=SearchResultsResponse)
async def search(params: Annotated[SearchParams, Query()], db: AsyncSession = Depends(get_db)):
    items, total = await search_items(
        db,
        now=datetime.now(timezone.utc),
        search_term=params.search_term,
        seller=params.seller,
        winner=params.winner,
        order_by=params.order_by,
        filter_by=params.filter_by,
        page_number=params.page_number,
        page_size=params.page_size,
        ending_soon_hours=settings.ENDING_SOON_HOURS,
    )
    return SearchResultsResponse(
        results=[_to_response(i) for i in items],
        page_count=math.ceil(total / params.page_size),
        total_count=total,
    )


@router.get("/{auction_id}", response_model=SearchItemResponse)
async def get_search_item(auction_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    item = await get_visible_item(db, auction_id)
    if not item:
        raise NotFound(f"Auction {auction_id} not in search index")
    return _to_response(item)
