import uuid
from datetime import datetime

from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from auction_service.auth import get_current_user
from auction_service.db.database import get_db
from auction_service.db.models import Auction
from auction_service.schemas.auction import AuctionCreateRequest, AuctionResponse
from auction_service.services import auctions
from auction_service.services.publisher import EventPublisher

router = APIRouter(prefix="/api/v1/auctions", tags=["auctions"])


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.publisher


def _to_response(auction: Auction) -> AuctionResponse:
    return AuctionResponse(
        id=auction.id,
        version=auction.version,
        reserve_price=auction.reserve_price,
        has_reserve_price=auction.has_reserve_price(),
        seller=auction.seller,
        winner=auction.winner,
        sold_amount=auction.sold_amount,
        current_high_bid=auction.current_high_bid,
        status=auction.status,
        auction_end=auction.auction_end,
        make=auction.make,
        model=auction.model,
        color=auction.color,
        mileage=auction.mileage,
        year=auction.year,
        image_url=auction.image_url,
        created_at=auction.created_at,
        updated_at=auction.updated_at,
    )


@router.get("", response_model=list[AuctionResponse])
async def list_auctions(
    date: datetime | None = None,
    seller: str | None = None,
    make: str | None = None,
    model: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return [
        _to_response(a)
        async for a in auctions.list_auctions(db, updated_after=date, seller=seller, make=make, model=model)
    ]


@router.get("/{auction_id}", response_model=AuctionResponse)
async def get_auction(auction_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    auction = await auctions.get_auction(db, auction_id)
    return _to_response(auction)


@router.post("", response_model=AuctionResponse, status_code=status.HTTP_201_CREATED)
async def create_auction(
    request: AuctionCreateRequest,
    response: Response,
    user: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    auction = await auctions.create_auction(db, publisher, request.model_dump(), seller=user)
    response.headers["Location"] = f"{router.prefix}/{auction.id}"
    return _to_response(auction)


@router.put("/{auction_id}", response_model=AuctionResponse)
async def update_auction(
    auction_id: uuid.UUID,
    # Parsed by the service once ownership is established
    patch: dict = Body(...),
    user: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    auction = await auctions.update_auction(
        db, publisher, auction_id, user, patch
    )
    return _to_response(auction)


@router.delete("/{auction_id}")
async def delete_auction(
    auction_id: uuid.UUID,
    user: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    await auctions.delete_auction(db, publisher, auction_id, user)
    return {"status": "deleted", "id": str(auction_id)}
