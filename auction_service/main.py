import asyncio
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from auction_service.config import settings
from auction_service.db.database import init_db, async_session
from auction_service.db.crud import seed_auctions
from auction_service.api.routes_auctions import router as auctions_router
from auction_service.services.publisher import EventPublisher
from auction_service.services.outbox_relay import run_outbox_relay
from common.bus import RedisStreamBus
from common.errors import ServiceError
from common.logging import setup_logging

setup_logging(settings.DEBUG)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    if settings.SEED_DATA:
        async with async_session() as db:
            seeded = await seed_auctions(db)
        if seeded:
            logger.info(f"Seeded {seeded} auctions")

    bus = RedisStreamBus(settings.REDIS_URL)
    await bus.connect()
    app.state.publisher = EventPublisher(bus)

    # Retry events that could not be published at request time
    relay_task = asyncio.create_task(run_outbox_relay(bus))
    yield
    relay_task.cancel()
    await asyncio.gather(relay_task, return_exceptions=True)
    await bus.disconnect()


app = FastAPI(title="Auction Service", version="1.0.0", lifespan=lifespan)

logger = logging.getLogger(__name__)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exc()
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}\n{tb}")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/api/v1/health")
async def health_check():
    """Check DB connectivity."""
    try:
        async with async_session() as db:
            await db.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


app.include_router(auctions_router)
