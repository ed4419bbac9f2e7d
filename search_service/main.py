import asyncio
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from search_service.config import settings
from search_service.db.database import init_db, async_session
from search_service.api.routes_search import router as search_router
from search_service.services.auction_client import AuctionServiceClient
from search_service.services.consumer import EventConsumer
from search_service.services.projector import SearchProjector
from search_service.services.sync import reconcile
from common.bus import RedisStreamBus
from common.errors import ServiceError
from common.logging import setup_logging

setup_logging(settings.DEBUG)


async def run_startup_sync(projector: SearchProjector):
    """Catch up with the auction service without holding up startup."""
    try:
        async with async_session() as db:
            applied = await reconcile(db, AuctionServiceClient(), projector)
        logger.info(f"[Sync] Reconciled {applied} search items")
    except Exception as e:
        logger.error(f"[Sync] Startup reconciliation failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()

    projector = SearchProjector()
    bus = RedisStreamBus(settings.REDIS_URL)
    await bus.connect()

    tasks = [asyncio.create_task(EventConsumer(bus, projector).run())]
    if settings.SYNC_ON_STARTUP:
        tasks.append(asyncio.create_task(run_startup_sync(projector)))
    yield
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await bus.disconnect()


app = FastAPI(title="Search Service", version="1.0.0", lifespan=lifespan)

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
    try:
        async with async_session() as db:
            await db.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


app.include_router(search_router)
