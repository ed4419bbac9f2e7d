import asyncio
import logging
from datetime import datetime

import httpx

from search_service.config import settings
from common.errors import TransientTransportError
from common.events import AuctionSnapshot

logger = logging.getLogger(__name__)


def _is_transient(resp: httpx.Response) -> bool:
    # 404 while the auction service is still starting behind a proxy
    return resp.status_code >= 500 or resp.status_code in (404, 408, 429)


class AuctionServiceClient:
    """HTTP client for the auction service used to reconcile the read model.

    Transient failures are retried at a fixed interval without limit unless
    ``max_attempts`` is given.
    """

    def __init__(
        self,
        base_url: str = settings.AUCTION_SERVICE_URL,
        retry_interval: float = settings.SYNC_RETRY_SECONDS,
        max_attempts: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_interval = retry_interval
        self.max_attempts = max_attempts
        self._transport = transport

    async def _fetch(self, client: httpx.AsyncClient, params: dict) -> list[dict]:
        try:
            resp = await client.get(f"{self.base_url}/api/v1/auctions", params=params, timeout=30)
        except httpx.TransportError as e:
            raise TransientTransportError(f"Auction service unreachable: {e}") from e
        if _is_transient(resp):
            raise TransientTransportError(f"Auction service returned {resp.status_code}")
        resp.raise_for_status()
        return resp.json()

    async def _retry(self, coro_func, *args, **kwargs):
        attempt = 0
        while True:
            attempt += 1
            try:
                return await coro_func(*args, **kwargs)
            except TransientTransportError as e:
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    raise
                logger.warning(f"[AuctionClient] Attempt {attempt} failed: {e}. Retrying in {self.retry_interval}s")
                await asyncio.sleep(self.retry_interval)

    async def get_auctions_updated_after(self, date: datetime | None = None) -> list[AuctionSnapshot]:
        params = {"date": date.isoformat()} if date else {}
        async with httpx.AsyncClient(transport=self._transport) as client:
            data = await self._retry(self._fetch, client, params)
        return [AuctionSnapshot.model_validate(item) for item in data]
