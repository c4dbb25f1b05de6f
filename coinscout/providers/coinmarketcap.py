"""CoinMarketCap Pro adapter: latest listings and market pairs."""

from __future__ import annotations

from typing import Any, Dict

import aiohttp

from coinscout.http import FetchResult, RateLimiter, fetch_json, get_session

DEFAULT_BASE_URL = "https://pro-api.coinmarketcap.com"
API_KEY_HEADER = "X-CMC_PRO_API_KEY"


class CoinMarketCapClient:
    source = "coinmarketcap"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float | None = 10.0,
        rps: float = 0.0,
    ) -> None:
        self.api_key = (api_key or "").strip() or None
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._session = session
        self.timeout = timeout
        self.limiter = RateLimiter(rps)

    @property
    def configured(self) -> bool:
        return self.api_key is not None

    async def _get(self, path: str, params: Dict[str, Any]) -> FetchResult:
        session = self._session or await get_session()
        return await fetch_json(
            session,
            f"{self.base_url}{path}",
            params=params,
            headers={API_KEY_HEADER: self.api_key or ""},
            timeout=self.timeout,
            limiter=self.limiter,
        )

    async def listings(self, limit: int = 150) -> FetchResult:
        return await self._get(
            "/v1/cryptocurrency/listings/latest",
            {
                "start": "1",
                "limit": str(limit),
                "sort": "date_added",
                "sort_dir": "desc",
                "convert": "USD",
            },
        )

    async def market_pairs(self, cmc_id: str, limit: int = 20) -> FetchResult:
        return await self._get(
            "/v1/cryptocurrency/market-pairs/latest",
            {"id": str(cmc_id), "limit": str(limit), "convert": "USD", "interval": "24h"},
        )


__all__ = ["API_KEY_HEADER", "CoinMarketCapClient", "DEFAULT_BASE_URL"]
