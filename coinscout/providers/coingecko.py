"""CoinGecko REST adapter: market feed, community data, search and tickers."""

from __future__ import annotations

from typing import Any, Dict
from urllib.parse import quote

import aiohttp

from coinscout.http import FetchResult, RateLimiter, fetch_json, get_session

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoClient:
    """Thin client returning raw :class:`FetchResult` objects."""

    source = "coingecko"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float | None = 10.0,
        rps: float = 0.0,
    ) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._session = session
        self.timeout = timeout
        self.limiter = RateLimiter(rps)

    async def _get(self, path: str, params: Dict[str, Any] | None = None) -> FetchResult:
        session = self._session or await get_session()
        return await fetch_json(
            session,
            f"{self.base_url}{path}",
            params=params,
            timeout=self.timeout,
            limiter=self.limiter,
        )

    async def markets(self, per_page: int = 150, page: int = 1) -> FetchResult:
        return await self._get(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": "volume_desc",
                "per_page": str(per_page),
                "page": str(page),
                "sparkline": "false",
                "price_change_percentage": "1h,24h,7d",
            },
        )

    async def coin_community(self, coin_id: str) -> FetchResult:
        return await self._get(
            f"/coins/{quote(coin_id, safe='')}",
            {
                "localization": "false",
                "tickers": "false",
                "market_data": "false",
                "community_data": "true",
                "developer_data": "false",
                "sparkline": "false",
            },
        )

    async def search(self, query: str) -> FetchResult:
        return await self._get("/search", {"query": query})

    async def tickers(self, coin_id: str) -> FetchResult:
        return await self._get(
            f"/coins/{quote(coin_id, safe='')}/tickers",
            {"include_exchange_logo": "false"},
        )


__all__ = ["CoinGeckoClient", "DEFAULT_BASE_URL"]
