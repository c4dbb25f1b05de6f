"""Pushshift Reddit comment search (bearer-token authenticated)."""

from __future__ import annotations

import aiohttp

from coinscout.http import FetchResult, RateLimiter, fetch_json, get_session

DEFAULT_BASE_URL = "https://api.pushshift.io"


class PushshiftClient:
    source = "reddit"

    def __init__(
        self,
        token: str | None,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float | None = 10.0,
        rps: float = 0.0,
    ) -> None:
        self.token = (token or "").strip() or None
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._session = session
        self.timeout = timeout
        self.limiter = RateLimiter(rps)

    async def comments(self, query: str, *, window_hours: int = 24, size: int = 100) -> FetchResult:
        """Return recent comments matching *query* within the last *window_hours*."""
        session = self._session or await get_session()
        return await fetch_json(
            session,
            f"{self.base_url}/reddit/search/comment/",
            params={
                "q": query,
                "after": f"{int(window_hours)}h",
                "size": str(size),
                "sort": "desc",
                "sort_type": "created_utc",
            },
            headers={"Authorization": f"Bearer {self.token or ''}"},
            timeout=self.timeout,
            limiter=self.limiter,
        )


__all__ = ["DEFAULT_BASE_URL", "PushshiftClient"]
