from __future__ import annotations

"""Market-listing feeds and construction of base :class:`TokenRecord` objects."""

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Protocol
from urllib.parse import quote

import aiohttp

from .errors import ConfigurationError, MarketFeedError
from .http import describe_exception
from .providers.coingecko import CoinGeckoClient
from .providers.coinmarketcap import CoinMarketCapClient
from .scoring import classify, compute_score, round_decimals, volume_ratio
from .types import RawMarketEntry, TokenRecord

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)
_SECONDS_PER_DAY = 86_400


class MarketSource(Protocol):
    source: str

    async def fetch_entries(self, limit: int) -> List[RawMarketEntry]:
        ...


def _num(value: Any) -> float:
    """Coerce *value* to a finite float, defaulting to 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(numeric) or math.isinf(numeric):
        return 0.0
    return numeric


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_listed_since(date_added: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days since listing, never below 1; ``None`` when unknown."""
    if date_added is None:
        return None
    elapsed = (now - date_added).total_seconds() / _SECONDS_PER_DAY
    return max(1, int(math.floor(elapsed)))


def avatar_url(symbol: str) -> str:
    return f"https://robohash.org/{quote(symbol or '', safe='')}.png?size=80x80&set=set1"


def build_token_record(entry: RawMarketEntry, now: datetime) -> TokenRecord:
    """Score *entry* and return a base record without enrichment fields."""

    mcap = entry.market_cap
    vol = entry.volume_24h
    pct24h = entry.percent_change_24h
    pct7d = entry.percent_change_7d
    days_listed = days_listed_since(entry.date_added, now)
    score = compute_score(mcap, vol, pct24h, pct7d, days_listed)

    return TokenRecord(
        id=entry.id,
        symbol=(entry.symbol or "").upper(),
        name=entry.name,
        slug=entry.slug,
        source=entry.source,
        price=entry.price,
        market_cap=mcap,
        volume_24h=vol,
        volume_market_cap_ratio=round_decimals(volume_ratio(mcap, vol) * 100, 2),
        change_1h=entry.percent_change_1h,
        change_24h=pct24h,
        change_7d=pct7d,
        days_listed=days_listed,
        score=score,
        analysis=classify(mcap, vol, pct24h, pct7d, score, days_listed),
        image=entry.image or avatar_url(entry.symbol),
        date_added=entry.date_added.isoformat() if entry.date_added else None,
        market_cap_rank=entry.market_cap_rank,
    )


# ---------------------------------------------------------------------------
# CoinGecko
# ---------------------------------------------------------------------------


def entry_from_coingecko(item: Mapping[str, Any]) -> RawMarketEntry:
    coin_id = str(item.get("id") or "")
    return RawMarketEntry(
        id=coin_id,
        symbol=str(item.get("symbol") or ""),
        name=str(item.get("name") or ""),
        slug=coin_id,
        source="coingecko",
        market_cap=_num(item.get("market_cap")),
        volume_24h=_num(item.get("total_volume")),
        price=_num(item.get("current_price")),
        percent_change_1h=_num(item.get("price_change_percentage_1h_in_currency")),
        percent_change_24h=_num(item.get("price_change_percentage_24h_in_currency")),
        percent_change_7d=_num(item.get("price_change_percentage_7d_in_currency")),
        # the markets endpoint carries no listing date
        date_added=None,
        market_cap_rank=_optional_int(item.get("market_cap_rank")),
    )


class CoinGeckoMarketSource:
    """``/coins/markets`` ordered by volume; feed failures report HTTP 500."""

    source = "coingecko"
    failure_status = 500

    def __init__(self, client: CoinGeckoClient) -> None:
        self.client = client

    async def fetch_entries(self, limit: int) -> List[RawMarketEntry]:
        try:
            res = await self.client.markets(per_page=limit)
        except _TRANSPORT_ERRORS as exc:
            raise MarketFeedError(
                f"CoinGecko API error: {describe_exception(exc, 'request failed')}",
                status_code=self.failure_status,
            ) from exc
        if not res.ok:
            raise MarketFeedError(
                f"CoinGecko API error: {res.status} {res.text}".rstrip(),
                status_code=self.failure_status,
            )
        items = res.payload if isinstance(res.payload, list) else []
        logger.debug("CoinGecko markets returned %d rows", len(items))
        return [entry_from_coingecko(item) for item in items if isinstance(item, Mapping)]


# ---------------------------------------------------------------------------
# CoinMarketCap
# ---------------------------------------------------------------------------


def entry_from_coinmarketcap(item: Mapping[str, Any]) -> RawMarketEntry:
    quote_block = item.get("quote")
    usd = quote_block.get("USD") if isinstance(quote_block, Mapping) else None
    if not isinstance(usd, Mapping):
        usd = {}
    return RawMarketEntry(
        id=str(item.get("id") or ""),
        symbol=str(item.get("symbol") or ""),
        name=str(item.get("name") or ""),
        slug=str(item.get("slug") or ""),
        source="coinmarketcap",
        market_cap=_num(usd.get("market_cap")),
        volume_24h=_num(usd.get("volume_24h")),
        price=_num(usd.get("price")),
        percent_change_1h=_num(usd.get("percent_change_1h")),
        percent_change_24h=_num(usd.get("percent_change_24h")),
        percent_change_7d=_num(usd.get("percent_change_7d")),
        date_added=parse_timestamp(item.get("date_added")),
        market_cap_rank=_optional_int(item.get("cmc_rank")),
    )


class CoinMarketCapMarketSource:
    """``/listings/latest`` sorted by listing date.

    A non-2xx feed response reports HTTP 502; an unreachable feed reports 500.
    """

    source = "coinmarketcap"
    failure_status = 502

    def __init__(self, client: CoinMarketCapClient) -> None:
        self.client = client

    async def fetch_entries(self, limit: int) -> List[RawMarketEntry]:
        if not self.client.configured:
            raise ConfigurationError("CMC_API_KEY is not configured")
        try:
            res = await self.client.listings(limit=limit)
        except _TRANSPORT_ERRORS as exc:
            raise MarketFeedError(
                f"CMC API error: {describe_exception(exc, 'request failed')}",
                status_code=500,
            ) from exc
        if not res.ok:
            raise MarketFeedError(
                f"CMC API error: {res.status} {res.text}".rstrip(),
                status_code=self.failure_status,
            )
        data = res.payload.get("data") if isinstance(res.payload, Mapping) else None
        items = data if isinstance(data, list) else []
        logger.debug("CMC listings returned %d rows", len(items))
        return [entry_from_coinmarketcap(item) for item in items if isinstance(item, Mapping)]


__all__ = [
    "CoinGeckoMarketSource",
    "CoinMarketCapMarketSource",
    "MarketSource",
    "avatar_url",
    "build_token_record",
    "days_listed_since",
    "entry_from_coingecko",
    "entry_from_coinmarketcap",
    "parse_timestamp",
]
