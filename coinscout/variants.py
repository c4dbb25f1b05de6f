"""Wiring of the CoinGecko-primary and CoinMarketCap-primary scan variants."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, List

import aiohttp

from .config import Settings
from .exchanges import ExchangeResolver
from .http import close_session
from .market import CoinGeckoMarketSource, CoinMarketCapMarketSource, MarketSource
from .pipeline import ScanLimits, ScanPipeline
from .providers import CoinGeckoClient, CoinMarketCapClient, PushshiftClient
from .sentiment import CommunitySentiment, LexicalSentiment, SentimentSource
from .types import TokenRecord

logger = logging.getLogger(__name__)


def scan_limits(settings: Settings) -> ScanLimits:
    return ScanLimits(
        page_size=settings.page_size,
        max_days_listed=settings.max_days_listed,
        max_tokens=settings.max_tokens,
        sentiment_quota=settings.sentiment_quota,
        exchange_quota=settings.exchange_quota,
    )


def build_pipeline(
    settings: Settings,
    *,
    session: aiohttp.ClientSession | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ScanPipeline:
    """Return a fresh pipeline for one scan of ``settings.variant``.

    Clients, rate limiters and failure latches are all new objects, so
    concurrent scans never share state.
    """

    coingecko = CoinGeckoClient(
        settings.coingecko_base_url,
        session=session,
        timeout=settings.http_timeout,
        rps=settings.coingecko_rps,
    )
    cmc = CoinMarketCapClient(
        settings.cmc_api_key,
        settings.cmc_base_url,
        session=session,
        timeout=settings.http_timeout,
        rps=settings.cmc_rps,
    )

    market: MarketSource
    sentiment: SentimentSource
    if settings.variant == "coinmarketcap":
        market = CoinMarketCapMarketSource(cmc)
        pushshift = PushshiftClient(
            settings.pushshift_token,
            settings.pushshift_base_url,
            session=session,
            timeout=settings.http_timeout,
            rps=settings.pushshift_rps,
        )
        sentiment = LexicalSentiment(
            pushshift,
            window_hours=settings.comment_window_hours,
            limit=settings.comment_limit,
            recent_window_hours=settings.recent_window_hours,
            clock=clock,
        )
    else:
        market = CoinGeckoMarketSource(coingecko)
        sentiment = CommunitySentiment(coingecko)

    resolver = ExchangeResolver(
        cmc,
        coingecko,
        policy=settings.merge_policy,
        max_exchanges=settings.max_exchanges,
    )
    return ScanPipeline(market, sentiment, resolver, limits=scan_limits(settings), clock=clock)


async def run_scan(settings: Settings) -> List[TokenRecord]:
    """Run one scan on the current loop and close its HTTP session afterwards."""
    pipeline = build_pipeline(settings)
    try:
        return await pipeline.scan()
    finally:
        await close_session()


def scan(settings: Settings) -> List[TokenRecord]:
    """Blocking wrapper around :func:`run_scan` using a private event loop."""
    logger.debug("Starting %s scan", settings.variant)
    return asyncio.run(run_scan(settings))


__all__ = ["build_pipeline", "run_scan", "scan", "scan_limits"]
