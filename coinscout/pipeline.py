from __future__ import annotations

"""Scan pipeline: market feed -> scored records -> sentiment/exchange enrichment."""

import dataclasses
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, List, Optional, TypeVar

from . import exchanges as exchange_mod
from . import sentiment as sentiment_mod
from .exchanges import ExchangeSource
from .logging_utils import warn_once_per
from .market import MarketSource, build_token_record
from .sentiment import SentimentSource
from .types import (
    ExchangeResult,
    ExchangeUnavailable,
    Reason,
    SentimentResult,
    SentimentUnavailable,
    TokenRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ScanLimits:
    """Bounds applied to one scan."""

    page_size: int = 150
    max_days_listed: int = 30
    max_tokens: int = 60
    sentiment_quota: int = 25
    exchange_quota: int = 20


class StickyFailure(Generic[T]):
    """Holds the first session-wide failure seen during one scan.

    Once latched, later tokens reuse the very same result object instead of
    calling the upstream again. Owned by a single :meth:`ScanPipeline.scan`
    call and never shared between scans.
    """

    __slots__ = ("name", "result")

    def __init__(self, name: str) -> None:
        self.name = name
        self.result: Optional[T] = None

    @property
    def latched(self) -> bool:
        return self.result is not None

    def latch(self, result: T) -> None:
        if self.result is None:
            self.result = result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sentiment_quota_result() -> SentimentUnavailable:
    return SentimentUnavailable(
        Reason.QUOTA, "Sentiment lookup limited to top tokens to respect rate limits"
    )


def exchange_quota_result() -> ExchangeUnavailable:
    return ExchangeUnavailable(
        Reason.QUOTA, "Exchange lookup limited to top tokens to respect rate limits"
    )


def select_candidates(records: List[TokenRecord], limits: ScanLimits) -> List[TokenRecord]:
    """Keep recent (or undated) listings, best score first, at most ``max_tokens``."""
    recent = [
        record
        for record in records
        if record.days_listed is None or record.days_listed <= limits.max_days_listed
    ]
    recent.sort(key=lambda record: record.score, reverse=True)
    return recent[: limits.max_tokens]


class ScanPipeline:
    """One market source plus one sentiment and one exchange resolver.

    :meth:`scan` walks the ranked tokens strictly one at a time; the
    sequential loop is what keeps upstream call rates in check.
    """

    def __init__(
        self,
        market: MarketSource,
        sentiment: SentimentSource,
        exchanges: ExchangeSource,
        *,
        limits: ScanLimits | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.market = market
        self.sentiment = sentiment
        self.exchanges = exchanges
        self.limits = limits or ScanLimits()
        self._clock = clock or _utcnow

    async def _sentiment_for(
        self, index: int, token: TokenRecord, sticky: StickyFailure[SentimentResult]
    ) -> SentimentResult:
        if sticky.latched:
            return sticky.result  # type: ignore[return-value]
        if index >= self.limits.sentiment_quota:
            return sentiment_quota_result()
        result = await self.sentiment.resolve(token)
        if sentiment_mod.is_session_failure(result):
            sticky.latch(result)
            warn_once_per(
                1,
                f"sentiment:{result.reason.value}",
                "Sentiment source failing (%s): %s; reusing for remaining tokens",
                result.reason.value,
                result.message,
                logger=logger,
            )
        return result

    async def _exchanges_for(
        self, index: int, token: TokenRecord, sticky: StickyFailure[ExchangeResult]
    ) -> ExchangeResult:
        if sticky.latched:
            return sticky.result  # type: ignore[return-value]
        if index >= self.limits.exchange_quota:
            return exchange_quota_result()
        result = await self.exchanges.resolve(token)
        if exchange_mod.is_session_failure(result):
            sticky.latch(result)
            warn_once_per(
                1,
                f"exchanges:{result.reason.value}",
                "Exchange source failing (%s): %s; reusing for remaining tokens",
                result.reason.value,
                result.message,
                logger=logger,
            )
        return result

    async def scan(self) -> List[TokenRecord]:
        """Run one scan end to end and return the enriched records.

        Market feed and configuration errors propagate; per-token lookup
        failures are carried on the records instead.
        """

        started = time.monotonic()
        entries = await self.market.fetch_entries(self.limits.page_size)
        now = self._clock()
        records = [build_token_record(entry, now) for entry in entries]
        candidates = select_candidates(records, self.limits)
        logger.info(
            "Scan %s: %d feed entries, %d candidates",
            getattr(self.market, "source", "market"),
            len(entries),
            len(candidates),
        )

        sentiment_failure: StickyFailure[SentimentResult] = StickyFailure("sentiment")
        exchange_failure: StickyFailure[ExchangeResult] = StickyFailure("exchanges")
        enriched: List[TokenRecord] = []
        for index, token in enumerate(candidates):
            sentiment = await self._sentiment_for(index, token, sentiment_failure)
            market_access = await self._exchanges_for(index, token, exchange_failure)
            enriched.append(
                dataclasses.replace(
                    token,
                    sentiment=sentiment,
                    market_access=market_access,
                    exchanges=list(market_access.exchanges or []),
                    last_updated=self._clock().isoformat(),
                )
            )

        logger.info(
            "Scan finished: %d items in %.2fs", len(enriched), time.monotonic() - started
        )
        return enriched


__all__ = [
    "ScanLimits",
    "ScanPipeline",
    "StickyFailure",
    "exchange_quota_result",
    "select_candidates",
    "sentiment_quota_result",
]
