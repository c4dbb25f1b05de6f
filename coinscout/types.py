from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Reason(str, Enum):
    """Failure kinds carried by unavailable sentiment / exchange results."""

    MISSING_ID = "missing-id"
    MISSING_SYMBOL = "missing-symbol"
    MISSING_TOKEN = "missing-token"
    MISSING_API_KEY = "missing-api-key"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate-limited"
    HTTP_ERROR = "http-error"
    NETWORK_ERROR = "network-error"
    NO_DATA = "no-data"
    NO_COMMENTS = "no-comments"
    NO_EXCHANGES = "no-exchanges"
    QUOTA = "quota"
    FALLBACK_MISSING_IDENTIFIERS = "fallback-missing-identifiers"
    FALLBACK_NO_MATCH = "fallback-no-match"
    FALLBACK_RATE_LIMITED = "fallback-rate-limited"
    FALLBACK_HTTP_ERROR = "fallback-http-error"
    FALLBACK_NETWORK_ERROR = "fallback-network-error"
    FALLBACK_NO_EXCHANGES = "fallback-no-exchanges"


class Trend(str, Enum):
    HEATING_UP = "Heating up"
    STEADY = "Steady"
    COOLING = "Cooling"
    LOW_ACTIVITY = "Low activity"


@dataclass(frozen=True, slots=True)
class RawMarketEntry:
    """One asset from a market-listing feed, decoded but not yet scored."""

    id: str
    symbol: str
    name: str
    slug: str
    source: str
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price: float = 0.0
    percent_change_1h: float = 0.0
    percent_change_24h: float = 0.0
    percent_change_7d: float = 0.0
    date_added: Optional[datetime] = None
    market_cap_rank: Optional[int] = None
    image: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Analysis:
    investment_grade: str
    risk: str
    liquidity: str
    momentum: str
    age: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "investmentGrade": self.investment_grade,
            "risk": self.risk,
            "liquidity": self.liquidity,
            "momentum": self.momentum,
            "age": self.age,
        }


# ---------------------------------------------------------------------------
# Sentiment results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SentimentUnavailable:
    reason: Reason
    message: str

    available = False

    def to_dict(self) -> Dict[str, Any]:
        return {"available": False, "reason": self.reason.value, "message": self.message}


@dataclass(frozen=True, slots=True)
class SentimentReport:
    """Normalised sentiment for one token from either strategy."""

    source: str
    score: Optional[float]
    activity_count: int
    positive_ratio: float
    negative_ratio: float
    trend: Trend
    top_groups: List[Dict[str, Any]] = field(default_factory=list)
    sample_mentions: List[Dict[str, Any]] = field(default_factory=list)

    available = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": True,
            "source": self.source,
            "score": self.score,
            "activityCount": self.activity_count,
            "positiveRatio": self.positive_ratio,
            "negativeRatio": self.negative_ratio,
            "trend": self.trend.value,
            "topGroups": [dict(group) for group in self.top_groups],
            "sampleMentions": [dict(mention) for mention in self.sample_mentions],
        }


SentimentResult = Union[SentimentReport, SentimentUnavailable]


# ---------------------------------------------------------------------------
# Exchange results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExchangeListing:
    name: str
    category: Optional[str] = None
    volume_24h: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "category": self.category, "volume24h": self.volume_24h}


@dataclass(frozen=True, slots=True)
class ExchangeUnavailable:
    reason: Reason
    message: str
    source: Optional[str] = None

    available = False

    @property
    def exchanges(self) -> List[ExchangeListing]:
        return []

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "available": False,
            "reason": self.reason.value,
            "message": self.message,
            "exchanges": [],
        }
        if self.source:
            payload["source"] = self.source
        return payload


@dataclass(frozen=True, slots=True)
class ExchangeAvailability:
    source: str
    exchanges: List[ExchangeListing]

    available = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": True,
            "source": self.source,
            "exchanges": [listing.to_dict() for listing in self.exchanges],
        }


ExchangeResult = Union[ExchangeAvailability, ExchangeUnavailable]


# ---------------------------------------------------------------------------
# Token record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """Scored token for one scan cycle.

    Base records are complete apart from the enrichment fields, which the
    pipeline attaches with :func:`dataclasses.replace`.
    """

    id: str
    symbol: str
    name: str
    slug: str
    source: str
    price: float
    market_cap: float
    volume_24h: float
    volume_market_cap_ratio: float
    change_1h: float
    change_24h: float
    change_7d: float
    days_listed: Optional[int]
    score: int
    analysis: Analysis
    image: Optional[str] = None
    date_added: Optional[str] = None
    market_cap_rank: Optional[int] = None
    sentiment: Optional[SentimentResult] = None
    market_access: Optional[ExchangeResult] = None
    exchanges: List[ExchangeListing] = field(default_factory=list)
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "slug": self.slug,
            "image": self.image,
            "dateAdded": self.date_added,
            "score": self.score,
            "price": self.price,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "volumeMarketCapRatio": self.volume_market_cap_ratio,
            "change1h": self.change_1h,
            "change24h": self.change_24h,
            "change7d": self.change_7d,
            "marketCapRank": self.market_cap_rank,
            "daysListed": self.days_listed,
            "analysis": self.analysis.to_dict(),
            "sentiment": self.sentiment.to_dict() if self.sentiment is not None else None,
            "marketAccess": (
                self.market_access.to_dict() if self.market_access is not None else None
            ),
            "exchanges": [listing.to_dict() for listing in self.exchanges],
            "lastUpdated": self.last_updated,
        }


__all__ = [
    "Analysis",
    "ExchangeAvailability",
    "ExchangeListing",
    "ExchangeResult",
    "ExchangeUnavailable",
    "RawMarketEntry",
    "Reason",
    "SentimentReport",
    "SentimentResult",
    "SentimentUnavailable",
    "TokenRecord",
    "Trend",
]
