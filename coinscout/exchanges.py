from __future__ import annotations

"""Exchange availability: CoinMarketCap market pairs with a CoinGecko fallback."""

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence

import aiohttp

from .http import describe_exception
from .providers.coingecko import CoinGeckoClient
from .providers.coinmarketcap import CoinMarketCapClient
from .types import (
    ExchangeAvailability,
    ExchangeListing,
    ExchangeResult,
    ExchangeUnavailable,
    Reason,
    TokenRecord,
)

logger = logging.getLogger(__name__)

MAX_EXCHANGES = 8

# Primary failures that make the search-based fallback worth a try.
FALLBACK_REASONS: frozenset[Reason] = frozenset(
    {
        Reason.MISSING_ID,
        Reason.MISSING_API_KEY,
        Reason.NO_EXCHANGES,
        Reason.UNAUTHORIZED,
        Reason.HTTP_ERROR,
        Reason.NETWORK_ERROR,
        Reason.RATE_LIMITED,
    }
)

# Failures specific to one token; anything else is latched for the scan.
TOKEN_SPECIFIC_FAILURES: frozenset[Reason] = frozenset(
    {
        Reason.NO_EXCHANGES,
        Reason.MISSING_ID,
        Reason.FALLBACK_NO_MATCH,
        Reason.FALLBACK_NO_EXCHANGES,
        Reason.FALLBACK_MISSING_IDENTIFIERS,
    }
)

AUTH_FAILURES: frozenset[Reason] = frozenset({Reason.MISSING_API_KEY, Reason.UNAUTHORIZED})

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


class MergePolicy(str, Enum):
    """Which failure to report when both primary and fallback come up empty."""

    PREFER_PRIMARY = "prefer-primary"
    AUTH_AWARE = "auth-aware"


class ExchangeSource(Protocol):
    async def resolve(self, token: TokenRecord) -> ExchangeResult:
        ...


def is_session_failure(result: ExchangeResult) -> bool:
    return isinstance(result, ExchangeUnavailable) and result.reason not in TOKEN_SPECIFIC_FAILURES


def _coerce_volume(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


def rank_listings(listings: Iterable[ExchangeListing], limit: int = MAX_EXCHANGES) -> List[ExchangeListing]:
    """Drop case-insensitive duplicate names, sort by volume desc, keep *limit*.

    The first occurrence of a name wins. Unknown volume sorts as 0.
    """
    seen: set[str] = set()
    unique: List[ExchangeListing] = []
    for listing in listings:
        key = listing.name.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(listing)
    unique.sort(key=lambda item: item.volume_24h or 0.0, reverse=True)
    return unique[:limit]


# ---------------------------------------------------------------------------
# Primary: CoinMarketCap market pairs
# ---------------------------------------------------------------------------


def listings_from_market_pairs(pairs: Sequence[Any]) -> List[ExchangeListing]:
    listings: List[ExchangeListing] = []
    for pair in pairs:
        if not isinstance(pair, Mapping):
            continue
        exchange = pair.get("exchange") or pair.get("market_pair_exchange") or {}
        name = exchange.get("name") if isinstance(exchange, Mapping) else None
        if not name:
            continue
        quote = pair.get("quote")
        usd = quote.get("USD") if isinstance(quote, Mapping) else None
        if not isinstance(usd, Mapping):
            usd = {}
        raw_volume = usd.get("volume_24h")
        if raw_volume is None:
            raw_volume = usd.get("volume_24h_unreported")
        listings.append(
            ExchangeListing(
                name=str(name),
                category=pair.get("category") or None,
                volume_24h=_coerce_volume(raw_volume),
            )
        )
    return listings


async def fetch_market_pairs(
    client: CoinMarketCapClient,
    token_id: Optional[str],
    *,
    limit: int = MAX_EXCHANGES,
) -> ExchangeResult:
    source = client.source
    if not token_id:
        return ExchangeUnavailable(Reason.MISSING_ID, "Token ID missing for exchange lookup", source)
    if not client.configured:
        return ExchangeUnavailable(
            Reason.MISSING_API_KEY, "CMC API key not configured for exchange lookup", source
        )

    try:
        res = await client.market_pairs(token_id)
    except _TRANSPORT_ERRORS as exc:
        logger.debug("CMC market pairs for %s failed: %s", token_id, exc)
        return ExchangeUnavailable(
            Reason.NETWORK_ERROR, describe_exception(exc, "Unknown exchange lookup error"), source
        )

    if res.status in (401, 403):
        return ExchangeUnavailable(
            Reason.UNAUTHORIZED, "CMC API key unauthorized for market pairs endpoint", source
        )
    if res.status == 429:
        return ExchangeUnavailable(
            Reason.RATE_LIMITED, "CMC market pairs rate limit hit. Try again shortly.", source
        )
    if not res.ok:
        return ExchangeUnavailable(
            Reason.HTTP_ERROR,
            f"CMC market pairs {res.status}: {res.text or 'Unknown error'}",
            source,
        )

    data = res.payload.get("data") if isinstance(res.payload, Mapping) else None
    pairs = data.get("market_pairs") if isinstance(data, Mapping) else None
    listings = rank_listings(
        listings_from_market_pairs(pairs if isinstance(pairs, list) else []), limit
    )
    if not listings:
        return ExchangeUnavailable(Reason.NO_EXCHANGES, "No exchange listings reported yet", source)
    return ExchangeAvailability(source=source, exchanges=listings)


# ---------------------------------------------------------------------------
# Fallback: CoinGecko search + tickers
# ---------------------------------------------------------------------------


def search_terms(token: TokenRecord) -> List[str]:
    """Queries tried in order: symbol, slug with spaces, name."""
    symbol = (token.symbol or "").strip()
    slug = (token.slug or "").strip().replace("-", " ")
    name = (token.name or "").strip()
    return [term for term in (symbol, slug, name) if term]


def score_candidate(token: TokenRecord, candidate: Mapping[str, Any] | None) -> float:
    if not candidate:
        return 0.0

    token_symbol = (token.symbol or "").lower()
    token_slug = (token.slug or "").lower()
    token_name = (token.name or "").lower()
    cand_symbol = str(candidate.get("symbol") or "").lower()
    cand_id = str(candidate.get("id") or "").lower()
    cand_name = str(candidate.get("name") or "").lower()

    score = 0.0
    if token_symbol and cand_symbol and token_symbol == cand_symbol:
        score += 3
    if token_slug and cand_id and token_slug == cand_id:
        score += 2
    if token_slug and cand_id and token_slug in cand_id:
        score += 1
    if token_symbol and cand_symbol and token_symbol in cand_symbol:
        score += 0.5
    if token_name and cand_name and token_name == cand_name:
        score += 1.5
    if token_name and cand_name and token_name in cand_name:
        score += 0.5
    return score


def pick_candidate(token: TokenRecord, candidates: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """Return the best scoring candidate, or the first one when nothing scores."""
    if not candidates:
        return None
    ranked = sorted(candidates, key=lambda cand: score_candidate(token, cand), reverse=True)
    best = ranked[0]
    if score_candidate(token, best) > 0:
        return best
    return candidates[0]


def _ticker_category(market: Mapping[str, Any]) -> Optional[str]:
    identifier = str(market.get("identifier") or "")
    if "dex" in identifier:
        return "DEX"
    market_type = market.get("type")
    if market_type:
        return str(market_type).upper()
    return None


def listings_from_tickers(tickers: Sequence[Any]) -> List[ExchangeListing]:
    listings: List[ExchangeListing] = []
    for ticker in tickers:
        if not isinstance(ticker, Mapping):
            continue
        market = ticker.get("market")
        if not isinstance(market, Mapping) or not market.get("name"):
            continue
        converted = ticker.get("converted_volume")
        raw_volume = converted.get("usd") if isinstance(converted, Mapping) else None
        if raw_volume is None:
            raw_volume = ticker.get("volume")
        listings.append(
            ExchangeListing(
                name=str(market["name"]),
                category=_ticker_category(market),
                volume_24h=_coerce_volume(raw_volume),
            )
        )
    return listings


async def fetch_search_listings(
    client: CoinGeckoClient,
    token: TokenRecord,
    *,
    limit: int = MAX_EXCHANGES,
) -> ExchangeResult:
    source = client.source
    terms = search_terms(token)
    if not terms:
        return ExchangeUnavailable(
            Reason.FALLBACK_MISSING_IDENTIFIERS, "CoinGecko lookup requires symbol or name", source
        )

    candidates: List[Mapping[str, Any]] = []
    last_error: Optional[str] = None
    for term in terms:
        try:
            res = await client.search(term)
        except _TRANSPORT_ERRORS as exc:
            last_error = describe_exception(exc, "Unknown CoinGecko search error")
            continue
        if res.status == 429:
            return ExchangeUnavailable(
                Reason.FALLBACK_RATE_LIMITED, "CoinGecko rate limit hit. Try again shortly.", source
            )
        if not res.ok:
            last_error = f"CoinGecko search {res.status}"
            continue
        coins = res.payload.get("coins") if isinstance(res.payload, Mapping) else None
        if not isinstance(coins, list):
            coins = []
        candidates = [coin for coin in coins if isinstance(coin, Mapping)]
        if candidates:
            break

    if not candidates:
        return ExchangeUnavailable(
            Reason.FALLBACK_NO_MATCH, last_error or "No matching asset found on CoinGecko", source
        )

    best = pick_candidate(token, candidates)
    coin_id = str(best.get("id") or "") if best else ""
    if not coin_id:
        return ExchangeUnavailable(
            Reason.FALLBACK_NO_MATCH, "Unable to resolve CoinGecko asset identifier", source
        )

    try:
        res = await client.tickers(coin_id)
    except _TRANSPORT_ERRORS as exc:
        return ExchangeUnavailable(
            Reason.FALLBACK_NETWORK_ERROR,
            describe_exception(exc, "Unknown CoinGecko ticker error"),
            source,
        )
    if res.status == 429:
        return ExchangeUnavailable(
            Reason.FALLBACK_RATE_LIMITED, "CoinGecko rate limit hit. Try again shortly.", source
        )
    if not res.ok:
        return ExchangeUnavailable(
            Reason.FALLBACK_HTTP_ERROR,
            f"CoinGecko tickers {res.status}: {res.text or 'Unknown error'}",
            source,
        )

    tickers = res.payload.get("tickers") if isinstance(res.payload, Mapping) else None
    listings = rank_listings(
        listings_from_tickers(tickers if isinstance(tickers, list) else []), limit
    )
    if not listings:
        return ExchangeUnavailable(
            Reason.FALLBACK_NO_EXCHANGES, "No exchange listings reported via CoinGecko", source
        )
    return ExchangeAvailability(source=source, exchanges=listings)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def merge_failures(
    primary: Optional[ExchangeResult],
    secondary: ExchangeResult,
    policy: MergePolicy,
) -> ExchangeResult:
    """Choose the result to report when neither source produced listings."""
    if primary is None:
        return secondary
    if policy is MergePolicy.AUTH_AWARE and getattr(primary, "reason", None) in AUTH_FAILURES:
        return secondary
    return primary


class ExchangeResolver:
    """Resolve exchange listings, falling back from CMC pairs to CoinGecko search.

    The primary is consulted only for tokens whose ids come from
    CoinMarketCap; other tokens go straight to the fallback.
    """

    def __init__(
        self,
        primary: CoinMarketCapClient,
        fallback: CoinGeckoClient,
        *,
        policy: MergePolicy = MergePolicy.AUTH_AWARE,
        max_exchanges: int = MAX_EXCHANGES,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.policy = MergePolicy(policy)
        self.max_exchanges = max_exchanges

    def _primary_id(self, token: TokenRecord) -> Optional[str]:
        if token.source != self.primary.source:
            return None
        return token.id or None

    async def resolve(self, token: TokenRecord) -> ExchangeResult:
        primary: Optional[ExchangeResult] = None
        token_id = self._primary_id(token)
        if token_id:
            primary = await fetch_market_pairs(self.primary, token_id, limit=self.max_exchanges)
            if isinstance(primary, ExchangeAvailability) and primary.exchanges:
                return primary
            if isinstance(primary, ExchangeUnavailable) and primary.reason not in FALLBACK_REASONS:
                return primary
            logger.debug(
                "Exchange primary unavailable for %s (%s); trying fallback",
                token.symbol,
                getattr(primary, "reason", "empty"),
            )

        secondary = await fetch_search_listings(self.fallback, token, limit=self.max_exchanges)
        if isinstance(secondary, ExchangeAvailability) and secondary.exchanges:
            return secondary
        return merge_failures(primary, secondary, self.policy)


__all__ = [
    "AUTH_FAILURES",
    "ExchangeResolver",
    "ExchangeSource",
    "FALLBACK_REASONS",
    "MAX_EXCHANGES",
    "MergePolicy",
    "TOKEN_SPECIFIC_FAILURES",
    "fetch_market_pairs",
    "fetch_search_listings",
    "is_session_failure",
    "listings_from_market_pairs",
    "listings_from_tickers",
    "merge_failures",
    "pick_candidate",
    "rank_listings",
    "score_candidate",
    "search_terms",
]
