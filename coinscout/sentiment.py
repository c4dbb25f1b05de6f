from __future__ import annotations

"""Sentiment resolution strategies.

Two interchangeable strategies produce a :data:`SentimentResult` for a token:

* :class:`CommunitySentiment` reads CoinGecko community metrics (vote
  percentages and Reddit activity averages).
* :class:`LexicalSentiment` mines recent Reddit comments via Pushshift and
  scores them against the static word lists in :mod:`coinscout.lexicon`.

Neither strategy raises for upstream failures; every transport, status or
parse problem becomes a :class:`SentimentUnavailable`.
"""

import asyncio
import logging
import math
import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence

import aiohttp

from .http import describe_exception
from .lexicon import NEGATIVE_WORDS, POSITIVE_WORDS
from .providers.coingecko import CoinGeckoClient
from .providers.pushshift import PushshiftClient
from .scoring import clamp, round_decimals, round_half_up
from .types import Reason, SentimentReport, SentimentResult, SentimentUnavailable, TokenRecord, Trend

logger = logging.getLogger(__name__)

# Failures that say something about the upstream session, not the token.
SESSION_FAILURES: frozenset[Reason] = frozenset(
    {Reason.RATE_LIMITED, Reason.HTTP_ERROR, Reason.NETWORK_ERROR, Reason.UNAUTHORIZED}
)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)
_NON_ALNUM = re.compile(r"[^a-z0-9\s]+")

MAX_TOP_GROUPS = 3
MAX_SAMPLE_MENTIONS = 3
MENTION_BODY_LIMIT = 160
MENTION_MIN_LENGTH = 10


class SentimentSource(Protocol):
    async def resolve(self, token: TokenRecord) -> SentimentResult:
        ...


def is_session_failure(result: SentimentResult) -> bool:
    return isinstance(result, SentimentUnavailable) and result.reason in SESSION_FAILURES


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


# ---------------------------------------------------------------------------
# Community metrics
# ---------------------------------------------------------------------------


def normalize_vote_score(value: Any) -> Optional[float]:
    """Map a 0-100 positive-vote percentage onto 0-10 (2 decimals)."""
    numeric = _coerce_float(value)
    if numeric is None:
        return None
    return round_decimals(clamp(numeric, 0, 100) / 10, 2)


def derive_activity_count(community: Mapping[str, Any] | None) -> int:
    community = community or {}
    posts = _coerce_float(community.get("reddit_average_posts_48h")) or 0.0
    comments = _coerce_float(community.get("reddit_average_comments_48h")) or 0.0
    accounts = _coerce_float(community.get("reddit_accounts_active_48h")) or 0.0
    candidate = max((posts + comments) * 3.5, accounts / 2)
    if not math.isfinite(candidate):
        return 0
    return max(0, round_half_up(candidate))


def classify_social_trend(score: Optional[float], activity_count: int) -> Trend:
    if activity_count >= 200 or (score is not None and score >= 7.5):
        return Trend.HEATING_UP
    if activity_count >= 60 or (score is not None and score >= 6):
        return Trend.STEADY
    if activity_count >= 10 or (score is not None and score >= 4.5):
        return Trend.COOLING
    return Trend.LOW_ACTIVITY


class CommunitySentiment:
    """Sentiment from CoinGecko community data, keyed by the token slug."""

    source = "coingecko"

    def __init__(self, client: CoinGeckoClient) -> None:
        self.client = client

    async def resolve(self, token: TokenRecord) -> SentimentResult:
        slug = (token.slug or "").strip()
        if not slug:
            return SentimentUnavailable(
                Reason.MISSING_ID, "CoinGecko ID missing for sentiment lookup"
            )

        try:
            res = await self.client.coin_community(slug)
        except _TRANSPORT_ERRORS as exc:
            logger.debug("CoinGecko sentiment lookup for %s failed: %s", slug, exc)
            return SentimentUnavailable(
                Reason.NETWORK_ERROR,
                describe_exception(exc, "Unknown CoinGecko sentiment error"),
            )

        if res.status == 429:
            return SentimentUnavailable(
                Reason.RATE_LIMITED, "CoinGecko sentiment rate limit hit. Try again shortly."
            )
        if not res.ok:
            return SentimentUnavailable(
                Reason.HTTP_ERROR,
                f"CoinGecko sentiment {res.status}: {res.text or 'Unknown error'}",
            )

        payload = res.payload if isinstance(res.payload, Mapping) else {}
        up = _coerce_float(payload.get("sentiment_votes_up_percentage"))
        down = _coerce_float(payload.get("sentiment_votes_down_percentage"))
        community = payload.get("community_data")
        score = normalize_vote_score(up)
        activity = derive_activity_count(community if isinstance(community, Mapping) else None)

        if score is None and activity == 0:
            return SentimentUnavailable(Reason.NO_DATA, "No social sentiment data from CoinGecko")

        return SentimentReport(
            source=self.source,
            score=score,
            activity_count=activity,
            positive_ratio=round_decimals(up, 1) if up is not None else 0.0,
            negative_ratio=round_decimals(down, 1) if down is not None else 0.0,
            trend=classify_social_trend(score, activity),
        )


# ---------------------------------------------------------------------------
# Lexical comment mining
# ---------------------------------------------------------------------------


def tokenize(text: str) -> List[str]:
    """Lower-case *text*, drop non-alphanumerics and split on whitespace."""
    return _NON_ALNUM.sub("", (text or "").lower()).split()


def score_comment(
    text: str,
    positive: Iterable[str] = POSITIVE_WORDS,
    negative: Iterable[str] = NEGATIVE_WORDS,
) -> int:
    pos = positive if isinstance(positive, (set, frozenset)) else frozenset(positive)
    neg = negative if isinstance(negative, (set, frozenset)) else frozenset(negative)
    score = 0
    for word in tokenize(text):
        if word in pos:
            score += 1
        elif word in neg:
            score -= 1
    return score


def _comment_time(comment: Mapping[str, Any]) -> Optional[datetime]:
    created = _coerce_float(comment.get("created_utc"))
    if created is None:
        return None
    try:
        return datetime.fromtimestamp(created, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _permalink(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    if value.startswith("http"):
        return value
    return f"https://www.reddit.com{value}"


def summarize_comments(
    comments: Sequence[Mapping[str, Any]],
    *,
    now: datetime,
    recent_window_hours: float = 6,
    positive: Iterable[str] = POSITIVE_WORDS,
    negative: Iterable[str] = NEGATIVE_WORDS,
    source: str = "reddit",
) -> SentimentReport:
    """Aggregate a non-empty list of comments into a :class:`SentimentReport`."""

    positive = frozenset(positive)
    negative = frozenset(negative)
    scores = [score_comment(str(c.get("body") or ""), positive, negative) for c in comments]
    total = len(scores)
    mean = sum(scores) / total
    normalized = round_decimals(clamp(((mean + 5) / 10) * 10, 0, 10), 2)

    cutoff = now - timedelta(hours=recent_window_hours)
    recent = 0
    for comment in comments:
        created = _comment_time(comment)
        if created is not None and created >= cutoff:
            recent += 1
    recent_share = recent / total
    if recent_share >= 0.6:
        trend = Trend.HEATING_UP
    elif recent_share >= 0.3:
        trend = Trend.STEADY
    else:
        trend = Trend.COOLING

    groups = Counter(
        str(c.get("subreddit")) for c in comments if c.get("subreddit")
    )
    top_groups = [{"name": name, "count": count} for name, count in groups.most_common(MAX_TOP_GROUPS)]

    mentions: List[dict] = []
    for comment in comments:
        body = str(comment.get("body") or "").strip()
        if len(body) <= MENTION_MIN_LENGTH:
            continue
        created = _comment_time(comment)
        mentions.append(
            {
                "body": body[:MENTION_BODY_LIMIT],
                "group": comment.get("subreddit"),
                "createdAt": created.isoformat() if created else None,
                "permalink": _permalink(comment.get("permalink")),
            }
        )
        if len(mentions) >= MAX_SAMPLE_MENTIONS:
            break

    return SentimentReport(
        source=source,
        score=normalized,
        activity_count=total,
        positive_ratio=round_decimals(sum(1 for s in scores if s > 0) / total * 100, 1),
        negative_ratio=round_decimals(sum(1 for s in scores if s < 0) / total * 100, 1),
        trend=trend,
        top_groups=top_groups,
        sample_mentions=mentions,
    )


def _extract_comments(payload: Any) -> List[Mapping[str, Any]]:
    if isinstance(payload, Mapping):
        payload = payload.get("data")
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, Mapping)]


class LexicalSentiment:
    """Sentiment mined from recent Reddit comments mentioning the symbol."""

    source = "reddit"

    def __init__(
        self,
        client: PushshiftClient,
        *,
        window_hours: int = 24,
        limit: int = 100,
        recent_window_hours: float = 6,
        positive_words: Iterable[str] = POSITIVE_WORDS,
        negative_words: Iterable[str] = NEGATIVE_WORDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.window_hours = window_hours
        self.limit = limit
        self.recent_window_hours = recent_window_hours
        self.positive_words = frozenset(positive_words)
        self.negative_words = frozenset(negative_words)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def resolve(self, token: TokenRecord) -> SentimentResult:
        symbol = (token.symbol or "").strip()
        if not symbol:
            return SentimentUnavailable(
                Reason.MISSING_SYMBOL, "Token symbol missing for Reddit sentiment lookup"
            )
        if not self.client.token:
            return SentimentUnavailable(
                Reason.MISSING_TOKEN, "Pushshift token not configured for Reddit sentiment"
            )

        try:
            res = await self.client.comments(
                symbol, window_hours=self.window_hours, size=self.limit
            )
        except _TRANSPORT_ERRORS as exc:
            logger.debug("Reddit sentiment lookup for %s failed: %s", symbol, exc)
            return SentimentUnavailable(
                Reason.NETWORK_ERROR,
                describe_exception(exc, "Unknown Reddit sentiment error"),
            )

        if res.status == 401:
            return SentimentUnavailable(
                Reason.UNAUTHORIZED, "Pushshift token unauthorized for comment search"
            )
        if res.status == 429:
            return SentimentUnavailable(
                Reason.RATE_LIMITED, "Reddit sentiment rate limit hit. Try again shortly."
            )
        if not res.ok:
            return SentimentUnavailable(
                Reason.HTTP_ERROR, f"Pushshift {res.status}: {res.text or 'Unknown error'}"
            )

        comments = _extract_comments(res.payload)
        if not comments:
            return SentimentUnavailable(
                Reason.NO_COMMENTS,
                f"No Reddit comments mentioning {symbol} in the last {self.window_hours}h",
            )

        return summarize_comments(
            comments,
            now=self._clock(),
            recent_window_hours=self.recent_window_hours,
            positive=self.positive_words,
            negative=self.negative_words,
            source=self.source,
        )


__all__ = [
    "CommunitySentiment",
    "LexicalSentiment",
    "SESSION_FAILURES",
    "SentimentSource",
    "classify_social_trend",
    "derive_activity_count",
    "is_session_failure",
    "normalize_vote_score",
    "score_comment",
    "summarize_comments",
    "tokenize",
]
