from __future__ import annotations

"""Composite opportunity score and qualitative classification.

Every function here is pure: identical inputs give identical outputs and
nothing reads the clock, the network or module state.
"""

import math
from typing import Optional

from .types import Analysis

LIQUIDITY_WEIGHT = 0.30
MOMENTUM_24H_WEIGHT = 0.25
MOMENTUM_7D_WEIGHT = 0.20
CAP_TIER_WEIGHT = 0.15
AGE_WEIGHT = 0.10

AGE_HORIZON_DAYS = 30
UNKNOWN_AGE_SCORE = 60.0

# (minimum market cap, tier score), highest first
CAP_TIERS: tuple[tuple[float, float], ...] = (
    (1_000_000_000, 90.0),
    (250_000_000, 85.0),
    (100_000_000, 80.0),
    (25_000_000, 70.0),
    (5_000_000, 60.0),
)
BASE_CAP_SCORE = 50.0


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(math.floor(value + 0.5))


def round_decimals(value: float, digits: int) -> float:
    """Round to *digits* decimals with .5 going up; non-finite input is returned as is."""
    factor = 10**digits
    scaled = value * factor + 0.5
    if not math.isfinite(scaled):
        return value
    return math.floor(scaled) / factor


def volume_ratio(mcap: float, vol: float) -> float:
    """Return ``vol / mcap`` or 0 when the market cap is not positive."""
    return vol / mcap if mcap > 0 else 0.0


def liquidity_score(mcap: float, vol: float) -> float:
    return clamp(volume_ratio(mcap, vol) * 200, 0, 100)


def momentum_24h_score(pct24h: float) -> float:
    return clamp((pct24h + 20) * 2.5, 0, 100)


def momentum_7d_score(pct7d: float) -> float:
    return clamp((pct7d + 40) * 1.25, 0, 100)


def cap_tier_score(mcap: float) -> float:
    for threshold, tier in CAP_TIERS:
        if mcap >= threshold:
            return tier
    return BASE_CAP_SCORE


def age_score(days_listed: Optional[int]) -> float:
    if days_listed is None:
        return UNKNOWN_AGE_SCORE
    remaining = AGE_HORIZON_DAYS - min(days_listed, AGE_HORIZON_DAYS)
    return clamp(remaining / AGE_HORIZON_DAYS * 100, 0, 100)


def compute_score(
    mcap: float,
    vol: float,
    pct24h: float,
    pct7d: float,
    days_listed: Optional[int],
) -> int:
    """Return the 0-100 composite score for one token."""

    weighted = (
        liquidity_score(mcap, vol) * LIQUIDITY_WEIGHT
        + momentum_24h_score(pct24h) * MOMENTUM_24H_WEIGHT
        + momentum_7d_score(pct7d) * MOMENTUM_7D_WEIGHT
        + cap_tier_score(mcap) * CAP_TIER_WEIGHT
        + age_score(days_listed) * AGE_WEIGHT
    )
    return round_half_up(clamp(weighted, 0, 100))


def classify_liquidity(mcap: float, vol: float) -> str:
    ratio = volume_ratio(mcap, vol)
    if ratio >= 0.2:
        return "High"
    if ratio >= 0.08:
        return "Medium"
    return "Low"


def classify_grade(score: int) -> str:
    if score >= 85:
        return "Excellent"
    if score >= 75:
        return "Good"
    if score >= 65:
        return "Fair"
    return "Caution"


def classify_risk(mcap: float) -> str:
    if mcap >= 1_000_000_000:
        return "Low"
    if mcap >= 200_000_000:
        return "Medium"
    return "High"


def classify_momentum(pct24h: float, pct7d: float) -> str:
    # Order matters: the strongest matching label wins.
    if pct24h >= 12 or pct7d >= 40:
        return "Strong Bull"
    if pct24h >= 3 or pct7d >= 15:
        return "Bullish"
    if pct24h <= -12 or pct7d <= -30:
        return "Bearish"
    return "Neutral"


def classify(
    mcap: float,
    vol: float,
    pct24h: float,
    pct7d: float,
    score: int,
    days_listed: Optional[int],
) -> Analysis:
    """Return the qualitative :class:`Analysis` for one token."""

    return Analysis(
        investment_grade=classify_grade(score),
        risk=classify_risk(mcap),
        liquidity=classify_liquidity(mcap, vol),
        momentum=classify_momentum(pct24h, pct7d),
        age=days_listed,
    )


__all__ = [
    "age_score",
    "cap_tier_score",
    "clamp",
    "classify",
    "classify_momentum",
    "compute_score",
    "liquidity_score",
    "momentum_24h_score",
    "momentum_7d_score",
    "round_decimals",
    "round_half_up",
    "volume_ratio",
]
