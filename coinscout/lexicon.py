"""Word lists for the lexical comment-mining sentiment strategy.

Entries are already normalised the way :func:`coinscout.sentiment.tokenize`
normalises comment text: lower-case, alphanumerics only.
"""

from __future__ import annotations

POSITIVE_WORDS: frozenset[str] = frozenset(
    {
        "accumulate",
        "accumulating",
        "adoption",
        "amazing",
        "ath",
        "breakout",
        "bull",
        "bullish",
        "buy",
        "buying",
        "gain",
        "gains",
        "gem",
        "good",
        "great",
        "green",
        "growth",
        "hodl",
        "hold",
        "holding",
        "lambo",
        "launch",
        "listing",
        "long",
        "love",
        "moon",
        "mooning",
        "partnership",
        "profit",
        "profits",
        "pump",
        "pumping",
        "rally",
        "rocket",
        "solid",
        "strong",
        "undervalued",
        "up",
    }
)

NEGATIVE_WORDS: frozenset[str] = frozenset(
    {
        "avoid",
        "bad",
        "bear",
        "bearish",
        "bleeding",
        "crash",
        "crashing",
        "dead",
        "down",
        "dump",
        "dumping",
        "exit",
        "exploit",
        "fud",
        "hack",
        "hacked",
        "loss",
        "losses",
        "overvalued",
        "ponzi",
        "red",
        "rekt",
        "rug",
        "rugged",
        "rugpull",
        "scam",
        "sell",
        "selling",
        "short",
        "terrible",
        "weak",
        "worthless",
    }
)

__all__ = ["NEGATIVE_WORDS", "POSITIVE_WORDS"]
