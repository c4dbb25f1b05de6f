from __future__ import annotations

"""Fatal scan errors surfaced to the HTTP layer as a single error response."""


class ScanError(Exception):
    """Raised when a scan cannot produce any items."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class MarketFeedError(ScanError):
    """Raised when the market-listing feed is unreachable or returns non-2xx."""


class ConfigurationError(ScanError):
    """Raised when a variant is missing configuration it cannot run without."""


__all__ = ["ScanError", "MarketFeedError", "ConfigurationError"]
