from __future__ import annotations

from typing import Any, Dict, List

import pytest

from coinscout.logging_utils import reset_warn_once_cache
from coinscout.types import Analysis, TokenRecord


class DummyResponse:
    def __init__(self, payload: Any = None, *, status: int = 200, text: str = ""):
        self._payload = payload
        self.status = status
        self._text = text

    async def __aenter__(self) -> "DummyResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def json(self, content_type: str | None = None) -> Any:
        return self._payload

    async def text(self) -> str:
        return self._text


class DummySession:
    """Serve queued responses by URL fragment; the longest matching fragment wins.

    A route value may be a response, an exception to raise, or a list of those
    consumed in order (the last one repeats).
    """

    def __init__(self, routes: Dict[str, Any]):
        self.routes = {key: (list(value) if isinstance(value, list) else [value]) for key, value in routes.items()}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def calls_to(self, fragment: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if fragment in call["url"]]

    def get(
        self,
        url: str,
        *,
        params: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
        timeout: Any = None,
    ) -> DummyResponse:
        self.calls.append(
            {"url": url, "params": params or {}, "headers": headers or {}, "timeout": timeout}
        )
        matches = [key for key in self.routes if key in url]
        if not matches:
            raise AssertionError(f"unexpected request to {url}")
        queue = self.routes[max(matches, key=len)]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item


def make_token(**overrides: Any) -> TokenRecord:
    fields: Dict[str, Any] = dict(
        id="101",
        symbol="ABC",
        name="Alpha Beta",
        slug="alpha-beta",
        source="coinmarketcap",
        price=1.25,
        market_cap=10_000_000.0,
        volume_24h=2_000_000.0,
        volume_market_cap_ratio=20.0,
        change_1h=0.5,
        change_24h=5.0,
        change_7d=10.0,
        days_listed=3,
        score=58,
        analysis=Analysis("Caution", "High", "High", "Bullish", 3),
    )
    fields.update(overrides)
    return TokenRecord(**fields)


@pytest.fixture
def respond():
    return DummyResponse


@pytest.fixture
def make_session():
    return DummySession


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture(autouse=True)
def _clear_warn_once():
    reset_warn_once_cache()
    yield
    reset_warn_once_cache()
