from __future__ import annotations

import asyncio
import logging
import os
import time
import weakref
from dataclasses import dataclass
from typing import Any, Mapping

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "coinscout/1.0 (+https://local)"

# Maintain a session per event loop; each scan runs in its own loop.
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)


async def get_session() -> aiohttp.ClientSession:
    """Return an aiohttp session bound to the current event loop."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or getattr(sess, "closed", False):
        ua = os.getenv("HTTP_USER_AGENT", DEFAULT_USER_AGENT)
        trust_env = str(os.getenv("HTTP_TRUST_ENV", "")).lower() in {"1", "true", "yes"}
        if trust_env:
            logger.info("HTTP session will honor proxy settings from the environment")
        sess = aiohttp.ClientSession(headers={"User-Agent": ua}, trust_env=trust_env)
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close the session owned by the running loop, if any."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.pop(loop, None)
    if sess is not None and not getattr(sess, "closed", False):
        await sess.close()


class RateLimiter:
    """Space requests at least ``1 / rps`` seconds apart.

    ``rps <= 0`` disables pacing. Instances are bound to the loop that first
    awaits them, so each scan builds its own.
    """

    def __init__(self, rps: float = 0.0) -> None:
        self.rps = float(rps or 0.0)
        self._lock: asyncio.Lock | None = None
        self._next_allowed = 0.0

    async def wait(self) -> None:
        if self.rps <= 0:
            return
        if self._lock is None:
            self._lock = asyncio.Lock()
        interval = 1.0 / max(self.rps, 0.001)
        async with self._lock:
            now = time.monotonic()
            delay = self._next_allowed - now
            if delay > 0:
                await asyncio.sleep(delay)
                now = time.monotonic()
            self._next_allowed = max(now, self._next_allowed) + interval


@dataclass(slots=True)
class FetchResult:
    """Status and decoded body of one upstream request.

    ``payload`` holds parsed JSON for 2xx responses; ``text`` holds the raw
    body for everything else so callers can report it.
    """

    status: int
    payload: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    limiter: RateLimiter | None = None,
) -> FetchResult:
    """GET *url* and return a :class:`FetchResult`.

    Non-2xx statuses are returned rather than raised. Transport failures
    (``aiohttp.ClientError``, ``asyncio.TimeoutError``) and undecodable JSON
    propagate to the caller.
    """

    if limiter is not None:
        await limiter.wait()
    request_headers = {"Accept": "application/json"}
    if headers:
        request_headers.update(headers)
    client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None
    async with session.get(
        url,
        params=dict(params) if params else None,
        headers=request_headers,
        timeout=client_timeout,
    ) as resp:
        if 200 <= resp.status < 300:
            payload = await resp.json(content_type=None)
            return FetchResult(status=resp.status, payload=payload)
        text = await resp.text()
        logger.debug("GET %s -> %s", url, resp.status)
        return FetchResult(status=resp.status, text=text)


def describe_exception(exc: BaseException, default: str) -> str:
    """Return a non-empty, human readable message for *exc*."""
    message = str(exc).strip()
    if message:
        return message
    if isinstance(exc, asyncio.TimeoutError):
        return "Request timed out"
    return default


__all__ = [
    "FetchResult",
    "RateLimiter",
    "close_session",
    "describe_exception",
    "fetch_json",
    "get_session",
]
