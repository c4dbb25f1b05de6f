from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exchanges import MergePolicy
from .providers.coingecko import DEFAULT_BASE_URL as COINGECKO_BASE_URL
from .providers.coinmarketcap import DEFAULT_BASE_URL as CMC_BASE_URL
from .providers.pushshift import DEFAULT_BASE_URL as PUSHSHIFT_BASE_URL

logger = logging.getLogger(__name__)

Variant = Literal["coingecko", "coinmarketcap"]

# field -> environment variables, first non-blank wins
ENV_VARS: Dict[str, tuple[str, ...]] = {
    "variant": ("COINSCOUT_VARIANT",),
    "cmc_api_key": ("CMC_API_KEY", "NEXT_PUBLIC_CMC_API_KEY"),
    "pushshift_token": ("PUSHSHIFT_TOKEN", "REDDIT_API_TOKEN"),
    "coingecko_base_url": ("COINGECKO_BASE_URL",),
    "cmc_base_url": ("CMC_BASE_URL",),
    "pushshift_base_url": ("PUSHSHIFT_BASE_URL",),
    "page_size": ("SCAN_PAGE_SIZE",),
    "max_days_listed": ("SCAN_MAX_DAYS_LISTED",),
    "max_tokens": ("SCAN_MAX_TOKENS",),
    "sentiment_quota": ("SCAN_SENTIMENT_QUOTA",),
    "exchange_quota": ("SCAN_EXCHANGE_QUOTA",),
    "max_exchanges": ("SCAN_MAX_EXCHANGES",),
    "comment_window_hours": ("SENTIMENT_WINDOW_HOURS",),
    "comment_limit": ("SENTIMENT_COMMENT_LIMIT",),
    "recent_window_hours": ("SENTIMENT_RECENT_HOURS",),
    "http_timeout": ("HTTP_TIMEOUT",),
    "coingecko_rps": ("COINGECKO_RPS",),
    "cmc_rps": ("CMC_RPS",),
    "pushshift_rps": ("PUSHSHIFT_RPS",),
    "exchange_merge_policy": ("EXCHANGE_MERGE_POLICY",),
    "host": ("COINSCOUT_HOST",),
    "port": ("COINSCOUT_PORT",),
}

CONFIG_PATH_ENV = "COINSCOUT_CONFIG"


class Settings(BaseModel):
    """Runtime settings for one coinscout process.

    Read-only during a scan; each scan builds its own sources from it.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    variant: Variant = "coingecko"
    cmc_api_key: Optional[str] = None
    pushshift_token: Optional[str] = None

    coingecko_base_url: str = COINGECKO_BASE_URL
    cmc_base_url: str = CMC_BASE_URL
    pushshift_base_url: str = PUSHSHIFT_BASE_URL

    page_size: int = Field(150, ge=1, le=250)
    max_days_listed: int = Field(30, ge=1)
    max_tokens: int = Field(60, ge=1)
    sentiment_quota: int = Field(25, ge=0)
    exchange_quota: int = Field(20, ge=0)
    max_exchanges: int = Field(8, ge=1)

    comment_window_hours: int = Field(24, ge=1)
    comment_limit: int = Field(100, ge=1)
    recent_window_hours: float = Field(6.0, gt=0)

    http_timeout: float = Field(10.0, gt=0)
    coingecko_rps: float = Field(0.0, ge=0)
    cmc_rps: float = Field(0.0, ge=0)
    pushshift_rps: float = Field(0.0, ge=0)

    exchange_merge_policy: Optional[MergePolicy] = None

    host: str = "127.0.0.1"
    port: int = Field(5000, ge=1, le=65535)

    @field_validator("cmc_api_key", "pushshift_token", mode="before")
    @classmethod
    def _blank_secret_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("coingecko_base_url", "cmc_base_url", "pushshift_base_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("base URLs must start with http:// or https://")
        return value.rstrip("/")

    @property
    def merge_policy(self) -> MergePolicy:
        if self.exchange_merge_policy is not None:
            return self.exchange_merge_policy
        if self.variant == "coinmarketcap":
            return MergePolicy.PREFER_PRIMARY
        return MergePolicy.AUTH_AWARE

    def configured(self) -> Dict[str, bool]:
        """Which optional credentials are present, without exposing them."""
        return {
            "cmcApiKey": self.cmc_api_key is not None,
            "pushshiftToken": self.pushshift_token is not None,
        }


def _read_toml(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as fh:
        data = tomllib.load(fh)
    section = data.get("coinscout")
    if isinstance(section, Mapping):
        return dict(section)
    return dict(data)


def _from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field, names in ENV_VARS.items():
        for name in names:
            raw = env.get(name)
            if raw is not None and raw.strip():
                values[field] = raw.strip()
                break
    return values


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Build :class:`Settings` from a TOML file, the environment and overrides.

    Precedence, lowest first: defaults, TOML file (``path`` or
    ``COINSCOUT_CONFIG``), environment variables, non-``None`` keyword
    overrides. Raises ``ValueError`` when validation fails or the file
    cannot be read.
    """

    env = os.environ if env is None else env
    data: Dict[str, Any] = {}

    config_path = path or env.get(CONFIG_PATH_ENV) or None
    if config_path:
        try:
            data.update(_read_toml(Path(config_path)))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ValueError(f"cannot load config {config_path}: {exc}") from exc
        logger.debug("Loaded settings file %s", config_path)

    data.update(_from_env(env))
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


__all__ = ["CONFIG_PATH_ENV", "ENV_VARS", "Settings", "Variant", "load_settings"]
