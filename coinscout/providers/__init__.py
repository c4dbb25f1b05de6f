"""Upstream HTTP clients used by the market, sentiment and exchange layers."""

from .coingecko import CoinGeckoClient
from .coinmarketcap import CoinMarketCapClient
from .pushshift import PushshiftClient

__all__ = ["CoinGeckoClient", "CoinMarketCapClient", "PushshiftClient"]
