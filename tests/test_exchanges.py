from __future__ import annotations

import asyncio

import aiohttp
import pytest

from coinscout.exchanges import (
    ExchangeResolver,
    MergePolicy,
    fetch_market_pairs,
    is_session_failure,
    merge_failures,
    pick_candidate,
    score_candidate,
    search_terms,
)
from coinscout.providers import CoinGeckoClient, CoinMarketCapClient
from coinscout.types import ExchangeAvailability, ExchangeUnavailable, Reason

PAIRS = "/v1/cryptocurrency/market-pairs/latest"
SEARCH = "/search"
TICKERS = "/tickers"


def _cmc(session, key="key"):
    return CoinMarketCapClient(key, "https://cmc.test", session=session)


def _resolver(session, *, key="key", policy=MergePolicy.AUTH_AWARE, max_exchanges=8):
    return ExchangeResolver(
        _cmc(session, key),
        CoinGeckoClient("https://cg.test/api/v3", session=session),
        policy=policy,
        max_exchanges=max_exchanges,
    )


def _pair(name, volume=None, *, unreported=None, category="spot"):
    usd = {}
    if volume is not None:
        usd["volume_24h"] = volume
    if unreported is not None:
        usd["volume_24h_unreported"] = unreported
    return {"exchange": {"name": name}, "category": category, "quote": {"USD": usd}}


def _pairs_payload(*pairs):
    return {"data": {"market_pairs": list(pairs)}}


def test_duplicate_exchange_names_collapse(make_session, respond, token_factory):
    session = make_session(
        {PAIRS: respond(_pairs_payload(_pair("Binance", 100), _pair("BINANCE", 500)))}
    )

    result = asyncio.run(_resolver(session).resolve(token_factory()))

    assert isinstance(result, ExchangeAvailability)
    assert result.source == "coinmarketcap"
    assert [(ex.name, ex.volume_24h) for ex in result.exchanges] == [("Binance", 100.0)]
    assert session.calls_to(SEARCH) == []


def test_unknown_volume_sorts_last(make_session, respond, token_factory):
    session = make_session(
        {PAIRS: respond(_pairs_payload(_pair("A", 5), _pair("B"), _pair("C", 20)))}
    )

    result = asyncio.run(_resolver(session).resolve(token_factory()))

    assert [ex.volume_24h for ex in result.exchanges] == [20.0, 5.0, None]
    assert [ex.name for ex in result.exchanges] == ["C", "A", "B"]
    assert result.to_dict()["exchanges"][2] == {"name": "B", "category": "spot", "volume24h": None}


def test_unreported_volume_and_truncation(make_session, respond):
    pairs = [_pair(f"Ex{i}", i) for i in range(10)] + [_pair("Dark", unreported=1_000)]
    session = make_session({PAIRS: respond(_pairs_payload(*pairs))})

    result = asyncio.run(fetch_market_pairs(_cmc(session), "101"))

    assert len(result.exchanges) == 8
    assert result.exchanges[0].name == "Dark"
    assert result.exchanges[0].volume_24h == 1_000.0

    (call,) = session.calls
    assert call["headers"]["X-CMC_PRO_API_KEY"] == "key"
    assert call["params"]["id"] == "101"


def test_market_pair_failure_kinds(make_session, respond):
    def lookup(response, key="key", token_id="101"):
        return asyncio.run(fetch_market_pairs(_cmc(make_session({PAIRS: response}), key), token_id))

    assert lookup(respond(status=401)).reason is Reason.UNAUTHORIZED
    assert lookup(respond(status=403)).reason is Reason.UNAUTHORIZED
    assert lookup(respond(status=429)).reason is Reason.RATE_LIMITED
    failed = lookup(respond(status=500, text="oops"))
    assert failed.reason is Reason.HTTP_ERROR
    assert failed.message == "CMC market pairs 500: oops"
    assert lookup(aiohttp.ClientError("reset")).reason is Reason.NETWORK_ERROR
    assert lookup(respond(_pairs_payload())).reason is Reason.NO_EXCHANGES
    assert lookup(respond(), key=None).reason is Reason.MISSING_API_KEY
    assert lookup(respond(), token_id="").reason is Reason.MISSING_ID


def test_search_terms_and_candidate_scoring(token_factory):
    token = token_factory(symbol="ABC", slug="alpha-beta", name="Alpha Beta")
    assert search_terms(token) == ["ABC", "alpha beta", "Alpha Beta"]
    assert search_terms(token_factory(symbol="", slug="", name="")) == []

    exact = {"id": "alpha-beta", "symbol": "ABC", "name": "Alpha Beta"}
    wrapped = {"id": "wrapped-thing", "symbol": "WABC", "name": "Wrapped"}
    unrelated = {"id": "zzz", "symbol": "ZZZ", "name": "Zed"}

    assert score_candidate(token, exact) == pytest.approx(8.5)
    assert score_candidate(token, wrapped) == pytest.approx(0.5)
    assert score_candidate(token, unrelated) == 0
    assert score_candidate(token, None) == 0

    assert pick_candidate(token, [wrapped, exact]) is exact
    assert pick_candidate(token, [unrelated, {"id": "yyy"}]) is unrelated
    assert pick_candidate(token, []) is None


def test_fallback_used_for_coingecko_ids(make_session, respond, token_factory):
    coins = {"coins": [{"id": "alpha-beta", "symbol": "ABC", "name": "Alpha Beta"}]}
    tickers = {
        "tickers": [
            {"market": {"name": "Uniswap V3", "identifier": "uniswap_v3_dex"}, "converted_volume": {"usd": 50}},
            {"market": {"name": "Gate.io", "identifier": "gate", "type": "spot"}, "converted_volume": {"usd": 900}},
            {"market": {"name": "gate.io", "identifier": "gate"}, "converted_volume": {"usd": 5_000}},
            {"market": {"name": "Tiny", "identifier": "tiny"}, "volume": 3},
        ]
    }
    session = make_session({SEARCH: respond(coins), TICKERS: respond(tickers)})

    token = token_factory(id="alpha-beta", source="coingecko")
    result = asyncio.run(_resolver(session).resolve(token))

    assert isinstance(result, ExchangeAvailability)
    assert result.source == "coingecko"
    assert [(ex.name, ex.category, ex.volume_24h) for ex in result.exchanges] == [
        ("Gate.io", "SPOT", 900.0),
        ("Uniswap V3", "DEX", 50.0),
        ("Tiny", None, 3.0),
    ]
    assert session.calls_to(PAIRS) == []
    assert session.calls_to(TICKERS)[0]["url"] == "https://cg.test/api/v3/coins/alpha-beta/tickers"


def test_fallback_walks_search_terms(make_session, respond, token_factory):
    coins = {"coins": [{"id": "alpha-beta", "symbol": "ABC", "name": "Alpha Beta"}]}
    tickers = {"tickers": [{"market": {"name": "MEXC", "identifier": "mxc"}, "converted_volume": {"usd": 1}}]}
    session = make_session(
        {
            PAIRS: respond(_pairs_payload()),
            SEARCH: [respond({"coins": []}), respond(status=500), respond(coins)],
            TICKERS: respond(tickers),
        }
    )

    result = asyncio.run(_resolver(session).resolve(token_factory()))

    assert result.available
    assert [ex.name for ex in result.exchanges] == ["MEXC"]
    assert [call["params"]["query"] for call in session.calls_to(SEARCH)] == [
        "ABC",
        "alpha beta",
        "Alpha Beta",
    ]


def test_fallback_stops_on_search_rate_limit(make_session, respond, token_factory):
    session = make_session({SEARCH: respond(status=429)})

    result = asyncio.run(_resolver(session).resolve(token_factory(source="coingecko")))

    assert result.reason is Reason.FALLBACK_RATE_LIMITED
    assert len(session.calls_to(SEARCH)) == 1
    assert is_session_failure(result)


def test_fallback_ticker_failures(make_session, respond, token_factory):
    coins = {"coins": [{"id": "alpha-beta", "symbol": "ABC"}]}
    token = token_factory(source="coingecko")

    def resolve(ticker_response):
        session = make_session({SEARCH: respond(coins), TICKERS: ticker_response})
        return asyncio.run(_resolver(session).resolve(token))

    assert resolve(respond(status=429)).reason is Reason.FALLBACK_RATE_LIMITED
    assert resolve(respond(status=502)).reason is Reason.FALLBACK_HTTP_ERROR
    assert resolve(aiohttp.ClientError("x")).reason is Reason.FALLBACK_NETWORK_ERROR
    empty = resolve(respond({"tickers": []}))
    assert empty.reason is Reason.FALLBACK_NO_EXCHANGES
    assert not is_session_failure(empty)


def test_fallback_missing_identifiers(make_session, token_factory):
    session = make_session({})
    token = token_factory(source="coingecko", symbol="", slug="", name="")
    result = asyncio.run(_resolver(session).resolve(token))
    assert result.reason is Reason.FALLBACK_MISSING_IDENTIFIERS
    assert result.exchanges == []
    assert session.calls == []


@pytest.mark.parametrize(
    "policy, expected",
    [
        (MergePolicy.AUTH_AWARE, Reason.FALLBACK_NO_MATCH),
        (MergePolicy.PREFER_PRIMARY, Reason.UNAUTHORIZED),
    ],
)
def test_merge_policy_on_auth_failure(make_session, respond, token_factory, policy, expected):
    session = make_session({PAIRS: respond(status=401), SEARCH: respond({"coins": []})})

    result = asyncio.run(_resolver(session, policy=policy).resolve(token_factory()))

    assert isinstance(result, ExchangeUnavailable)
    assert result.reason is expected
    assert len(session.calls_to(SEARCH)) == 3


def test_auth_aware_keeps_non_auth_primary_failure(make_session, respond, token_factory):
    session = make_session({PAIRS: respond(status=429), SEARCH: respond({"coins": []})})
    result = asyncio.run(_resolver(session).resolve(token_factory()))
    assert result.reason is Reason.RATE_LIMITED
    assert result.source == "coinmarketcap"


def test_missing_key_falls_back(make_session, respond, token_factory):
    coins = {"coins": [{"id": "alpha-beta", "symbol": "ABC"}]}
    tickers = {"tickers": [{"market": {"name": "OKX", "identifier": "okex"}, "converted_volume": {"usd": 10}}]}
    session = make_session({SEARCH: respond(coins), TICKERS: respond(tickers)})

    result = asyncio.run(_resolver(session, key=None).resolve(token_factory()))

    assert result.source == "coingecko"
    assert session.calls_to(PAIRS) == []


def test_merge_without_primary_returns_secondary():
    secondary = ExchangeUnavailable(Reason.FALLBACK_NO_MATCH, "none", "coingecko")
    primary = ExchangeUnavailable(Reason.MISSING_API_KEY, "no key", "coinmarketcap")
    assert merge_failures(None, secondary, MergePolicy.PREFER_PRIMARY) is secondary
    assert merge_failures(primary, secondary, MergePolicy.AUTH_AWARE) is secondary
    assert merge_failures(primary, secondary, MergePolicy.PREFER_PRIMARY) is primary


def test_exchange_session_failures():
    assert is_session_failure(ExchangeUnavailable(Reason.UNAUTHORIZED, "x"))
    assert is_session_failure(ExchangeUnavailable(Reason.FALLBACK_HTTP_ERROR, "x"))
    assert not is_session_failure(ExchangeUnavailable(Reason.NO_EXCHANGES, "x"))
    assert not is_session_failure(ExchangeUnavailable(Reason.FALLBACK_NO_MATCH, "x"))
    assert not is_session_failure(ExchangeAvailability("coingecko", []))


@pytest.mark.parametrize(
    "payload",
    [
        {"coins": 5},
        {"coins": [5, "x", None]},
        {"coins": {"id": "alpha-beta"}},
        "oops",
        None,
    ],
)
def test_malformed_search_payload_is_no_match(make_session, respond, token_factory, payload):
    session = make_session({SEARCH: respond(payload)})

    result = asyncio.run(_resolver(session).resolve(token_factory(source="coingecko")))

    assert isinstance(result, ExchangeUnavailable)
    assert result.reason is Reason.FALLBACK_NO_MATCH
    assert len(session.calls_to(SEARCH)) == 3
    assert session.calls_to(TICKERS) == []


def test_search_candidate_without_id_is_no_match(make_session, respond, token_factory):
    session = make_session({SEARCH: respond({"coins": [{"symbol": "ABC", "id": None}]})})
    result = asyncio.run(_resolver(session).resolve(token_factory(source="coingecko")))
    assert result.reason is Reason.FALLBACK_NO_MATCH
    assert session.calls_to(TICKERS) == []


@pytest.mark.parametrize(
    "payload",
    [
        {"tickers": "x"},
        {"tickers": {"market": {"name": "Binance"}}},
        [{"market": "Binance"}],
        {"tickers": [{"market": "Binance"}, 3, {"market": {"name": ""}}]},
    ],
)
def test_malformed_ticker_payload_has_no_exchanges(make_session, respond, token_factory, payload):
    coins = {"coins": [{"id": "alpha-beta", "symbol": "ABC"}]}
    session = make_session({SEARCH: respond(coins), TICKERS: respond(payload)})

    result = asyncio.run(_resolver(session).resolve(token_factory(source="coingecko")))

    assert result.reason is Reason.FALLBACK_NO_EXCHANGES


def test_ticker_with_unreadable_volume_is_listed(make_session, respond, token_factory):
    coins = {"coins": [{"id": "alpha-beta", "symbol": "ABC"}]}
    tickers = {
        "tickers": [
            {"market": {"name": "Kraken", "identifier": "kraken"}, "converted_volume": "lots", "volume": "n/a"},
            {"market": {"name": "Bybit", "identifier": "bybit"}, "converted_volume": {"usd": "NaN"}},
            {"market": {"name": "OKX", "identifier": "okex"}, "converted_volume": {"usd": "12.5"}},
        ]
    }
    session = make_session({SEARCH: respond(coins), TICKERS: respond(tickers)})

    result = asyncio.run(_resolver(session).resolve(token_factory(source="coingecko")))

    assert [(ex.name, ex.volume_24h) for ex in result.exchanges] == [
        ("OKX", 12.5),
        ("Kraken", None),
        ("Bybit", None),
    ]


@pytest.mark.parametrize(
    "payload",
    [
        "garbage",
        {"data": []},
        {"data": {"market_pairs": {"a": 1}}},
        [{"exchange": "Binance"}],
        _pairs_payload({"exchange": "Binance"}, 4, {"exchange": {"name": None}}),
    ],
)
def test_malformed_market_pairs_have_no_exchanges(make_session, respond, payload):
    session = make_session({PAIRS: respond(payload)})
    result = asyncio.run(fetch_market_pairs(_cmc(session), "101"))
    assert result.reason is Reason.NO_EXCHANGES
    assert not is_session_failure(result)


def test_market_pair_with_unreadable_quote_is_listed(make_session, respond):
    pairs = [
        {"exchange": {"name": "Kraken"}, "category": "spot", "quote": "usd"},
        {"exchange": {"name": "Bitget"}, "category": "spot", "quote": {"USD": {"volume_24h": "1e400"}}},
        _pair("MEXC", 7),
    ]
    session = make_session({PAIRS: respond(_pairs_payload(*pairs))})

    result = asyncio.run(fetch_market_pairs(_cmc(session), "101"))

    assert [(ex.name, ex.volume_24h) for ex in result.exchanges] == [
        ("MEXC", 7.0),
        ("Kraken", None),
        ("Bitget", None),
    ]
