import pytest

from coinscout.config import Settings, load_settings
from coinscout.exchanges import MergePolicy


def test_defaults_without_file_or_env():
    settings = load_settings(env={})
    assert settings.variant == "coingecko"
    assert settings.page_size == 150
    assert settings.max_days_listed == 30
    assert settings.max_tokens == 60
    assert settings.sentiment_quota == 25
    assert settings.exchange_quota == 20
    assert settings.merge_policy is MergePolicy.AUTH_AWARE
    assert settings.configured() == {"cmcApiKey": False, "pushshiftToken": False}


def test_environment_overrides_and_aliases():
    env = {
        "COINSCOUT_VARIANT": "coinmarketcap",
        "CMC_API_KEY": "   ",
        "NEXT_PUBLIC_CMC_API_KEY": "public-key",
        "REDDIT_API_TOKEN": "reddit-token",
        "SCAN_SENTIMENT_QUOTA": "5",
        "HTTP_TIMEOUT": "2.5",
    }
    settings = load_settings(env=env)
    assert settings.variant == "coinmarketcap"
    assert settings.cmc_api_key == "public-key"
    assert settings.pushshift_token == "reddit-token"
    assert settings.sentiment_quota == 5
    assert settings.http_timeout == 2.5
    assert settings.merge_policy is MergePolicy.PREFER_PRIMARY
    assert settings.configured() == {"cmcApiKey": True, "pushshiftToken": True}


def test_explicit_merge_policy_wins_over_variant_default():
    settings = load_settings(env={"EXCHANGE_MERGE_POLICY": "prefer-primary"})
    assert settings.variant == "coingecko"
    assert settings.merge_policy is MergePolicy.PREFER_PRIMARY


def test_toml_file_then_env_then_overrides(tmp_path):
    path = tmp_path / "coinscout.toml"
    path.write_text(
        "[coinscout]\n"
        'variant = "coinmarketcap"\n'
        "max_tokens = 10\n"
        "exchange_quota = 4\n"
        'coingecko_base_url = "https://cg.example/api/v3/"\n'
    )
    settings = load_settings(path, env={"SCAN_EXCHANGE_QUOTA": "7"}, max_tokens=12, port=None)
    assert settings.variant == "coinmarketcap"
    assert settings.exchange_quota == 7
    assert settings.max_tokens == 12
    assert settings.port == 5000
    assert settings.coingecko_base_url == "https://cg.example/api/v3"


def test_config_path_from_environment(tmp_path):
    path = tmp_path / "flat.toml"
    path.write_text("sentiment_quota = 3\n")
    settings = load_settings(env={"COINSCOUT_CONFIG": str(path)})
    assert settings.sentiment_quota == 3


@pytest.mark.parametrize(
    "env",
    [
        {"SCAN_PAGE_SIZE": "0"},
        {"SCAN_SENTIMENT_QUOTA": "-1"},
        {"COINSCOUT_VARIANT": "binance"},
        {"CMC_BASE_URL": "ftp://pro-api.coinmarketcap.com"},
        {"COINSCOUT_PORT": "not-a-port"},
    ],
)
def test_invalid_values_raise_value_error(env):
    with pytest.raises(ValueError):
        load_settings(env=env)


def test_unreadable_config_file_raises(tmp_path):
    with pytest.raises(ValueError):
        load_settings(tmp_path / "missing.toml", env={})
    broken = tmp_path / "broken.toml"
    broken.write_text("variant = ")
    with pytest.raises(ValueError):
        load_settings(broken, env={})


def test_blank_secrets_become_none():
    assert Settings(cmc_api_key="  ", pushshift_token="").configured() == {
        "cmcApiKey": False,
        "pushshiftToken": False,
    }
