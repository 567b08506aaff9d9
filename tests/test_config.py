"""Tests for BotConfig: defaults, env loading, strategy presets, live validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from btc15arb.config import STRATEGIES, BotConfig, ConfigError
from conftest import PF, PM

ENV_VARS = [
    "BTC15ARB_DRY_RUN", "BTC15ARB_STRATEGY", "BTC15ARB_MIN_PROFIT_CENTS",
    "BTC15ARB_MAX_TRADES", "BTC15ARB_PM_BALANCE", "BTC15ARB_PF_BALANCE",
    "BTC15ARB_REFRESH_INTERVAL", "POLYMARKET_PRIVATE_KEY", "POLYMARKET_FUNDER_ADDRESS",
    "PREDICTFUN_API_KEY", "PREDICTFUN_SIGNER", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_safe_defaults(self):
        config = BotConfig()
        assert config.dry_run is True
        assert config.strategy == "spread"
        assert config.min_profit_cents == Decimal("2")
        assert config.max_trades == 10
        assert config.cooldown_secs == 5.0
        assert config.pm_balance == Decimal("53")
        assert config.pf_balance == Decimal("108")

    def test_refresh_interval_floor(self):
        assert BotConfig(refresh_interval=1).refresh_interval == 5.0

    def test_venue_balance(self):
        config = BotConfig()
        assert config.venue_balance(PM) == Decimal("53")
        assert config.venue_balance(PF) == Decimal("108")

    def test_secrets_hidden_from_repr(self):
        assert "secret-key" not in repr(BotConfig(polymarket_private_key="secret-key"))


class TestFromEnv:
    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("BTC15ARB_DRY_RUN", "false")
        monkeypatch.setenv("BTC15ARB_MIN_PROFIT_CENTS", "3.5")
        monkeypatch.setenv("BTC15ARB_MAX_TRADES", "4")
        monkeypatch.setenv("BTC15ARB_PM_BALANCE", "200")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "tok")
        config = BotConfig.from_env()
        assert config.dry_run is False
        assert config.min_profit_cents == Decimal("3.5")
        assert config.max_trades == 4
        assert config.pm_balance == Decimal("200")
        assert config.telegram_bot_token == "tok"

    def test_empty_env_is_dry_run(self):
        assert BotConfig.from_env().dry_run is True


class TestStrategies:
    @pytest.mark.parametrize("name", sorted(STRATEGIES))
    def test_apply_preset(self, name):
        config = BotConfig()
        config.apply_strategy(name)
        assert config.strategy == name
        assert config.min_profit_cents == Decimal(STRATEGIES[name]["min_profit_cents"])
        assert config.opportunity_kinds == STRATEGIES[name]["kinds"]

    def test_arb_preset(self):
        config = BotConfig()
        config.apply_strategy("arb")
        assert config.opportunity_kinds == ("directional_arb",)
        assert config.cooldown_secs == 2.0

    def test_monitor_disables_trading(self):
        config = BotConfig()
        config.apply_strategy("monitor")
        assert not config.trading_enabled
        assert config.max_trades == 0

    def test_unknown_strategy(self):
        with pytest.raises(ConfigError):
            BotConfig().apply_strategy("yolo")


class TestValidateLive:
    def test_dry_run_needs_nothing(self):
        BotConfig().validate_live()

    def test_live_requires_credentials(self):
        with pytest.raises(ConfigError) as exc:
            BotConfig(dry_run=False).validate_live()
        message = str(exc.value)
        assert "POLYMARKET_PRIVATE_KEY" in message
        assert "PREDICTFUN_API_KEY" in message
        assert "PREDICTFUN_SIGNER" in message

    def test_follow_needs_only_polymarket(self):
        config = BotConfig(
            dry_run=False, strategy="follow",
            polymarket_private_key="0xkey", polymarket_funder="0xfunder",
        )
        config.validate_live()

    def test_live_complete(self):
        BotConfig(
            dry_run=False,
            polymarket_private_key="0xkey", polymarket_funder="0xfunder",
            predictfun_api_key="k", predictfun_signer="mod:factory",
        ).validate_live()
