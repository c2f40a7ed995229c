from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from rewardbot.config import MAINNET_USDC_MINT, Settings, VenueKind


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("STATE_FILE", raising=False)

    settings = Settings()

    assert settings.exchange is VenueKind.PAPER
    assert settings.symbol == "BTC-USD"
    assert settings.trade_notional_usdc == Decimal("200")
    assert settings.leverage == Decimal("20")
    assert settings.min_reward_usdc == Decimal("25")
    assert settings.run_interval_seconds == 3600.0
    assert settings.usdc_mint == MAINNET_USDC_MINT
    assert settings.settlement_decimals == 6
    assert settings.swap_slippage_bps == 50
    assert settings.native_fee_reserve == Decimal("0.01")
    assert settings.price_lookback == 300
    assert settings.state_file == "./state.json"
    assert settings.wallet_private_key is None


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("EXCHANGE", " Hyperliquid ")
    monkeypatch.setenv("SYMBOL", " ETH-USD ")
    monkeypatch.setenv("TRADE_NOTIONAL_USDC", "50.5")
    monkeypatch.setenv("RUN_INTERVAL_MIN", "15")
    monkeypatch.setenv("EXCHANGE_API_SECRET", "s3cr3t")

    settings = Settings()

    assert settings.exchange is VenueKind.HYPERLIQUID
    assert settings.symbol == "ETH-USD"
    assert settings.trade_notional_usdc == Decimal("50.5")
    assert settings.run_interval_seconds == 900.0
    assert settings.exchange_api_secret is not None
    assert settings.exchange_api_secret.get_secret_value() == "s3cr3t"
    assert "s3cr3t" not in repr(settings)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("TRADE_NOTIONAL_USDC", "0"),
        ("LEVERAGE", "-1"),
        ("RUN_INTERVAL_MIN", "0"),
        ("MIN_REWARD_USDC", "0"),
        ("NATIVE_FEE_RESERVE", "0"),
        ("PRICE_LOOKBACK", "0"),
        ("SETTLEMENT_DECIMALS", "19"),
        ("SWAP_SLIPPAGE_BPS", "10001"),
        ("HTTP_TIMEOUT_SECONDS", "0"),
        ("SYMBOL", "   "),
        ("EXCHANGE", "binance"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings()


def test_cycle_config_maps_settings(monkeypatch) -> None:
    monkeypatch.setenv("EXCHANGE_DEPOSIT_ADDRESS", "  ")
    monkeypatch.setenv("EXCHANGE_SUBACCOUNT", "alpha")

    config = Settings().cycle_config("Wallet111")

    assert config.account == "Wallet111"
    assert config.subaccount == "alpha"
    assert config.routing_destination is None
    assert config.routing_enabled is False
    assert config.routing_threshold == Decimal("25")
    assert config.price_lookback == 300


def test_routing_enabled_with_destination(monkeypatch) -> None:
    monkeypatch.setenv("EXCHANGE_DEPOSIT_ADDRESS", "Dest111")

    assert Settings().cycle_config("Wallet111").routing_enabled is True


def test_env_file_is_read(tmp_path) -> None:
    env_file = tmp_path / "bot.env"
    env_file.write_text("SYMBOL=SOL-USD\nLEVERAGE=3\n", encoding="utf-8")

    settings = Settings(_env_file=str(env_file))

    assert settings.symbol == "SOL-USD"
    assert settings.leverage == Decimal("3")
