from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAINNET_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class VenueKind(StrEnum):
    PAPER = "paper"
    HYPERLIQUID = "hyperliquid"


@dataclass(frozen=True)
class CycleConfig:
    """Immutable per-process knobs consumed by the cycle orchestrator."""

    account: str
    symbol: str
    notional: Decimal
    leverage: Decimal
    subaccount: str
    routing_threshold: Decimal
    routing_destination: str | None
    native_fee_reserve: Decimal
    price_lookback: int = 300

    @property
    def routing_enabled(self) -> bool:
        return bool(self.routing_destination)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: str = Field(default="", alias="RPC_URL")
    wallet_private_key: SecretStr | None = Field(default=None, alias="DEV_WALLET_PRIVATE_KEY")
    wallet_public_key: str | None = Field(default=None, alias="DEV_WALLET_PUBLIC_KEY")
    usdc_mint: str = Field(default=MAINNET_USDC_MINT, alias="USDC_MINT")
    settlement_decimals: int = Field(default=6, alias="SETTLEMENT_DECIMALS")
    jupiter_base_url: str = Field(default="https://quote-api.jup.ag", alias="JUPITER_BASE_URL")
    swap_slippage_bps: int = Field(default=50, alias="SWAP_SLIPPAGE_BPS")
    native_fee_reserve: Decimal = Field(default=Decimal("0.01"), alias="NATIVE_FEE_RESERVE")
    confirm_timeout_seconds: float = Field(default=60.0, alias="CONFIRM_TIMEOUT_SECONDS")

    exchange: VenueKind = Field(default=VenueKind.PAPER, alias="EXCHANGE")
    exchange_api_base: str = Field(default="", alias="EXCHANGE_API_BASE")
    exchange_api_key: SecretStr | None = Field(default=None, alias="EXCHANGE_API_KEY")
    exchange_api_secret: SecretStr | None = Field(default=None, alias="EXCHANGE_API_SECRET")
    exchange_subaccount: str = Field(default="default", alias="EXCHANGE_SUBACCOUNT")
    exchange_deposit_address: str = Field(default="", alias="EXCHANGE_DEPOSIT_ADDRESS")

    symbol: str = Field(default="BTC-USD", alias="SYMBOL")
    trade_notional_usdc: Decimal = Field(default=Decimal("200"), alias="TRADE_NOTIONAL_USDC")
    leverage: Decimal = Field(default=Decimal("20"), alias="LEVERAGE")
    run_interval_min: float = Field(default=60.0, alias="RUN_INTERVAL_MIN")
    min_reward_usdc: Decimal = Field(default=Decimal("25"), alias="MIN_REWARD_USDC")
    price_lookback: int = Field(default=300, alias="PRICE_LOOKBACK")
    candle_interval: str = Field(default="60m", alias="CANDLE_INTERVAL")
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")

    state_file: str = Field(default="./state.json", alias="STATE_FILE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("exchange", mode="before")
    def normalize_exchange(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("symbol")
    def validate_symbol(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("SYMBOL must not be empty")
        return cleaned

    @field_validator("trade_notional_usdc")
    def validate_trade_notional(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("TRADE_NOTIONAL_USDC must be > 0")
        return value

    @field_validator("leverage")
    def validate_leverage(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("LEVERAGE must be > 0")
        return value

    @field_validator("run_interval_min")
    def validate_run_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("RUN_INTERVAL_MIN must be > 0")
        return value

    @field_validator("min_reward_usdc")
    def validate_min_reward(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("MIN_REWARD_USDC must be > 0")
        return value

    @field_validator("native_fee_reserve")
    def validate_fee_reserve(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("NATIVE_FEE_RESERVE must be > 0")
        return value

    @field_validator("price_lookback")
    def validate_price_lookback(cls, value: int) -> int:
        if value < 1:
            raise ValueError("PRICE_LOOKBACK must be >= 1")
        return value

    @field_validator("settlement_decimals")
    def validate_settlement_decimals(cls, value: int) -> int:
        if not 0 <= value <= 18:
            raise ValueError("SETTLEMENT_DECIMALS must be between 0 and 18")
        return value

    @field_validator("swap_slippage_bps")
    def validate_slippage(cls, value: int) -> int:
        if not 0 <= value <= 10_000:
            raise ValueError("SWAP_SLIPPAGE_BPS must be between 0 and 10000")
        return value

    @field_validator("http_timeout_seconds", "confirm_timeout_seconds")
    def validate_timeouts(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be > 0")
        return value

    @property
    def run_interval_seconds(self) -> float:
        return self.run_interval_min * 60.0

    def cycle_config(self, account: str) -> CycleConfig:
        return CycleConfig(
            account=account,
            symbol=self.symbol,
            notional=self.trade_notional_usdc,
            leverage=self.leverage,
            subaccount=self.exchange_subaccount,
            routing_threshold=self.min_reward_usdc,
            routing_destination=self.exchange_deposit_address.strip() or None,
            native_fee_reserve=self.native_fee_reserve,
            price_lookback=self.price_lookback,
        )
