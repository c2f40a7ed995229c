from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ZERO = Decimal("0")


def parse_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Cannot parse decimal from bool")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        normalized = value.strip().replace(",", ".")
        return Decimal(normalized)
    raise TypeError(f"Cannot parse decimal from {type(value)!r}")


class Signal(StrEnum):
    LONG = "LONG"
    SHORT = "SHORT"
    FLAT = "FLAT"


class OrderSide(StrEnum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class CycleState:
    last_processed_position: int = 0
    carried_settlement_balance: Decimal = ZERO


@dataclass(frozen=True)
class RewardSnapshot:
    current_position: int
    native_balance: Decimal
    settlement_balance: Decimal


@dataclass(frozen=True)
class OrderIntent:
    symbol: str
    side: OrderSide
    leverage_multiplier: Decimal
    notional_settlement_amount: Decimal
    subaccount: str

    @classmethod
    def for_signal(
        cls,
        signal: Signal,
        *,
        symbol: str,
        leverage_multiplier: Decimal,
        notional_settlement_amount: Decimal,
        subaccount: str,
    ) -> OrderIntent | None:
        if signal is Signal.LONG:
            side = OrderSide.BUY
        elif signal is Signal.SHORT:
            side = OrderSide.SELL
        else:
            return None
        return cls(
            symbol=symbol,
            side=side,
            leverage_multiplier=leverage_multiplier,
            notional_settlement_amount=notional_settlement_amount,
            subaccount=subaccount,
        )


@dataclass(frozen=True)
class ConversionQuote:
    """Native -> settlement quote as returned by the conversion venue."""

    in_amount_native: Decimal
    out_amount_settlement: Decimal
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class TransferConfirmation:
    destination: str
    amount: Decimal
    signature: str
    confirmed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class OrderResult(BaseModel):
    """Venue acknowledgement of a placed order."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: str = "ok"
    order_id: str | None = Field(
        default=None, validation_alias=AliasChoices("orderId", "order_id", "id")
    )
    symbol: str | None = None
    side: OrderSide | None = None
    notional: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("notional", "notionalUSDC")
    )
    leverage: Decimal | None = None
    fill_price: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("fillPrice", "fill_price", "avgPrice")
    )
    simulated: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        if value is None:
            return "ok"
        return value if isinstance(value, str) else str(value)

    @field_validator("order_id", mode="before")
    @classmethod
    def _coerce_order_id(cls, value: object) -> object:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("side", mode="before")
    @classmethod
    def _coerce_side(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return lowered if lowered in {side.value for side in OrderSide} else None
        return value
