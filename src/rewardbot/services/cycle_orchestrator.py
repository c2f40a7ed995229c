from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from uuid import uuid4

from rewardbot.adapters.treasury import ConversionVenue, SettlementRouter, TreasuryAdapter
from rewardbot.adapters.venue import TradingVenueAdapter
from rewardbot.config import CycleConfig
from rewardbot.domain.errors import CycleAborted
from rewardbot.domain.models import (
    ZERO,
    CycleState,
    OrderIntent,
    OrderResult,
    RewardSnapshot,
    Signal,
    TransferConfirmation,
)
from rewardbot.logging_context import with_cycle_context
from rewardbot.services.signal_engine import PriceSignalEngine
from rewardbot.services.state_store import CycleStateStore

logger = logging.getLogger(__name__)


class CycleStage(StrEnum):
    LOAD_STATE = "load_state"
    TREASURY = "treasury"
    CONVERSION = "conversion"
    ROUTING = "routing"
    PRICES = "prices"
    SIGNAL = "signal"
    ORDER = "order"
    SAVE_STATE = "save_state"
    DONE = "done"


@dataclass
class CycleReport:
    cycle_id: str
    stage: CycleStage = CycleStage.LOAD_STATE
    position: int | None = None
    native_balance: Decimal | None = None
    settlement_balance: Decimal | None = None
    prior_carry: Decimal | None = None
    converted: Decimal = ZERO
    total: Decimal | None = None
    routed: Decimal = ZERO
    carried: Decimal | None = None
    closes_count: int = 0
    signal: Signal | None = None
    order: OrderResult | None = None
    transfer: TransferConfirmation | None = None

    @property
    def completed(self) -> bool:
        return self.stage is CycleStage.DONE

    def summary(self) -> dict[str, object]:
        def _amount(value: Decimal | None) -> str | None:
            return None if value is None else str(value)

        return {
            "stage": self.stage.value,
            "position": self.position,
            "native_balance": _amount(self.native_balance),
            "settlement_balance": _amount(self.settlement_balance),
            "prior_carry": _amount(self.prior_carry),
            "converted": _amount(self.converted),
            "total": _amount(self.total),
            "routed": _amount(self.routed),
            "carried": _amount(self.carried),
            "closes_count": self.closes_count,
            "signal": self.signal.value if self.signal is not None else None,
            "order_side": self.order.side.value if self.order and self.order.side else None,
            "order_id": self.order.order_id if self.order else None,
        }


class CycleOrchestrator:
    """Runs one harvest -> convert -> route -> signal -> order cycle.

    The state write at the end is the only commit point: any exception after
    the state is loaded aborts the cycle with ``CycleAborted`` and leaves the
    persisted record untouched, so the next tick starts from the last good state.
    """

    def __init__(
        self,
        *,
        config: CycleConfig,
        treasury: TreasuryAdapter,
        conversion: ConversionVenue,
        router: SettlementRouter,
        venue: TradingVenueAdapter,
        state_store: CycleStateStore,
        signal_engine: PriceSignalEngine | None = None,
    ) -> None:
        self.config = config
        self.treasury = treasury
        self.conversion = conversion
        self.router = router
        self.venue = venue
        self.state_store = state_store
        self.signal_engine = signal_engine or PriceSignalEngine()

    async def run_cycle(self) -> CycleReport:
        report = CycleReport(cycle_id=uuid4().hex)
        with with_cycle_context(
            report.cycle_id, symbol=self.config.symbol, venue=self.venue.name
        ):
            try:
                await self._run_stages(report)
            except Exception as exc:
                raise CycleAborted(report.stage.value, report) from exc

            logger.info("cycle_completed", extra={"extra": report.summary()})
        return report

    async def _run_stages(self, report: CycleReport) -> None:
        cfg = self.config

        report.stage = CycleStage.LOAD_STATE
        state = await asyncio.to_thread(self.state_store.load)
        report.prior_carry = state.carried_settlement_balance

        report.stage = CycleStage.TREASURY
        snapshot = await self._snapshot()
        report.position = snapshot.current_position
        report.native_balance = snapshot.native_balance
        report.settlement_balance = snapshot.settlement_balance

        report.stage = CycleStage.CONVERSION
        report.converted = await self._convert_excess_native(snapshot.native_balance)

        report.stage = CycleStage.ROUTING
        total = snapshot.settlement_balance + report.converted + state.carried_settlement_balance
        report.total = total
        if cfg.routing_enabled and total >= cfg.routing_threshold:
            report.transfer = await self.router.transfer(cfg.routing_destination, total)
            # the router floors to the mint decimals
            report.routed = report.transfer.amount
            state.carried_settlement_balance = ZERO
        else:
            # total already folds in the previous carry, so it replaces it
            state.carried_settlement_balance = total
        report.carried = state.carried_settlement_balance

        report.stage = CycleStage.PRICES
        closes = await self.venue.fetch_recent_closes(cfg.symbol, cfg.price_lookback)
        report.closes_count = len(closes)

        report.stage = CycleStage.SIGNAL
        report.signal = self.signal_engine.evaluate(closes)

        report.stage = CycleStage.ORDER
        intent = OrderIntent.for_signal(
            report.signal,
            symbol=cfg.symbol,
            leverage_multiplier=cfg.leverage,
            notional_settlement_amount=cfg.notional,
            subaccount=cfg.subaccount,
        )
        if intent is not None:
            report.order = await self.venue.place_order(intent)

        report.stage = CycleStage.SAVE_STATE
        state.last_processed_position = max(
            state.last_processed_position, snapshot.current_position
        )
        await asyncio.to_thread(self.state_store.save, state)
        report.stage = CycleStage.DONE

    async def _snapshot(self) -> RewardSnapshot:
        account = self.config.account
        position = await self.treasury.get_current_position()
        native = await self.treasury.get_native_balance(account)
        settlement = await self.treasury.get_settlement_balance(account)
        return RewardSnapshot(
            current_position=position,
            native_balance=native,
            settlement_balance=settlement,
        )

    async def _convert_excess_native(self, native_balance: Decimal) -> Decimal:
        reserve = self.config.native_fee_reserve
        if native_balance <= reserve:
            return ZERO
        quote = await self.conversion.quote(native_balance - reserve)
        if quote is None:
            logger.info(
                "conversion_skipped_no_quote",
                extra={"extra": {"native_excess": str(native_balance - reserve)}},
            )
            return ZERO
        return await self.conversion.execute_swap(quote)
