from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from pydantic import ValidationError

from rewardbot.config import Settings
from rewardbot.domain.errors import ConfigurationError
from rewardbot.logging_utils import setup_logging
from rewardbot.services.factory import Runtime, build_runtime, build_trading_venue
from rewardbot.services.process_lock import InstanceLockedError, single_instance_lock
from rewardbot.services.scheduler import SchedulerStats, SingleSlotScheduler
from rewardbot.services.signal_engine import PriceSignalEngine
from rewardbot.services.state_store import CycleStateStore

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rewardbot",
        epilog=(
            "Configuration comes from environment variables (RPC_URL, DEV_WALLET_PRIVATE_KEY, "
            "EXCHANGE, SYMBOL, TRADE_NOTIONAL_USDC, LEVERAGE, RUN_INTERVAL_MIN, "
            "MIN_REWARD_USDC, EXCHANGE_DEPOSIT_ADDRESS, ...)."
        ),
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Optional dotenv file read before the process environment",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the harvest/trade cycle on a timer")
    run_parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    run_parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Stop after this many timer ticks (default: run until interrupted)",
    )

    subparsers.add_parser("state", help="Print the persisted cycle state")
    subparsers.add_parser("signal", help="Fetch closes and print the current signal, no orders")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = _load_settings(args.env_file)
    except ValidationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level)

    if args.command == "run":
        if args.max_cycles is not None and args.max_cycles < 1:
            print("max-cycles must be >= 1", file=sys.stderr)
            return 2
        max_ticks = 1 if args.once else args.max_cycles
        return run_bot(settings, max_ticks=max_ticks)
    if args.command == "state":
        return show_state(settings)
    if args.command == "signal":
        return show_signal(settings)
    return 2


def _load_settings(env_file: str | None) -> Settings:
    if env_file in (None, ""):
        return Settings()
    return Settings(_env_file=env_file)


def run_bot(settings: Settings, *, max_ticks: int | None) -> int:
    try:
        runtime = build_runtime(settings)
    except ConfigurationError as exc:
        logger.error(
            "startup_configuration_error",
            extra={"extra": {"error_type": type(exc).__name__, "safe_message": str(exc)}},
        )
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    stats = SchedulerStats()
    try:
        with single_instance_lock(settings.state_file):
            stats = asyncio.run(
                _run_scheduler(
                    runtime,
                    interval_seconds=settings.run_interval_seconds,
                    max_ticks=max_ticks,
                )
            )
    except InstanceLockedError as exc:
        logger.error("startup_locked", extra={"extra": {"safe_message": str(exc)}})
        print(str(exc), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        logger.info("scheduler_interrupted", extra={"extra": {"reason": "keyboard_interrupt"}})
        print("run: interrupted, shutting down cleanly")
        return 0

    return 0 if stats.failed == 0 else 1


async def _run_scheduler(
    runtime: Runtime, *, interval_seconds: float, max_ticks: int | None
) -> SchedulerStats:
    scheduler = SingleSlotScheduler(
        runtime.orchestrator.run_cycle,
        interval_seconds=interval_seconds,
        max_ticks=max_ticks,
    )
    try:
        return await scheduler.run()
    finally:
        await runtime.aclose()


def show_state(settings: Settings) -> int:
    state = CycleStateStore(settings.state_file).load()
    print(
        json.dumps(
            {
                "lastProcessedPosition": state.last_processed_position,
                "carriedSettlementBalance": str(state.carried_settlement_balance),
            },
            indent=2,
        )
    )
    return 0


def show_signal(settings: Settings) -> int:
    try:
        venue = build_trading_venue(settings)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    async def _fetch() -> list:
        try:
            return await venue.fetch_recent_closes(settings.symbol, settings.price_lookback)
        finally:
            await venue.close()

    closes = asyncio.run(_fetch())
    engine = PriceSignalEngine()
    reading = engine.read_indicators(closes)
    payload: dict[str, object] = {
        "symbol": settings.symbol,
        "venue": venue.name,
        "closes": len(closes),
        "signal": engine.evaluate(closes).value,
    }
    if reading is not None:
        payload.update(
            {
                "ema_fast": round(reading.ema_fast, 4),
                "ema_slow": round(reading.ema_slow, 4),
                "rsi": round(reading.rsi, 2),
            }
        )
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
