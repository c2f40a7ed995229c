from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from rewardbot.domain.errors import CycleAborted

logger = logging.getLogger(__name__)


@dataclass
class SchedulerStats:
    ticks: int = 0
    started: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0


def log_cycle_failure(exc: CycleAborted) -> None:
    cause = exc.__cause__ or exc
    summary = exc.report.summary() if hasattr(exc.report, "summary") else {}
    logger.error(
        "cycle_failed",
        exc_info=(type(cause), cause, cause.__traceback__),
        extra={
            "extra": {
                **summary,
                "cycle_id": getattr(exc.report, "cycle_id", None),
                "stage": exc.stage,
                "error_type": type(cause).__name__,
                "error_message": str(cause),
            }
        },
    )


class SingleSlotScheduler:
    """Fixed-interval timer that never runs two cycles at once.

    The first tick fires immediately. A tick that finds the previous cycle
    still running is dropped with a warning instead of being queued.
    """

    def __init__(
        self,
        cycle_fn: Callable[[], Awaitable[object]],
        *,
        interval_seconds: float,
        max_ticks: int | None = None,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if max_ticks is not None and max_ticks < 1:
            raise ValueError("max_ticks must be >= 1")
        self.cycle_fn = cycle_fn
        self.interval_seconds = interval_seconds
        self.max_ticks = max_ticks
        self.stats = SchedulerStats()
        self._inflight: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> SchedulerStats:
        logger.info(
            "scheduler_started",
            extra={
                "extra": {
                    "interval_seconds": self.interval_seconds,
                    "max_ticks": self.max_ticks,
                }
            },
        )
        try:
            while not self._stop.is_set():
                self._tick()
                if self.max_ticks is not None and self.stats.ticks >= self.max_ticks:
                    break
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
                except TimeoutError:
                    pass
        finally:
            if self._inflight is not None and not self._inflight.done():
                await self._inflight

        logger.info("scheduler_stopped", extra={"extra": vars(self.stats).copy()})
        return self.stats

    def _tick(self) -> None:
        self.stats.ticks += 1
        if self._inflight is not None and not self._inflight.done():
            self.stats.dropped += 1
            logger.warning(
                "cycle_overrun_dropped",
                extra={"extra": {"tick": self.stats.ticks, "dropped": self.stats.dropped}},
            )
            return
        self._inflight = asyncio.create_task(self._guarded_cycle())

    async def _guarded_cycle(self) -> None:
        self.stats.started += 1
        try:
            await self.cycle_fn()
        except CycleAborted as exc:
            self.stats.failed += 1
            log_cycle_failure(exc)
        except Exception as exc:  # noqa: BLE001
            self.stats.failed += 1
            logger.exception(
                "cycle_failed",
                extra={"extra": {"stage": "unknown", "error_type": type(exc).__name__}},
            )
        else:
            self.stats.succeeded += 1
