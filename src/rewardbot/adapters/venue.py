from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from rewardbot.domain.models import OrderIntent, OrderResult


class TradingVenueAdapter(ABC):
    """Where prices come from and where orders go.

    ``fetch_recent_closes`` never raises on transport problems; it returns an
    empty (or short) list, which the signal engine treats as insufficient data.
    ``place_order`` raises ``OrderRejected`` for any non-success outcome.
    """

    name: str = "venue"

    @abstractmethod
    async def fetch_recent_closes(self, symbol: str, limit: int) -> list[Decimal]:
        raise NotImplementedError

    @abstractmethod
    async def place_order(self, intent: OrderIntent) -> OrderResult:
        raise NotImplementedError

    async def close(self) -> None:
        """Release resources associated with the venue adapter."""
        return None
