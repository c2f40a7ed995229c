from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from rewardbot.domain.models import ConversionQuote, TransferConfirmation


class TreasuryAdapter(ABC):
    """Read-only view of the controlled account."""

    @abstractmethod
    async def get_current_position(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_native_balance(self, account: str) -> Decimal:
        raise NotImplementedError

    @abstractmethod
    async def get_settlement_balance(self, account: str) -> Decimal:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class ConversionVenue(ABC):
    """Native -> settlement currency swaps."""

    @abstractmethod
    async def quote(self, from_amount: Decimal) -> ConversionQuote | None:
        """Return ``None`` when the venue has no viable route for the amount."""
        raise NotImplementedError

    @abstractmethod
    async def execute_swap(self, quote: ConversionQuote) -> Decimal:
        """Execute ``quote`` and return the settlement amount received."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class SettlementRouter(ABC):
    @abstractmethod
    async def transfer(self, destination_address: str, amount: Decimal) -> TransferConfirmation:
        raise NotImplementedError

    async def close(self) -> None:
        return None
