from __future__ import annotations


class RewardbotError(RuntimeError):
    """Base class for errors raised by rewardbot components."""


class ConfigurationError(RewardbotError, ValueError):
    """Raised when required runtime configuration is missing or invalid."""


class TransientIOFailure(RewardbotError):
    """Raised when a network collaborator fails or answers with an unusable shape."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class OrderRejected(RewardbotError):
    """Raised when the trading venue declines an order."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(f"Order rejected status={status}: {message}")
        self.status = status
        self.venue_message = message


class StateCorruption(RewardbotError):
    """Raised internally when the persisted cycle state cannot be parsed."""


class CycleAborted(RewardbotError):
    """Raised when a cycle stops before committing its state.

    ``stage`` names the step that failed and ``report`` carries whatever the
    cycle had observed up to that point. The original error is ``__cause__``.
    """

    def __init__(self, stage: str, report: object) -> None:
        super().__init__(f"cycle aborted at stage={stage}")
        self.stage = stage
        self.report = report
