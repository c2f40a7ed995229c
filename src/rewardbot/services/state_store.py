from __future__ import annotations

import json
import logging
import os
from decimal import Decimal
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from rewardbot.domain.errors import StateCorruption
from rewardbot.domain.models import CycleState

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = "./state.json"


class _PersistedCycleState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    last_processed_position: int = Field(
        ge=0,
        validation_alias=AliasChoices("lastProcessedPosition", "lastProcessedSlot"),
    )
    carried_settlement_balance: Decimal = Field(
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("carriedSettlementBalance", "carriedUSDC"),
    )


def _render_document(state: CycleState) -> str:
    carry = state.carried_settlement_balance
    if not carry.is_finite():
        raise ValueError(f"carried balance must be finite, got {carry}")
    # carry is written as a bare JSON number with its exact decimal digits
    return (
        "{\n"
        f'  "lastProcessedPosition": {int(state.last_processed_position)},\n'
        f'  "carriedSettlementBalance": {format(carry, "f")}\n'
        "}\n"
    )


class CycleStateStore:
    """Single JSON record holding the cycle position marker and carried balance.

    ``load`` never raises: a missing or unreadable record resets to the zero
    state. ``save`` writes a temp file beside the target and renames it over.
    """

    def __init__(self, path: str | Path = DEFAULT_STATE_PATH) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> CycleState:
        try:
            return self._read()
        except FileNotFoundError:
            return CycleState()
        except StateCorruption as exc:
            logger.warning(
                "state_reset_to_default",
                extra={
                    "extra": {
                        "state_path": str(self.path),
                        "reason": str(exc),
                    }
                },
            )
            return CycleState()

    def save(self, state: CycleState) -> None:
        document = _render_document(state)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                handle.write(document)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def _read(self) -> CycleState:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise StateCorruption(f"unreadable state file: {type(exc).__name__}") from exc

        try:
            document = json.loads(raw, parse_float=Decimal)
        except (ValueError, RecursionError) as exc:
            raise StateCorruption("state file is not valid JSON") from exc
        if not isinstance(document, dict):
            raise StateCorruption("state file must hold a JSON object")

        try:
            persisted = _PersistedCycleState.model_validate(document)
        except ValidationError as exc:
            raise StateCorruption(f"invalid state record: {exc.error_count()} error(s)") from exc

        return CycleState(
            last_processed_position=persisted.last_processed_position,
            carried_settlement_balance=persisted.carried_settlement_balance,
        )
