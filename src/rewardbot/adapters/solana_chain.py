from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Awaitable, Callable
from decimal import ROUND_DOWN, Decimal
from typing import TypeVar

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    get_associated_token_address,
    transfer_checked,
)

from rewardbot.adapters.treasury import SettlementRouter, TreasuryAdapter
from rewardbot.domain.errors import ConfigurationError, TransientIOFailure
from rewardbot.domain.models import TransferConfirmation

logger = logging.getLogger(__name__)

T = TypeVar("T")

LAMPORTS_PER_SOL = 1_000_000_000
NATIVE_DECIMALS = 9
_CONFIRM_POLL_SECONDS = 0.5
_CONFIRMED_LEVELS = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


def load_keypair(raw: str) -> Keypair:
    """Decode a secret key given as a JSON byte array, base58 or base64 string."""
    candidate = (raw or "").strip()
    if not candidate:
        raise ConfigurationError("DEV_WALLET_PRIVATE_KEY is required")

    if candidate.startswith("["):
        try:
            key_bytes = bytes(json.loads(candidate))
        except (ValueError, TypeError) as exc:
            raise ConfigurationError("DEV_WALLET_PRIVATE_KEY JSON array is malformed") from exc
        return _keypair_from_bytes(key_bytes)

    try:
        return Keypair.from_base58_string(candidate)
    except Exception:  # noqa: BLE001
        pass

    try:
        key_bytes = base64.b64decode(candidate, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(
            "DEV_WALLET_PRIVATE_KEY must be a JSON byte array, base58 or base64"
        ) from exc
    return _keypair_from_bytes(key_bytes)


def _keypair_from_bytes(key_bytes: bytes) -> Keypair:
    if len(key_bytes) != 64:
        raise ConfigurationError(
            f"DEV_WALLET_PRIVATE_KEY decoded to {len(key_bytes)} bytes, expected 64"
        )
    try:
        return Keypair.from_bytes(key_bytes)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError("DEV_WALLET_PRIVATE_KEY is not a valid ed25519 keypair") from exc


def parse_pubkey(value: str, *, setting: str) -> Pubkey:
    try:
        return Pubkey.from_string(value.strip())
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(f"{setting} is not a valid public key") from exc


def to_base_units(amount: Decimal, decimals: int) -> int:
    return int(amount.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


async def rpc_call(label: str, call: Callable[[], Awaitable[T]]) -> T:
    try:
        return await call()
    except (SolanaRpcException, httpx.HTTPError) as exc:
        raise TransientIOFailure(f"{label} transport failure: {exc}", source="rpc") from exc
    except RPCException as exc:
        raise TransientIOFailure(f"{label} rejected by RPC: {exc}", source="rpc") from exc


class SolanaSigner:
    """Submits signed transactions for the controlled account and waits for confirmation."""

    def __init__(
        self,
        client: AsyncClient,
        keypair: Keypair,
        *,
        confirm_timeout_seconds: float = 60.0,
    ) -> None:
        self.client = client
        self.keypair = keypair
        self.confirm_timeout_seconds = confirm_timeout_seconds

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def send_and_confirm(self, raw_tx: bytes) -> Signature:
        resp = await rpc_call(
            "send_transaction",
            lambda: self.client.send_raw_transaction(
                raw_tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
            ),
        )
        signature = resp.value
        try:
            await asyncio.wait_for(self._await_confirmation(signature), self.confirm_timeout_seconds)
        except TimeoutError as exc:
            raise TransientIOFailure(
                f"transaction {signature} not confirmed within {self.confirm_timeout_seconds}s",
                source="rpc",
            ) from exc
        return signature

    async def _await_confirmation(self, signature: Signature) -> None:
        while True:
            statuses = await rpc_call(
                "get_signature_statuses",
                lambda: self.client.get_signature_statuses([signature]),
            )
            status = statuses.value[0] if statuses.value else None
            if status is not None:
                if status.err is not None:
                    raise TransientIOFailure(
                        f"transaction {signature} failed on chain: {status.err}", source="rpc"
                    )
                if status.confirmation_status in _CONFIRMED_LEVELS:
                    return
            await asyncio.sleep(_CONFIRM_POLL_SECONDS)


class SolanaTreasury(TreasuryAdapter):
    def __init__(
        self,
        client: AsyncClient,
        *,
        settlement_mint: Pubkey,
    ) -> None:
        self.client = client
        self.settlement_mint = settlement_mint

    async def close(self) -> None:
        await self.client.close()

    async def get_current_position(self) -> int:
        resp = await rpc_call("get_slot", lambda: self.client.get_slot(commitment=Confirmed))
        return int(resp.value)

    async def get_native_balance(self, account: str) -> Decimal:
        owner = parse_pubkey(account, setting="DEV_WALLET_PUBLIC_KEY")
        resp = await rpc_call(
            "get_balance", lambda: self.client.get_balance(owner, commitment=Confirmed)
        )
        return Decimal(int(resp.value)).scaleb(-NATIVE_DECIMALS)

    async def get_settlement_balance(self, account: str) -> Decimal:
        owner = parse_pubkey(account, setting="DEV_WALLET_PUBLIC_KEY")
        token_account = get_associated_token_address(owner, self.settlement_mint)
        try:
            resp = await self.client.get_token_account_balance(
                token_account, commitment=Confirmed
            )
        except RPCException:
            # no associated token account yet
            return Decimal("0")
        except (SolanaRpcException, httpx.HTTPError) as exc:
            raise TransientIOFailure(
                f"get_token_account_balance transport failure: {exc}", source="rpc"
            ) from exc
        return Decimal(resp.value.amount).scaleb(-int(resp.value.decimals))


class SolanaSettlementRouter(SettlementRouter):
    """Moves settlement tokens between associated token accounts with ``transfer_checked``."""

    def __init__(
        self,
        signer: SolanaSigner,
        *,
        settlement_mint: Pubkey,
        settlement_decimals: int,
    ) -> None:
        self.signer = signer
        self.settlement_mint = settlement_mint
        self.settlement_decimals = settlement_decimals

    async def transfer(self, destination_address: str, amount: Decimal) -> TransferConfirmation:
        raw_amount = to_base_units(amount, self.settlement_decimals)
        if raw_amount <= 0:
            raise ValueError(f"transfer amount must be positive, got {amount}")

        destination = parse_pubkey(destination_address, setting="EXCHANGE_DEPOSIT_ADDRESS")
        owner = self.signer.pubkey
        ix = transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=get_associated_token_address(owner, self.settlement_mint),
                mint=self.settlement_mint,
                dest=get_associated_token_address(destination, self.settlement_mint),
                owner=owner,
                amount=raw_amount,
                decimals=self.settlement_decimals,
            )
        )
        latest = await rpc_call(
            "get_latest_blockhash",
            lambda: self.signer.client.get_latest_blockhash(commitment=Confirmed),
        )
        blockhash = latest.value.blockhash
        message = Message.new_with_blockhash([ix], owner, blockhash)
        tx = Transaction([self.signer.keypair], message, blockhash)

        signature = await self.signer.send_and_confirm(bytes(tx))
        sent_amount = Decimal(raw_amount).scaleb(-self.settlement_decimals)
        logger.info(
            "settlement_transfer_confirmed",
            extra={
                "extra": {
                    "destination": destination_address,
                    "amount": str(sent_amount),
                    "tx_sig": str(signature),
                }
            },
        )
        return TransferConfirmation(
            destination=destination_address,
            amount=sent_amount,
            signature=str(signature),
        )
