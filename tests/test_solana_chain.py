from __future__ import annotations

import asyncio
import base64
import json
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from rewardbot.adapters.solana_chain import (
    SolanaSettlementRouter,
    SolanaSigner,
    SolanaTreasury,
    load_keypair,
    parse_pubkey,
    to_base_units,
)
from rewardbot.config import MAINNET_USDC_MINT
from rewardbot.domain.errors import ConfigurationError, TransientIOFailure

USDC = Pubkey.from_string(MAINNET_USDC_MINT)


class FakeRpc:
    """In-memory stand-in for the handful of AsyncClient calls the adapters use."""

    def __init__(
        self,
        *,
        slot: int = 123,
        lamports: int = 0,
        token_amount: str | None = None,
        token_error: Exception | None = None,
        statuses: list[object] | None = None,
    ) -> None:
        self.slot = slot
        self.lamports = lamports
        self.token_amount = token_amount
        self.token_error = token_error
        self.statuses = list(statuses or [])
        self.sent: list[bytes] = []
        self.closed = False

    async def get_slot(self, commitment=None):
        return SimpleNamespace(value=self.slot)

    async def get_balance(self, pubkey, commitment=None):
        return SimpleNamespace(value=self.lamports)

    async def get_token_account_balance(self, pubkey, commitment=None):
        if self.token_error is not None:
            raise self.token_error
        return SimpleNamespace(value=SimpleNamespace(amount=self.token_amount, decimals=6))

    async def get_latest_blockhash(self, commitment=None):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    async def send_raw_transaction(self, txn, opts=None):
        self.sent.append(bytes(txn))
        return SimpleNamespace(value=Signature.default())

    async def get_signature_statuses(self, signatures):
        status = self.statuses.pop(0) if self.statuses else None
        return SimpleNamespace(value=[status])

    async def close(self) -> None:
        self.closed = True


def _confirmed(err: object = None) -> SimpleNamespace:
    return SimpleNamespace(err=err, confirmation_status=TransactionConfirmationStatus.Confirmed)


def test_load_keypair_accepts_json_array_base58_and_base64() -> None:
    keypair = Keypair()
    raw = bytes(keypair)

    from_json = load_keypair(json.dumps(list(raw)))
    from_base58 = load_keypair(str(keypair))
    from_base64 = load_keypair(base64.b64encode(raw).decode())

    assert from_json.pubkey() == keypair.pubkey()
    assert from_base58.pubkey() == keypair.pubkey()
    assert from_base64.pubkey() == keypair.pubkey()


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "[1, 2, 3]",
        "[not json",
        "this is not a key!",
        base64.b64encode(b"\x01" * 32).decode(),
    ],
)
def test_load_keypair_rejects_bad_input(raw: str) -> None:
    with pytest.raises(ConfigurationError):
        load_keypair(raw)


def test_parse_pubkey_names_the_setting() -> None:
    with pytest.raises(ConfigurationError, match="EXCHANGE_DEPOSIT_ADDRESS"):
        parse_pubkey("nope", setting="EXCHANGE_DEPOSIT_ADDRESS")


def test_to_base_units_rounds_down() -> None:
    assert to_base_units(Decimal("1.2345679"), 6) == 1_234_567
    assert to_base_units(Decimal("0.0000009"), 6) == 0


def test_treasury_reads_slot_and_balances() -> None:
    owner = str(Keypair().pubkey())
    rpc = FakeRpc(slot=987, lamports=1_500_000_000, token_amount="12345678")
    treasury = SolanaTreasury(rpc, settlement_mint=USDC)

    async def scenario():
        return (
            await treasury.get_current_position(),
            await treasury.get_native_balance(owner),
            await treasury.get_settlement_balance(owner),
        )

    position, native, settlement = asyncio.run(scenario())

    assert position == 987
    assert native == Decimal("1.5")
    assert settlement == Decimal("12.345678")


def test_missing_token_account_reads_as_zero() -> None:
    rpc = FakeRpc(token_error=RPCException("could not find account"))
    treasury = SolanaTreasury(rpc, settlement_mint=USDC)

    balance = asyncio.run(treasury.get_settlement_balance(str(Keypair().pubkey())))

    assert balance == Decimal("0")


def test_token_balance_transport_error_is_transient() -> None:
    rpc = FakeRpc(token_error=httpx.ConnectError("connection refused"))
    treasury = SolanaTreasury(rpc, settlement_mint=USDC)

    with pytest.raises(TransientIOFailure):
        asyncio.run(treasury.get_settlement_balance(str(Keypair().pubkey())))


def test_router_sends_signed_transfer_and_waits_for_confirmation() -> None:
    keypair = Keypair()
    rpc = FakeRpc(statuses=[None, _confirmed()])
    signer = SolanaSigner(rpc, keypair, confirm_timeout_seconds=5)
    router = SolanaSettlementRouter(signer, settlement_mint=USDC, settlement_decimals=6)
    destination = str(Keypair().pubkey())

    confirmation = asyncio.run(router.transfer(destination, Decimal("30.1234567")))

    assert confirmation.destination == destination
    assert confirmation.amount == Decimal("30.123456")
    assert confirmation.signature == str(Signature.default())
    assert len(rpc.sent) == 1
    tx = Transaction.from_bytes(rpc.sent[0])
    assert tx.message.account_keys[0] == keypair.pubkey()
    assert tx.signatures[0] != Signature.default()


def test_router_rejects_dust_amounts() -> None:
    signer = SolanaSigner(FakeRpc(), Keypair())
    router = SolanaSettlementRouter(signer, settlement_mint=USDC, settlement_decimals=6)

    with pytest.raises(ValueError):
        asyncio.run(router.transfer(str(Keypair().pubkey()), Decimal("0.0000001")))


def test_on_chain_error_is_transient_failure() -> None:
    rpc = FakeRpc(statuses=[_confirmed(err="InstructionError")])
    signer = SolanaSigner(rpc, Keypair(), confirm_timeout_seconds=5)

    with pytest.raises(TransientIOFailure, match="failed on chain"):
        asyncio.run(signer.send_and_confirm(b"raw"))


def test_unconfirmed_transaction_times_out() -> None:
    signer = SolanaSigner(FakeRpc(), Keypair(), confirm_timeout_seconds=0.05)

    with pytest.raises(TransientIOFailure, match="not confirmed"):
        asyncio.run(signer.send_and_confirm(b"raw"))


def test_treasury_close_closes_client() -> None:
    rpc = FakeRpc()

    asyncio.run(SolanaTreasury(rpc, settlement_mint=USDC).close())

    assert rpc.closed is True
