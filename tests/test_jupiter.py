from __future__ import annotations

import asyncio
import base64
import json
from decimal import Decimal

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from rewardbot.adapters.jupiter import WRAPPED_SOL_MINT, JupiterConversionVenue, extract_route
from rewardbot.config import MAINNET_USDC_MINT
from rewardbot.domain.errors import TransientIOFailure
from rewardbot.domain.models import ConversionQuote


class RecordingSigner:
    def __init__(self, keypair: Keypair | None = None) -> None:
        self.keypair = keypair or Keypair()
        self.sent: list[bytes] = []

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def send_and_confirm(self, raw_tx: bytes) -> Signature:
        self.sent.append(raw_tx)
        return Signature.default()


def _venue(handler, signer: RecordingSigner | None = None) -> JupiterConversionVenue:
    client = httpx.AsyncClient(base_url="https://jup.example", transport=httpx.MockTransport(handler))
    return JupiterConversionVenue(
        signer or RecordingSigner(),
        settlement_mint=MAINNET_USDC_MINT,
        settlement_decimals=6,
        slippage_bps=50,
        client=client,
    )


async def _call(venue: JupiterConversionVenue, coro_fn):
    try:
        return await coro_fn(venue)
    finally:
        await venue.close()


def _unsigned_swap_tx(payer: Keypair) -> str:
    message = MessageV0.try_compile(payer.pubkey(), [], [], Hash.default())
    tx = VersionedTransaction(message, [payer])
    return base64.b64encode(bytes(tx)).decode()


def test_extract_route_handles_both_shapes() -> None:
    route = {"outAmount": "4500000"}

    assert extract_route({"data": [route]}) == route
    assert extract_route(route) == route
    assert extract_route({"data": []}) is None
    assert extract_route({"error": "no route"}) is None
    assert extract_route(["nope"]) is None


def test_quote_requests_native_to_settlement_route() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"inAmount": "30000000", "outAmount": "4500000"})

    quote = asyncio.run(_call(_venue(handler), lambda v: v.quote(Decimal("0.03"))))

    assert quote is not None
    assert quote.in_amount_native == Decimal("0.03")
    assert quote.out_amount_settlement == Decimal("4.5")
    assert quote.payload["outAmount"] == "4500000"
    params = seen[0].url.params
    assert seen[0].url.path == "/v6/quote"
    assert params["inputMint"] == WRAPPED_SOL_MINT
    assert params["outputMint"] == MAINNET_USDC_MINT
    assert params["amount"] == "30000000"
    assert params["slippageBps"] == "50"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"error": "no route"}),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"outAmount": "0"}),
        httpx.Response(200, json={"outAmount": "garbage"}),
        httpx.Response(200, text="<html>"),
    ],
)
def test_unusable_quotes_are_none(response: httpx.Response) -> None:
    quote = asyncio.run(_call(_venue(lambda request: response), lambda v: v.quote(Decimal("1"))))

    assert quote is None


def test_dust_amount_is_not_quoted() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"outAmount": "1"})

    quote = asyncio.run(_call(_venue(handler), lambda v: v.quote(Decimal("0.0000000001"))))

    assert quote is None
    assert calls == []


def test_quote_transport_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientIOFailure):
        asyncio.run(_call(_venue(handler), lambda v: v.quote(Decimal("1"))))


def test_execute_swap_signs_and_submits_venue_transaction() -> None:
    signer = RecordingSigner()
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"swapTransaction": _unsigned_swap_tx(signer.keypair)})

    quote = ConversionQuote(
        in_amount_native=Decimal("0.03"),
        out_amount_settlement=Decimal("4.5"),
        payload={"outAmount": "4500000"},
    )

    received = asyncio.run(_call(_venue(handler, signer), lambda v: v.execute_swap(quote)))

    assert received == Decimal("4.5")
    assert seen[0]["quoteResponse"] == {"outAmount": "4500000"}
    assert seen[0]["userPublicKey"] == str(signer.pubkey)
    assert seen[0]["wrapAndUnwrapSol"] is True
    assert len(signer.sent) == 1
    submitted = VersionedTransaction.from_bytes(signer.sent[0])
    assert submitted.signatures[0] != Signature.default()


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="busy"),
        httpx.Response(200, json={"error": "stale quote"}),
        httpx.Response(200, json={"swapTransaction": "!!!not-base64"}),
        httpx.Response(200, text="not json"),
    ],
)
def test_swap_failures_are_transient(response: httpx.Response) -> None:
    signer = RecordingSigner()
    quote = ConversionQuote(in_amount_native=Decimal("1"), out_amount_settlement=Decimal("150"))

    with pytest.raises(TransientIOFailure):
        asyncio.run(_call(_venue(lambda request: response, signer), lambda v: v.execute_swap(quote)))

    assert signer.sent == []
