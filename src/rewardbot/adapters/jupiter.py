from __future__ import annotations

import base64
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from solders.transaction import VersionedTransaction

from rewardbot.adapters.solana_chain import NATIVE_DECIMALS, SolanaSigner, to_base_units
from rewardbot.adapters.treasury import ConversionVenue
from rewardbot.domain.errors import TransientIOFailure
from rewardbot.domain.models import ConversionQuote, parse_decimal
from rewardbot.security.redaction import sanitize_text

logger = logging.getLogger(__name__)

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"
_QUOTE_PATH = "/v6/quote"
_SWAP_PATH = "/v6/swap"


def extract_route(payload: object) -> dict[str, Any] | None:
    """Accept both ``{"data": [route, ...]}`` and a flat v6 route object."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, list):
        route = data[0] if data else None
        return route if isinstance(route, dict) else None
    return payload if "outAmount" in payload else None


class JupiterConversionVenue(ConversionVenue):
    def __init__(
        self,
        signer: SolanaSigner,
        *,
        settlement_mint: str,
        settlement_decimals: int,
        slippage_bps: int = 50,
        base_url: str = "https://quote-api.jup.ag",
        timeout: float | httpx.Timeout = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.signer = signer
        self.settlement_mint = settlement_mint
        self.settlement_decimals = settlement_decimals
        self.slippage_bps = slippage_bps
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def quote(self, from_amount: Decimal) -> ConversionQuote | None:
        lamports = to_base_units(from_amount, NATIVE_DECIMALS)
        if lamports <= 0:
            return None
        params = {
            "inputMint": WRAPPED_SOL_MINT,
            "outputMint": self.settlement_mint,
            "amount": str(lamports),
            "slippageBps": str(self.slippage_bps),
        }
        try:
            response = await self._client.get(_QUOTE_PATH, params=params)
        except httpx.HTTPError as exc:
            raise TransientIOFailure(
                f"quote transport failure: {type(exc).__name__}", source="conversion"
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "conversion_quote_unavailable",
                extra={
                    "extra": {
                        "status_code": response.status_code,
                        "response_snippet": sanitize_text(response.text[:240]),
                    }
                },
            )
            return None

        try:
            route = extract_route(response.json())
        except ValueError:
            route = None
        if route is None:
            logger.warning("conversion_quote_malformed", extra={"extra": {"lamports": lamports}})
            return None

        try:
            out_raw = parse_decimal(route.get("outAmount"))
        except (TypeError, ValueError, InvalidOperation):
            return None
        out_amount = out_raw.scaleb(-self.settlement_decimals)
        if not out_amount.is_finite() or out_amount <= 0:
            return None

        return ConversionQuote(
            in_amount_native=Decimal(lamports).scaleb(-NATIVE_DECIMALS),
            out_amount_settlement=out_amount,
            payload=route,
        )

    async def execute_swap(self, quote: ConversionQuote) -> Decimal:
        body = {
            "quoteResponse": quote.payload,
            "userPublicKey": str(self.signer.pubkey),
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }
        try:
            response = await self._client.post(_SWAP_PATH, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise TransientIOFailure(
                f"swap build failed: {type(exc).__name__}", source="conversion"
            ) from exc
        except ValueError as exc:
            raise TransientIOFailure("swap response is not JSON", source="conversion") from exc

        tx_b64 = payload.get("swapTransaction") if isinstance(payload, dict) else None
        if not isinstance(tx_b64, str) or not tx_b64:
            raise TransientIOFailure("swap response missing swapTransaction", source="conversion")
        try:
            unsigned = VersionedTransaction.from_bytes(base64.b64decode(tx_b64))
        except Exception as exc:  # noqa: BLE001
            raise TransientIOFailure("swap transaction undecodable", source="conversion") from exc

        signed = VersionedTransaction(unsigned.message, [self.signer.keypair])
        signature = await self.signer.send_and_confirm(bytes(signed))
        logger.info(
            "conversion_swap_confirmed",
            extra={
                "extra": {
                    "in_native": str(quote.in_amount_native),
                    "out_settlement": str(quote.out_amount_settlement),
                    "tx_sig": str(signature),
                }
            },
        )
        # received amount is taken from the quote, slippage is not reconciled
        return quote.out_amount_settlement
