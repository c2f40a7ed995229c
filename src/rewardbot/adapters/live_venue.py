from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from time import monotonic
from typing import Any

import httpx
from pydantic import ValidationError

from rewardbot.adapters.venue import TradingVenueAdapter
from rewardbot.adapters.venue_auth import MonotonicNonceGenerator, build_auth_headers
from rewardbot.domain.errors import ConfigurationError, OrderRejected
from rewardbot.domain.models import OrderIntent, OrderResult, parse_decimal
from rewardbot.security.redaction import sanitize_text

logger = logging.getLogger(__name__)

_ERROR_SNIPPET_LIMIT = 240
_KLINES_PATH = "/market/klines"
_ORDERS_PATH = "/orders"


def _response_snippet(response: httpx.Response) -> str:
    text = response.text.strip().replace("\n", " ")
    return sanitize_text(text[:_ERROR_SNIPPET_LIMIT])


def _fmt_decimal(value: Decimal) -> str:
    normalized = format(value, "f")
    if "." in normalized:
        normalized = normalized.rstrip("0").rstrip(".")
    return normalized or "0"


def parse_closes(payload: object) -> list[Decimal]:
    """Extract finite closes from ``[{"close": ...}, ...]`` or ``{"data": [...]}``."""
    rows = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        return []
    closes: list[Decimal] = []
    for row in rows:
        raw = row.get("close") if isinstance(row, dict) else None
        try:
            value = parse_decimal(raw) if raw is not None else None
        except (TypeError, ValueError, InvalidOperation):
            continue
        if value is None or not value.is_finite():
            continue
        closes.append(value)
    return closes


class LiveVenueAdapter(TradingVenueAdapter):
    """Authenticated REST adapter for a perpetuals venue."""

    name = "hyperliquid"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        api_secret: str,
        candle_interval: str = "60m",
        timeout: float | httpx.Timeout = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError("EXCHANGE_API_BASE is required for the live venue")
        if not api_key or not api_secret:
            raise ConfigurationError(
                "EXCHANGE_API_KEY and EXCHANGE_API_SECRET are required for the live venue"
            )
        self.api_key = api_key
        self.api_secret = api_secret
        self.candle_interval = candle_interval
        resolved_timeout = (
            timeout
            if isinstance(timeout, httpx.Timeout)
            else httpx.Timeout(timeout=timeout, connect=5.0)
        )
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=resolved_timeout,
            transport=transport,
        )
        self._nonce = MonotonicNonceGenerator()

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_recent_closes(self, symbol: str, limit: int) -> list[Decimal]:
        params = {"symbol": symbol, "interval": self.candle_interval, "limit": limit}
        started = monotonic()
        try:
            response = await self._client.get(
                _KLINES_PATH, params=params, headers={"X-API-KEY": self.api_key}
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "closes_fetch_failed",
                extra={
                    "extra": {
                        "symbol": symbol,
                        "error_type": type(exc).__name__,
                        "safe_message": sanitize_text(str(exc)),
                    }
                },
            )
            return []

        if response.status_code >= 400:
            logger.warning(
                "closes_fetch_rejected",
                extra={
                    "extra": {
                        "symbol": symbol,
                        "status_code": response.status_code,
                        "response_snippet": _response_snippet(response),
                    }
                },
            )
            return []

        try:
            payload = response.json()
        except ValueError:
            logger.warning(
                "closes_payload_invalid",
                extra={"extra": {"symbol": symbol, "response_snippet": _response_snippet(response)}},
            )
            return []

        closes = parse_closes(payload)
        logger.debug(
            "closes_fetched",
            extra={
                "extra": {
                    "symbol": symbol,
                    "count": len(closes),
                    "latency_ms": round((monotonic() - started) * 1000, 1),
                }
            },
        )
        return closes[-limit:] if limit > 0 else []

    async def place_order(self, intent: OrderIntent) -> OrderResult:
        body: dict[str, Any] = {
            "symbol": intent.symbol,
            "side": intent.side.value,
            "leverage": _fmt_decimal(intent.leverage_multiplier),
            "type": "market",
            "notional": _fmt_decimal(intent.notional_settlement_amount),
            "subaccount": intent.subaccount,
            "tif": "ioc",
        }
        body_text = json.dumps(body, separators=(",", ":"))
        headers = {"Content-Type": "application/json"}
        headers.update(
            build_auth_headers(
                self.api_key,
                self.api_secret,
                self._nonce.next_stamp_ms(),
                method="POST",
                path=_ORDERS_PATH,
                body=body_text,
            )
        )

        try:
            response = await self._client.post(_ORDERS_PATH, content=body_text, headers=headers)
        except httpx.HTTPError as exc:
            raise OrderRejected(
                f"transport error {type(exc).__name__}: {sanitize_text(str(exc))}", status=None
            ) from exc

        if response.status_code >= 400:
            raise OrderRejected(_response_snippet(response), status=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise OrderRejected(
                f"non-JSON order response: {_response_snippet(response)}",
                status=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise OrderRejected("order response must be a JSON object", status=response.status_code)
        if payload.get("success") is False or str(payload.get("status", "ok")).lower() in {
            "error",
            "err",
            "rejected",
        }:
            message = payload.get("message") or payload.get("error") or "order rejected by venue"
            raise OrderRejected(sanitize_text(str(message)), status=response.status_code)

        try:
            result = OrderResult.model_validate(payload)
        except ValidationError as exc:
            raise OrderRejected(
                f"unexpected order response shape: {exc.error_count()} error(s)",
                status=response.status_code,
            ) from exc

        logger.info(
            "order_placed",
            extra={
                "extra": {
                    "symbol": intent.symbol,
                    "side": intent.side.value,
                    "notional": body["notional"],
                    "leverage": body["leverage"],
                    "order_id": result.order_id,
                    "venue_status": result.status,
                }
            },
        )
        return result
