from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class MonotonicNonceGenerator:
    now_ms_fn: Callable[[], int] = field(default_factory=lambda: (lambda: int(time.time() * 1000)))
    _last_stamp_ms: int | None = None

    def next_stamp_ms(self) -> int:
        now_ms = int(self.now_ms_fn())
        if self._last_stamp_ms is not None:
            now_ms = max(now_ms, self._last_stamp_ms + 1)
        self._last_stamp_ms = now_ms
        return now_ms


def compute_signature(
    api_secret: str,
    stamp_ms: int | str,
    method: str,
    path: str,
    body: str = "",
) -> str:
    if not api_secret:
        raise ValueError("EXCHANGE_API_SECRET must not be empty")
    message = f"{stamp_ms}{method.upper()}{path}{body}".encode()
    return hmac.new(api_secret.encode(), message, hashlib.sha256).hexdigest()


def build_auth_headers(
    api_key: str,
    api_secret: str,
    stamp_ms: int | str,
    *,
    method: str,
    path: str,
    body: str = "",
) -> dict[str, str]:
    stamp = str(stamp_ms)
    return {
        "X-API-KEY": api_key,
        "X-TIMESTAMP": stamp,
        "X-SIGNATURE": compute_signature(api_secret, stamp, method, path, body),
    }
