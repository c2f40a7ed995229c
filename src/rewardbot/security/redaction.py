from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "***REDACTED***"

# matched against normalized keys: lower case, "-" -> "_", then also with "_" removed
_SENSITIVE_KEY_PARTS = (
    "api_key",
    "secret",
    "private_key",
    "keypair",
    "seed",
    "mnemonic",
    "authorization",
    "password",
    "x_signature",
)

_HEADER_PATTERN = re.compile(
    r"(?im)\b(authorization|x-api-key|x-signature)(\s*[:=]\s*)(bearer\s+)?([^\s,;\"']+)"
)
_ENV_ASSIGNMENT_PATTERN = re.compile(
    r"(?m)\b(EXCHANGE_API_KEY|EXCHANGE_API_SECRET|DEV_WALLET_PRIVATE_KEY)(\s*=\s*)(\S+)"
)
_JSON_FIELD_PATTERN = re.compile(
    r'(?i)("(?:api_?key|api_?secret|secret|private_?key|keypair)"\s*:\s*")([^"\\]*)(")'
)
# 64-byte secret keys are commonly pasted as JSON arrays of small integers
_KEY_BYTE_ARRAY_PATTERN = re.compile(r"\[\s*(?:\d{1,3}\s*,\s*){31,}\d{1,3}\s*\]")


def _is_sensitive_key(key: object) -> bool:
    normalized = str(key).strip().replace("-", "_").casefold()
    compact = normalized.replace("_", "")
    return any(
        part in normalized or part.replace("_", "") in compact for part in _SENSITIVE_KEY_PARTS
    )


def mask_secret(value: str) -> str:
    """Keep at most the first and last four characters of a secret."""
    if not value:
        return REDACTED
    if len(value) > 8:
        return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
    if len(value) <= 2:
        return "*" * len(value)
    return f"{'*' * (len(value) - 2)}{value[-2:]}"


def sanitize_text(text: str, known_secrets: Iterable[str] = ()) -> str:
    redacted = str(text)
    for secret in known_secrets:
        if secret:
            redacted = redacted.replace(secret, mask_secret(secret))
    redacted = _KEY_BYTE_ARRAY_PATTERN.sub(REDACTED, redacted)
    redacted = _HEADER_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{m.group(3) or ''}[REDACTED]", redacted
    )
    redacted = _ENV_ASSIGNMENT_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}[REDACTED]", redacted)
    return _JSON_FIELD_PATTERN.sub(
        lambda m: f"{m.group(1)}{mask_secret(m.group(2))}{m.group(3)}", redacted
    )


def sanitize_mapping(data: Mapping[Any, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key)
        if _is_sensitive_key(name):
            sanitized[name] = REDACTED if value is None else mask_secret(str(value))
        else:
            sanitized[name] = redact_data(value)
    return sanitized


def redact_data(value: Any) -> Any:
    """Recursively mask secrets in log payloads; non-text scalars pass through."""
    if isinstance(value, Mapping):
        return sanitize_mapping(value)
    if isinstance(value, (list, tuple)):
        items = [redact_data(item) for item in value]
        return items if isinstance(value, list) else tuple(items)
    if isinstance(value, str):
        return sanitize_text(value)
    return value
