from __future__ import annotations

from tradebot.core.errors import ExchangeError

REASON_CODE_UNKNOWN = "UNKNOWN_ERROR"
REASON_CODE_INVALID_KEY = "INVALID_API_KEY"
REASON_CODE_SIGNATURE = "INVALID_SIGNATURE"
REASON_CODE_TIMESTAMP = "TIMESTAMP_OUTSIDE_WINDOW"
REASON_CODE_INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
REASON_CODE_INVALID_QUANTITY = "INVALID_QUANTITY"
REASON_CODE_MIN_NOTIONAL = "MIN_NOTIONAL"
REASON_CODE_LEVERAGE = "INVALID_LEVERAGE"
REASON_CODE_RATE_LIMIT = "RATE_LIMIT"
REASON_CODE_TIMEOUT = "TIMEOUT"

# Binance futures error codes
_EXCHANGE_CODES = {
    -1003: REASON_CODE_RATE_LIMIT,
    -1021: REASON_CODE_TIMESTAMP,
    -1022: REASON_CODE_SIGNATURE,
    -2014: REASON_CODE_INVALID_KEY,
    -2015: REASON_CODE_INVALID_KEY,
    -2019: REASON_CODE_INSUFFICIENT_MARGIN,
    -4003: REASON_CODE_INVALID_QUANTITY,
    -4028: REASON_CODE_LEVERAGE,
    -4164: REASON_CODE_MIN_NOTIONAL,
}

_REASON_PATTERNS = [
    ("invalid api", REASON_CODE_INVALID_KEY),
    ("api-key", REASON_CODE_INVALID_KEY),
    ("signature", REASON_CODE_SIGNATURE),
    ("recvwindow", REASON_CODE_TIMESTAMP),
    ("margin is insufficient", REASON_CODE_INSUFFICIENT_MARGIN),
    ("insufficient", REASON_CODE_INSUFFICIENT_MARGIN),
    ("quantity", REASON_CODE_INVALID_QUANTITY),
    ("notional", REASON_CODE_MIN_NOTIONAL),
    ("leverage", REASON_CODE_LEVERAGE),
    ("too many requests", REASON_CODE_RATE_LIMIT),
    ("rate limit", REASON_CODE_RATE_LIMIT),
    ("timeout", REASON_CODE_TIMEOUT),
    ("timed out", REASON_CODE_TIMEOUT),
]


def map_exception_to_reason(exc: Exception | str | None) -> str:
    if exc is None:
        return REASON_CODE_UNKNOWN
    if isinstance(exc, ExchangeError) and exc.code in _EXCHANGE_CODES:
        return _EXCHANGE_CODES[exc.code]
    text = str(exc).lower()
    for pattern, code in _REASON_PATTERNS:
        if pattern in text:
            return code
    return REASON_CODE_UNKNOWN


__all__ = [
    "REASON_CODE_UNKNOWN",
    "REASON_CODE_INVALID_KEY",
    "REASON_CODE_SIGNATURE",
    "REASON_CODE_TIMESTAMP",
    "REASON_CODE_INSUFFICIENT_MARGIN",
    "REASON_CODE_INVALID_QUANTITY",
    "REASON_CODE_MIN_NOTIONAL",
    "REASON_CODE_LEVERAGE",
    "REASON_CODE_RATE_LIMIT",
    "REASON_CODE_TIMEOUT",
    "map_exception_to_reason",
]
