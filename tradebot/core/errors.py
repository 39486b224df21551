from __future__ import annotations
from typing import Any, Optional


class TradeBotError(RuntimeError):
    pass


class ConfigError(TradeBotError):
    """Missing or invalid credentials / startup configuration."""


class ValidationError(TradeBotError, ValueError):
    """Bad operator input. Raised before any state is touched."""


class MarketDataError(TradeBotError):
    pass


class ExchangeError(TradeBotError):
    """
    Authenticated call rejected or failed.
    Keeps the exchange's own code/msg so callers can surface them verbatim.
    """

    def __init__(self, message: str, code: Optional[int] = None, status: Optional[int] = None, payload: Any = None):
        self.message = message
        self.code = code
        self.status = status
        self.payload = payload
        super().__init__(self._render())

    def _render(self) -> str:
        if self.code is not None:
            return f"{self.message} (code={self.code})"
        return self.message


class StreamError(TradeBotError):
    def __init__(self, symbol: str, reason: str):
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"{symbol}: {reason}")


__all__ = [
    "TradeBotError",
    "ConfigError",
    "ValidationError",
    "MarketDataError",
    "ExchangeError",
    "StreamError",
]
