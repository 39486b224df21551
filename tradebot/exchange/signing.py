from __future__ import annotations
import hashlib
import hmac
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from tradebot.core.errors import ConfigError
from tradebot.exchange.endpoints import API_KEY_HEADER, FUTURES_BASE_URL, SPOT_BASE_URL, Surface


def now_ms() -> int:
    return int(time.time() * 1000)


def sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        text = format(value, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"
    return str(value)


def encode_params(params: Mapping[str, Any]) -> str:
    # insertion order is the signing order; never sort
    items: List[Tuple[str, str]] = [(k, format_param(v)) for k, v in params.items() if v is not None]
    return urlencode(items)


@dataclass(frozen=True)
class Credentials:
    api_key: str
    api_secret: str = field(repr=False)

    def require(self) -> None:
        if not self.api_key or not self.api_secret:
            raise ConfigError("Binance API credentials not configured")


@dataclass(frozen=True)
class SignedRequest:
    method: str
    url: str
    query: str
    headers: Dict[str, str]
    signature: Optional[str] = None
    timestamp: Optional[int] = None


class SignedRequestBuilder:
    """
    Builds fully qualified exchange requests.

    Every signed build takes a fresh timestamp from ``clock``: a signature is
    single-use and only valid inside the exchange's receive window, so nothing
    here is cached between calls. The builder holds no mutable state and can be
    shared across threads.
    """

    def __init__(
        self,
        credentials: Optional[Credentials],
        clock: Optional[Callable[[], int]] = None,
        recv_window: Optional[int] = None,
        spot_base_url: str = SPOT_BASE_URL,
        futures_base_url: str = FUTURES_BASE_URL,
    ):
        self._credentials = credentials
        self._clock = clock or now_ms
        self._recv_window = recv_window
        self._base_urls = {
            Surface.MARKET_DATA: spot_base_url.rstrip("/"),
            Surface.TRADING: futures_base_url.rstrip("/"),
        }

    def base_url(self, surface: Surface) -> str:
        return self._base_urls[Surface(surface)]

    def build(
        self,
        method: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        surface: Surface = Surface.TRADING,
    ) -> SignedRequest:
        creds = self._credentials
        if creds is None:
            raise ConfigError("Binance API credentials not configured")
        creds.require()

        signed: Dict[str, Any] = dict(params or {})
        ts = int(self._clock())
        signed["timestamp"] = ts
        if self._recv_window:
            signed["recvWindow"] = int(self._recv_window)

        payload = encode_params(signed)
        signature = sign(creds.api_secret, payload)
        query = f"{payload}&signature={signature}"
        return SignedRequest(
            method=method.upper(),
            url=f"{self.base_url(surface)}{endpoint}?{query}",
            query=query,
            headers={API_KEY_HEADER: creds.api_key},
            signature=signature,
            timestamp=ts,
        )

    def build_public(
        self,
        method: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        surface: Surface = Surface.MARKET_DATA,
    ) -> SignedRequest:
        query = encode_params(dict(params or {}))
        url = f"{self.base_url(surface)}{endpoint}"
        if query:
            url = f"{url}?{query}"
        return SignedRequest(method=method.upper(), url=url, query=query, headers={})


__all__ = [
    "Credentials",
    "SignedRequest",
    "SignedRequestBuilder",
    "encode_params",
    "format_param",
    "now_ms",
    "sign",
]
