from __future__ import annotations
import random
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import requests

from tradebot.core.errors import ExchangeError, MarketDataError
from tradebot.core.logging import log
from tradebot.core.safety import HTTP_TIMEOUT_SECONDS, MAX_READ_ATTEMPTS
from tradebot.core.types import DailyStats, Json, OrderRequest, OrderResult, OrderType
from tradebot.exchange import endpoints
from tradebot.exchange.endpoints import Surface
from tradebot.exchange.signing import SignedRequest, SignedRequestBuilder

_RETRY_DELAYS = (0.25, 1.0, 3.0)[:MAX_READ_ATTEMPTS]
_TRANSIENT_STATUS_CODES = {418, 429, 500, 502, 503, 504}


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


class ExchangeClient:
    """
    Typed operations over the exchange REST API.

    Reads are retried on transient failures, rebuilding (and re-signing) the
    request for every attempt. Writes (leverage, orders) are sent exactly once;
    retrying them is the caller's decision.
    """

    def __init__(
        self,
        builder: SignedRequestBuilder,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._builder = builder
        self._session = session or requests.Session()
        self._timeout = timeout
        self._sleep = sleep

    # ---- market data (public)

    def get_price(self, symbol: str) -> Decimal:
        body = self._read(
            lambda: self._builder.build_public("GET", endpoints.PRICE, {"symbol": symbol}),
            market_data=True,
        )
        try:
            return _decimal(body["price"])
        except (KeyError, TypeError, InvalidOperation) as exc:
            raise MarketDataError(f"Malformed price response for {symbol}: {body!r}") from exc

    def get_24h_stats(self, symbol: str) -> DailyStats:
        body = self._read(
            lambda: self._builder.build_public("GET", endpoints.STATS_24H, {"symbol": symbol}),
            market_data=True,
        )
        try:
            return DailyStats(
                price_change=_decimal(body["priceChange"]),
                price_change_percent=_decimal(body["priceChangePercent"]),
                high=_decimal(body["highPrice"]),
                low=_decimal(body["lowPrice"]),
                volume=_decimal(body["volume"]),
            )
        except (KeyError, TypeError, InvalidOperation) as exc:
            raise MarketDataError(f"Malformed 24h stats response for {symbol}: {body!r}") from exc

    # ---- account (signed)

    def _account(self) -> Json:
        body = self._read(lambda: self._builder.build("GET", endpoints.ACCOUNT, {}, Surface.TRADING))
        if not isinstance(body, dict):
            raise ExchangeError(f"Malformed account response: {body!r}")
        return body

    def get_account_balance(self) -> List[Json]:
        assets = self._account().get("assets") or []
        out = []
        for asset in assets:
            try:
                if _decimal(asset.get("walletBalance") or 0) > 0:
                    out.append(asset)
            except InvalidOperation:
                log(f"[exchange] skipping malformed asset row: {asset!r}", level="WARN")
        return out

    def get_account_positions(self) -> List[Json]:
        positions = self._account().get("positions") or []
        out = []
        for pos in positions:
            try:
                if _decimal(pos.get("positionAmt") or 0) != 0:
                    out.append(pos)
            except InvalidOperation:
                log(f"[exchange] skipping malformed position row: {pos!r}", level="WARN")
        return out

    # ---- trading (signed, never retried here)

    def set_leverage(self, symbol: str, leverage: int) -> Json:
        req = self._builder.build("POST", endpoints.LEVERAGE, {"symbol": symbol, "leverage": int(leverage)}, Surface.TRADING)
        body = self._write(req)
        log(f"[exchange] leverage {symbol} -> {body.get('leverage', leverage)}x")
        return body

    def place_order(self, order: OrderRequest) -> OrderResult:
        order_type = order.order_type
        params: Dict[str, Any] = {
            "symbol": order.symbol,
            "side": order.side.value.upper(),
            "type": order_type.value,
            "quantity": order.quantity,
        }
        if order_type == OrderType.LIMIT:
            params["price"] = order.price
            params["timeInForce"] = "GTC"
        elif order_type == OrderType.STOP_MARKET:
            params["stopPrice"] = order.stop_price
        if order.client_order_id:
            params["newClientOrderId"] = order.client_order_id

        req = self._builder.build("POST", endpoints.ORDER, params, Surface.TRADING)
        body = self._write(req)
        result = OrderResult(
            order_id=str(body.get("orderId", "")),
            status=str(body.get("status", "")),
            symbol=str(body.get("symbol") or order.symbol),
            client_order_id=body.get("clientOrderId") or order.client_order_id,
            raw=body,
        )
        log(f"[exchange] order {order.side.value.upper()} {order_type.value} {order.quantity} {order.symbol} id={result.order_id} status={result.status}")
        return result

    # ---- transport

    def _read(self, build: Callable[[], SignedRequest], market_data: bool = False) -> Any:
        last_exc: Optional[Exception] = None
        for attempt, base_delay in enumerate(_RETRY_DELAYS, 1):
            req = build()
            try:
                resp = self._session.request(req.method, req.url, headers=req.headers, timeout=self._timeout)
            except requests.RequestException as exc:
                last_exc = exc
                self._log_attempt(req, attempt, None, exc)
                if attempt < len(_RETRY_DELAYS):
                    self._sleep_with_jitter(base_delay)
                    continue
                break
            if resp.status_code in _TRANSIENT_STATUS_CODES and attempt < len(_RETRY_DELAYS):
                self._log_attempt(req, attempt, resp.status_code, None)
                self._sleep_with_jitter(base_delay)
                continue
            return self._decode(req, resp, market_data)

        message = f"{req.method} {self._path(req)} failed: {type(last_exc).__name__}: {last_exc}"
        if market_data:
            raise MarketDataError(message) from last_exc
        raise ExchangeError(message) from last_exc

    def _write(self, req: SignedRequest) -> Json:
        try:
            resp = self._session.request(req.method, req.url, headers=req.headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise ExchangeError(f"{req.method} {self._path(req)} failed: {type(exc).__name__}: {exc}") from exc
        body = self._decode(req, resp, market_data=False)
        if not isinstance(body, dict):
            raise ExchangeError(f"Malformed response from {self._path(req)}: {body!r}", status=resp.status_code)
        return body

    def _decode(self, req: SignedRequest, resp: requests.Response, market_data: bool) -> Any:
        try:
            body = resp.json()
        except ValueError:
            body = None

        if 200 <= resp.status_code < 300:
            if body is None:
                msg = f"Malformed JSON from {self._path(req)} (status={resp.status_code})"
                if market_data:
                    raise MarketDataError(msg)
                raise ExchangeError(msg, status=resp.status_code)
            return body

        code = None
        msg = (getattr(resp, "text", "") or "").strip() or f"HTTP {resp.status_code}"
        if isinstance(body, dict):
            code = body.get("code")
            msg = body.get("msg") or msg
        if market_data:
            raise MarketDataError(f"{self._path(req)} HTTP {resp.status_code}: {msg}")
        raise ExchangeError(msg, code=code, status=resp.status_code, payload=body)

    def _path(self, req: SignedRequest) -> str:
        return req.url.split("?", 1)[0]

    def _sleep_with_jitter(self, delay: float) -> None:
        self._sleep(delay * random.uniform(0.8, 1.2))

    def _log_attempt(self, req: SignedRequest, attempt: int, status_code: Optional[int], exc: Optional[Exception]) -> None:
        status = status_code if status_code is not None else "n/a"
        error_cls = type(exc).__name__ if exc else "HTTPError"
        log(f"[exchange] {req.method} {self._path(req)} attempt={attempt} status={status} error={error_cls}", level="WARN")


__all__ = ["ExchangeClient"]
