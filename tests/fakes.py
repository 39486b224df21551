import json
import threading
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tradebot.core.errors import ExchangeError
from tradebot.core.types import Candle, DailyStats, OrderRequest, OrderResult


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def make_candle(symbol: str, index: int, close: float, closed: bool = True) -> Candle:
    open_time = 1_700_000_000_000 + index * 60_000
    return Candle(
        symbol=symbol,
        open_time=open_time,
        close_time=open_time + 59_999,
        open=close,
        high=close,
        low=close,
        close=close,
        volume=1.0,
        is_closed=closed,
    )


def kline_message(symbol: str, index: int, close: float, closed: bool = True) -> str:
    open_time = 1_700_000_000_000 + index * 60_000
    return json.dumps({
        "e": "kline",
        "E": open_time + 60_000,
        "s": symbol,
        "k": {
            "t": open_time,
            "T": open_time + 59_999,
            "s": symbol,
            "i": "1m",
            "o": str(close),
            "h": str(close),
            "l": str(close),
            "c": str(close),
            "v": "12.5",
            "x": closed,
        },
    })


# 21 priming closes leave SMA(9) just under SMA(21); a close at 50000 crosses it up.
BULLISH_PRIMING = [49000.0] * 12 + [48900.0] * 9
BULLISH_TRIGGER = 50000.0
BEARISH_PRIMING = [49000.0] * 12 + [49100.0] * 9
BEARISH_TRIGGER = 48000.0


# ---- websocket


class FakeApp:
    """Stands in for websocket.WebSocketApp; ``run_forever`` blocks until ``close``."""

    def __init__(self, factory, url, on_open=None, on_message=None, on_error=None, on_close=None):
        self.factory = factory
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.on_close = on_close
        self.closed = threading.Event()
        self.opened = threading.Event()
        self.run_kwargs: Dict[str, Any] = {}

    def run_forever(self, **kwargs):
        self.run_kwargs = kwargs
        if self.factory.should_fail(self.url):
            self.on_error(self, ConnectionRefusedError("connection refused"))
            self.closed.set()
            return False
        self.on_open(self)
        self.opened.set()
        self.closed.wait(10)
        self.on_close(self, 1000, "bye")
        return False

    def emit(self, message):
        self.on_message(self, message)

    def close(self):
        self.closed.set()


class FakeAppFactory:
    def __init__(self, fail: bool = False, fail_symbols=()):
        self.fail = fail
        self.fail_symbols = {s.upper() for s in fail_symbols}
        self.apps: List[FakeApp] = []
        self._lock = threading.Lock()

    def __call__(self, url, **callbacks):
        app = FakeApp(self, url, **callbacks)
        with self._lock:
            self.apps.append(app)
        return app

    def should_fail(self, url: str) -> bool:
        return self.fail or any(f"/{s.lower()}@kline_" in url for s in self.fail_symbols)

    def apps_for(self, symbol: str) -> List[FakeApp]:
        needle = f"/{symbol.lower()}@kline_"
        with self._lock:
            return [a for a in self.apps if needle in a.url]

    def latest(self, symbol: str) -> Optional[FakeApp]:
        apps = self.apps_for(symbol)
        return apps[-1] if apps else None

    def open_count(self) -> int:
        with self._lock:
            return sum(1 for a in self.apps if not a.closed.is_set())


# ---- http


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text or (json.dumps(body) if body is not None else "")

    def json(self):
        if self._body is None:
            raise ValueError("no json body")
        return self._body


class FakeSession:
    """
    Routes ``request`` calls by URL path. A route holds one response (reused)
    or a list consumed in order, the last one repeating. Exceptions in the list
    are raised instead of returned.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, List[Any]] = {}
        for path, resp in (routes or {}).items():
            self.route(path, resp)
        self.calls: List[Dict[str, Any]] = []

    def route(self, path: str, resp: Any) -> None:
        self.routes[path] = list(resp) if isinstance(resp, list) else [resp]

    def request(self, method, url, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "timeout": timeout})
        path = url.split("?", 1)[0]
        for suffix, queue in self.routes.items():
            if path.endswith(suffix):
                item = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(item, BaseException):
                    raise item
                return item
        return FakeResponse(404, {"code": -1, "msg": f"no route for {path}"})


# ---- exchange


class FakeExchange:
    def __init__(self, usdt: str = "1000"):
        self.usdt = usdt
        self.leverage_calls: List[tuple] = []
        self.orders: List[OrderRequest] = []
        self.leverage_errors: Dict[str, ExchangeError] = {}
        self.order_errors: Dict[str, ExchangeError] = {}
        self._lock = threading.Lock()

    def get_price(self, symbol: str) -> Decimal:
        return Decimal("50000.10")

    def get_24h_stats(self, symbol: str) -> DailyStats:
        return DailyStats(Decimal("120.5"), Decimal("0.24"), Decimal("50500"), Decimal("49100"), Decimal("1234.5"))

    def get_account_balance(self) -> List[Dict[str, Any]]:
        return [{"asset": "USDT", "walletBalance": self.usdt, "availableBalance": self.usdt}]

    def get_account_positions(self) -> List[Dict[str, Any]]:
        return [{"symbol": "BTCUSDT", "positionAmt": "0.010"}]

    def set_leverage(self, symbol: str, leverage: int) -> Dict[str, Any]:
        with self._lock:
            self.leverage_calls.append((symbol, leverage))
        if symbol in self.leverage_errors:
            raise self.leverage_errors[symbol]
        return {"symbol": symbol, "leverage": leverage}

    def place_order(self, order: OrderRequest) -> OrderResult:
        if order.symbol in self.order_errors:
            raise self.order_errors[order.symbol]
        with self._lock:
            self.orders.append(order)
            order_id = str(len(self.orders))
        return OrderResult(order_id=order_id, status="NEW", symbol=order.symbol, client_order_id=order.client_order_id)
