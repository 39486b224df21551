from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import websocket

from tradebot.core.errors import StreamError
from tradebot.core.logging import log
from tradebot.core.safety import (
    DEFAULT_RECONNECT_ATTEMPTS,
    SHUTDOWN_JOIN_SECONDS,
    WS_PING_INTERVAL_SECONDS,
    WS_PING_TIMEOUT_SECONDS,
)
from tradebot.core.types import Candle, StreamStatus
from tradebot.exchange.endpoints import FUTURES_WS_URL, KLINE_INTERVAL, kline_stream_url
from tradebot.health.window import HealthWindow
from tradebot.runtime.backoff import Backoff
from tradebot.streams.candles import parse_kline_message

CandleHandler = Callable[[Candle], None]
StatusHandler = Callable[[str, StreamStatus, Optional[StreamError]], None]

_ACTIVE = (StreamStatus.CONNECTING, StreamStatus.LIVE)


@dataclass
class SymbolSubscription:
    symbol: str
    url: str
    status: StreamStatus = StreamStatus.CONNECTING
    connection: Any = None
    reconnect_attempts: int = 0
    last_error: Optional[str] = None
    last_close_time: int = 0
    opened: bool = False
    stop_event: threading.Event = field(default_factory=threading.Event, repr=False)
    thread: Optional[threading.Thread] = field(default=None, repr=False)


class StreamManager:
    """
    Owns one kline connection per subscribed symbol.

    Each subscription runs in its own thread (``run_forever``) and reconnects
    with backoff while it remains subscribed. Closed candles are handed to
    ``on_candle``, which must not block; partial candles never leave this class.
    """

    def __init__(
        self,
        on_candle: CandleHandler,
        on_status: Optional[StatusHandler] = None,
        ws_base_url: str = FUTURES_WS_URL,
        interval: str = KLINE_INTERVAL,
        max_reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS,
        backoff: Optional[Backoff] = None,
        app_factory: Optional[Callable[..., Any]] = None,
        health: Optional[HealthWindow] = None,
    ):
        self._on_candle = on_candle
        self._on_status = on_status
        self._ws_base_url = ws_base_url
        self._interval = interval
        self._max_reconnect_attempts = max(int(max_reconnect_attempts), 0)
        self._backoff = backoff or Backoff()
        self._app_factory = app_factory or websocket.WebSocketApp
        self._health = health
        self._subs: Dict[str, SymbolSubscription] = {}
        self._lock = threading.Lock()

    # ---- public surface

    def subscribe(self, symbol: str) -> bool:
        symbol = symbol.strip().upper()
        with self._lock:
            existing = self._subs.get(symbol)
            # a subscription waiting out its backoff still owns the symbol
            if existing is not None and existing.status != StreamStatus.ERRORED:
                return False
            sub = SymbolSubscription(symbol=symbol, url=kline_stream_url(self._ws_base_url, symbol, self._interval))
            sub.thread = threading.Thread(target=self._run, args=(sub,), daemon=True, name=f"stream-{symbol.lower()}")
            self._subs[symbol] = sub
        log(f"[stream] subscribe {symbol} {sub.url}")
        self._notify(sub.symbol, StreamStatus.CONNECTING, None)
        sub.thread.start()
        return True

    def unsubscribe(self, symbol: str) -> bool:
        symbol = symbol.strip().upper()
        with self._lock:
            sub = self._subs.pop(symbol, None)
            if sub is None:
                return False
            sub.stop_event.set()
            conn = sub.connection
            sub.connection = None
            sub.status = StreamStatus.CLOSED
        self._close_quietly(symbol, conn)
        log(f"[stream] unsubscribe {symbol}")
        return True

    def unsubscribe_all(self, wait: bool = False) -> List[str]:
        with self._lock:
            symbols = list(self._subs.keys())
            threads = [s.thread for s in self._subs.values() if s.thread is not None]
        for sym in symbols:
            self.unsubscribe(sym)
        if wait:
            for t in threads:
                if t is not threading.current_thread():
                    t.join(timeout=SHUTDOWN_JOIN_SECONDS)
        return symbols

    def status(self, symbol: str) -> Optional[StreamStatus]:
        with self._lock:
            sub = self._subs.get(symbol.strip().upper())
            return sub.status if sub else None

    def statuses(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                sym: {
                    "status": sub.status.value,
                    "reconnect_attempts": sub.reconnect_attempts,
                    "last_error": sub.last_error,
                }
                for sym, sub in self._subs.items()
            }

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._subs.keys())

    def connection_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._subs.values() if s.status in _ACTIVE)

    # ---- subscription runner

    def _run(self, sub: SymbolSubscription) -> None:
        while not sub.stop_event.is_set():
            app = self._app_factory(
                sub.url,
                on_open=lambda ws: self._handle_open(sub, ws),
                on_message=lambda ws, msg: self._handle_message(sub, msg),
                on_error=lambda ws, err: self._handle_error(sub, err),
                on_close=lambda ws, *args: None,
            )
            with self._lock:
                if sub.stop_event.is_set():
                    break
                sub.connection = app
                sub.opened = False

            failure: Optional[BaseException] = None
            try:
                app.run_forever(ping_interval=WS_PING_INTERVAL_SECONDS, ping_timeout=WS_PING_TIMEOUT_SECONDS)
            except Exception as exc:
                failure = exc

            with self._lock:
                if sub.connection is app:
                    sub.connection = None
                if sub.stop_event.is_set():
                    break
                if sub.opened:
                    sub.reconnect_attempts = 0
                sub.reconnect_attempts += 1
                attempt = sub.reconnect_attempts
                reason = str(failure) if failure else (sub.last_error or "connection closed")
                sub.last_error = reason

            err = StreamError(sub.symbol, reason)
            if self._health:
                self._health.inc("stream_disconnect")
            self._set_status(sub, StreamStatus.CLOSED, err)

            if attempt > self._max_reconnect_attempts:
                log(f"[stream] {sub.symbol} giving up after {attempt - 1} reconnect attempts: {reason}", level="ERROR")
                if self._health:
                    self._health.inc("stream_errored")
                self._set_status(sub, StreamStatus.ERRORED, err)
                return

            delay = self._backoff.next_interval(attempt)
            log(f"[stream] {sub.symbol} closed ({reason}); reconnect {attempt}/{self._max_reconnect_attempts} in {delay:.1f}s", level="WARN")
            if sub.stop_event.wait(delay):
                break
            self._set_status(sub, StreamStatus.CONNECTING, None)

        log(f"[stream] {sub.symbol} runner exit")

    def _handle_open(self, sub: SymbolSubscription, ws: Any) -> None:
        if sub.stop_event.is_set():
            self._close_quietly(sub.symbol, ws)
            return
        with self._lock:
            sub.opened = True
            sub.reconnect_attempts = 0
            sub.last_error = None
        log(f"[stream] {sub.symbol} live")
        self._set_status(sub, StreamStatus.LIVE, None)

    def _handle_message(self, sub: SymbolSubscription, message: Any) -> None:
        if sub.stop_event.is_set():
            return
        try:
            candle = parse_kline_message(message, sub.symbol)
        except ValueError as exc:
            log(f"[stream] {sub.symbol} bad message: {exc}", level="WARN")
            if self._health:
                self._health.inc("bad_message")
            return
        if candle is None or not candle.is_closed:
            return

        if sub.last_close_time and candle.open_time > sub.last_close_time + 1:
            log(f"[stream] {sub.symbol} candle gap {sub.last_close_time} -> {candle.open_time}", level="WARN")
            if self._health:
                self._health.inc("candle_gap")
        sub.last_close_time = max(sub.last_close_time, candle.close_time)

        try:
            self._on_candle(candle)
        except Exception as exc:
            log(f"[stream] {sub.symbol} candle handoff failed: {type(exc).__name__}: {exc}", level="ERROR")

    def _handle_error(self, sub: SymbolSubscription, error: Any) -> None:
        if sub.stop_event.is_set():
            return
        with self._lock:
            sub.last_error = f"{type(error).__name__}: {error}"
        log(f"[stream] {sub.symbol} error: {sub.last_error}", level="WARN")

    # ---- helpers

    def _set_status(self, sub: SymbolSubscription, status: StreamStatus, error: Optional[StreamError]) -> None:
        with self._lock:
            if self._subs.get(sub.symbol) is not sub or sub.stop_event.is_set():
                return
            sub.status = status
        self._notify(sub.symbol, status, error)

    def _notify(self, symbol: str, status: StreamStatus, error: Optional[StreamError]) -> None:
        if not self._on_status:
            return
        try:
            self._on_status(symbol, status, error)
        except Exception as exc:
            log(f"[stream] status callback failed for {symbol}: {exc}", level="WARN")

    def _close_quietly(self, symbol: str, conn: Any) -> None:
        if conn is None:
            return
        try:
            conn.close()
        except Exception as exc:
            log(f"[stream] {symbol} close failed: {exc}", level="WARN")


__all__ = ["StreamManager", "SymbolSubscription"]
