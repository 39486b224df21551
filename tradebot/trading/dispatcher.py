from __future__ import annotations
import queue
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from tradebot.core.errors import ExchangeError, MarketDataError
from tradebot.core.logging import log
from tradebot.core.safety import SHUTDOWN_JOIN_SECONDS
from tradebot.core.types import AUTOMATED_MODES, BotConfig, Candle, OrderIntent, OrderResult, TradeParams
from tradebot.health.types import map_exception_to_reason
from tradebot.health.window import HealthWindow
from tradebot.strategies import StrategyContext, get_strategy
from tradebot.trading.orders import build_order_request, send_order

ConfigProvider = Callable[[], Optional[BotConfig]]
ParamsProvider = Callable[[BotConfig], TradeParams]
IntentObserver = Callable[[OrderIntent, Optional[OrderResult]], None]

_STOP = object()


def evaluate(
    strategy_id: str,
    symbol: str,
    candle: Candle,
    context: Optional[StrategyContext],
    params: Optional[TradeParams] = None,
    cfg: Optional[Dict[str, Any]] = None,
) -> Tuple[StrategyContext, Optional[OrderIntent]]:
    """
    Run one closed candle through a registered strategy.

    Pure with respect to ``context``: the returned context carries every bit of
    state the strategy needs next time. A context built for another strategy or
    symbol is discarded and evaluation starts from scratch.
    """
    strategy = get_strategy(strategy_id)
    if context is None or context.strategy != strategy.name or context.symbol != symbol:
        context = strategy.new_context(symbol)
    return strategy.evaluate(candle, context, params, cfg)


class _Lane:
    def __init__(self, symbol: str):
        self.symbol = symbol
        self.queue: "queue.Queue[Any]" = queue.Queue()
        self.lock = threading.Lock()
        self.context: Optional[StrategyContext] = None
        self.thread: Optional[threading.Thread] = None
        self.last_error: Optional[str] = None
        # bumped on reset; queued candles carry the value they were submitted under
        self.generation = 0


class StrategyDispatcher:
    """
    Per-symbol ordered evaluation of closed candles.

    ``submit`` only enqueues, so the stream thread never waits on strategy or
    order work. Each symbol has its own lane (queue + worker thread): candles
    for one symbol are evaluated strictly in arrival order, different symbols
    run concurrently.
    """

    def __init__(
        self,
        exchange,
        config_provider: ConfigProvider,
        params_provider: Optional[ParamsProvider] = None,
        dry_run: bool = False,
        health: Optional[HealthWindow] = None,
        on_intent: Optional[IntentObserver] = None,
        strategy_config: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self._exchange = exchange
        self._config_provider = config_provider
        self._params_provider = params_provider
        self._dry_run = dry_run
        self._health = health
        self._on_intent = on_intent
        self._strategy_config = dict(strategy_config or {})
        self._lanes: Dict[str, _Lane] = {}
        self._lock = threading.Lock()
        self._closed = False

    # ---- ingestion

    def submit(self, candle: Candle) -> None:
        if not candle.is_closed:
            return
        lane = self._lane(candle.symbol)
        if lane is not None:
            lane.queue.put_nowait((lane.generation, candle))

    def _lane(self, symbol: str) -> Optional[_Lane]:
        with self._lock:
            if self._closed:
                return None
            lane = self._lanes.get(symbol)
            if lane is None:
                lane = _Lane(symbol)
                lane.thread = threading.Thread(target=self._run_lane, args=(lane,), daemon=True, name=f"dispatch-{symbol.lower()}")
                self._lanes[symbol] = lane
                lane.thread.start()
            return lane

    def _run_lane(self, lane: _Lane) -> None:
        while True:
            item = lane.queue.get()
            try:
                if item is _STOP:
                    return
                generation, candle = item
                self._handle(lane, candle, generation)
            except Exception as exc:
                # the lane must outlive any single bad candle
                log(f"[dispatch] {lane.symbol} unexpected {type(exc).__name__}: {exc}", level="ERROR")
            finally:
                lane.queue.task_done()

    # ---- evaluation

    def _handle(self, lane: _Lane, candle: Candle, generation: int) -> None:
        config = self._config_provider()
        if config is None or not config.active:
            return
        if candle.symbol not in config.symbols:
            return

        params = self._params_provider(config) if self._params_provider else TradeParams(
            leverage=config.leverage, risk_percent=config.risk_percent
        )

        with lane.lock:
            if generation != lane.generation:
                log(f"[dispatch] {lane.symbol} drop candle from before reset close_time={candle.close_time}", level="DEBUG")
                return
            ctx = lane.context
            if ctx is not None and ctx.strategy == config.strategy and candle.close_time <= ctx.last_close_time:
                log(f"[dispatch] {lane.symbol} drop stale candle close_time={candle.close_time}", level="DEBUG")
                return
            try:
                ctx, intent = evaluate(
                    config.strategy, candle.symbol, candle, ctx, params, self._strategy_config.get(config.strategy)
                )
            except Exception as exc:
                lane.last_error = f"strategy {config.strategy}: {type(exc).__name__}: {exc}"
                log(f"[dispatch] {lane.symbol} strategy={config.strategy} failed: {exc}", level="ERROR")
                if self._health:
                    self._health.inc("strategy_error")
                return
            lane.context = ctx

        if intent is None:
            return

        if self._health:
            self._health.inc("decision")
        log(f"[dispatch] {lane.symbol} strategy={config.strategy} mode={config.mode.value} intent={intent.side.value} qty={intent.quantity} ({intent.reason})")

        if config.mode not in AUTOMATED_MODES:
            log(f"[dispatch] {lane.symbol} manual mode: signal recorded, no order placed")
            self._observe(intent, None)
            return

        self._execute(lane, config, intent)

    def _execute(self, lane: _Lane, config: BotConfig, intent: OrderIntent) -> None:
        order = build_order_request(intent)
        result: Optional[OrderResult] = None
        try:
            if self._health and order.quantity > 0 and not self._dry_run:
                self._health.inc("order_submit")
            result = send_order(self._exchange, order, self._dry_run)
        except (ExchangeError, MarketDataError) as exc:
            reason = map_exception_to_reason(exc)
            lane.last_error = f"order {intent.side.value} rejected [{reason}]: {exc}"
            log(f"[dispatch] {lane.symbol} strategy={config.strategy} order rejected [{reason}]: {exc}", level="ERROR")
            if self._health:
                self._health.inc("order_reject")
        self._observe(intent, result)

    def _observe(self, intent: OrderIntent, result: Optional[OrderResult]) -> None:
        if not self._on_intent:
            return
        try:
            self._on_intent(intent, result)
        except Exception as exc:
            log(f"[dispatch] intent observer failed: {exc}", level="WARN")

    # ---- lifecycle

    def reset(self, symbol: str) -> None:
        with self._lock:
            lane = self._lanes.get(symbol)
        if lane is None:
            return
        self._clear(lane)

    def reset_all(self) -> None:
        with self._lock:
            symbols = list(self._lanes.keys())
        for sym in symbols:
            self.reset(sym)

    def drop(self, symbol: str) -> None:
        """Reset the lane and retire its worker; a later candle starts a fresh lane."""
        with self._lock:
            lane = self._lanes.pop(symbol, None)
        if lane is not None:
            self._retire(lane)

    def drop_all(self) -> None:
        with self._lock:
            lanes = list(self._lanes.values())
            self._lanes.clear()
        for lane in lanes:
            self._retire(lane)

    def context(self, symbol: str) -> Optional[StrategyContext]:
        with self._lock:
            lane = self._lanes.get(symbol)
        return lane.context if lane else None

    def last_error(self, symbol: str) -> Optional[str]:
        with self._lock:
            lane = self._lanes.get(symbol)
        return lane.last_error if lane else None

    def last_errors(self) -> Dict[str, str]:
        with self._lock:
            return {sym: lane.last_error for sym, lane in self._lanes.items() if lane.last_error}

    def join(self, timeout: float = SHUTDOWN_JOIN_SECONDS) -> bool:
        """Wait until every queued candle has been handled. Returns False on timeout."""
        with self._lock:
            lanes = list(self._lanes.values())
        for lane in lanes:
            done = threading.Event()
            waiter = threading.Thread(target=lambda q=lane.queue: (q.join(), done.set()), daemon=True)
            waiter.start()
            if not done.wait(timeout):
                return False
        return True

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            lanes = list(self._lanes.values())
            self._lanes.clear()
        for lane in lanes:
            self._retire(lane)
        for lane in lanes:
            if lane.thread is not None and lane.thread is not threading.current_thread():
                lane.thread.join(timeout=SHUTDOWN_JOIN_SECONDS)

    def _clear(self, lane: _Lane) -> None:
        with lane.lock:
            self._drain(lane)
            lane.generation += 1
            lane.context = None
            lane.last_error = None

    def _retire(self, lane: _Lane) -> None:
        self._clear(lane)
        lane.queue.put_nowait(_STOP)

    def _drain(self, lane: _Lane) -> None:
        while True:
            try:
                lane.queue.get_nowait()
            except queue.Empty:
                return
            lane.queue.task_done()


__all__ = ["StrategyDispatcher", "evaluate"]
