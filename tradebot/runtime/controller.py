from __future__ import annotations
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

from tradebot.core.config import parse_bot_config, parse_mode, parse_strategy
from tradebot.core.errors import ExchangeError, MarketDataError, StreamError, ValidationError
from tradebot.core.logging import log
from tradebot.core.types import (
    DEFAULT_BOT_CONFIG,
    BotConfig,
    BotMode,
    BotState,
    Json,
    OrderRequest,
    OrderResult,
    StreamStatus,
    TradeParams,
)
from tradebot.health.types import map_exception_to_reason
from tradebot.health.window import HealthWindow

EQUITY_ASSET = "USDT"


@dataclass(frozen=True)
class StartResult:
    success: bool
    message: str
    config: BotConfig
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Json:
        return {
            "success": self.success,
            "message": self.message,
            "botState": self.config.to_dict(),
            "warnings": list(self.warnings),
        }


class BotController:
    """
    Lifecycle state machine for the bot.

    Owns the current BotConfig (replaced wholesale, never mutated) and drives
    the stream manager and dispatcher. start/stop/reconfigure and mode/strategy
    changes run under one lock, so they are applied one at a time in arrival
    order.
    """

    def __init__(
        self,
        exchange,
        streams,
        dispatcher,
        health: Optional[HealthWindow] = None,
        quantity_precision: int = 3,
        initial_config: BotConfig = DEFAULT_BOT_CONFIG,
    ):
        self._exchange = exchange
        self._streams = streams
        self._dispatcher = dispatcher
        self._health = health or HealthWindow()
        self._quantity_precision = quantity_precision
        self._config = replace(initial_config, active=False)
        self._state = BotState.STOPPED
        self._equity = 0.0
        self._warnings: List[str] = []
        self._degraded: Dict[str, str] = {}
        self._transition = threading.Lock()
        self._status_lock = threading.Lock()

    # ---- read side (no transition lock; config is an immutable snapshot)

    @property
    def config(self) -> BotConfig:
        return self._config

    @property
    def state(self) -> BotState:
        return self._state

    @property
    def health(self) -> HealthWindow:
        return self._health

    def current_config(self) -> Optional[BotConfig]:
        return self._config

    def trade_params(self, config: BotConfig) -> TradeParams:
        return TradeParams(
            leverage=config.leverage,
            risk_percent=config.risk_percent,
            equity=self._equity,
            quantity_precision=self._quantity_precision,
        )

    def status(self) -> Json:
        with self._status_lock:
            degraded = dict(self._degraded)
        return {
            "state": self._state.value,
            "botState": self._config.to_dict(),
            "equity": self._equity,
            "streams": self._streams.statuses(),
            "degraded": degraded,
            "errors": self._dispatcher.last_errors(),
            "warnings": list(self._warnings),
            "health": self._health.snapshot(),
        }

    # ---- transitions

    def start(self, payload: Union[BotConfig, Dict[str, Any]]) -> StartResult:
        raw = payload.to_dict() if isinstance(payload, BotConfig) else payload
        new_config = parse_bot_config(raw)

        with self._transition:
            previous = self._config
            if self._state == BotState.RUNNING:
                self._state = BotState.RECONFIGURING
                log(f"[bot] reconfigure {list(previous.symbols)} -> {list(new_config.symbols)}")
            else:
                self._state = BotState.STARTING
                log(f"[bot] start mode={new_config.mode.value} strategy={new_config.strategy} symbols={list(new_config.symbols)}")

            # pause dispatch, then full teardown: old and new symbol sets are never merged
            self._config = replace(previous, active=False)
            self._teardown()

            try:
                warnings = self._apply_leverage(new_config)
                warnings.extend(self._refresh_equity())
                for symbol in new_config.symbols:
                    self._streams.subscribe(symbol)
            except Exception as exc:
                log(f"[bot] start aborted: {type(exc).__name__}: {exc}", level="ERROR")
                self._teardown()
                self._config = replace(previous, active=False)
                self._state = BotState.STOPPED
                raise

            self._config = replace(new_config, active=True)
            self._warnings = warnings
            self._state = BotState.RUNNING
            log(f"[bot] running symbols={list(new_config.symbols)} warnings={len(warnings)}")
            return StartResult(True, "Bot started successfully", self._config, list(warnings))

    def stop(self) -> Json:
        with self._transition:
            if self._state == BotState.STOPPED and not self._streams.symbols():
                self._config = replace(self._config, active=False)
                return {"success": True, "message": "Bot already stopped", "botState": self._config.to_dict()}
            self._state = BotState.STOPPING
            log("[bot] stopping")
            self._config = replace(self._config, active=False)
            self._teardown()
            self._state = BotState.STOPPED
            log("[bot] stopped")
            return {"success": True, "message": "Bot stopped", "botState": self._config.to_dict()}

    def set_mode(self, mode: Any) -> Json:
        parsed = parse_mode(mode)
        with self._transition:
            self._config = replace(self._config, mode=parsed)
        log(f"[bot] mode -> {parsed.value}")
        return {"success": True, "message": f"Bot mode changed to {parsed.value}", "botState": self._config.to_dict()}

    def set_strategy(self, strategy: Any) -> Json:
        parsed = parse_strategy(strategy)
        with self._transition:
            changed = parsed != self._config.strategy
            self._config = replace(self._config, strategy=parsed)
            if changed:
                self._dispatcher.reset_all()
        log(f"[bot] strategy -> {parsed}")
        return {"success": True, "message": f"Strategy changed to {parsed}", "botState": self._config.to_dict()}

    def place_manual_order(self, order: OrderRequest) -> OrderResult:
        if self._config.mode != BotMode.MANUAL:
            raise ValidationError(f"Manual orders are only accepted in manual mode (current: {self._config.mode.value})")
        try:
            return self._exchange.place_order(order)
        except ExchangeError as exc:
            self._health.inc("order_reject")
            log(f"[bot] manual order rejected [{map_exception_to_reason(exc)}]: {exc}", level="ERROR")
            raise

    def shutdown(self) -> None:
        self.stop()
        self._dispatcher.shutdown()

    # ---- stream callbacks

    def on_stream_status(self, symbol: str, status: StreamStatus, error: Optional[StreamError]) -> None:
        # notifications arrive after the stream lock is released; a torn-down
        # runner's late ERRORED must not degrade a fresh subscription
        if status == StreamStatus.ERRORED and self._streams.status(symbol) != StreamStatus.ERRORED:
            log(f"[bot] {symbol} ignoring stale errored status", level="DEBUG")
            return
        with self._status_lock:
            if status == StreamStatus.ERRORED:
                self._degraded[symbol] = str(error) if error else "errored"
            elif status == StreamStatus.LIVE:
                self._degraded.pop(symbol, None)
        if status == StreamStatus.ERRORED:
            log(f"[bot] {symbol} degraded: {error}", level="ERROR")
            self._deactivate_if_all_degraded()

    def _deactivate_if_all_degraded(self) -> None:
        # runs on a stream thread; never called while the transition lock is held
        with self._transition:
            cfg = self._config
            if self._state != BotState.RUNNING or not cfg.active:
                return
            with self._status_lock:
                degraded = set(self._degraded)
            if all(sym in degraded for sym in cfg.symbols):
                self._config = replace(cfg, active=False)
                log("[bot] every symbol is degraded; dispatch paused until the next start", level="ERROR")

    # ---- internals (transition lock held)

    def _teardown(self) -> None:
        self._streams.unsubscribe_all()
        self._dispatcher.drop_all()
        with self._status_lock:
            self._degraded.clear()

    def _apply_leverage(self, config: BotConfig) -> List[str]:
        warnings: List[str] = []
        for symbol in config.symbols:
            try:
                self._exchange.set_leverage(symbol, config.leverage)
            except ExchangeError as exc:
                self._health.inc("leverage_reject")
                msg = f"{symbol}: leverage {config.leverage}x rejected: {exc}"
                warnings.append(msg)
                log(f"[bot] {msg}", level="WARN")
        return warnings

    def _refresh_equity(self) -> List[str]:
        try:
            balances = self._exchange.get_account_balance()
        except (ExchangeError, MarketDataError) as exc:
            log(f"[bot] equity refresh failed: {exc}", level="WARN")
            return [f"equity refresh failed: {exc}"]
        for row in balances:
            if row.get("asset") == EQUITY_ASSET:
                try:
                    self._equity = float(row.get("availableBalance") or row.get("walletBalance") or 0.0)
                except (TypeError, ValueError):
                    self._equity = 0.0
                return []
        self._equity = 0.0
        return [f"no {EQUITY_ASSET} balance; orders will be sized to zero"]
