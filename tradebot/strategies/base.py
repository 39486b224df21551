from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from tradebot.core.safety import MAX_CONTEXT_BARS
from tradebot.core.types import Candle, OrderIntent, Side, TradeParams
from tradebot.trading.sizing import compute_notional, compute_qty


@dataclass(frozen=True)
class StrategyContext:
    """
    Rolling per-symbol state for one strategy. Immutable: ``push`` returns a
    new context, so a strategy's whole memory is whatever it is handed.
    """
    symbol: str
    strategy: str
    closes: Tuple[float, ...] = ()
    highs: Tuple[float, ...] = ()
    lows: Tuple[float, ...] = ()
    last_close_time: int = 0
    bars: int = 0
    max_bars: int = MAX_CONTEXT_BARS

    def push(self, candle: Candle) -> "StrategyContext":
        keep = self.max_bars
        return replace(
            self,
            closes=(self.closes + (candle.close,))[-keep:],
            highs=(self.highs + (candle.high,))[-keep:],
            lows=(self.lows + (candle.low,))[-keep:],
            last_close_time=candle.close_time,
            bars=self.bars + 1,
        )

    def frame(self) -> pd.DataFrame:
        return pd.DataFrame({"close": self.closes, "high": self.highs, "low": self.lows})


class Strategy:
    name = "base"
    defaults: Dict[str, Any] = {}

    def config(self, cfg: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged = dict(self.defaults)
        merged.update(cfg or {})
        return merged

    def min_bars(self, cfg: Dict[str, Any]) -> int:
        return 2

    def new_context(self, symbol: str) -> StrategyContext:
        return StrategyContext(symbol=symbol, strategy=self.name)

    def prepare(self, df: pd.DataFrame, cfg: Dict[str, Any]) -> pd.DataFrame:
        return df

    def long_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return False

    def short_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return False

    def size(self, price: float, params: TradeParams) -> float:
        notional = compute_notional(params.equity, params.risk_percent, params.leverage)
        return compute_qty(notional, price, params.quantity_precision)

    def evaluate(
        self,
        candle: Candle,
        context: StrategyContext,
        params: Optional[TradeParams] = None,
        cfg: Optional[Dict[str, Any]] = None,
    ) -> Tuple[StrategyContext, Optional[OrderIntent]]:
        cfg = self.config(cfg)
        ctx = context.push(candle)
        if len(ctx.closes) < self.min_bars(cfg):
            return ctx, None

        df = self.prepare(ctx.frame(), cfg)
        prev, row = df.iloc[-2], df.iloc[-1]
        if self.long_signal(prev, row, cfg):
            side = Side.BUY
        elif self.short_signal(prev, row, cfg):
            side = Side.SELL
        else:
            return ctx, None

        params = params or TradeParams()
        intent = OrderIntent(
            symbol=candle.symbol,
            side=side,
            quantity=self.size(candle.close, params),
            reason=f"{self.name} {side.value} close={candle.close}",
        )
        return ctx, intent
