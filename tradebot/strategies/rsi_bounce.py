from typing import Any, Dict
import pandas as pd
from tradebot.indicators import compute_rsi
from tradebot.strategies.base import Strategy

class RsiBounceStrategy(Strategy):
    name = "rsi_bounce"
    defaults = {"rsi_period": 14, "oversold": 30.0, "overbought": 70.0}

    def min_bars(self, cfg: Dict[str, Any]) -> int:
        return int(cfg["rsi_period"]) + 2

    def prepare(self, df: pd.DataFrame, cfg: Dict[str, Any]) -> pd.DataFrame:
        df = df.copy()
        df["rsi"] = compute_rsi(df["close"], int(cfg["rsi_period"]))
        return df

    # bounce = RSI leaves the extreme zone, not merely sits in it
    def long_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        level = float(cfg["oversold"])
        return prev["rsi"] < level <= row["rsi"]

    def short_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        level = float(cfg["overbought"])
        return prev["rsi"] > level >= row["rsi"]
