from typing import Any, Dict
import pandas as pd
from tradebot.indicators import compute_sma
from tradebot.strategies.base import Strategy

class MovingAverageCrossoverStrategy(Strategy):
    name = "ma_crossover"
    defaults = {"fast_period": 9, "slow_period": 21}

    def min_bars(self, cfg: Dict[str, Any]) -> int:
        return int(cfg["slow_period"]) + 1

    def prepare(self, df: pd.DataFrame, cfg: Dict[str, Any]) -> pd.DataFrame:
        df = df.copy()
        df["ma_fast"] = compute_sma(df["close"], int(cfg["fast_period"]))
        df["ma_slow"] = compute_sma(df["close"], int(cfg["slow_period"]))
        return df

    def long_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return prev["ma_fast"] <= prev["ma_slow"] and row["ma_fast"] > row["ma_slow"]

    def short_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return prev["ma_fast"] >= prev["ma_slow"] and row["ma_fast"] < row["ma_slow"]
