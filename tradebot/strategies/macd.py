from typing import Any, Dict
import pandas as pd
from tradebot.indicators import compute_macd
from tradebot.strategies.base import Strategy

class MacdStrategy(Strategy):
    name = "macd"
    defaults = {"macd_fast": 12, "macd_slow": 26, "macd_signal": 9}

    def min_bars(self, cfg: Dict[str, Any]) -> int:
        return int(cfg["macd_slow"]) + int(cfg["macd_signal"])

    def prepare(self, df: pd.DataFrame, cfg: Dict[str, Any]) -> pd.DataFrame:
        df = df.copy()
        df["macd"], df["macd_signal"], df["macd_hist"] = compute_macd(
            df["close"], int(cfg["macd_fast"]), int(cfg["macd_slow"]), int(cfg["macd_signal"])
        )
        return df

    def long_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return prev["macd"] <= prev["macd_signal"] and row["macd"] > row["macd_signal"]

    def short_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return prev["macd"] >= prev["macd_signal"] and row["macd"] < row["macd_signal"]
