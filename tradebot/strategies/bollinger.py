from typing import Any, Dict
import pandas as pd
from tradebot.indicators import compute_bollinger
from tradebot.strategies.base import Strategy

class BollingerStrategy(Strategy):
    name = "bollinger"
    defaults = {"bb_period": 20, "bb_std": 2.0}

    def min_bars(self, cfg: Dict[str, Any]) -> int:
        return int(cfg["bb_period"]) + 1

    def prepare(self, df: pd.DataFrame, cfg: Dict[str, Any]) -> pd.DataFrame:
        df = df.copy()
        df["bb_lower"], df["bb_mid"], df["bb_upper"] = compute_bollinger(
            df["close"], int(cfg["bb_period"]), float(cfg["bb_std"])
        )
        return df

    def long_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return prev["close"] >= prev["bb_lower"] and row["close"] < row["bb_lower"]

    def short_signal(self, prev: pd.Series, row: pd.Series, cfg: Dict[str, Any]) -> bool:
        return prev["close"] <= prev["bb_upper"] and row["close"] > row["bb_upper"]
