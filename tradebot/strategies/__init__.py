from typing import Tuple

from tradebot.core.errors import ValidationError
from tradebot.strategies.base import Strategy, StrategyContext
from tradebot.strategies.bollinger import BollingerStrategy
from tradebot.strategies.ma_crossover import MovingAverageCrossoverStrategy
from tradebot.strategies.macd import MacdStrategy
from tradebot.strategies.rsi_bounce import RsiBounceStrategy

_REG = {
    "ma_crossover": MovingAverageCrossoverStrategy(),
    "rsi_bounce": RsiBounceStrategy(),
    "bollinger": BollingerStrategy(),
    "macd": MacdStrategy(),
}

def register_strategy(strategy: Strategy) -> Strategy:
    key = (strategy.name or "").strip().lower()
    if not key or key == Strategy.name:
        raise ValueError("strategy must define a name")
    _REG[key] = strategy
    return strategy

def available_strategies() -> Tuple[str, ...]:
    return tuple(_REG.keys())

def get_strategy(name: str) -> Strategy:
    key = (name or "").strip().lower()
    if key not in _REG:
        raise ValidationError(f"Unknown strategy: {name}")
    return _REG[key]

__all__ = [
    "Strategy",
    "StrategyContext",
    "available_strategies",
    "get_strategy",
    "register_strategy",
]
