from __future__ import annotations
from dataclasses import dataclass, asdict, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

Json = Dict[str, Any]


class BotMode(str, Enum):
    DROPBOX = "dropbox"
    HYBRID = "hybrid"
    MANUAL = "manual"


class BotState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    RECONFIGURING = "reconfiguring"


class StreamStatus(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    CLOSED = "closed"
    ERRORED = "errored"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_MARKET = "STOP_MARKET"


AUTOMATED_MODES = (BotMode.DROPBOX, BotMode.HYBRID)


@dataclass(frozen=True)
class BotConfig:
    active: bool
    mode: BotMode
    strategy: str
    symbols: Tuple[str, ...]
    leverage: int
    risk_percent: float

    def to_dict(self) -> Json:
        return {
            "active": self.active,
            "mode": self.mode.value,
            "strategy": self.strategy,
            "symbols": list(self.symbols),
            "leverage": self.leverage,
            "riskPercent": self.risk_percent,
        }


DEFAULT_BOT_CONFIG = BotConfig(
    active=False,
    mode=BotMode.HYBRID,
    strategy="ma_crossover",
    symbols=("BTCUSDT", "ETHUSDT"),
    leverage=10,
    risk_percent=1.0,
)


@dataclass(frozen=True)
class Candle:
    symbol: str
    open_time: int
    close_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    is_closed: bool


@dataclass(frozen=True)
class TradeParams:
    leverage: int = 1
    risk_percent: float = 1.0
    equity: float = 0.0
    quantity_precision: int = 3


@dataclass(frozen=True)
class OrderIntent:
    symbol: str
    side: Side
    quantity: float
    reason: str = ""
    price: Optional[float] = None
    stop_price: Optional[float] = None


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    side: Side
    quantity: float
    price: Optional[float] = None
    stop_price: Optional[float] = None
    client_order_id: Optional[str] = None

    @property
    def order_type(self) -> OrderType:
        if self.stop_price is not None:
            return OrderType.STOP_MARKET
        if self.price is not None:
            return OrderType.LIMIT
        return OrderType.MARKET


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    status: str
    symbol: str
    client_order_id: Optional[str] = None
    raw: Json = field(default_factory=dict)

    def to_dict(self) -> Json:
        return asdict(self)


@dataclass(frozen=True)
class DailyStats:
    price_change: Decimal
    price_change_percent: Decimal
    high: Decimal
    low: Decimal
    volume: Decimal

    def to_dict(self) -> Json:
        return {
            "priceChange": str(self.price_change),
            "priceChangePercent": str(self.price_change_percent),
            "high": str(self.high),
            "low": str(self.low),
            "volume": str(self.volume),
        }
