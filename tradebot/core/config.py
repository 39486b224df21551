import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from tradebot.core.errors import ConfigError, ValidationError
from tradebot.core.safety import (
    MAX_LEVERAGE, MIN_LEVERAGE, MAX_RISK_PERCENT, MAX_SYMBOLS,
    HTTP_TIMEOUT_SECONDS, MAX_HTTP_TIMEOUT_SECONDS,
    DEFAULT_RECONNECT_ATTEMPTS, MAX_RECONNECT_ATTEMPTS, MAX_QUANTITY_PRECISION,
)
from tradebot.core.types import BotConfig, BotMode
from tradebot.exchange.endpoints import FUTURES_BASE_URL, FUTURES_WS_URL, SPOT_BASE_URL
from tradebot.infra.crypto import decrypt
from tradebot.strategies import available_strategies

def _i(v: Any, d: int) -> int:
    try: return int(v)
    except Exception: return d

def _f(v: Any, d: float) -> float:
    try: return float(v)
    except Exception: return d

def _b(v: Any, d: bool) -> bool:
    if v is None or v == "":
        return d
    return str(v).strip().lower() in ("1", "true", "yes", "on")

def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


@dataclass(frozen=True)
class Settings:
    api_key: str
    api_secret: str
    host: str = "0.0.0.0"
    port: int = 3000
    dry_run: bool = False
    http_timeout: float = HTTP_TIMEOUT_SECONDS
    recv_window: Optional[int] = None
    ws_max_reconnects: int = DEFAULT_RECONNECT_ATTEMPTS
    ws_backoff_base: float = 1.0
    ws_backoff_max: float = 30.0
    quantity_precision: int = 3
    spot_base_url: str = SPOT_BASE_URL
    futures_base_url: str = FUTURES_BASE_URL
    futures_ws_url: str = FUTURES_WS_URL

    def __repr__(self) -> str:
        return f"Settings(port={self.port}, dry_run={self.dry_run}, futures_base_url={self.futures_base_url!r})"


def _credential(env: Mapping[str, str], name: str) -> str:
    plain = (env.get(name) or "").strip()
    if plain:
        return plain
    token = (env.get(f"{name}_ENCRYPTED") or "").strip()
    if token:
        return decrypt(token, env.get("TRADEBOT_ENC_KEY")) or ""
    return ""


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    api_key = _credential(env, "BINANCE_API_KEY")
    api_secret = _credential(env, "BINANCE_SECRET_KEY")
    if not api_key or not api_secret:
        raise ConfigError("Binance API credentials not configured (BINANCE_API_KEY / BINANCE_SECRET_KEY)")

    recv_window = _i(env.get("RECV_WINDOW_MS"), 0)
    backoff_base = max(_f(env.get("WS_BACKOFF_BASE_SECONDS"), 1.0), 0.0)

    return Settings(
        api_key=api_key,
        api_secret=api_secret,
        host=env.get("HOST") or "0.0.0.0",
        port=int(_clamp(_i(env.get("PORT"), 3000), 1, 65535)),
        dry_run=_b(env.get("TRADEBOT_DRY_RUN"), False),
        http_timeout=_clamp(_f(env.get("HTTP_TIMEOUT_SECONDS"), HTTP_TIMEOUT_SECONDS), 1.0, MAX_HTTP_TIMEOUT_SECONDS),
        recv_window=int(_clamp(recv_window, 1, 60000)) if recv_window > 0 else None,
        ws_max_reconnects=int(_clamp(_i(env.get("WS_MAX_RECONNECTS"), DEFAULT_RECONNECT_ATTEMPTS), 0, MAX_RECONNECT_ATTEMPTS)),
        ws_backoff_base=backoff_base,
        ws_backoff_max=max(_f(env.get("WS_BACKOFF_MAX_SECONDS"), 30.0), backoff_base),
        quantity_precision=int(_clamp(_i(env.get("QUANTITY_PRECISION"), 3), 0, MAX_QUANTITY_PRECISION)),
        spot_base_url=(env.get("BINANCE_SPOT_BASE_URL") or SPOT_BASE_URL).rstrip("/"),
        futures_base_url=(env.get("BINANCE_FUTURES_BASE_URL") or FUTURES_BASE_URL).rstrip("/"),
        futures_ws_url=(env.get("BINANCE_FUTURES_WS_URL") or FUTURES_WS_URL).rstrip("/"),
    )


def parse_mode(value: Any) -> BotMode:
    try:
        return BotMode(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid mode: {value!r} (expected one of {[m.value for m in BotMode]})") from None


def parse_strategy(value: Any) -> str:
    key = str(value or "").strip().lower()
    if key not in available_strategies():
        raise ValidationError(f"Invalid strategy: {value!r} (expected one of {list(available_strategies())})")
    return key


def parse_symbols(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [s for s in value.split(",")]
    if not isinstance(value, (list, tuple)):
        raise ValidationError("symbols must be a non-empty list")
    out = []
    for raw in value:
        sym = str(raw or "").strip().upper()
        if not sym:
            continue
        if not sym.isalnum():
            raise ValidationError(f"Invalid symbol: {raw!r}")
        if sym not in out:
            out.append(sym)
    if not out:
        raise ValidationError("symbols must be a non-empty list")
    if len(out) > MAX_SYMBOLS:
        raise ValidationError(f"Too many symbols: {len(out)} > {MAX_SYMBOLS}")
    return tuple(out)


def parse_bot_config(payload: Dict[str, Any]) -> BotConfig:
    """
    Validate an operator start request into an inactive BotConfig.
    Accepts both camelCase (riskPercent) and snake_case (risk_percent) keys.
    """
    data = dict(payload or {})
    risk_raw = data.get("riskPercent", data.get("risk_percent"))

    missing = [
        name for name, val in (
            ("mode", data.get("mode")),
            ("strategy", data.get("strategy")),
            ("symbols", data.get("symbols")),
            ("leverage", data.get("leverage")),
            ("riskPercent", risk_raw),
        )
        if val is None or val == "" or val == [] or val == ()
    ]
    if missing:
        raise ValidationError(f"Missing required parameters: {', '.join(missing)}")

    leverage = _i(data.get("leverage"), 0)
    if isinstance(data.get("leverage"), bool) or leverage < MIN_LEVERAGE or leverage > MAX_LEVERAGE or leverage != _f(data.get("leverage"), -1):
        raise ValidationError(f"leverage must be an integer between {MIN_LEVERAGE} and {MAX_LEVERAGE}")

    risk_percent = _f(risk_raw, 0.0)
    if isinstance(risk_raw, bool) or not (0.0 < risk_percent <= MAX_RISK_PERCENT):
        raise ValidationError(f"riskPercent must be > 0 and <= {MAX_RISK_PERCENT}")

    return BotConfig(
        active=False,
        mode=parse_mode(data.get("mode")),
        strategy=parse_strategy(data.get("strategy")),
        symbols=parse_symbols(data.get("symbols")),
        leverage=leverage,
        risk_percent=risk_percent,
    )
