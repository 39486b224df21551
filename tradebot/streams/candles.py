import json
from typing import Any, Optional, Union

from tradebot.core.types import Candle


def parse_kline_message(raw: Union[str, bytes, dict], symbol: Optional[str] = None) -> Optional[Candle]:
    """
    Parse a kline stream payload into a Candle.

    Returns None for messages that are not kline events (subscription acks,
    pongs). Raises ValueError for kline events with missing or non-numeric
    fields.
    """
    msg: Any = raw
    if isinstance(raw, (bytes, bytearray)):
        msg = raw.decode("utf-8")
    if isinstance(msg, str):
        msg = json.loads(msg)
    if not isinstance(msg, dict):
        raise ValueError(f"unexpected message type: {type(msg).__name__}")

    # combined-stream envelope: {"stream": "...", "data": {...}}
    if "data" in msg and isinstance(msg["data"], dict):
        msg = msg["data"]

    k = msg.get("k")
    if not isinstance(k, dict):
        return None

    try:
        return Candle(
            symbol=str(k.get("s") or msg.get("s") or symbol or "").upper(),
            open_time=int(k["t"]),
            close_time=int(k["T"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
            volume=float(k["v"]),
            is_closed=bool(k["x"]),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed kline payload: {exc}") from exc
