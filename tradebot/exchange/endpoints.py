from enum import Enum

SPOT_BASE_URL = "https://api.binance.com"
FUTURES_BASE_URL = "https://fapi.binance.com"
FUTURES_WS_URL = "wss://fstream.binance.com/ws"

PRICE = "/api/v3/ticker/price"
STATS_24H = "/api/v3/ticker/24hr"
ACCOUNT = "/fapi/v2/account"
LEVERAGE = "/fapi/v1/leverage"
ORDER = "/fapi/v1/order"

KLINE_INTERVAL = "1m"
API_KEY_HEADER = "X-MBX-APIKEY"


class Surface(str, Enum):
    MARKET_DATA = "market_data"
    TRADING = "trading"


def kline_stream_url(ws_base_url: str, symbol: str, interval: str = KLINE_INTERVAL) -> str:
    return f"{ws_base_url.rstrip('/')}/{symbol.lower()}@kline_{interval}"
