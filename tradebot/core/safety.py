MAX_LEVERAGE = 125
MIN_LEVERAGE = 1
MAX_RISK_PERCENT = 100.0
MAX_SYMBOLS = 50

HTTP_TIMEOUT_SECONDS = 10.0
MAX_HTTP_TIMEOUT_SECONDS = 60.0
MAX_READ_ATTEMPTS = 3

MAX_RECONNECT_ATTEMPTS = 20
DEFAULT_RECONNECT_ATTEMPTS = 5
WS_PING_INTERVAL_SECONDS = 20
WS_PING_TIMEOUT_SECONDS = 10

MAX_QUANTITY_PRECISION = 8
MAX_CONTEXT_BARS = 500

SHUTDOWN_JOIN_SECONDS = 5.0
