from decimal import Decimal, ROUND_DOWN

def compute_notional(equity: float, risk_percent: float, leverage: float) -> float:
    return (equity * risk_percent / 100.0) * leverage

def compute_qty(notional: float, price: float, precision: int = 3) -> float:
    if price <= 0 or notional <= 0:
        return 0.0
    step = Decimal(1).scaleb(-int(precision))
    return float((Decimal(str(notional)) / Decimal(str(price))).quantize(step, rounding=ROUND_DOWN))
