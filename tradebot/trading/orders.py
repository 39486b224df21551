from typing import Optional

from tradebot.core.logging import log
from tradebot.core.types import OrderIntent, OrderRequest, OrderResult
from tradebot.utils.ids import generate_client_order_id

def build_order_request(intent: OrderIntent, client_order_id: Optional[str] = None) -> OrderRequest:
    return OrderRequest(
        symbol=intent.symbol,
        side=intent.side,
        quantity=intent.quantity,
        price=intent.price,
        stop_price=intent.stop_price,
        client_order_id=client_order_id or generate_client_order_id(intent.symbol.lower()),
    )

def send_order(exchange, order: OrderRequest, dry_run: bool) -> Optional[OrderResult]:
    if order.quantity <= 0:
        log(f"[order] skip {order.side.value.upper()} {order.symbol}: quantity {order.quantity} <= 0", level="WARN")
        return None

    if dry_run:
        log(f"[DRY RUN] {order.side.value.upper()} {order.order_type.value} {order.quantity} {order.symbol}")
        return None

    log(f"[LIVE] {order.side.value.upper()} {order.order_type.value} {order.quantity} {order.symbol}")
    return exchange.place_order(order)
