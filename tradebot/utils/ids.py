from __future__ import annotations
from uuid import uuid4

# Binance caps newClientOrderId at 36 chars of [.A-Z:/a-z0-9_-]
_MAX_LEN = 36


def generate_client_order_id(prefix: str = "tb", suffix: str | None = None) -> str:
    base = f"{prefix}-{uuid4().hex[:16]}"
    if suffix:
        base = f"{base}-{suffix}"
    return base[:_MAX_LEN]
