from .ids import generate_client_order_id

__all__ = [
    "generate_client_order_id",
]
