from tradebot.health.types import map_exception_to_reason
from tradebot.health.window import HealthWindow

__all__ = [
    "HealthWindow",
    "map_exception_to_reason",
]
