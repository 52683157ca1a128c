from .catalog import User, Vinyl
from .order import Order, OrderItem
from .review import Review
from .system_log import LogLevel, SystemLog

__all__ = ["User", "Vinyl", "Order", "OrderItem", "Review", "LogLevel", "SystemLog"]
