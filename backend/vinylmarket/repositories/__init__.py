from .orders import NewOrderItem, OrdersRepository
from .reviews import ReviewsRepository
from .system_logs import SystemLogsRepository
from .vinyls import VinylsRepository, round_rating

__all__ = [
    "NewOrderItem",
    "OrdersRepository",
    "ReviewsRepository",
    "SystemLogsRepository",
    "VinylsRepository",
    "round_rating",
]
