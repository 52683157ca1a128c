from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from ..core.errors import DuplicateOrderError, NotFoundError
from ..core.metrics import orders_created_total
from ..models import Order
from ..repositories import NewOrderItem, OrdersRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderItemInput:
    """An order line as reconstructed from the gateway.

    ``vinyl_id`` is whatever the product metadata carried and may not be a
    number at all.
    """
    vinyl_id: object
    quantity: int
    price: Decimal


def parse_vinyl_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def resolve_items(items: list[OrderItemInput]) -> list[NewOrderItem]:
    """Drop lines whose vinyl id cannot be resolved instead of failing the order."""
    resolved = []
    for item in items:
        vinyl_id = parse_vinyl_id(item.vinyl_id)
        if vinyl_id is None:
            logger.warning("order_item_dropped", vinyl_id=repr(item.vinyl_id), quantity=item.quantity)
            continue
        resolved.append(NewOrderItem(vinyl_id=vinyl_id, quantity=item.quantity, price=item.price))
    return resolved


def _is_session_id_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "stripe_session_id" in message or "orders_stripe_session_id" in message


class OrderService:
    """Order Store: one order plus its items per paid checkout session."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository: OrdersRepository | None = None,
    ):
        self._session_factory = session_factory
        self._orders = repository or OrdersRepository()

    async def create_order(
        self,
        *,
        email: str,
        stripe_session_id: str,
        stripe_payment_intent_id: str | None,
        total_amount: Decimal,
        items: list[OrderItemInput],
    ) -> Order:
        """Persist the order and its resolvable items in one transaction.

        Raises ``DuplicateOrderError`` when an order for the session already
        exists; any other storage error propagates unchanged.
        """
        resolved = resolve_items(items)

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    order = await self._orders.create_order(
                        session,
                        email=email,
                        stripe_session_id=stripe_session_id,
                        stripe_payment_intent_id=stripe_payment_intent_id,
                        total_amount=total_amount,
                    )
                    await self._orders.create_items(session, order, resolved)
            except IntegrityError as e:
                if _is_session_id_violation(e):
                    raise DuplicateOrderError(stripe_session_id) from e
                raise

            created = await self._orders.find_by_id(session, order.id)

        orders_created_total.inc()
        logger.info(
            "order_created",
            order_id=created.id,
            stripe_session_id=stripe_session_id,
            items=len(resolved),
            items_dropped=len(items) - len(resolved),
            total_amount=str(total_amount),
        )
        return created

    async def get_order_by_session_id(self, stripe_session_id: str) -> Order:
        async with self._session_factory() as session:
            order = await self._orders.find_by_session_id(session, stripe_session_id)
        if order is None:
            raise NotFoundError(f"Order for session {stripe_session_id} not found")
        return order

    async def get_all_orders(self) -> list[Order]:
        async with self._session_factory() as session:
            return await self._orders.find_all(session)
