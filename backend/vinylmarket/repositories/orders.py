from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Order, OrderItem


@dataclass(frozen=True)
class NewOrderItem:
    vinyl_id: int
    quantity: int
    price: Decimal


class OrdersRepository:
    """Order and order-item persistence.

    Every method takes the session that owns the current transaction;
    nothing here commits.
    """

    async def create_order(
        self,
        session: AsyncSession,
        *,
        email: str,
        stripe_session_id: str,
        stripe_payment_intent_id: str | None,
        total_amount: Decimal,
    ) -> Order:
        order = Order(
            email=email,
            stripe_session_id=stripe_session_id,
            stripe_payment_intent_id=stripe_payment_intent_id,
            total_amount=total_amount,
        )
        session.add(order)
        # Flush now so a duplicate session id fails before any item is written
        await session.flush()
        return order

    async def create_items(
        self, session: AsyncSession, order: Order, items: list[NewOrderItem]
    ) -> None:
        session.add_all(
            OrderItem(order_id=order.id, vinyl_id=item.vinyl_id, quantity=item.quantity, price=item.price)
            for item in items
        )
        await session.flush()

    async def find_by_id(self, session: AsyncSession, order_id: int) -> Order | None:
        return await session.scalar(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )

    async def find_by_session_id(self, session: AsyncSession, stripe_session_id: str) -> Order | None:
        return await session.scalar(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.stripe_session_id == stripe_session_id)
            .execution_options(populate_existing=True)
        )

    async def find_all(self, session: AsyncSession) -> list[Order]:
        result = await session.execute(
            select(Order).options(selectinload(Order.items)).order_by(Order.id.desc())
        )
        return list(result.scalars())

    async def delete_by_id(self, session: AsyncSession, order_id: int) -> None:
        # order_items rows go with it through ON DELETE CASCADE
        await session.execute(delete(Order).where(Order.id == order_id))
