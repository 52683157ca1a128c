from fastapi import APIRouter, Depends

from ..schemas.order import OrderResponse
from ..security.auth import TokenPayload, require_admin
from ..services.orders import OrderService
from .deps import get_order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    admin: TokenPayload = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    return await orders.get_all_orders()


@router.get("/session/{session_id}", response_model=OrderResponse)
async def get_order_by_session(
    session_id: str,
    admin: TokenPayload = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    return await orders.get_order_by_session_id(session_id)
