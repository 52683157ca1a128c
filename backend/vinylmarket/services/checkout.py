from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from ..core.config import Settings
from ..core.errors import EmptyCartError, NotFoundError
from ..repositories import VinylsRepository
from ..schemas.checkout import CheckoutRequest, CheckoutResponse
from ..security.auth import TokenPayload
from .gateway import GatewayLineItem, PaymentGateway, to_minor_units

logger = structlog.get_logger(__name__)


class CheckoutService:
    """Builds gateway checkout sessions from a cart.

    Prices come from the catalog at request time; client-side prices are
    never accepted. Nothing is persisted here: the order is created later
    from the gateway's webhook.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        settings: Settings,
        vinyls: VinylsRepository | None = None,
    ):
        self._session_factory = session_factory
        self._gateway = gateway
        self._settings = settings
        self._vinyls = vinyls or VinylsRepository()

    async def create_checkout_session(
        self, request: CheckoutRequest, user: TokenPayload | None = None
    ) -> CheckoutResponse:
        if not request.items:
            raise EmptyCartError("No items provided")

        currency = request.currency.value.lower()
        line_items = await self._build_line_items(request, currency)
        customer_email = (user.email if user and user.email else None) or request.customer_email

        session = await self._gateway.create_checkout_session(
            line_items=line_items,
            success_url=self._settings.checkout_success_url,
            cancel_url=self._settings.checkout_cancel_url,
            customer_email=customer_email,
        )

        logger.info(
            "checkout_session_created",
            session_id=session.id,
            items=len(line_items),
            currency=currency,
            amount_minor=sum(item.unit_amount * item.quantity for item in line_items),
        )
        return CheckoutResponse(session_id=session.url or session.id)

    async def _build_line_items(self, request: CheckoutRequest, currency: str) -> list[GatewayLineItem]:
        requested_ids = [item.vinyl_id for item in request.items]
        async with self._session_factory() as session:
            vinyls = await self._vinyls.find_many(session, requested_ids)

        line_items = []
        for item in request.items:
            vinyl = vinyls.get(item.vinyl_id)
            if vinyl is None:
                raise NotFoundError(f"Vinyl with ID {item.vinyl_id} not found")

            line_items.append(
                GatewayLineItem(
                    name=f"{vinyl.name} — {vinyl.author_name}",
                    unit_amount=to_minor_units(vinyl.price),
                    currency=currency,
                    quantity=item.quantity,
                    vinyl_id=vinyl.id,
                    image=vinyl.image,
                )
            )
        return line_items
