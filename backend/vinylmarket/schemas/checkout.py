from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..core.config import Currency


class CheckoutItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vinyl_id: int = Field(..., alias="vinylId", gt=0, description="ID of the vinyl to purchase")
    quantity: int = Field(..., gt=0, description="Quantity of the vinyl to purchase")


class CheckoutRequest(BaseModel):
    """Cart submitted for checkout. Prices are always read from the catalog."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[CheckoutItem]
    customer_email: EmailStr = Field(..., alias="customerEmail")
    currency: Currency = Currency.USD


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Redirect URL of the hosted checkout page
    session_id: str = Field(..., serialization_alias="sessionId")


class WebhookAck(BaseModel):
    received: bool = True
