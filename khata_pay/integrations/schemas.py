"""
Pydantic schemas for ledger backend request/response bodies.
"""
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer


class CreateOrderRequest(BaseModel):
    """Request body for creating a gateway order."""

    amount: int = Field(..., gt=0, description="Amount in currency minor units")
    customer_id: str = Field(..., min_length=1, serialization_alias="customerId")


class CreateOrderResponse(BaseModel):
    """Backend acknowledgement of an order creation request."""

    success: bool = False
    order_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("orderId", "order_id")
    )
    message: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class VerifyPaymentRequest(BaseModel):
    """
    Request body for server-side verification of a gateway result.

    The three gateway fields are forwarded exactly as the widget produced
    them; amount and date come from the locally held intent.
    """

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    customer_id: str = Field(..., serialization_alias="customerId")
    amount: Decimal = Field(
        ..., gt=0, max_digits=15, decimal_places=2, description="Amount in major units"
    )
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> float:
        # At most 15 significant digits, so the JSON number reads back exactly
        return float(amount)


class VerifyPaymentResponse(BaseModel):
    """Backend verdict on a gateway result."""

    success: bool = False
    receipt_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("receiptUrl", "receiptURL", "receipt_url")
    )
    message: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
