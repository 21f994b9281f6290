"""
Domain models for one ledger payment round trip.

PaymentIntent is the source of truth for what the user asked to pay. The
gateway order and the gateway's signed result are checked against it, never
the other way round.
"""
from datetime import datetime
from decimal import Decimal, DecimalException, Inexact, Underflow, localcontext
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from khata_pay.core.errors import PaymentValidationError

INVALID_AMOUNT_MESSAGE = "Please enter a valid amount"
AMOUNT_TOO_LARGE_MESSAGE = "Amount exceeds the maximum allowed payment"

MINOR_UNITS_PER_MAJOR = 100

# Enough digits for any chargeable amount; anything wider is not an amount
AMOUNT_PRECISION = 28


def parse_amount(raw: Any, max_minor_units: Optional[int] = None) -> int:
    """
    Parse a user-entered amount into currency minor units.

    The conversion is exact: the amount must be finite, positive and carry
    at most two decimal places. Arithmetic runs in a local decimal context
    where overflow, underflow and rounding are all rejected.

    Args:
        raw: Amount as typed by the user ("500", "500.00", 12.5)
        max_minor_units: Optional upper bound in minor units

    Returns:
        int: Amount in minor units (paise)

    Raises:
        PaymentValidationError: If the amount is missing, invalid or too large
    """
    if raw is None or isinstance(raw, bool):
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE)

    try:
        with localcontext() as ctx:
            ctx.prec = AMOUNT_PRECISION
            ctx.traps[Underflow] = True
            ctx.traps[Inexact] = True

            amount = Decimal(str(raw).strip())
            if not amount.is_finite() or amount <= 0:
                raise PaymentValidationError(INVALID_AMOUNT_MESSAGE)

            minor = amount * MINOR_UNITS_PER_MAJOR
            if minor <= 0 or minor != minor.to_integral_value():
                # Sub-paisa precision cannot be charged
                raise PaymentValidationError(INVALID_AMOUNT_MESSAGE)
            minor_units = int(minor)
    except DecimalException as e:
        raise PaymentValidationError(INVALID_AMOUNT_MESSAGE, original_error=e) from e

    if max_minor_units is not None and minor_units > max_minor_units:
        raise PaymentValidationError(AMOUNT_TOO_LARGE_MESSAGE)

    return minor_units


class PaymentIntent(BaseModel):
    """What the user asked to pay. Immutable once an order is requested."""

    customer_id: str = Field(..., min_length=1, description="Ledger customer id")
    amount_minor_units: int = Field(..., gt=0, description="Amount in paise")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)

    @property
    def amount_major_units(self) -> Decimal:
        """Amount in rupees, two decimal places."""
        return (Decimal(self.amount_minor_units) / MINOR_UNITS_PER_MAJOR).quantize(
            Decimal("0.01")
        )

    @property
    def payment_date(self) -> str:
        """Ledger posting date (YYYY-MM-DD)."""
        return self.created_at.strftime("%Y-%m-%d")


class GatewayOrder(BaseModel):
    """A gateway order created by the backend for exactly one intent."""

    order_id: str = Field(..., min_length=1)
    intent: PaymentIntent
    gateway_public_key: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


class GatewayResult(BaseModel):
    """
    Signed result produced by the checkout widget on success.

    Opaque to this package: it is presence-checked and forwarded to the
    backend unmodified.
    """

    order_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("razorpay_order_id", "order_id")
    )
    payment_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("razorpay_payment_id", "payment_id")
    )
    signature: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("razorpay_signature", "signature")
    )

    model_config = ConfigDict(frozen=True)


class VerificationOutcome(BaseModel):
    """Backend verdict on a gateway result. Terminal, never retried."""

    verified: bool
    receipt_url: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CustomerIdentity(BaseModel):
    """The ledger customer a payment is credited to."""

    customer_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("_id", "id", "customer_id")
    )
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class LedgerSummary(BaseModel):
    """Running totals of a customer's ledger, in rupees."""

    debit_amount: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices("debitAmount", "debit_amount")
    )
    credit_amount: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices("creditAmount", "credit_amount")
    )
    balance: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)
