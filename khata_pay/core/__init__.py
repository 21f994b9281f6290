"""Core payment reconciliation logic."""
from .errors import (
    AuthError,
    BusinessError,
    GatewayError,
    PaymentFlowError,
    PaymentValidationError,
    TransportError,
)
from .models import (
    CustomerIdentity,
    GatewayOrder,
    GatewayResult,
    LedgerSummary,
    PaymentIntent,
    VerificationOutcome,
)
from .state import PaymentAttempt, PaymentState

__all__ = [
    "AuthError",
    "BusinessError",
    "CustomerIdentity",
    "GatewayError",
    "GatewayOrder",
    "GatewayResult",
    "LedgerSummary",
    "PaymentAttempt",
    "PaymentFlowError",
    "PaymentIntent",
    "PaymentState",
    "PaymentValidationError",
    "TransportError",
    "VerificationOutcome",
]
