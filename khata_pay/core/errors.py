"""
Error taxonomy for the payment reconciliation flow.

Every stage of the flow raises one of these; the controller converts each
into exactly one terminal state. Cancellation by the user is not an error
and has no exception here.
"""
from enum import Enum
from typing import Optional


class FlowErrorCode(Enum):
    """Classification of payment flow failures."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    BUSINESS_ERROR = "BUSINESS_ERROR"
    GATEWAY_ERROR = "GATEWAY_ERROR"


SESSION_EXPIRED_MESSAGE = "Session expired, please login again"
TRANSPORT_ERROR_MESSAGE = "Error while processing payment"


class PaymentFlowError(Exception):
    """Base exception for payment flow errors."""

    code = FlowErrorCode.BUSINESS_ERROR

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        """
        Initialize payment flow error.

        Args:
            message: User-presentable error message
            original_error: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class PaymentValidationError(PaymentFlowError):
    """Raised when local input validation fails. Never reaches the network."""

    code = FlowErrorCode.VALIDATION_ERROR


class AuthError(PaymentFlowError):
    """Raised when the auth token is missing or rejected by the backend."""

    code = FlowErrorCode.UNAUTHORIZED


class TransportError(PaymentFlowError):
    """Raised when a backend request could not complete."""

    code = FlowErrorCode.TRANSPORT_ERROR


class BusinessError(PaymentFlowError):
    """Raised when the backend returns a well-formed failure response."""

    code = FlowErrorCode.BUSINESS_ERROR


class GatewayError(PaymentFlowError):
    """Raised when the payment widget reports a failure."""

    code = FlowErrorCode.GATEWAY_ERROR


class InvalidTransitionError(Exception):
    """Raised when a payment attempt is driven through an illegal transition."""

    pass
