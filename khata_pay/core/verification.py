"""
Server-side verification of gateway results.

The backend checks the gateway signature; this client only forwards the
result with the amount and date of the locally held intent.
"""
from typing import Optional

import structlog

from khata_pay.core.models import GatewayResult, PaymentIntent, VerificationOutcome
from khata_pay.integrations.ledger_backend import LedgerBackendClient
from khata_pay.integrations.schemas import VerifyPaymentRequest

logger = structlog.get_logger(__name__)

VERIFICATION_FAILED_MESSAGE = "Payment verification failed"


class VerificationClient:
    """Submits a gateway result for authoritative verification."""

    def __init__(self, backend: LedgerBackendClient):
        self.backend = backend

    @staticmethod
    def build_request(result: GatewayResult, intent: PaymentIntent) -> VerifyPaymentRequest:
        """
        Build the verification body.

        Gateway fields are copied unmodified. Amount and date come from the
        intent, never from anything the widget returned.
        """
        return VerifyPaymentRequest(
            razorpay_order_id=result.order_id,
            razorpay_payment_id=result.payment_id,
            razorpay_signature=result.signature,
            customer_id=intent.customer_id,
            amount=intent.amount_major_units,
            date=intent.payment_date,
        )

    async def verify(
        self,
        result: GatewayResult,
        intent: PaymentIntent,
        auth_token: Optional[str],
    ) -> VerificationOutcome:
        """
        Verify a gateway result with the backend.

        Args:
            result: Signed result from the widget
            intent: Original payment intent
            auth_token: Bearer token

        Returns:
            VerificationOutcome: verified=False carries the backend message
                (or a generic one) when the backend rejects the result

        Raises:
            AuthError: If the token is missing or rejected
            TransportError: If the request could not complete
            BusinessError: If the backend answered with an error status
        """
        response = await self.backend.verify_payment(
            self.build_request(result, intent), auth_token
        )

        if not response.success:
            logger.warning(
                "payment_verification_rejected",
                order_id=result.order_id,
                payment_id=result.payment_id,
                backend_message=response.message,
            )
            return VerificationOutcome(
                verified=False,
                message=response.message or VERIFICATION_FAILED_MESSAGE,
            )

        logger.info(
            "payment_verified",
            order_id=result.order_id,
            payment_id=result.payment_id,
            has_receipt=bool(response.receipt_url),
        )
        return VerificationOutcome(
            verified=True,
            receipt_url=response.receipt_url,
            message=response.message,
        )
