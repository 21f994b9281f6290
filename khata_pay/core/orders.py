"""Gateway order initiation."""
from typing import Optional

import structlog

from khata_pay.core.errors import BusinessError, PaymentValidationError
from khata_pay.core.models import GatewayOrder, PaymentIntent
from khata_pay.integrations.ledger_backend import LedgerBackendClient
from khata_pay.integrations.schemas import CreateOrderRequest

logger = structlog.get_logger(__name__)

ORDER_CREATION_FAILED_MESSAGE = "Failed to create payment order"


class OrderInitiator:
    """Asks the ledger backend to create a gateway order for an intent."""

    def __init__(self, backend: LedgerBackendClient):
        self.backend = backend

    @staticmethod
    def _validate_intent(intent: PaymentIntent) -> None:
        """
        Validate order creation input.

        Raises:
            PaymentValidationError: If validation fails
        """
        if not isinstance(intent.amount_minor_units, int) or intent.amount_minor_units <= 0:
            raise PaymentValidationError("Amount must be a positive whole number of paise")

        if not intent.customer_id:
            raise PaymentValidationError("Customer information not loaded")

    async def create_order(
        self,
        intent: PaymentIntent,
        auth_token: Optional[str],
        gateway_public_key: str,
    ) -> GatewayOrder:
        """
        Create a gateway order for the intent.

        Args:
            intent: Payment intent
            auth_token: Bearer token
            gateway_public_key: Key the widget will be opened with

        Returns:
            GatewayOrder: Order bound to this intent

        Raises:
            PaymentValidationError: If the intent is invalid (no request sent)
            AuthError: If the token is missing or rejected
            TransportError: If the request could not complete
            BusinessError: If the backend declined to create the order
        """
        self._validate_intent(intent)

        response = await self.backend.create_order(
            CreateOrderRequest(amount=intent.amount_minor_units, customer_id=intent.customer_id),
            auth_token,
        )

        if not response.success or not response.order_id:
            logger.warning(
                "order_creation_declined",
                customer_id=intent.customer_id,
                backend_message=response.message,
            )
            raise BusinessError(response.message or ORDER_CREATION_FAILED_MESSAGE)

        logger.info(
            "order_created",
            order_id=response.order_id,
            customer_id=intent.customer_id,
            amount_minor_units=intent.amount_minor_units,
        )

        return GatewayOrder(
            order_id=response.order_id,
            intent=intent,
            gateway_public_key=gateway_public_key,
        )
