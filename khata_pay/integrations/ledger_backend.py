"""
Ledger backend API client with error classification.

Implements:
- Bearer authentication with a token supplied per call
- Classification of every failure into the payment flow taxonomy
- Exponential backoff for idempotent reads only
"""
import time
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from khata_pay.config import Settings, get_settings
from khata_pay.core.errors import (
    SESSION_EXPIRED_MESSAGE,
    TRANSPORT_ERROR_MESSAGE,
    AuthError,
    BusinessError,
    PaymentFlowError,
    TransportError,
)
from khata_pay.core.models import CustomerIdentity, LedgerSummary
from khata_pay.integrations.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from khata_pay.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

COMMON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}

GATEWAY_KEY_PATH = "/customers/payments/get-key"
CURRENT_CUSTOMER_PATH = "/customers/me"
LEDGER_SUMMARY_PATH = "/customers/me/summary"
CREATE_ORDER_PATH = "/customers/payments/create-order"
VERIFY_PAYMENT_PATH = "/customers/payments/verify"


class LedgerBackendClient:
    """
    Async client for the ledger backend.

    Every method either returns a parsed response or raises a
    PaymentFlowError subclass:
    - AuthError: token missing, or 401/403 from the backend
    - TransportError: connection failure, timeout, unreadable response
    - BusinessError: error response carrying a backend message

    Writes (order creation, verification) are never retried; repeating
    them could create a second gateway order or a second ledger credit.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize ledger backend client.

        Args:
            settings: Optional settings (defaults to cached settings)
            http_client: Optional preconfigured httpx client
        """
        self.settings = settings or get_settings()
        self._client = http_client or httpx.AsyncClient(
            base_url=self.settings.backend_base_url,
            timeout=self.settings.backend_timeout_seconds,
            headers=COMMON_HEADERS,
        )

        logger.info(
            "ledger_backend_client_initialized",
            base_url=self.settings.backend_base_url,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "LedgerBackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @staticmethod
    def _auth_headers(auth_token: Optional[str]) -> Dict[str, str]:
        """
        Build the bearer header for an authenticated call.

        Raises:
            AuthError: If no token was supplied
        """
        if not auth_token:
            raise AuthError(SESSION_EXPIRED_MESSAGE)
        return {"Authorization": f"Bearer {auth_token}"}

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        """Extract the backend-supplied message from an error body, if any."""
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"] or None
        return None

    @classmethod
    def _classify_response(cls, response: httpx.Response) -> Optional[PaymentFlowError]:
        """
        Classify a non-success HTTP response.

        Args:
            response: Backend response

        Returns:
            Optional[PaymentFlowError]: Classified error, None for 2xx
        """
        if response.is_success:
            return None

        message = cls._error_message(response)
        if response.status_code in (401, 403):
            return AuthError(message or SESSION_EXPIRED_MESSAGE)
        if message:
            return BusinessError(message)
        # No readable body, e.g. a proxy error page
        return TransportError(TRANSPORT_ERROR_MESSAGE)

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        auth_token: Optional[str] = None,
        authenticated: bool = True,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Perform one backend request and return its JSON body.

        Raises:
            PaymentFlowError: Classified failure
        """
        headers = self._auth_headers(auth_token) if authenticated else {}
        start = time.perf_counter()

        try:
            response = await self._client.request(method, path, headers=headers, json=payload)
        except httpx.TransportError as e:
            metrics.record_backend_call(operation, "transport_error", time.perf_counter() - start)
            logger.error(
                "ledger_backend_transport_error",
                operation=operation,
                error_message=str(e),
            )
            raise TransportError(TRANSPORT_ERROR_MESSAGE, original_error=e) from e

        duration = time.perf_counter() - start
        error = self._classify_response(response)
        if error is not None:
            metrics.record_backend_call(operation, error.code.value.lower(), duration)
            logger.warning(
                "ledger_backend_error_response",
                operation=operation,
                status_code=response.status_code,
                error_code=error.code.value,
                error_message=error.message,
            )
            raise error

        try:
            body = response.json()
        except ValueError as e:
            metrics.record_backend_call(operation, "transport_error", duration)
            logger.error("ledger_backend_invalid_json", operation=operation)
            raise TransportError(TRANSPORT_ERROR_MESSAGE, original_error=e) from e

        if not isinstance(body, dict):
            metrics.record_backend_call(operation, "transport_error", duration)
            raise TransportError(TRANSPORT_ERROR_MESSAGE)

        metrics.record_backend_call(operation, "ok", duration)
        return body

    async def _read(
        self,
        operation: str,
        path: str,
        auth_token: Optional[str] = None,
        authenticated: bool = True,
    ) -> Dict[str, Any]:
        """GET with retry on transport failures."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TransportError),
            stop=stop_after_attempt(self.settings.backend_retry_attempts),
            wait=wait_exponential(multiplier=self.settings.backend_retry_wait_seconds, max=8),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "ledger_backend_retrying",
                        operation=operation,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await self._request(
                    operation, "GET", path, auth_token=auth_token, authenticated=authenticated
                )
        raise TransportError(TRANSPORT_ERROR_MESSAGE)  # For type checker

    async def get_gateway_key(self) -> str:
        """
        Fetch the gateway's public key used to open the checkout widget.

        Returns:
            str: Gateway public key

        Raises:
            PaymentFlowError: If the key cannot be fetched
        """
        body = await self._read("get_gateway_key", GATEWAY_KEY_PATH, authenticated=False)
        key = body.get("key")
        if not key:
            raise BusinessError("Payment gateway key not available")
        return key

    async def get_current_customer(self, auth_token: Optional[str]) -> CustomerIdentity:
        """
        Resolve the customer the token belongs to.

        Args:
            auth_token: Customer bearer token

        Returns:
            CustomerIdentity: Authenticated customer
        """
        body = await self._read("get_current_customer", CURRENT_CUSTOMER_PATH, auth_token)
        try:
            return CustomerIdentity.model_validate(body.get("customer") or {})
        except ValidationError as e:
            raise BusinessError("Invalid customer data received", original_error=e) from e

    async def get_ledger_summary(self, auth_token: Optional[str]) -> LedgerSummary:
        """
        Fetch debit/credit totals and the running balance.

        Args:
            auth_token: Customer bearer token

        Returns:
            LedgerSummary: Current ledger totals
        """
        body = await self._read("get_ledger_summary", LEDGER_SUMMARY_PATH, auth_token)
        try:
            return LedgerSummary.model_validate(body.get("summary") or {})
        except ValidationError as e:
            raise BusinessError("Invalid ledger summary received", original_error=e) from e

    async def create_order(
        self, request: CreateOrderRequest, auth_token: Optional[str]
    ) -> CreateOrderResponse:
        """
        Ask the backend to create a gateway order.

        A response with success=false is returned, not raised; the caller
        decides how to report it.

        Args:
            request: Order creation body
            auth_token: Bearer token

        Returns:
            CreateOrderResponse: Backend acknowledgement
        """
        logger.info(
            "creating_gateway_order",
            customer_id=request.customer_id,
            amount_minor_units=request.amount,
        )
        body = await self._request(
            "create_order",
            "POST",
            CREATE_ORDER_PATH,
            auth_token=auth_token,
            payload=request.model_dump(by_alias=True),
        )
        return CreateOrderResponse.model_validate(body)

    async def verify_payment(
        self, request: VerifyPaymentRequest, auth_token: Optional[str]
    ) -> VerifyPaymentResponse:
        """
        Submit a gateway result for server-side verification.

        Args:
            request: Verification body
            auth_token: Bearer token

        Returns:
            VerifyPaymentResponse: Backend verdict
        """
        logger.info(
            "verifying_gateway_payment",
            order_id=request.razorpay_order_id,
            payment_id=request.razorpay_payment_id,
            customer_id=request.customer_id,
        )
        body = await self._request(
            "verify_payment",
            "POST",
            VERIFY_PAYMENT_PATH,
            auth_token=auth_token,
            payload=request.model_dump(by_alias=True),
        )
        return VerifyPaymentResponse.model_validate(body)
