"""
Reconciliation controller for online ledger payments.

Orchestrates one payment round trip:
1. Validate the amount and the resolved customer
2. Create a gateway order through the ledger backend
3. Open the checkout widget and wait for its single outcome
4. Verify the signed result with the backend
5. Offer the receipt and return to the ledger view

Every exit path ends in exactly one terminal state (Succeeded, Failed or
Cancelled) with the processing indicator cleared.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog
from pydantic import ValidationError

from khata_pay.config import Settings, get_settings
from khata_pay.core.errors import (
    SESSION_EXPIRED_MESSAGE,
    TRANSPORT_ERROR_MESSAGE,
    AuthError,
    GatewayError,
    PaymentFlowError,
    PaymentValidationError,
)
from khata_pay.core.models import (
    INVALID_AMOUNT_MESSAGE,
    CustomerIdentity,
    LedgerSummary,
    PaymentIntent,
    parse_amount,
)
from khata_pay.core.orders import OrderInitiator
from khata_pay.core.state import PaymentAttempt, PaymentState
from khata_pay.core.verification import VERIFICATION_FAILED_MESSAGE, VerificationClient
from khata_pay.integrations.gateway import (
    CheckoutWidget,
    GatewayDismissed,
    GatewayFailure,
    GatewaySession,
)
from khata_pay.integrations.ledger_backend import LedgerBackendClient
from khata_pay.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

PAYMENT_SUCCEEDED_MESSAGE = "Payment successful!"
PAYMENT_CANCELLED_MESSAGE = "Payment cancelled"
PAYMENT_FAILED_PREFIX = "Payment failed: "
CUSTOMER_NOT_LOADED_MESSAGE = "Customer information not loaded"
CONTEXT_LOAD_FAILED_MESSAGE = "Error loading customer information"
VERIFICATION_INTERRUPTED_MESSAGE = (
    "Payment status could not be confirmed. Check your ledger before paying again."
)


class PaymentView(Protocol):
    """UI surface the controller reports to."""

    def show_status(self, message: str) -> None: ...

    def set_processing(self, processing: bool) -> None: ...

    def open_receipt(self, receipt_url: str) -> None: ...

    def navigate_to_ledger(self, summary: Optional[LedgerSummary]) -> None: ...


@dataclass
class FormState:
    """Snapshot of what the payment form currently shows."""

    state: PaymentState = PaymentState.IDLE
    message: str = ""
    processing: bool = False
    amount_input: str = ""
    receipt_url: Optional[str] = None
    navigated_to_ledger: bool = False


class ReconciliationController:
    """
    Owns the lifecycle of payments made from one payment form.

    One attempt runs at a time. A submit while an attempt is in flight is
    ignored. The auth token is passed into each operation and never kept.
    """

    def __init__(
        self,
        backend: LedgerBackendClient,
        widget: CheckoutWidget,
        view: Optional[PaymentView] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize reconciliation controller.

        Args:
            backend: Ledger backend client
            widget: Checkout widget launcher
            view: Optional UI surface to notify
            settings: Optional settings (defaults to cached settings)
        """
        self.settings = settings or get_settings()
        self.backend = backend
        self.widget = widget
        self.view = view
        self.orders = OrderInitiator(backend)
        self.verifier = VerificationClient(backend)

        self.form = FormState()
        self.customer: Optional[CustomerIdentity] = None
        self.gateway_public_key: Optional[str] = None
        self.attempt: Optional[PaymentAttempt] = None
        self.session: Optional[GatewaySession] = None
        self.navigation_task: Optional["asyncio.Task[None]"] = None

        self._paying_for_self = False
        self._abandon_requested = False

    @property
    def state(self) -> PaymentState:
        return self.attempt.state if self.attempt is not None else PaymentState.IDLE

    def _show(self, message: str) -> None:
        self.form.message = message
        if self.view is not None:
            self.view.show_status(message)

    def _set_processing(self, processing: bool) -> None:
        self.form.processing = processing
        if self.view is not None:
            self.view.set_processing(processing)

    def _reject(self, error: PaymentValidationError) -> None:
        self.attempt = None
        self.form.state = PaymentState.IDLE
        self._show(error.message)

    def _cancel_navigation(self) -> None:
        """Drop a pending return to the ledger from an earlier payment."""
        task = self.navigation_task
        self.navigation_task = None
        if task is not None and not task.done():
            task.cancel()
            logger.info("ledger_navigation_cancelled")

    async def load_context(
        self, auth_token: Optional[str], customer_id: Optional[str] = None
    ) -> bool:
        """
        Resolve the customer and the gateway key before payments are accepted.

        Args:
            auth_token: Bearer token
            customer_id: Customer to pay for; None resolves the token's own
                customer

        Returns:
            bool: True if the form is ready to accept a submit
        """
        try:
            if not auth_token:
                raise AuthError(SESSION_EXPIRED_MESSAGE)
            gateway_public_key = await self.backend.get_gateway_key()
            if customer_id:
                customer = CustomerIdentity(customer_id=customer_id)
            else:
                customer = await self.backend.get_current_customer(auth_token)
        except AuthError as e:
            logger.warning("payment_context_unauthorized")
            self._show(e.message)
            return False
        except PaymentFlowError as e:
            logger.error(
                "payment_context_load_failed",
                error_code=e.code.value,
                error_message=e.message,
            )
            self._show(CONTEXT_LOAD_FAILED_MESSAGE)
            return False

        self.customer = customer
        self.gateway_public_key = gateway_public_key
        self._paying_for_self = customer_id is None

        logger.info(
            "payment_context_loaded",
            customer_id=customer.customer_id,
            paying_for_self=self._paying_for_self,
        )
        return True

    async def submit(self, amount_input: Optional[str], auth_token: Optional[str]) -> PaymentState:
        """
        Start a payment for the entered amount and run it to a terminal state.

        Args:
            amount_input: Amount as typed by the user (rupees)
            auth_token: Bearer token

        Returns:
            PaymentState: State after the call; IDLE if validation failed,
                the current state if the submit was ignored
        """
        if self.attempt is not None and self.attempt.state.is_in_flight:
            logger.warning(
                "payment_submit_ignored",
                attempt_id=self.attempt.attempt_id,
                state=self.attempt.state.value,
            )
            return self.attempt.state

        self._cancel_navigation()
        self.form.amount_input = "" if amount_input is None else str(amount_input)

        try:
            amount_minor_units = parse_amount(
                amount_input, self.settings.max_payment_amount_minor_units
            )
            if self.customer is None or self.gateway_public_key is None:
                raise PaymentValidationError(CUSTOMER_NOT_LOADED_MESSAGE)
            intent = PaymentIntent(
                customer_id=self.customer.customer_id,
                amount_minor_units=amount_minor_units,
                currency=self.settings.currency,
            )
        except ValidationError as e:
            self._reject(PaymentValidationError(INVALID_AMOUNT_MESSAGE, original_error=e))
            return PaymentState.IDLE
        except PaymentValidationError as e:
            self._reject(e)
            return PaymentState.IDLE

        attempt = PaymentAttempt(intent)
        self.attempt = attempt
        self._abandon_requested = False
        self.form.receipt_url = None
        self.form.navigated_to_ledger = False
        metrics.record_payment_submitted(amount_minor_units)

        with structlog.contextvars.bound_contextvars(
            attempt_id=attempt.attempt_id, customer_id=intent.customer_id
        ):
            attempt.transition(PaymentState.ORDER_PENDING)
            self.form.state = attempt.state
            self._set_processing(True)
            self._show("")
            try:
                await self._run(attempt, auth_token)
            except asyncio.CancelledError:
                self._interrupt(attempt)
                raise
            except Exception:
                logger.exception("payment_flow_unexpected_error", state=attempt.state.value)
                if not attempt.is_terminal:
                    self._finish(attempt, PaymentState.FAILED, TRANSPORT_ERROR_MESSAGE)

        return attempt.state

    async def _run(self, attempt: PaymentAttempt, auth_token: Optional[str]) -> None:
        intent = attempt.intent

        try:
            order = await self.orders.create_order(intent, auth_token, self.gateway_public_key)
        except PaymentFlowError as e:
            logger.warning("order_creation_failed", error_code=e.code.value)
            self._finish(attempt, PaymentState.FAILED, e.message)
            return

        attempt.attach_order(order)
        if self._abandon_requested:
            # Abandoned while the order request was in flight
            attempt.transition(PaymentState.AWAITING_GATEWAY)
            self._finish(attempt, PaymentState.CANCELLED, PAYMENT_CANCELLED_MESSAGE)
            return

        attempt.transition(PaymentState.AWAITING_GATEWAY)
        self.form.state = attempt.state

        session = GatewaySession(self.widget, self.settings)
        self.session = session
        try:
            outcome = await session.open(order, prefill_name=self.customer.name)
        finally:
            self.session = None

        if isinstance(outcome, GatewayDismissed):
            self._finish(attempt, PaymentState.CANCELLED, PAYMENT_CANCELLED_MESSAGE)
            return
        if isinstance(outcome, GatewayFailure):
            error = GatewayError(f"{PAYMENT_FAILED_PREFIX}{outcome.reason}")
            logger.warning(
                "gateway_payment_failed",
                order_id=order.order_id,
                error_code=error.code.value,
                reason=outcome.reason,
            )
            self._finish(attempt, PaymentState.FAILED, error.message)
            return

        # From here on the payment cannot be cancelled
        attempt.transition(PaymentState.VERIFYING)
        self.form.state = attempt.state

        try:
            verification = await self.verifier.verify(outcome.result, intent, auth_token)
        except PaymentFlowError as e:
            logger.error(
                "payment_verification_error",
                order_id=order.order_id,
                error_code=e.code.value,
            )
            self._finish(attempt, PaymentState.FAILED, e.message)
            return

        if not verification.verified:
            self._finish(
                attempt,
                PaymentState.FAILED,
                verification.message or VERIFICATION_FAILED_MESSAGE,
            )
            return

        self._finish(attempt, PaymentState.SUCCEEDED, PAYMENT_SUCCEEDED_MESSAGE)
        if verification.receipt_url:
            self.form.receipt_url = verification.receipt_url
            if self.view is not None:
                self.view.open_receipt(verification.receipt_url)
        self.navigation_task = asyncio.create_task(
            self._return_to_ledger(attempt, auth_token)
        )

    def _finish(self, attempt: PaymentAttempt, state: PaymentState, message: str) -> None:
        attempt.transition(state)
        self.form.state = state
        if state is PaymentState.SUCCEEDED:
            self.form.amount_input = ""
        self._set_processing(False)
        self._show(message)
        metrics.record_payment_outcome(state.value, attempt.duration_seconds)
        logger.info(
            "payment_attempt_finished",
            state=state.value,
            order_id=attempt.order.order_id if attempt.order else None,
            duration_seconds=attempt.duration_seconds,
        )

    def _interrupt(self, attempt: PaymentAttempt) -> None:
        """Settle an attempt whose task was cancelled from outside."""
        if attempt.is_terminal:
            return
        if attempt.state is PaymentState.VERIFYING:
            logger.error(
                "payment_verification_interrupted",
                order_id=attempt.order.order_id if attempt.order else None,
            )
            self._finish(attempt, PaymentState.FAILED, VERIFICATION_INTERRUPTED_MESSAGE)
            return
        if attempt.state is PaymentState.ORDER_PENDING:
            self._finish(attempt, PaymentState.FAILED, TRANSPORT_ERROR_MESSAGE)
            return
        self._finish(attempt, PaymentState.CANCELLED, PAYMENT_CANCELLED_MESSAGE)

    async def _return_to_ledger(
        self, attempt: PaymentAttempt, auth_token: Optional[str]
    ) -> None:
        """Show the ledger again, unless another attempt has taken over the form."""
        await asyncio.sleep(self.settings.success_redirect_delay_seconds)
        if self.attempt is not attempt:
            logger.info("ledger_navigation_skipped", attempt_id=attempt.attempt_id)
            return

        summary: Optional[LedgerSummary] = None
        if self._paying_for_self:
            try:
                summary = await self.backend.get_ledger_summary(auth_token)
            except PaymentFlowError as e:
                logger.warning(
                    "ledger_summary_refresh_failed",
                    error_code=e.code.value,
                    error_message=e.message,
                )

        if self.attempt is not attempt:
            logger.info("ledger_navigation_skipped", attempt_id=attempt.attempt_id)
            return

        self.form.navigated_to_ledger = True
        if self.view is None:
            return
        try:
            self.view.navigate_to_ledger(summary)
        except Exception:
            logger.exception("ledger_navigation_failed", attempt_id=attempt.attempt_id)

    def abandon(self) -> bool:
        """
        Implicitly cancel the current attempt, e.g. when the page goes away.

        Only possible before the gateway has produced a result. A pending
        return to the ledger from a finished payment is dropped as well.

        Returns:
            bool: True if the attempt will end as Cancelled
        """
        self._cancel_navigation()
        attempt = self.attempt
        if attempt is None or attempt.is_terminal:
            return False

        if attempt.state is PaymentState.VERIFYING:
            logger.warning("payment_abandon_refused", attempt_id=attempt.attempt_id)
            return False

        if attempt.state is PaymentState.ORDER_PENDING:
            self._abandon_requested = True
            logger.info("payment_abandon_requested", attempt_id=attempt.attempt_id)
            return True

        if self.session is not None:
            return self.session.dismiss()
        return False
