"""
Checkout widget session.

The gateway's hosted widget reports back through three callbacks: a success
handler, a failure event and a dismissal. GatewaySession folds them into a
single awaitable that resolves exactly once with one of:

- GatewaySuccess(result)
- GatewayFailure(reason)
- GatewayDismissed()

Widget callbacks must run on the event loop thread. A widget driven from
another thread should hop back with ``loop.call_soon_threadsafe``.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from khata_pay.config import Settings, get_settings
from khata_pay.core.models import GatewayOrder, GatewayResult
from khata_pay.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

INCOMPLETE_RESULT_MESSAGE = "Incomplete response from payment gateway"
WIDGET_UNAVAILABLE_MESSAGE = "Payment gateway could not be opened"
UNKNOWN_FAILURE_MESSAGE = "Unknown error"


@dataclass(frozen=True)
class GatewaySuccess:
    """The widget produced a signed result."""

    result: GatewayResult


@dataclass(frozen=True)
class GatewayFailure:
    """The widget reported a failed payment."""

    reason: str


@dataclass(frozen=True)
class GatewayDismissed:
    """The user closed the widget before completing payment."""


GatewayOutcome = Union[GatewaySuccess, GatewayFailure, GatewayDismissed]


class CheckoutOptions(BaseModel):
    """Configuration handed to the checkout widget."""

    public_key: str
    amount_minor_units: int
    currency: str
    order_id: str
    name: str
    description: str
    prefill_name: str
    theme_color: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_order(
        cls,
        order: GatewayOrder,
        settings: Settings,
        prefill_name: Optional[str] = None,
    ) -> "CheckoutOptions":
        """
        Build widget options from a gateway order.

        Amount, currency and order id are copied from the order, never
        recomputed.
        """
        return cls(
            public_key=order.gateway_public_key,
            amount_minor_units=order.intent.amount_minor_units,
            currency=order.intent.currency,
            order_id=order.order_id,
            name=settings.merchant_display_name,
            description=settings.payment_description,
            prefill_name=prefill_name or settings.default_prefill_name,
            theme_color=settings.theme_color,
        )

    def to_widget_payload(self) -> Dict[str, Any]:
        """Serialize to the widget's options object."""
        return {
            "key": self.public_key,
            "amount": self.amount_minor_units,
            "currency": self.currency,
            "name": self.name,
            "description": self.description,
            "order_id": self.order_id,
            "prefill": {"name": self.prefill_name},
            "theme": {"color": self.theme_color},
        }


@dataclass(frozen=True)
class CheckoutHandlers:
    """Callbacks the widget invokes when the session ends."""

    on_success: Callable[[Dict[str, Any]], None]
    on_failure: Callable[[Dict[str, Any]], None]
    on_dismiss: Callable[[], None]


class CheckoutWidget(ABC):
    """Launcher for the gateway's externally hosted checkout widget."""

    @abstractmethod
    def launch(self, options: Dict[str, Any], handlers: CheckoutHandlers) -> None:
        """
        Open the widget. Must return without waiting for the user.

        Args:
            options: Widget options payload
            handlers: Callbacks for success, failure and dismissal
        """


def _failure_description(payload: Optional[Dict[str, Any]]) -> str:
    """Pull the human-readable description out of a failure event."""
    payload = payload or {}
    error = payload.get("error")
    if isinstance(error, dict) and error.get("description"):
        return str(error["description"])
    for key in ("errorDescription", "description"):
        if payload.get(key):
            return str(payload[key])
    return UNKNOWN_FAILURE_MESSAGE


class GatewaySession:
    """
    One checkout widget session.

    A session is opened once. It never retries and never reopens; another
    attempt needs a new session.
    """

    def __init__(self, widget: CheckoutWidget, settings: Optional[Settings] = None):
        """
        Initialize gateway session.

        Args:
            widget: Checkout widget launcher
            settings: Optional settings (defaults to cached settings)
        """
        self.widget = widget
        self.settings = settings or get_settings()
        self.order: Optional[GatewayOrder] = None
        self._future: Optional["asyncio.Future[GatewayOutcome]"] = None

    @property
    def is_open(self) -> bool:
        return self._future is not None and not self._future.done()

    async def open(
        self, order: GatewayOrder, prefill_name: Optional[str] = None
    ) -> GatewayOutcome:
        """
        Launch the widget and wait for its single outcome.

        There is no timeout; the widget's own UI is the only one.

        Args:
            order: Gateway order to pay
            prefill_name: Customer name to prefill

        Returns:
            GatewayOutcome: Success, failure or dismissal

        Raises:
            RuntimeError: If the session was already opened
        """
        if self._future is not None:
            raise RuntimeError("Gateway session already opened; open a new session to retry")

        self.order = order
        self._future = asyncio.get_running_loop().create_future()
        options = CheckoutOptions.from_order(order, self.settings, prefill_name)

        logger.info(
            "gateway_session_opening",
            order_id=order.order_id,
            amount_minor_units=options.amount_minor_units,
        )

        handlers = CheckoutHandlers(
            on_success=self._handle_success,
            on_failure=self._handle_failure,
            on_dismiss=self._handle_dismiss,
        )

        try:
            self.widget.launch(options.to_widget_payload(), handlers)
        except Exception as e:
            logger.error(
                "gateway_widget_launch_failed",
                order_id=order.order_id,
                error=str(e),
            )
            self._resolve(GatewayFailure(WIDGET_UNAVAILABLE_MESSAGE))

        outcome = await self._future
        metrics.record_gateway_session(_outcome_label(outcome))
        logger.info(
            "gateway_session_resolved",
            order_id=order.order_id,
            outcome=_outcome_label(outcome),
        )
        return outcome

    def dismiss(self) -> bool:
        """
        Resolve an open session as dismissed.

        Returns:
            bool: True if this call ended the session
        """
        return self._resolve(GatewayDismissed())

    def _resolve(self, outcome: GatewayOutcome) -> bool:
        if self._future is None or self._future.done():
            logger.warning(
                "gateway_callback_ignored",
                order_id=self.order.order_id if self.order else None,
                outcome=_outcome_label(outcome),
            )
            return False
        self._future.set_result(outcome)
        return True

    def _handle_success(self, payload: Dict[str, Any]) -> None:
        try:
            result = GatewayResult.model_validate(payload or {})
        except ValidationError:
            logger.error(
                "gateway_result_incomplete",
                order_id=self.order.order_id if self.order else None,
                payload=payload,
            )
            self._resolve(GatewayFailure(INCOMPLETE_RESULT_MESSAGE))
            return
        self._resolve(GatewaySuccess(result))

    def _handle_failure(self, payload: Dict[str, Any]) -> None:
        self._resolve(GatewayFailure(_failure_description(payload)))

    def _handle_dismiss(self) -> None:
        self._resolve(GatewayDismissed())


def _outcome_label(outcome: GatewayOutcome) -> str:
    if isinstance(outcome, GatewaySuccess):
        return "success"
    if isinstance(outcome, GatewayFailure):
        return "failure"
    return "dismissed"
