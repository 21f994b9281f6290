"""
Payment attempt lifecycle.

Each submit creates a fresh PaymentAttempt. The attempt only moves forward:

    Idle -> OrderPending -> AwaitingGateway -> Verifying -> Succeeded
                 |                |     |          |
                 v                v     v          v
               Failed          Failed Cancelled  Failed
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

import structlog

from khata_pay.core.errors import InvalidTransitionError
from khata_pay.core.models import GatewayOrder, PaymentIntent

logger = structlog.get_logger(__name__)


class PaymentState(Enum):
    """Payment attempt states."""

    IDLE = "idle"
    ORDER_PENDING = "order_pending"
    AWAITING_GATEWAY = "awaiting_gateway"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_in_flight(self) -> bool:
        return self in IN_FLIGHT_STATES


TERMINAL_STATES: FrozenSet[PaymentState] = frozenset(
    {PaymentState.SUCCEEDED, PaymentState.FAILED, PaymentState.CANCELLED}
)

IN_FLIGHT_STATES: FrozenSet[PaymentState] = frozenset(
    {PaymentState.ORDER_PENDING, PaymentState.AWAITING_GATEWAY, PaymentState.VERIFYING}
)

ALLOWED_TRANSITIONS: Dict[PaymentState, FrozenSet[PaymentState]] = {
    PaymentState.IDLE: frozenset({PaymentState.ORDER_PENDING}),
    PaymentState.ORDER_PENDING: frozenset(
        {PaymentState.AWAITING_GATEWAY, PaymentState.FAILED}
    ),
    PaymentState.AWAITING_GATEWAY: frozenset(
        {PaymentState.VERIFYING, PaymentState.FAILED, PaymentState.CANCELLED}
    ),
    PaymentState.VERIFYING: frozenset({PaymentState.SUCCEEDED, PaymentState.FAILED}),
    PaymentState.SUCCEEDED: frozenset(),
    PaymentState.FAILED: frozenset(),
    PaymentState.CANCELLED: frozenset(),
}


class PaymentAttempt:
    """
    One payment attempt: an intent, at most one gateway order, and its state.

    The attempt enforces the forward-only lifecycle; the controller decides
    which transition to take.
    """

    def __init__(self, intent: PaymentIntent, attempt_id: Optional[str] = None):
        """
        Initialize payment attempt.

        Args:
            intent: The immutable payment intent
            attempt_id: Optional attempt ID (generated if not provided)
        """
        self.attempt_id = attempt_id or str(uuid.uuid4())
        self.intent = intent
        self.order: Optional[GatewayOrder] = None
        self.state = PaymentState.IDLE
        self.history: List[Tuple[PaymentState, datetime]] = [(self.state, datetime.utcnow())]
        self.created_at = datetime.utcnow()
        self.completed_at: Optional[datetime] = None

    def transition(self, target: PaymentState) -> None:
        """
        Move the attempt to a new state.

        Args:
            target: Next state

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot move payment attempt from {self.state.value} to {target.value}"
            )

        logger.info(
            "payment_state_changed",
            attempt_id=self.attempt_id,
            from_state=self.state.value,
            to_state=target.value,
        )

        self.state = target
        self.history.append((target, datetime.utcnow()))
        if target.is_terminal:
            self.completed_at = datetime.utcnow()

    def attach_order(self, order: GatewayOrder) -> None:
        """
        Bind the gateway order created for this attempt's intent.

        Raises:
            InvalidTransitionError: If an order is already attached or the
                order belongs to another intent
        """
        if self.order is not None:
            raise InvalidTransitionError(
                f"Payment attempt {self.attempt_id} already has order {self.order.order_id}"
            )
        if order.intent != self.intent:
            raise InvalidTransitionError("Gateway order was created for a different intent")
        self.order = order

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or datetime.utcnow()
        return (end - self.created_at).total_seconds()
