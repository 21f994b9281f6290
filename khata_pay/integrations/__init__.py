"""External integrations: ledger backend and checkout widget."""
from .gateway import (
    CheckoutHandlers,
    CheckoutOptions,
    CheckoutWidget,
    GatewayDismissed,
    GatewayFailure,
    GatewaySession,
    GatewaySuccess,
)
from .ledger_backend import LedgerBackendClient

__all__ = [
    "CheckoutHandlers",
    "CheckoutOptions",
    "CheckoutWidget",
    "GatewayDismissed",
    "GatewayFailure",
    "GatewaySession",
    "GatewaySuccess",
    "LedgerBackendClient",
]
