"""
Khata online payments.

Client-side reconciliation of ledger payments made through a hosted
payment gateway: order creation, the checkout widget session, server-side
verification and the return to the ledger view.
"""

__version__ = "0.1.0"
