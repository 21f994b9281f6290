"""
Unit tests for amount parsing and payment domain models.
"""
from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from khata_pay.core.errors import PaymentValidationError
from khata_pay.core.models import (
    AMOUNT_TOO_LARGE_MESSAGE,
    INVALID_AMOUNT_MESSAGE,
    CustomerIdentity,
    GatewayResult,
    LedgerSummary,
    PaymentIntent,
    parse_amount,
)


class TestParseAmount:
    """Test suite for parse_amount."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1", 100),
            ("0.01", 1),
            ("0.1", 10),
            ("10.5", 1050),
            ("19.99", 1999),
            ("99.99", 9999),
            ("500.00", 50000),
            (" 250 ", 25000),
            ("1234567.89", 123456789),
            (12.34, 1234),
            (Decimal("0.29"), 29),
            (7, 700),
        ],
    )
    def test_valid_amounts_convert_exactly(self, raw: object, expected: int) -> None:
        """Test minor unit conversion has no floating point drift."""
        assert parse_amount(raw) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw",
        [
            "0",
            "0.00",
            "-5",
            "-0.01",
            "abc",
            "",
            "   ",
            "NaN",
            "sNaN",
            "inf",
            "-Infinity",
            "1.005",
            "1e999999",
            "1e-1000030",
            "1" * 40,
            None,
            True,
        ],
    )
    def test_invalid_amounts_rejected(self, raw: object) -> None:
        """Test non-positive, non-numeric and sub-paisa amounts."""
        with pytest.raises(PaymentValidationError, match=INVALID_AMOUNT_MESSAGE):
            parse_amount(raw)

    @pytest.mark.unit
    def test_upper_bound(self) -> None:
        """Test the configured maximum is inclusive."""
        assert parse_amount("100.00", max_minor_units=10000) == 10000

        with pytest.raises(PaymentValidationError, match=AMOUNT_TOO_LARGE_MESSAGE):
            parse_amount("100.01", max_minor_units=10000)


class TestPaymentIntent:
    """Test suite for PaymentIntent."""

    @pytest.mark.unit
    def test_major_units_and_date(self) -> None:
        """Test derived rupee amount and posting date."""
        intent = PaymentIntent(
            customer_id="cust_1",
            amount_minor_units=50000,
            created_at=datetime(2024, 3, 9, 18, 30),
        )

        assert intent.amount_major_units == Decimal("500.00")
        assert intent.payment_date == "2024-03-09"
        assert intent.currency == "INR"

    @pytest.mark.unit
    def test_intent_is_immutable(self) -> None:
        """Test intent cannot be changed after creation."""
        intent = PaymentIntent(customer_id="cust_1", amount_minor_units=100)

        with pytest.raises(ValidationError):
            intent.amount_minor_units = 1  # type: ignore[misc]

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount_rejected(self, amount: int) -> None:
        with pytest.raises(ValidationError):
            PaymentIntent(customer_id="cust_1", amount_minor_units=amount)

    @pytest.mark.unit
    def test_empty_customer_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PaymentIntent(customer_id="", amount_minor_units=100)


class TestWireModels:
    """Test suite for models parsed from widget and backend payloads."""

    @pytest.mark.unit
    def test_gateway_result_from_widget_payload(self) -> None:
        """Test widget keys map onto the result and extras are dropped."""
        result = GatewayResult.model_validate(
            {
                "razorpay_order_id": "order_1",
                "razorpay_payment_id": "pay_1",
                "razorpay_signature": "sig_1",
                "amount": 1,
            }
        )

        assert result.order_id == "order_1"
        assert result.payment_id == "pay_1"
        assert result.signature == "sig_1"
        assert not hasattr(result, "amount")

    @pytest.mark.unit
    def test_gateway_result_requires_all_fields(self) -> None:
        with pytest.raises(ValidationError):
            GatewayResult.model_validate(
                {"razorpay_order_id": "order_1", "razorpay_payment_id": "pay_1", "razorpay_signature": ""}
            )

    @pytest.mark.unit
    def test_customer_identity_from_backend_record(self) -> None:
        customer = CustomerIdentity.model_validate({"_id": "cust_9", "name": "Ravi", "phone": "98"})

        assert customer.customer_id == "cust_9"
        assert customer.name == "Ravi"

    @pytest.mark.unit
    def test_ledger_summary_defaults(self) -> None:
        summary = LedgerSummary.model_validate({"debitAmount": 1200.5})

        assert summary.debit_amount == Decimal("1200.5")
        assert summary.credit_amount == Decimal("0")
        assert summary.balance == Decimal("0")
