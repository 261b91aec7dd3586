"""
Tests for LedgerLink models

Test strategy:
1. Unit tests for individual components (models, validators, engines)
2. Integration tests for flows against the in-memory store
3. No real API calls in tests (rate providers are stubbed)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from ledgerlink.models.ledger import (
    Bill,
    BillFrequency,
    Category,
    ProcessingResult,
    Transaction,
    TransactionFlow,
    ValidationIssue,
    ValidationResult,
    Wallet,
)
from ledgerlink.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerModels:
    """Tests for wallet, transaction and bill models."""

    def test_wallet_defaults(self):
        """Test Wallet defaults to a zero USD balance."""
        wallet = Wallet(user_id="u1", name="Cash")
        assert wallet.balance == Decimal("0")
        assert wallet.currency == "USD"
        assert wallet.id is None

    def test_wallet_currency_is_uppercased(self):
        """Test that currency codes are normalized."""
        wallet = Wallet(user_id="u1", name="Cash", currency=" php ")
        assert wallet.currency == "PHP"

    def test_wallet_name_strips_whitespace(self):
        wallet = Wallet(user_id="u1", name="  Savings  ")
        assert wallet.name == "Savings"

    def test_transaction_empty_wallet_id_is_none(self):
        """Test that an empty wallet id means 'no wallet'."""
        tx = Transaction(
            user_id="u1",
            wallet_id="",
            flow=TransactionFlow.EXPENSE,
            title="Coffee",
            amount=Decimal("-3.50"),
        )
        assert tx.wallet_id is None

    def test_transaction_rejects_unknown_flow(self):
        with pytest.raises(ValueError):
            Transaction(user_id="u1", flow="gift", title="X", amount=Decimal("1"))

    def test_bill_rejects_non_positive_amount(self):
        """Test that bills must have a positive amount."""
        with pytest.raises(ValueError):
            Bill(user_id="u1", title="Rent", amount=Decimal("0"), due_date=date(2026, 1, 1))

    def test_bill_due_date_drops_time_of_day(self):
        """Test that datetimes are truncated to whole days."""
        bill = Bill(
            user_id="u1",
            title="Rent",
            amount=Decimal("100"),
            due_date=datetime(2026, 1, 13, 18, 45),
        )
        assert bill.due_date == date(2026, 1, 13)

    def test_instance_must_be_one_time(self):
        """Test that generated instances cannot themselves recur."""
        with pytest.raises(ValueError):
            Bill(
                user_id="u1",
                title="Rent",
                amount=Decimal("100"),
                due_date=date(2026, 1, 13),
                frequency=BillFrequency.MONTHLY,
                parent_bill_id="template-1",
            )

    def test_bill_is_template(self):
        once = Bill(user_id="u1", title="A", amount=Decimal("1"), due_date=date(2026, 1, 1))
        daily = once.model_copy(update={"frequency": BillFrequency.DAILY})
        assert not once.is_template
        assert daily.is_template

    def test_bill_is_auto_payable(self):
        """Test the auto-pay eligibility rule."""
        bill = Bill(
            user_id="u1",
            title="Internet",
            amount=Decimal("30"),
            due_date=date(2026, 1, 10),
            wallet_id="w1",
            auto_deduct=True,
        )
        assert bill.is_auto_payable(date(2026, 1, 10))
        assert bill.is_auto_payable(date(2026, 2, 1))
        assert not bill.is_auto_payable(date(2026, 1, 9))
        assert not bill.model_copy(update={"is_paid": True}).is_auto_payable(date(2026, 2, 1))
        assert not bill.model_copy(update={"wallet_id": None}).is_auto_payable(date(2026, 2, 1))
        assert not bill.model_copy(update={"auto_deduct": False}).is_auto_payable(date(2026, 2, 1))

    def test_document_round_trip_keeps_id_out_of_payload(self):
        """Test that the id is the document key, not a stored field."""
        wallet = Wallet(id="w1", user_id="u1", name="Cash", balance=Decimal("10.25"))
        payload = wallet.to_document()
        assert "id" not in payload

        restored = Wallet.from_document("w1", payload)
        assert restored.model_dump() == wallet.model_dump()

    def test_category_defaults(self):
        category = Category(name="Pets")
        assert category.flow == TransactionFlow.EXPENSE
        assert category.user_id is None

    def test_processing_result_defaults(self):
        result = ProcessingResult()
        assert (result.processed, result.failed, result.recurring) == (0, 0, 0)


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dict."""
        event = AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            description="Bill paid",
            entity_id="bill-1",
        )
        log_dict = event.to_log_dict()

        assert "event_id" in log_dict
        assert log_dict["event_type"] == "bill_paid"
        assert log_dict["entity_id"] == "bill-1"

    def test_audit_event_builder_bill_paid(self):
        """Test AuditEventBuilder for automatic bill payment."""
        event = AuditEventBuilder.bill_paid(
            bill_id="bill-1",
            wallet_id="w1",
            amount="50",
            automatic=True,
        )
        assert event.event_type == AuditEventType.BILL_PAID
        assert event.entity_type == "bill"
        assert event.details["automatic"] is True
        assert event.is_user_action is False

    def test_audit_event_builder_auto_pay_failed_is_warning(self):
        event = AuditEventBuilder.auto_pay_failed(bill_id="bill-1", reason="no funds")
        assert event.severity == AuditSeverity.WARNING
        assert "no funds" in event.description


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(issues=[
            ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ),
            ValidationIssue(
                field="title",
                issue_type="suspicious_value",
                message="Title looks odd",
                severity="warning",
            ),
        ])

        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1
        assert result.first_error().field == "amount"

    def test_validation_result_warnings_only(self):
        """Test result with only warnings."""
        result = ValidationResult(issues=[
            ValidationIssue(
                field="title",
                issue_type="suspicious_value",
                message="Title looks odd",
                severity="warning",
            ),
        ])

        assert result.has_errors is False
        assert result.is_valid is True
        assert result.first_error() is None

    def test_validation_issue_rejects_unknown_severity(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")
