"""
User Input Validation

DESIGN DECISION: Validation happens before any store call. A submission
that fails here never reaches the balance engine, so a rejected input can
never be partially applied.

Validation NEVER silently fixes issues beyond trimming whitespace.
It reports them; ensure_valid() turns the first error into a
LedgerValidationError for callers that want an exception.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ledgerlink.config import AppSettings, get_settings
from ledgerlink.ledger.errors import LedgerValidationError
from ledgerlink.models.ledger import ValidationIssue, ValidationResult
from ledgerlink.services.currency import format_with_code


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Read a user-entered amount.

    Returns:
        A finite Decimal, or None if the value is not a number
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def is_valid_string(value: Any) -> bool:
    """Non-empty after trimming."""
    return isinstance(value, str) and bool(value.strip())


class TransactionValidator:
    """
    Validates transactions, transfers and bills entered by the user.

    Checks:
    - Title present
    - Amount numeric, finite, greater than zero
    - Amount not above the configured ceiling
    - Transfers name two different wallets
    - Bills carry a due date
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_title(self, title: Any) -> list[ValidationIssue]:
        if is_valid_string(title):
            return []
        return [ValidationIssue(
            field="title",
            issue_type="missing",
            message="Title is required",
        )]

    def _validate_amount(self, amount: Any, currency: str) -> list[ValidationIssue]:
        parsed = parse_amount(amount)
        if parsed is None:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be a number",
            )]
        if parsed <= 0:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            )]

        ceiling = self._settings.max_transaction_amount
        if parsed > ceiling:
            return [ValidationIssue(
                field="amount",
                issue_type="over_limit",
                message=f"Amount cannot exceed {format_with_code(ceiling, currency)}",
            )]
        return []

    def validate_transaction(
        self,
        title: Any,
        amount: Any,
        currency: str = "USD",
    ) -> ValidationResult:
        """Validate a manual income or expense entry."""
        issues = self._validate_title(title)
        issues.extend(self._validate_amount(amount, currency))
        return ValidationResult(issues=issues)

    def validate_transfer(
        self,
        source_wallet_id: Optional[str],
        destination_wallet_id: Optional[str],
        amount: Any,
        currency: str = "USD",
    ) -> ValidationResult:
        issues = []

        if not source_wallet_id or not destination_wallet_id:
            issues.append(ValidationIssue(
                field="wallet_id",
                issue_type="missing",
                message="Select both a source and a destination wallet",
            ))
        elif source_wallet_id == destination_wallet_id:
            issues.append(ValidationIssue(
                field="wallet_id",
                issue_type="invalid_value",
                message="Cannot transfer to the same wallet",
            ))

        issues.extend(self._validate_amount(amount, currency))
        return ValidationResult(issues=issues)

    def validate_bill(
        self,
        title: Any,
        amount: Any,
        due_date: Any,
        currency: str = "USD",
    ) -> ValidationResult:
        issues = self._validate_title(title)
        issues.extend(self._validate_amount(amount, currency))

        if not isinstance(due_date, (date, datetime)):
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="missing",
                message="Due date is required",
            ))
        return ValidationResult(issues=issues)

    @staticmethod
    def ensure_valid(result: ValidationResult) -> None:
        """
        Raises:
            LedgerValidationError: Carrying the first error-level issue
        """
        issue = result.first_error()
        if issue is not None:
            raise LedgerValidationError(issue.message, field=issue.field)

    @staticmethod
    def get_user_friendly_summary(result: ValidationResult) -> str:
        """One line per issue, errors first."""
        if not result.issues:
            return "All checks passed."

        ordered = sorted(result.issues, key=lambda i: i.severity != "error")
        return "\n".join(
            f"{'Error' if i.severity == 'error' else 'Note'}: {i.message}"
            for i in ordered
        )
