"""
Core Data Models for LedgerLink

These models define the strict schemas for every record the ledger core
reads from and writes to the store. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable to store documents and logs

DESIGN DECISION: All money is Decimal. Exchange rates arrive as floats from
the provider and are converted to Decimal at the boundary, so balance
arithmetic never mixes float and Decimal.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionFlow(str, Enum):
    """
    Direction of a transaction.

    A transfer between wallets is stored as two records: an expense leg
    and an income leg.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class BillFrequency(str, Enum):
    """How often a bill recurs."""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Timeframe(str, Enum):
    """Dashboard aggregation window."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# STORE DOCUMENTS
# =============================================================================

class LedgerDocument(BaseModel):
    """
    Base for records persisted in the ledger store.

    The id is the document key, so it is kept out of the stored payload.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Store document id (None until persisted)"
    )

    def to_document(self) -> dict[str, Any]:
        """Payload to write to the store."""
        return self.model_dump(exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Rebuild a model from a stored payload."""
        return cls.model_validate({**data, "id": doc_id})


def _normalize_currency(value: str) -> str:
    return value.strip().upper()


class Wallet(LedgerDocument):
    """
    A currency-denominated wallet.

    CRITICAL: balance is the authoritative current amount in `currency`.
    The ledger core changes it only inside an atomic unit that also writes
    the transaction responsible for the change.
    """

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Current balance in the wallet's own currency"
    )
    currency: str = Field(default="USD", min_length=3, max_length=3)
    color: str = Field(default="#06b6d4")
    icon: str = Field(default="AccountBalance")
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class Transaction(LedgerDocument):
    """
    A single ledger entry.

    The sign of `amount` encodes direction: negative decreases the linked
    wallet, positive increases it.
    """

    user_id: str = Field(..., min_length=1)
    wallet_id: Optional[str] = Field(
        default=None,
        description="Wallet whose balance this transaction moved"
    )
    flow: TransactionFlow
    category_id: str = Field(default="")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    title: str = Field(..., min_length=1, max_length=200)
    subtitle: str = Field(default="", max_length=200)
    amount: Decimal
    date: datetime = Field(default_factory=datetime.now)
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return _normalize_currency(v)

    @field_validator('wallet_id')
    @classmethod
    def empty_wallet_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class Bill(LedgerDocument):
    """
    A scheduled payment.

    Bills with a frequency other than ONCE are templates: their own
    due_date/is_paid describe only their own instance, and
    last_generated_due_date is the cursor up to which one-time child
    instances have been materialized.
    """

    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    due_date: date
    category: str = Field(default="Utility")
    is_paid: bool = False
    frequency: BillFrequency = BillFrequency.ONCE
    wallet_id: Optional[str] = Field(
        default=None,
        description="Wallet used for automatic deduction"
    )
    auto_deduct: bool = False
    last_generated_due_date: Optional[date] = None
    parent_bill_id: Optional[str] = Field(
        default=None,
        description="Template this instance was generated from"
    )
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return _normalize_currency(v)

    @field_validator('due_date', 'last_generated_due_date', mode='before')
    @classmethod
    def drop_time_of_day(cls, v):
        """Due dates are whole days; datetimes are truncated to midnight."""
        if isinstance(v, datetime):
            return v.date()
        return v

    @field_validator('wallet_id')
    @classmethod
    def empty_wallet_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode='after')
    def validate_instance(self) -> 'Bill':
        if self.parent_bill_id and self.frequency != BillFrequency.ONCE:
            raise ValueError("Generated bill instances must have frequency 'once'")
        return self

    @property
    def is_template(self) -> bool:
        return self.frequency != BillFrequency.ONCE

    def is_auto_payable(self, today: date) -> bool:
        """Unpaid, auto-deduct enabled, wallet linked and due on or before today."""
        return (
            not self.is_paid
            and self.auto_deduct
            and self.wallet_id is not None
            and self.due_date <= today
        )


class Category(LedgerDocument):
    """Classification used for display and grouping only."""

    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="category")
    color: str = Field(default="#64748b")
    bg_color: str = Field(default="#f1f5f9")
    flow: TransactionFlow = TransactionFlow.EXPENSE
    user_id: Optional[str] = None


# =============================================================================
# RESULTS
# =============================================================================

class ProcessingResult(BaseModel):
    """Aggregate counts from one auto-deduction pass."""

    processed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    recurring: int = Field(default=0, ge=0)


class DashboardStats(BaseModel):
    """Rolled-up figures for one dashboard timeframe, in the base currency."""

    total_balance: Decimal = Decimal("0")
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    income_change: Decimal = Decimal("0")
    expenses_change: Decimal = Decimal("0")
    balance_change: Decimal = Decimal("0")


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'over_limit')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Outcome of validating one user submission."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def first_error(self) -> Optional[ValidationIssue]:
        return next((i for i in self.issues if i.severity == "error"), None)
