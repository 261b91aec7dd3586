"""
Audit Models for LedgerLink

Every balance-moving action in the ledger is logged for audit purposes.
This provides:
1. Traceability of every wallet mutation
2. Debugging information when background processing fails
3. Ability to explain a balance to the user

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSFER_COMPLETED = "transfer_completed"

    # Bills
    BILL_PAID = "bill_paid"
    AUTO_PAY_FAILED = "auto_pay_failed"
    BILL_INSTANCE_GENERATED = "bill_instance_generated"
    PROCESSING_PASS_COMPLETED = "processing_pass_completed"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    RATE_REFRESH_FAILED = "rate_refresh_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'wallet', 'bill', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one processing pass)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx_id, wallet_id, amount)
        event = AuditEventBuilder.bill_paid(bill_id, wallet_id, amount, correlation_id)
    """

    @staticmethod
    def transaction_created(
        transaction_id: str,
        wallet_id: Optional[str],
        amount: str,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction recorded: {amount} {currency}",
            details={
                "wallet_id": wallet_id,
                "amount": amount,
                "currency": currency,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction edited (wallet balance unchanged)",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        wallet_id: Optional[str],
        reversed_amount: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            details={
                "wallet_id": wallet_id,
                "reversed_amount": reversed_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transfer_completed(
        source_wallet_id: str,
        destination_wallet_id: str,
        amount: str,
        currency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="wallet",
            entity_id=source_wallet_id,
            description=f"Transfer of {amount} {currency} completed",
            details={
                "source_wallet_id": source_wallet_id,
                "destination_wallet_id": destination_wallet_id,
                "amount": amount,
                "currency": currency,
            },
            is_user_action=True,
        )

    @staticmethod
    def bill_paid(
        bill_id: str,
        wallet_id: str,
        amount: str,
        automatic: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill paid from wallet {wallet_id}",
            details={
                "wallet_id": wallet_id,
                "amount": amount,
                "automatic": automatic,
            },
            is_user_action=not automatic,
        )

    @staticmethod
    def auto_pay_failed(
        bill_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTO_PAY_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Automatic payment skipped: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def bill_instance_generated(
        template_id: str,
        instance_id: str,
        due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_INSTANCE_GENERATED,
            entity_type="bill",
            entity_id=instance_id,
            correlation_id=correlation_id,
            description=f"Recurring bill instance created for {due_date}",
            details={
                "template_id": template_id,
                "due_date": due_date,
            },
        )

    @staticmethod
    def processing_pass_completed(
        processed: int,
        failed: int,
        recurring: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROCESSING_PASS_COMPLETED,
            correlation_id=correlation_id,
            description=(
                f"Bill processing: {processed} paid, {failed} failed, "
                f"{recurring} generated"
            ),
            details={
                "processed": processed,
                "failed": failed,
                "recurring": recurring,
            },
        )

    @staticmethod
    def validation_failed(
        field: str,
        message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"Validation failed on {field}",
            error_message=message,
            details={"field": field},
            is_user_action=True,
        )

    @staticmethod
    def rate_refresh_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_REFRESH_FAILED,
            severity=AuditSeverity.WARNING,
            description="Exchange rate refresh failed, using cached rates",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
