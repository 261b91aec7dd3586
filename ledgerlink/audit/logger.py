"""
Audit Logger

DESIGN DECISION: Every balance-moving action in the ledger is logged.
This provides:
1. Complete traceability of wallet balances
2. Debugging capability for background bill processing
3. A history the user can be shown

The audit logger:
- Is async so it can share the event loop with the ledger
- Gracefully handles failures (never crashes the ledger if logging fails)
- Supports correlation IDs to trace all events of one processing pass
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgerlink.models.audit import AuditEvent, AuditEventBuilder
from ledgerlink.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction_id: str,
        wallet_id: Optional[str],
        amount: str,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a recorded transaction."""
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            wallet_id=wallet_id,
            amount=amount,
            currency=currency,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: str,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            fields=fields,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        wallet_id: Optional[str],
        reversed_amount: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            wallet_id=wallet_id,
            reversed_amount=reversed_amount,
        ))

    async def log_transfer_completed(
        self,
        source_wallet_id: str,
        destination_wallet_id: str,
        amount: str,
        currency: str,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_completed(
            source_wallet_id=source_wallet_id,
            destination_wallet_id=destination_wallet_id,
            amount=amount,
            currency=currency,
        ))

    async def log_bill_paid(
        self,
        bill_id: str,
        wallet_id: str,
        amount: str,
        automatic: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a manual or automatic bill payment."""
        await self.log(AuditEventBuilder.bill_paid(
            bill_id=bill_id,
            wallet_id=wallet_id,
            amount=amount,
            automatic=automatic,
            correlation_id=correlation_id,
        ))

    async def log_auto_pay_failed(
        self,
        bill_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.auto_pay_failed(
            bill_id=bill_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_bill_instance_generated(
        self,
        template_id: str,
        instance_id: str,
        due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bill_instance_generated(
            template_id=template_id,
            instance_id=instance_id,
            due_date=due_date,
            correlation_id=correlation_id,
        ))

    async def log_processing_pass(
        self,
        processed: int,
        failed: int,
        recurring: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of one bill processing pass."""
        await self.log(AuditEventBuilder.processing_pass_completed(
            processed=processed,
            failed=failed,
            recurring=recurring,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        field: str,
        message: str,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(field=field, message=message))

    async def log_rate_refresh_failed(self, error_message: str) -> None:
        await self.log(AuditEventBuilder.rate_refresh_failed(error_message))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a processing pass or user action and pass it
    through all subsequent operations.
    """
    return uuid4()
