"""
Auto-Deduction Orchestrator

Runs one background bill-processing pass over the current bill and wallet
snapshots:

1. Pays every bill that is due, unpaid, auto-deduct and wallet-linked
   (sufficiency checked first, payment through the atomic primitive)
2. Materializes missed instances of every recurring template

DESIGN DECISION: A pass never raises. Every bill is handled on its own;
failures are counted, logged and audited, and the next bill proceeds.
Insufficient balance during automatic payment is not shown to the user:
the bill stays unpaid and can be paid manually.

The ProcessingGuard keeps one pass in flight per process. It is advisory
only; a second process is kept from double-paying by the atomic primitive.
"""

import asyncio
from datetime import date
from typing import Awaitable, Callable, Iterable, Optional, TypeVar
from uuid import UUID

import structlog

from ledgerlink.audit import AuditLogger, create_correlation_id
from ledgerlink.ledger.balance import WalletBalanceEngine, ensure_sufficient_balance
from ledgerlink.ledger.errors import InsufficientBalanceError
from ledgerlink.ledger.recurrence import BillRecurrenceEngine
from ledgerlink.models.ledger import Bill, ProcessingResult, Wallet
from ledgerlink.services.currency import Rates
from ledgerlink.services.notifications import NotificationSink


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class ProcessingGuard:
    """
    Single-slot semaphore that is released a cooldown after each pass.

    try_acquire() never waits: if a pass holds the slot (or its cooldown
    has not yet elapsed) the caller is told no and should simply skip.
    `on_release` runs each time the slot frees up, so a caller that skipped
    can look again.
    """

    def __init__(
        self,
        cooldown_seconds: float = 2.0,
        on_release: Optional[Callable[[], None]] = None,
    ):
        self._cooldown = cooldown_seconds
        self._on_release = on_release
        self._slot = asyncio.BoundedSemaphore(1)

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    async def try_acquire(self) -> bool:
        if self._slot.locked():
            return False
        await self._slot.acquire()
        return True

    def _release(self) -> None:
        self._slot.release()
        if self._on_release:
            self._on_release()

    def release_after_cooldown(self) -> None:
        if self._cooldown <= 0:
            self._release()
            return
        asyncio.get_running_loop().call_later(self._cooldown, self._release)

    async def run(self, func: Callable[[], Awaitable[T]]) -> Optional[T]:
        """
        Run `func` if the slot is free.

        Returns:
            func's result, or None when the pass was skipped
        """
        if not await self.try_acquire():
            logger.debug("processing_skipped_busy")
            return None
        try:
            return await func()
        finally:
            self.release_after_cooldown()


class AutoDeductionOrchestrator:
    """Pays due auto-deduct bills and generates recurring instances."""

    def __init__(
        self,
        balance_engine: WalletBalanceEngine,
        recurrence_engine: BillRecurrenceEngine,
        notifications: Optional[NotificationSink] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._balance = balance_engine
        self._recurrence = recurrence_engine
        self._notifications = notifications
        self._audit_logger = audit_logger

    async def process_due_bills(
        self,
        bills: Iterable[Bill],
        wallets: Iterable[Wallet],
        rates: Rates,
        today: Optional[date] = None,
    ) -> ProcessingResult:
        """
        Run one processing pass.

        Args:
            bills: Current bill snapshot (templates and instances)
            wallets: Current wallet snapshot
            rates: Rate table for bill -> wallet currency conversion
            today: Reference date (defaults to the local date)

        Returns:
            Counts of bills paid, payment attempts that failed,
            and instances generated
        """
        today = today or date.today()
        bills = list(bills)
        wallets_by_id = {w.id: w for w in wallets}
        correlation_id = create_correlation_id()
        result = ProcessingResult()

        logger.info(
            "bill_processing_started",
            bills=len(bills),
            wallets=len(wallets_by_id),
            today=today.isoformat(),
            correlation_id=str(correlation_id),
        )

        for bill in bills:
            if bill.is_auto_payable(today):
                if await self._pay(bill, wallets_by_id, rates, correlation_id):
                    result.processed += 1
                else:
                    result.failed += 1

            if bill.is_template:
                try:
                    result.recurring += await self._recurrence.generate_instances(
                        bill, bills, today, correlation_id=correlation_id
                    )
                except Exception as e:
                    logger.error(
                        "bill_recurrence_failed",
                        bill_id=bill.id,
                        error=str(e),
                        correlation_id=str(correlation_id),
                    )
                    if self._audit_logger:
                        await self._audit_logger.log_error(
                            error_type="bill_recurrence_failed",
                            error_message=str(e),
                            details={"bill_id": bill.id},
                            correlation_id=correlation_id,
                        )

        logger.info(
            "bill_processing_completed",
            processed=result.processed,
            failed=result.failed,
            recurring=result.recurring,
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_processing_pass(
                processed=result.processed,
                failed=result.failed,
                recurring=result.recurring,
                correlation_id=correlation_id,
            )
        return result

    async def _pay(
        self,
        bill: Bill,
        wallets_by_id: dict[str, Wallet],
        rates: Rates,
        correlation_id: UUID,
    ) -> bool:
        wallet = wallets_by_id.get(bill.wallet_id)
        if wallet is None:
            await self._payment_failed(bill, f"wallet {bill.wallet_id} not found", correlation_id)
            return False

        try:
            ensure_sufficient_balance(wallet, bill.amount, bill.currency, rates)
        except InsufficientBalanceError as e:
            await self._payment_failed(bill, str(e), correlation_id)
            return False

        try:
            payment = await self._balance.pay_bill_atomic(
                bill.id,
                rates,
                wallet_id=wallet.id,
                automatic=True,
                correlation_id=correlation_id,
            )
        except Exception as e:
            await self._payment_failed(bill, str(e), correlation_id)
            return False

        # Later bills in this pass see the debited balance
        wallets_by_id[wallet.id] = wallet.model_copy(
            update={"balance": wallet.balance + payment.amount}
        )
        if self._notifications:
            self._notifications.success(f"Auto-paid: {bill.title}")
        return True

    async def _payment_failed(self, bill: Bill, reason: str, correlation_id: UUID) -> None:
        logger.warning(
            "auto_pay_failed",
            bill_id=bill.id,
            wallet_id=bill.wallet_id,
            reason=reason,
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_auto_pay_failed(
                bill_id=bill.id,
                reason=reason,
                correlation_id=correlation_id,
            )
