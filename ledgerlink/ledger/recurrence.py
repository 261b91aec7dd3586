"""
Bill Recurrence Engine

Walks recurring bill templates forward in time and materializes one-time
child instances for every due date up to today.

The template's last_generated_due_date is the cursor that keeps repeated
walks from generating the same range twice. Duplicate detection against
existing bills is a second line of defence, and instance documents use a
deterministic id so two processes walking the same range at once still
converge on one record per due date.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog

from ledgerlink.audit import AuditLogger
from ledgerlink.models.ledger import Bill, BillFrequency
from ledgerlink.services.storage import (
    BILLS,
    AtomicTransaction,
    DocumentRef,
    LedgerStoreInterface,
)


logger = structlog.get_logger(__name__)

FIXED_INTERVALS = {
    BillFrequency.DAILY: timedelta(days=1),
    BillFrequency.WEEKLY: timedelta(days=7),
    BillFrequency.BIWEEKLY: timedelta(days=15),
}


def calculate_next_due_date(value: Union[date, datetime], frequency: BillFrequency) -> date:
    """
    Next due date after `value` for a bill of the given frequency.

    Monthly keeps the day of month and lets it overflow into the following
    month when the target month is shorter (2026-01-31 -> 2026-03-03).
    ONCE returns the date unchanged. Time of day is dropped.
    """
    current = value.date() if isinstance(value, datetime) else value
    frequency = BillFrequency(frequency)

    if frequency in FIXED_INTERVALS:
        return current + FIXED_INTERVALS[frequency]

    if frequency == BillFrequency.MONTHLY:
        year = current.year + current.month // 12
        month = current.month % 12 + 1
        return date(year, month, 1) + timedelta(days=current.day - 1)

    return current


def has_due_bills(bills: Iterable[Bill], today: date) -> bool:
    """True when at least one bill is ready for automatic payment."""
    return any(bill.is_auto_payable(today) for bill in bills)


def instance_id(template_id: str, due_date: date) -> str:
    """Deterministic document id of a template's instance for one due date."""
    return f"{template_id}_{due_date.isoformat()}"


class InstanceMatchKind(str, Enum):
    """How an existing bill was recognised as an already generated instance."""
    PARENT = "parent"
    # Records created before instances carried parent_bill_id
    LEGACY = "legacy"


@dataclass(frozen=True)
class InstanceMatch:
    kind: InstanceMatchKind
    bill: Bill


def find_existing_instance(
    template: Bill,
    due_date: date,
    bills: Iterable[Bill],
) -> Optional[InstanceMatch]:
    """
    Look for a bill that already represents `template` on `due_date`.

    An exact parent_bill_id + due_date match always wins. Otherwise a legacy
    record (no parent_bill_id) with the same due date, title and amount that
    is still unpaid is accepted as a duplicate.
    """
    candidates = [b for b in bills if b.id != template.id and b.due_date == due_date]

    for bill in candidates:
        if bill.parent_bill_id == template.id:
            return InstanceMatch(InstanceMatchKind.PARENT, bill)

    for bill in candidates:
        if (
            bill.parent_bill_id is None
            and bill.title == template.title
            and bill.amount == template.amount
            and not bill.is_paid
        ):
            return InstanceMatch(InstanceMatchKind.LEGACY, bill)

    return None


def build_instance(template: Bill, due_date: date) -> Bill:
    """One-time, unpaid child of `template` due on `due_date`."""
    return Bill(
        id=instance_id(template.id, due_date),
        user_id=template.user_id,
        title=template.title,
        amount=template.amount,
        currency=template.currency,
        due_date=due_date,
        category=template.category,
        is_paid=False,
        frequency=BillFrequency.ONCE,
        wallet_id=template.wallet_id,
        auto_deduct=template.auto_deduct,
        parent_bill_id=template.id,
    )


class BillRecurrenceEngine:
    """Materializes missed instances of recurring bill templates."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger

    async def generate_instances(
        self,
        template: Bill,
        bills: Iterable[Bill],
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Walk `template` forward up to `today`, creating missing instances.

        Args:
            template: A stored bill with frequency other than ONCE
            bills: Current snapshot of the user's bills, used for duplicate
                detection
            today: Last due date (inclusive) to generate

        Returns:
            Number of instances created
        """
        if not template.is_template or not template.id:
            return 0

        known = [b for b in bills if b.id != template.id]
        start = template.last_generated_due_date or template.due_date
        cursor = start
        created = 0

        next_date = calculate_next_due_date(cursor, template.frequency)
        while next_date <= today:
            match = find_existing_instance(template, next_date, known)
            if match is not None:
                logger.debug(
                    "bill_instance_exists",
                    template_id=template.id,
                    due_date=next_date.isoformat(),
                    match=match.kind.value,
                    existing_id=match.bill.id,
                )
            else:
                instance = await self._create_if_absent(build_instance(template, next_date))
                if instance is not None:
                    known.append(instance)
                    created += 1
                    if self._audit_logger:
                        await self._audit_logger.log_bill_instance_generated(
                            template_id=template.id,
                            instance_id=instance.id,
                            due_date=next_date.isoformat(),
                            correlation_id=correlation_id,
                        )

            cursor = next_date
            next_date = calculate_next_due_date(cursor, template.frequency)

        if cursor != start:
            await self._store.update(
                DocumentRef(BILLS, template.id),
                {"last_generated_due_date": cursor},
            )
            logger.info(
                "bill_cursor_advanced",
                template_id=template.id,
                last_generated_due_date=cursor.isoformat(),
                created=created,
            )

        return created

    async def _create_if_absent(self, instance: Bill) -> Optional[Bill]:
        """Write the instance unless a document with its id already exists."""
        ref = DocumentRef(BILLS, instance.id)

        async def unit(tx: AtomicTransaction) -> bool:
            if await tx.read(ref) is not None:
                return False
            tx.write(ref, instance.to_document())
            return True

        if not await self._store.run_atomic(unit):
            logger.debug("bill_instance_id_taken", instance_id=instance.id)
            return None
        return instance
