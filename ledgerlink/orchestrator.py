"""
Main Orchestrator for LedgerLink

This module ties together all the components for one signed-in user:
1. Live views over wallets, transactions, bills and categories
2. Background bill processing triggered by bill/wallet changes
3. User flows (record, transfer, pay, delete, edit, schedule)
4. Dashboard statistics in the user's base currency

DESIGN DECISION: The session enforces the boundaries:
- Validation and the sufficiency check run before any store call
- Wallet balances only move through the WalletBalanceEngine
- A failing live query marks its collection as errored instead of
  breaking the session; the other views keep working
- Every user-facing failure is reported to the notification sink and
  re-raised as a typed error
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import structlog

from ledgerlink.audit import AuditLogger
from ledgerlink.config import Settings, get_settings
from ledgerlink.ledger import (
    AutoDeductionOrchestrator,
    BillNotFoundError,
    BillRecurrenceEngine,
    DashboardAggregator,
    LedgerError,
    LedgerRepository,
    LedgerValidationError,
    ProcessingGuard,
    TransactionNotFoundError,
    WalletBalanceEngine,
    WalletNotFoundError,
    ensure_sufficient_balance,
    has_due_bills,
)
from ledgerlink.models.ledger import (
    Bill,
    BillFrequency,
    Category,
    DashboardStats,
    ProcessingResult,
    Timeframe,
    Transaction,
    TransactionFlow,
    Wallet,
)
from ledgerlink.services.categories import merge_categories
from ledgerlink.services.currency import CurrencyService
from ledgerlink.services.identity import IdentityProvider, StaticIdentityProvider
from ledgerlink.services.notifications import (
    BillReminderService,
    LoggingNotificationSink,
    NotificationSink,
)
from ledgerlink.services.preferences import (
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    PreferenceStore,
)
from ledgerlink.services.storage import (
    BILLS,
    CATEGORIES,
    TRANSACTIONS,
    WALLETS,
    Document,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    LiveQuery,
    StorageError,
    Unsubscribe,
)
from ledgerlink.validation import TransactionValidator, is_valid_string, parse_amount


logger = structlog.get_logger(__name__)

COLLECTIONS = (TRANSACTIONS, WALLETS, BILLS, CATEGORIES)


class LedgerSession:
    """
    Everything one user's ledger needs, composed and kept live.

    Lifecycle:
    1. start() → rates loaded, live queries opened
    2. snapshots arrive → views updated, due bills processed in background
    3. user flows → validated, applied through the balance engine
    4. stop() / sign_out() → listeners torn down
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        currency_service: CurrencyService,
        identity: IdentityProvider,
        preferences: PreferenceStore,
        notifications: Optional[NotificationSink] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], date] = date.today,
    ):
        settings = settings or get_settings()
        self._app_settings = settings.app
        self._store = store
        self._currency = currency_service
        self._identity = identity
        self._preferences = preferences
        self._notifications = notifications or LoggingNotificationSink()
        self._audit_logger = audit_logger
        self._clock = clock

        self._repository = LedgerRepository(store)
        self._validator = TransactionValidator(self._app_settings)
        self._balance = WalletBalanceEngine(
            store, audit_logger=audit_logger, settings=settings.bill_processing
        )
        self._autopay = AutoDeductionOrchestrator(
            self._balance,
            BillRecurrenceEngine(store, audit_logger=audit_logger),
            notifications=self._notifications,
            audit_logger=audit_logger,
        )
        self._guard = ProcessingGuard(
            settings.bill_processing.cooldown_seconds,
            on_release=self._on_guard_released,
        )
        self._processing_pending = False
        self._reminders = BillReminderService(self._notifications, preferences)
        self._dashboard = DashboardAggregator()

        self._unsubscribes: list[Unsubscribe] = []
        self._tasks: set[asyncio.Task] = set()

        self.transactions: list[Transaction] = []
        self.wallets: list[Wallet] = []
        self.bills: list[Bill] = []
        self.categories: list[Category] = []
        self.currencies: dict[str, str] = {}
        self.errors: dict[str, Optional[str]] = {name: None for name in COLLECTIONS}
        self.last_result: Optional[ProcessingResult] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def repository(self) -> LedgerRepository:
        return self._repository

    @property
    def guard(self) -> ProcessingGuard:
        return self._guard

    @property
    def reminders(self) -> BillReminderService:
        return self._reminders

    @property
    def is_running(self) -> bool:
        return bool(self._unsubscribes)

    @property
    def user_id(self) -> str:
        return self._identity.require_user_id()

    @property
    def base_currency(self) -> str:
        return self._preferences.get_base_currency(self._app_settings.default_base_currency)

    def set_base_currency(self, currency: str) -> None:
        self._preferences.set_base_currency(currency)
        logger.info("base_currency_changed", currency=self.base_currency)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """
        Load rates and open the live queries for the current user.

        Raises:
            NotSignedInError: If nobody is signed in
        """
        user_id = self.user_id
        if self.is_running:
            return

        await self._currency.get_all_rates()
        self.currencies = await self._currency.get_supported_currencies()

        limits = self._app_settings
        self._subscribe(
            LiveQuery(TRANSACTIONS, user_id, order_by="created_at", descending=True,
                      limit=limits.transactions_limit),
            self._on_transactions,
        )
        self._subscribe(
            LiveQuery(WALLETS, user_id, order_by="created_at", descending=True,
                      limit=limits.wallets_limit),
            self._on_wallets,
        )
        self._subscribe(
            LiveQuery(BILLS, user_id, limit=limits.bills_limit),
            self._on_bills,
        )
        self._subscribe(
            LiveQuery(CATEGORIES, user_id, order_by="name"),
            self._on_categories,
        )
        logger.info("session_started", user_id=user_id)

    def stop(self) -> None:
        """Tear down every live query. Pending processing passes may still finish."""
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()
        self._processing_pending = False
        logger.info("session_stopped")

    async def reload_all_subscriptions(self) -> None:
        """Re-create every listener and drop cached rates and stats."""
        self.stop()
        self._currency.invalidate()
        self._dashboard.invalidate()
        self.errors = {name: None for name in COLLECTIONS}
        await self.start()

    async def sign_out(self) -> None:
        self.stop()
        await self.wait_idle()
        self.transactions = []
        self.wallets = []
        self.bills = []
        self.categories = []
        self.errors = {name: None for name in COLLECTIONS}
        self._reminders.reset()
        self._dashboard.invalidate()
        self._identity.sign_out()

    async def wait_idle(self) -> None:
        """Wait for background processing passes scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Live queries
    # ------------------------------------------------------------------
    def _subscribe(self, live_query: LiveQuery, handler: Callable[[list[Document]], None]) -> None:
        collection = live_query.collection

        def on_snapshot(docs: list[Document]) -> None:
            handler(docs)
            self.errors[collection] = None

        def on_error(error: Exception) -> None:
            logger.error("live_query_failed", collection=collection, error=str(error))
            self.errors[collection] = str(error)

        self._unsubscribes.append(self._store.subscribe(live_query, on_snapshot, on_error))

    def _on_transactions(self, docs: list[Document]) -> None:
        self.transactions = [Transaction.from_document(d["id"], d) for d in docs]

    def _on_wallets(self, docs: list[Document]) -> None:
        self.wallets = [Wallet.from_document(d["id"], d) for d in docs]
        self._schedule_processing()

    def _on_bills(self, docs: list[Document]) -> None:
        bills = [Bill.from_document(d["id"], d) for d in docs]
        self.bills = sorted(bills, key=lambda b: b.due_date)
        self._reminders.show_bill_notifications(self.bills, self._clock())
        self._schedule_processing()

    def _on_categories(self, docs: list[Document]) -> None:
        self.categories = merge_categories(Category.from_document(d["id"], d) for d in docs)

    # ------------------------------------------------------------------
    # Background processing
    # ------------------------------------------------------------------
    def _schedule_processing(self) -> None:
        if self._guard.busy:
            # Bills written by the running pass (new recurring instances)
            # are looked at again once the slot frees up
            self._processing_pending = True
            return
        if not has_due_bills(self.bills, self._clock()):
            return
        task = asyncio.get_running_loop().create_task(self._run_processing())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_guard_released(self) -> None:
        if not self._processing_pending:
            return
        self._processing_pending = False
        if self.is_running:
            logger.debug("processing_recheck_after_release")
            self._schedule_processing()

    async def _run_processing(self) -> Optional[ProcessingResult]:
        async def run_pass() -> ProcessingResult:
            rates = await self._currency.get_all_rates()
            return await self._autopay.process_due_bills(
                list(self.bills), list(self.wallets), rates, self._clock()
            )

        result = await self._guard.run(run_pass)
        if result is not None:
            self.last_result = result
        return result

    async def process_bills_now(self) -> Optional[ProcessingResult]:
        """
        Run a processing pass without the due-bill gate.

        Lets recurring bills that are not auto-deducted generate their
        instances. Returns None if a pass is already running.
        """
        return await self._run_processing()

    # ------------------------------------------------------------------
    # User flows
    # ------------------------------------------------------------------
    async def _report(self, error: Exception) -> None:
        self._notifications.error(str(error))
        if self._audit_logger and isinstance(error, LedgerValidationError):
            await self._audit_logger.log_validation_failed(
                field=error.field or "input",
                message=str(error),
            )
        elif self._audit_logger and isinstance(error, StorageError):
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
            )

    async def _load_wallet(self, wallet_id: str) -> Wallet:
        wallet = await self._repository.get_wallet(wallet_id)
        if wallet is None:
            raise WalletNotFoundError(wallet_id)
        return wallet

    async def record_transaction(
        self,
        title: Any,
        amount: Any,
        flow: Union[TransactionFlow, str] = TransactionFlow.EXPENSE,
        wallet_id: Optional[str] = None,
        currency: Optional[str] = None,
        category_id: str = "",
        subtitle: str = "",
        when: Optional[datetime] = None,
    ) -> Transaction:
        """
        Record an income or expense entered by the user.

        `amount` is the positive figure the user typed; expenses are
        stored negative. An expense against a wallet must be covered by
        its balance.

        Raises:
            LedgerValidationError: Bad input, a transfer flow or insufficient balance
            WalletNotFoundError: If the wallet doesn't exist
        """
        try:
            flow = TransactionFlow(flow)
            if flow == TransactionFlow.TRANSFER:
                raise LedgerValidationError(
                    "Use a transfer to move money between wallets", field="flow"
                )
            self._validator.ensure_valid(
                self._validator.validate_transaction(
                    title, amount, (currency or self.base_currency).upper()
                )
            )
            wallet = await self._load_wallet(wallet_id) if wallet_id else None
            currency = (currency or (wallet.currency if wallet else self.base_currency)).upper()
            value = parse_amount(amount)
            rates = await self._currency.get_all_rates()

            if wallet is not None and flow == TransactionFlow.EXPENSE:
                ensure_sufficient_balance(wallet, value, currency, rates)

            transaction = Transaction(
                user_id=self.user_id,
                wallet_id=wallet_id,
                flow=flow,
                category_id=category_id,
                currency=currency,
                title=title.strip(),
                subtitle=subtitle,
                amount=-value if flow == TransactionFlow.EXPENSE else value,
                date=when or datetime.now(),
            )
            stored = await self._balance.add_transaction_with_wallet(transaction, rates)
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Transaction added")
        return stored

    async def transfer(
        self,
        source_wallet_id: Optional[str],
        destination_wallet_id: Optional[str],
        amount: Any,
        currency: Optional[str] = None,
        subtitle: str = "",
        category_id: str = "transfer",
    ) -> tuple[Transaction, Transaction]:
        """
        Move money between two of the user's wallets.

        Raises:
            LedgerValidationError: Same wallet, bad amount or insufficient balance
            WalletNotFoundError: If either wallet doesn't exist
        """
        try:
            self._validator.ensure_valid(
                self._validator.validate_transfer(
                    source_wallet_id, destination_wallet_id, amount, currency or "USD"
                )
            )
            source = await self._load_wallet(source_wallet_id)
            destination = await self._load_wallet(destination_wallet_id)
            currency = (currency or source.currency).upper()
            value = parse_amount(amount)
            rates = await self._currency.get_all_rates()

            ensure_sufficient_balance(source, value, currency, rates)
            legs = await self._balance.transfer_between_wallets(
                source,
                destination,
                value,
                currency,
                rates,
                subtitle=subtitle,
                category_id=category_id,
            )
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Transfer completed")
        return legs

    async def pay_bill(self, bill_id: str, wallet_id: Optional[str] = None) -> Transaction:
        """
        Pay a bill manually from `wallet_id` (or the bill's own wallet).

        Raises:
            BillNotFoundError: If the bill doesn't exist
            BillAlreadyPaidError: If it was paid in the meantime
            LedgerValidationError: No wallet chosen or insufficient balance
        """
        try:
            bill = await self._repository.get_bill(bill_id)
            if bill is None:
                raise BillNotFoundError(bill_id)
            source_id = wallet_id or bill.wallet_id
            if not source_id:
                raise LedgerValidationError("Select a wallet to pay from", field="wallet_id")

            wallet = await self._load_wallet(source_id)
            rates = await self._currency.get_all_rates()
            ensure_sufficient_balance(wallet, bill.amount, bill.currency, rates)
            payment = await self._balance.pay_bill_atomic(bill_id, rates, wallet_id=wallet.id)
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Bill paid and wallet updated!")
        return payment

    async def delete_transaction(self, transaction_id: str) -> Optional[Decimal]:
        """Delete a transaction, reversing its effect on its wallet."""
        try:
            rates = await self._currency.get_all_rates()
            reversed_amount = await self._balance.delete_transaction_with_wallet(
                transaction_id, rates
            )
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Transaction deleted")
        return reversed_amount

    async def edit_transaction(self, transaction_id: str, changes: dict[str, Any]) -> Transaction:
        """
        Edit a transaction's fields. The wallet balance is left as it is.

        A new `amount` is given as a positive figure and stored with the
        sign of the transaction's (possibly new) flow.
        """
        try:
            changes = dict(changes)
            if "title" in changes and not is_valid_string(changes["title"]):
                raise LedgerValidationError("Title is required", field="title")

            if "amount" in changes:
                existing = await self._repository.get_transaction(transaction_id)
                if existing is None:
                    raise TransactionNotFoundError(transaction_id)
                self._validator.ensure_valid(
                    self._validator.validate_transaction(
                        changes.get("title", existing.title),
                        changes["amount"],
                        existing.currency,
                    )
                )
                value = parse_amount(changes["amount"])
                flow = TransactionFlow(changes.get("flow", existing.flow))
                changes["amount"] = -value if flow == TransactionFlow.EXPENSE else value

            updated = await self._balance.update_transaction(transaction_id, changes)
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Transaction updated")
        return updated

    async def add_wallet(
        self,
        name: Any,
        currency: Optional[str] = None,
        balance: Any = 0,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Wallet:
        try:
            if not is_valid_string(name):
                raise LedgerValidationError("Wallet name is required", field="name")
            opening = parse_amount(balance)
            if opening is None:
                raise LedgerValidationError("Balance must be a number", field="balance")

            extras = {k: v for k, v in (("color", color), ("icon", icon)) if v}
            wallet = await self._repository.add_wallet(Wallet(
                user_id=self.user_id,
                name=name.strip(),
                currency=currency or self.base_currency,
                balance=opening,
                **extras,
            ))
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Wallet created")
        return wallet

    async def schedule_bill(
        self,
        title: Any,
        amount: Any,
        due_date: Union[date, datetime],
        currency: Optional[str] = None,
        frequency: Union[BillFrequency, str] = BillFrequency.ONCE,
        wallet_id: Optional[str] = None,
        auto_deduct: bool = False,
        category: str = "Utility",
    ) -> Bill:
        try:
            currency = (currency or self.base_currency).upper()
            self._validator.ensure_valid(
                self._validator.validate_bill(title, amount, due_date, currency)
            )
            if auto_deduct and not wallet_id:
                raise LedgerValidationError(
                    "Automatic payment needs a wallet", field="wallet_id"
                )
            bill = await self._repository.add_bill(Bill(
                user_id=self.user_id,
                title=title.strip(),
                amount=parse_amount(amount),
                currency=currency,
                due_date=due_date,
                category=category,
                frequency=BillFrequency(frequency),
                wallet_id=wallet_id,
                auto_deduct=auto_deduct,
            ))
        except (LedgerError, StorageError) as e:
            await self._report(e)
            raise

        self._notifications.success("Bill scheduled!")
        return bill

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    def dashboard(
        self,
        timeframe: Union[Timeframe, str] = Timeframe.MONTHLY,
        today: Optional[date] = None,
    ) -> DashboardStats:
        """Statistics over the current views, in the base currency."""
        return self._dashboard.stats(
            self.transactions,
            self.wallets,
            self._currency.rates,
            self.base_currency,
            Timeframe(timeframe),
            today or self._clock(),
        )


def create_app_components(
    store: Optional[LedgerStoreInterface] = None,
    identity: Optional[IdentityProvider] = None,
    currency_service: Optional[CurrencyService] = None,
    preferences: Optional[PreferenceStore] = None,
    notifications: Optional[NotificationSink] = None,
    use_audit_storage: bool = True,
) -> LedgerSession:
    """
    Factory function to create a ready-to-start session.

    Args:
        store: Ledger store backend (in-memory if omitted)
        identity: Who is signed in (nobody if omitted)
        currency_service: Rate service (Frankfurter-backed if omitted)
        preferences: Preference store (JSON file when PREFERENCES_PATH is
            set, in-memory otherwise)
        notifications: Where user messages go (structured log if omitted)
        use_audit_storage: Keep audit events in memory in addition to the log

    Returns:
        LedgerSession, not yet started
    """
    settings = get_settings()

    if preferences is None:
        path = settings.app.preferences_path
        preferences = JsonFilePreferenceStore(path) if path else InMemoryPreferenceStore()

    audit_logger = AuditLogger(InMemoryAuditStorage() if use_audit_storage else None)
    if currency_service is None:
        currency_service = CurrencyService(settings=settings.currency, audit_logger=audit_logger)

    return LedgerSession(
        store=store or InMemoryLedgerStore(),
        currency_service=currency_service,
        identity=identity or StaticIdentityProvider(),
        preferences=preferences,
        notifications=notifications,
        audit_logger=audit_logger,
        settings=settings,
    )
