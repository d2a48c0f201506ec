"""Business logic layer for GreenTrack Ledger.

This module owns the sale lifecycle of a shop: recording a sale together with
its stock decrement, voiding it with the matching increment, closing the day
into an archived :class:`~greentrack_ledger.models.DayReport`, restoring a
report's sales and recording till expenses. It consumes the ledger store for
all I/O and the stock engine for every counter change.

Paired writes (a sale and its stock change, a report and the removal of the
sales it archives) are committed as one batch, so a terminal never observes
one half without the other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from . import data_manager, log, pricing
from .constants import EXPECTED_SCHEMA_VERSION, CollectionKind, FlowerGrade, PaymentMethod, ProductCategory
from .ledger_store import (
    DocumentNotFound,
    LedgerStore,
    StoreError,
    delete_op,
    load_records,
    open_workbook_store,
    set_op,
)
from .models import (
    DayReport,
    Expense,
    InventoryItem,
    MalformedDocumentError,
    SaleRecord,
    business_date,
    generate_id,
    generate_report_id,
    utcnow,
)
from .stock import StockAdjustmentEngine


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced item, sale, or report is unknown."""


@dataclass(frozen=True)
class SaleCommand:
    """User intent for ringing up one checkout line."""

    product_type: ProductCategory
    product_name: str
    quantity: Decimal
    payment_method: PaymentMethod
    grade: Optional[FlowerGrade] = None
    negotiated_price: Optional[Decimal] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleOutcome:
    """Result of creating or voiding a sale.

    ``stock_adjusted`` is ``None`` when no stock change was due: the sale was
    of category Other or no inventory item carries the sold product's name.
    """

    sale_written: bool
    stock_adjusted: Optional[bool]

    @property
    def ok(self) -> bool:
        return self.sale_written and self.stock_adjusted is not False


@dataclass(frozen=True)
class CloseDayOutcome:
    """Result of archiving the active day."""

    report: Optional[DayReport]
    archived: bool
    cleared: bool


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or, when ``None``, the current UTC time."""

    return candidate if candidate is not None else utcnow()


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Args:
        quantity (Decimal): Grams for flower, units for everything else.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= Decimal("0"):
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def find_item_by_name(inventory: Iterable[InventoryItem], name: str) -> Optional[InventoryItem]:
    """Return the first inventory item named exactly ``name``."""

    for item in inventory:
        if item.name == name:
            return item
    return None


def prepare_sale(
    command: SaleCommand,
    *,
    staff_name: str,
    inventory: Sequence[InventoryItem] = (),
) -> SaleRecord:
    """Price a checkout line and materialize it as a :class:`SaleRecord`.

    The standard price comes from :func:`greentrack_ledger.pricing.quote`.
    Flower takes the grade from the command or, failing that, from the
    inventory item with the same name; other categories use that item's unit
    price. A negotiated price replaces the standard one and marks the sale as
    negotiated only when the two actually differ.

    Args:
        command (SaleCommand): Checkout intent.
        staff_name (str): Name recorded on the sale.
        inventory (Sequence[InventoryItem]): Current inventory used for the
            name lookup.

    Returns:
        SaleRecord: Fully priced, not yet persisted sale.

    Raises:
        ValueError: When the quantity or the negotiated price is invalid.
        BusinessRuleViolation: When a flower sale has no resolvable grade.
    """
    require_positive_quantity(command.quantity)
    category = ProductCategory(command.product_type)
    item = find_item_by_name(inventory, command.product_name)

    grade = command.grade
    if category is ProductCategory.FLOWER and grade is None and item is not None:
        grade = item.grade
    if category is ProductCategory.FLOWER and grade is None:
        log.warning("Flower sale of '%s' has no grade", command.product_name)
        raise BusinessRuleViolation(f"Cannot price flower '{command.product_name}' without a grade")
    if category is not ProductCategory.FLOWER:
        grade = None

    unit_price = item.unit_price if item is not None else None
    original_price = pricing.quote(category, command.quantity, grade=grade, unit_price=unit_price)

    final_price = original_price
    if command.negotiated_price is not None:
        require_nonnegative_money(command.negotiated_price)
        final_price = command.negotiated_price

    timestamp = _resolve_timestamp(command.timestamp)
    return SaleRecord(
        id=generate_id(),
        timestamp=timestamp,
        date=business_date(timestamp),
        product_type=category,
        product_name=command.product_name,
        grade=grade,
        quantity=command.quantity,
        price=final_price,
        original_price=original_price,
        is_negotiated=final_price != original_price,
        staff_name=staff_name,
        payment_method=PaymentMethod(command.payment_method),
        notes=command.notes,
    )


class SaleLifecycleManager:
    """Create, void, archive and restore the sales of one shop.

    Args:
        store: Shop namespace to write into.
        stock: Engine applying the compensating stock changes. A default
            engine over ``store`` is created when omitted.
        staff_name: Name recorded as ``closedBy`` when closing the day.
        clock: Source of timestamps for reports and expenses.
    """

    def __init__(
        self,
        store: LedgerStore,
        stock: Optional[StockAdjustmentEngine] = None,
        *,
        staff_name: str = "",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.stock = stock if stock is not None else StockAdjustmentEngine(store, clock=clock)
        self.staff_name = staff_name
        self._clock = clock

    def _inventory(self, inventory: Optional[Sequence[InventoryItem]]) -> Sequence[InventoryItem]:
        if inventory is not None:
            return inventory
        return load_records(self.store, CollectionKind.INVENTORY)

    def create_sale(self, sale: SaleRecord, inventory: Optional[Sequence[InventoryItem]] = None) -> SaleOutcome:
        """Write ``sale`` and decrement the stock of the item it names.

        Sales of category Other and sales whose product name matches no
        inventory item are written without touching stock. Otherwise the sale
        and the decrement are committed together.

        Args:
            sale (SaleRecord): Sale to persist.
            inventory (Sequence[InventoryItem] | None): Inventory snapshot
                used for the name lookup. Read from the store when omitted.

        Returns:
            SaleOutcome: Per-step result; never raises on store failures.
        """
        write = set_op(CollectionKind.SALES, sale.id, sale.to_document())

        item = None
        if sale.product_type is not ProductCategory.OTHER:
            item = find_item_by_name(self._inventory(inventory), sale.product_name)
            if item is None:
                log.warning("No inventory item named '%s'; recording sale '%s' without stock change", sale.product_name, sale.id)

        try:
            if item is None:
                self.store.batch_commit([write])
                adjusted: Optional[bool] = None
            else:
                adjusted = self.stock.commit_with_stock_delta(item.id, -sale.quantity, [write]) or None
        except StoreError as exc:
            log.error("Failed to record sale '%s': %s", sale.id, exc)
            return SaleOutcome(sale_written=False, stock_adjusted=False if item is not None else None)

        log.info(
            "Recorded sale '%s' of %s x '%s' for %s (%s)",
            sale.id,
            sale.quantity,
            sale.product_name,
            sale.price,
            sale.payment_method.value,
        )
        return SaleOutcome(sale_written=True, stock_adjusted=adjusted)

    def delete_sale(self, sale_id: str, inventory: Optional[Sequence[InventoryItem]] = None) -> SaleOutcome:
        """Void an active sale and give its quantity back to stock.

        A sale that is already gone is reported as not written and no stock
        is returned, so voiding twice never compensates twice.
        """
        document = self.store.get(CollectionKind.SALES, sale_id)
        if document is None:
            log.warning("Sale '%s' not found; nothing to void", sale_id)
            return SaleOutcome(sale_written=False, stock_adjusted=None)
        try:
            sale = SaleRecord.from_document(document)
        except MalformedDocumentError as exc:
            log.error("Cannot void malformed sale '%s': %s", sale_id, exc)
            return SaleOutcome(sale_written=False, stock_adjusted=None)

        removal = delete_op(CollectionKind.SALES, sale_id, must_exist=True)
        item = None
        if sale.product_type is not ProductCategory.OTHER:
            item = find_item_by_name(self._inventory(inventory), sale.product_name)

        try:
            if item is None:
                self.store.batch_commit([removal])
                adjusted: Optional[bool] = None
            else:
                adjusted = self.stock.commit_with_stock_delta(item.id, sale.quantity, [removal]) or None
        except DocumentNotFound:
            log.warning("Sale '%s' was voided concurrently; stock left unchanged", sale_id)
            return SaleOutcome(sale_written=False, stock_adjusted=None)
        except StoreError as exc:
            log.error("Failed to void sale '%s': %s", sale_id, exc)
            return SaleOutcome(sale_written=False, stock_adjusted=False if item is not None else None)

        log.info("Voided sale '%s' (%s x '%s')", sale_id, sale.quantity, sale.product_name)
        return SaleOutcome(sale_written=True, stock_adjusted=adjusted)

    def close_day(self, *, closed_by: Optional[str] = None, date: Optional[str] = None) -> CloseDayOutcome:
        """Archive every active sale and expense into a new day report.

        The report is written and the archived sales and expenses are removed
        in the same batch. Sales recorded after the snapshot was read stay
        active for the next close.

        Args:
            closed_by (str | None): Name stored on the report. Defaults to the
                manager's ``staff_name``.
            date (str | None): Business date of the report. Defaults to the
                UTC date of the close.

        Returns:
            CloseDayOutcome: The report plus per-step flags.
        """
        sales = load_records(self.store, CollectionKind.SALES, order_by_timestamp_desc=True)
        expenses = load_records(self.store, CollectionKind.EXPENSES, order_by_timestamp_desc=True)
        now = self._clock()
        report_date = date or business_date(now)

        report = DayReport(
            id=generate_report_id(report_date),
            date=report_date,
            total_sales=len(sales),
            total_revenue=sum((sale.price for sale in sales), Decimal("0")),
            items_sold=sum((sale.quantity for sale in sales), Decimal("0")),
            sales=tuple(sales),
            expenses=tuple(expenses),
            timestamp=now,
            closed_by=closed_by if closed_by is not None else self.staff_name,
        )

        operations = [set_op(CollectionKind.REPORTS, report.id, report.to_document())]
        operations.extend(delete_op(CollectionKind.SALES, sale.id) for sale in sales)
        operations.extend(delete_op(CollectionKind.EXPENSES, expense.id) for expense in expenses)
        try:
            self.store.batch_commit(operations)
        except StoreError as exc:
            log.error("Failed to close day %s: %s", report_date, exc)
            return CloseDayOutcome(report=None, archived=False, cleared=False)

        log.info(
            "Closed day %s as report '%s' (%d sales, revenue=%s, %d expenses)",
            report_date,
            report.id,
            report.total_sales,
            report.total_revenue,
            len(expenses),
        )
        return CloseDayOutcome(report=report, archived=True, cleared=True)

    def restore_report(self, report_id: str) -> bool:
        """Copy the sales archived in a report back into the active set.

        Stock is not touched and the report itself is kept. Restoring the same
        report again rewrites identical documents.
        """
        document = self.store.get(CollectionKind.REPORTS, report_id)
        if document is None:
            log.warning("Report '%s' not found; nothing to restore", report_id)
            return False
        try:
            report = DayReport.from_document(document)
        except MalformedDocumentError as exc:
            log.error("Cannot restore malformed report '%s': %s", report_id, exc)
            return False

        try:
            self.store.batch_commit([set_op(CollectionKind.SALES, sale.id, sale.to_document()) for sale in report.sales])
        except StoreError as exc:
            log.error("Failed to restore report '%s': %s", report_id, exc)
            return False
        log.info("Restored %d sales from report '%s'", len(report.sales), report_id)
        return True

    def delete_report(self, report_id: str) -> bool:
        try:
            self.store.delete(CollectionKind.REPORTS, report_id)
        except StoreError as exc:
            log.error("Failed to delete report '%s': %s", report_id, exc)
            return False
        log.info("Deleted report '%s'", report_id)
        return True

    def add_expense(self, description: str, amount: Decimal, *, timestamp: Optional[datetime] = None) -> Optional[Expense]:
        """Record cash taken out of the till.

        Raises:
            ValueError: If ``amount`` is not positive or ``description`` is
                blank.
        """
        if not description.strip():
            raise ValueError("Expense description must not be empty")
        require_positive_quantity(amount)
        expense = Expense(
            id=generate_id(),
            description=description.strip(),
            amount=amount,
            timestamp=timestamp if timestamp is not None else self._clock(),
        )
        try:
            self.store.set(CollectionKind.EXPENSES, expense.id, expense.to_document())
        except StoreError as exc:
            log.error("Failed to record expense '%s': %s", expense.description, exc)
            return None
        log.info("Recorded expense '%s' (%s)", expense.description, expense.amount)
        return expense

    def delete_expense(self, expense_id: str) -> bool:
        try:
            self.store.delete(CollectionKind.EXPENSES, expense_id)
        except StoreError as exc:
            log.error("Failed to delete expense '%s': %s", expense_id, exc)
            return False
        log.info("Deleted expense '%s'", expense_id)
        return True


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the shop services used by the CLI."""

    settings: data_manager.ConfigSettings
    store: LedgerStore
    stock: StockAdjustmentEngine
    ledger: SaleLifecycleManager


def build_runtime_context(settings: data_manager.ConfigSettings, store: LedgerStore) -> RuntimeContext:
    stock = StockAdjustmentEngine(store)
    ledger = SaleLifecycleManager(store, stock, staff_name=settings.staff_name)
    return RuntimeContext(settings=settings, store=store, stock=stock, ledger=ledger)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and open the shop store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Settings plus the services bound to the configured
            shop's workbook.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = open_workbook_store(settings.data_dir, settings.shop_name)
    log.info("Loaded runtime context for shop '%s'", settings.shop_name)
    return build_runtime_context(settings, store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that ``config.ini`` targets the schema this code writes.

    Raises:
        RuntimeError: If the configured schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_sales(store: LedgerStore) -> List[SaleRecord]:
    """Return active sales, newest first."""

    return list(load_records(store, CollectionKind.SALES, order_by_timestamp_desc=True))


def list_expenses(store: LedgerStore) -> List[Expense]:
    return list(load_records(store, CollectionKind.EXPENSES, order_by_timestamp_desc=True))


def list_reports(store: LedgerStore) -> List[DayReport]:
    """Return archived reports, most recently closed first."""

    return list(load_records(store, CollectionKind.REPORTS, order_by_timestamp_desc=True))


def get_report(store: LedgerStore, report_id: str) -> DayReport:
    """Resolve an archived report by id.

    Raises:
        MissingReferenceError: If no report has ``report_id``.
    """
    document = store.get(CollectionKind.REPORTS, report_id)
    if document is None:
        log.warning("Report lookup failed for id '%s'", report_id)
        raise MissingReferenceError(f"Unknown report id: {report_id}")
    return DayReport.from_document(document)


__all__ = [
    "BusinessRuleViolation",
    "CloseDayOutcome",
    "MissingReferenceError",
    "RuntimeContext",
    "SaleCommand",
    "SaleLifecycleManager",
    "SaleOutcome",
    "build_runtime_context",
    "ensure_schema_version",
    "find_item_by_name",
    "get_report",
    "list_expenses",
    "list_reports",
    "list_sales",
    "load_runtime_context",
    "prepare_sale",
    "require_nonnegative_money",
    "require_positive_quantity",
]
