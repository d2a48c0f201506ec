"""Unit tests covering the sale lifecycle and runtime wiring in core_logic."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest import mock

import pytest

from greentrack_ledger import core_logic
from greentrack_ledger.constants import CollectionKind, FlowerGrade, PaymentMethod, ProductCategory
from greentrack_ledger.core_logic import (
    BusinessRuleViolation,
    MissingReferenceError,
    SaleCommand,
    SaleLifecycleManager,
    prepare_sale,
)
from greentrack_ledger.ledger_store import StoreError, WorkbookLedgerStore
from greentrack_ledger.models import DayReport
from greentrack_ledger.stock import StockAdjustmentEngine

BASE_MOMENT = datetime(2024, 5, 14, 9, 0, tzinfo=UTC)
DEFAULT_STAFF = "Nok"


@pytest.fixture
def ledger(store, clock):
    stock = StockAdjustmentEngine(store, clock=clock, sleep=lambda _: None)
    return SaleLifecycleManager(store, stock, staff_name=DEFAULT_STAFF, clock=clock)


@pytest.fixture
def stocked(store, make_item):
    """Shop holding one Mid flower at 100 g and one edible at 40 units."""

    store.set(CollectionKind.INVENTORY, "1", make_item("1", "Sour Diesel", "100").to_document())
    store.set(
        CollectionKind.INVENTORY,
        "7",
        make_item("7", "Gummies", "40", category=ProductCategory.EDIBLE, unit_price="150").to_document(),
    )
    return store


def _stock(store, item_id):
    return store.get(CollectionKind.INVENTORY, item_id)["stockLevel"]


def _command(name="Sour Diesel", quantity="5", **overrides):
    fields = dict(
        product_type=ProductCategory.FLOWER,
        product_name=name,
        quantity=Decimal(quantity),
        payment_method=PaymentMethod.CASH,
        grade=FlowerGrade.MID,
        timestamp=BASE_MOMENT,
    )
    fields.update(overrides)
    return SaleCommand(**fields)


# ---------------------------------------------------------------------------
# Validators and pricing of checkout lines
# ---------------------------------------------------------------------------


def test_require_positive_quantity_rejects_zero():
    """Zero quantities are not valid sales or expenses."""

    with pytest.raises(ValueError):
        core_logic.require_positive_quantity(Decimal("0"))


def test_require_nonnegative_money_allows_zero():
    """A free give-away is still a valid price."""

    core_logic.require_nonnegative_money(Decimal("0"))
    with pytest.raises(ValueError):
        core_logic.require_nonnegative_money(Decimal("-1"))


def test_prepare_sale_prices_flower_from_grade():
    """Flower sales take the tiered price for their grade and weight."""

    sale = prepare_sale(_command(quantity="5"), staff_name=DEFAULT_STAFF)

    assert sale.price == sale.original_price == Decimal("300")
    assert sale.is_negotiated is False
    assert sale.date == "2024-05-14"
    assert sale.staff_name == DEFAULT_STAFF


def test_prepare_sale_marks_negotiated_price():
    """A price differing from the standard one flags the sale as negotiated."""

    sale = prepare_sale(_command(quantity="5", negotiated_price=Decimal("280")), staff_name=DEFAULT_STAFF)

    assert sale.price == Decimal("280")
    assert sale.original_price == Decimal("300")
    assert sale.is_negotiated is True


def test_prepare_sale_equal_negotiated_price_is_not_negotiated():
    """Typing the standard price again does not count as a negotiation."""

    sale = prepare_sale(_command(quantity="5", negotiated_price=Decimal("300")), staff_name=DEFAULT_STAFF)
    assert sale.is_negotiated is False


def test_prepare_sale_takes_grade_from_inventory(make_item):
    """A flower command without grade falls back to the item's grade."""

    inventory = [make_item("2", "Blue Dream", grade=FlowerGrade.TOP)]
    sale = prepare_sale(_command("Blue Dream", "1", grade=None), staff_name=DEFAULT_STAFF, inventory=inventory)

    assert sale.grade is FlowerGrade.TOP
    assert sale.price == Decimal("300")


def test_prepare_sale_requires_grade_for_flower():
    """Flower with no resolvable grade cannot be priced."""

    with pytest.raises(BusinessRuleViolation):
        prepare_sale(_command("Mystery", grade=None), staff_name=DEFAULT_STAFF)


def test_prepare_sale_uses_unit_price_for_edibles(make_item):
    """Non-flower lines use the item's unit price and carry no grade."""

    inventory = [make_item("7", "Gummies", category=ProductCategory.EDIBLE, unit_price="150")]
    sale = prepare_sale(
        _command("Gummies", "2", product_type=ProductCategory.EDIBLE),
        staff_name=DEFAULT_STAFF,
        inventory=inventory,
    )

    assert sale.price == Decimal("300")
    assert sale.grade is None


def test_prepare_sale_rejects_negative_negotiated_price():
    """Negative prices are refused before anything is written."""

    with pytest.raises(ValueError):
        prepare_sale(_command(negotiated_price=Decimal("-5")), staff_name=DEFAULT_STAFF)


# ---------------------------------------------------------------------------
# Creating and voiding sales
# ---------------------------------------------------------------------------


def test_create_sale_decrements_stock(stocked, ledger):
    """Recording a sale lowers the named item's stock by the quantity."""

    sale = prepare_sale(_command(quantity="3.5"), staff_name=DEFAULT_STAFF)
    outcome = ledger.create_sale(sale)

    assert outcome.ok
    assert outcome.stock_adjusted is True
    assert stocked.get(CollectionKind.SALES, sale.id) is not None
    assert _stock(stocked, "1") == Decimal("96.5")


def test_create_then_delete_restores_stock(stocked, ledger):
    """Voiding a sale gives back exactly what it took."""

    sale = prepare_sale(_command(quantity="3.5"), staff_name=DEFAULT_STAFF)
    ledger.create_sale(sale)
    outcome = ledger.delete_sale(sale.id)

    assert outcome.sale_written is True
    assert outcome.stock_adjusted is True
    assert stocked.get(CollectionKind.SALES, sale.id) is None
    assert _stock(stocked, "1") == Decimal("100")


def test_double_void_does_not_compensate_twice(stocked, ledger):
    """A second void of the same sale leaves stock alone."""

    sale = prepare_sale(_command(quantity="2"), staff_name=DEFAULT_STAFF)
    ledger.create_sale(sale)
    ledger.delete_sale(sale.id)
    outcome = ledger.delete_sale(sale.id)

    assert outcome.sale_written is False
    assert outcome.stock_adjusted is None
    assert _stock(stocked, "1") == Decimal("100")


def test_other_category_skips_stock(stocked, ledger):
    """Sales of category Other never touch inventory, even with a matching name."""

    sale = prepare_sale(
        _command("Sour Diesel", "1", product_type=ProductCategory.OTHER, negotiated_price=Decimal("50")),
        staff_name=DEFAULT_STAFF,
    )
    outcome = ledger.create_sale(sale)

    assert outcome.ok
    assert outcome.stock_adjusted is None
    assert _stock(stocked, "1") == Decimal("100")


def test_unknown_product_is_recorded_without_stock_change(stocked, ledger, caplog):
    """A sale naming no inventory item is still written."""

    sale = prepare_sale(_command("Unlisted Kush"), staff_name=DEFAULT_STAFF)
    outcome = ledger.create_sale(sale)

    assert outcome.sale_written is True
    assert outcome.stock_adjusted is None
    assert "No inventory item named 'Unlisted Kush'" in caplog.text


def test_create_sale_store_failure_is_reported(stocked, ledger):
    """Store failures come back as a failed outcome instead of raising."""

    sale = prepare_sale(_command(), staff_name=DEFAULT_STAFF)
    with mock.patch.object(stocked, "batch_commit", side_effect=StoreError("offline")):
        outcome = ledger.create_sale(sale)

    assert outcome.sale_written is False
    assert outcome.stock_adjusted is False
    assert not outcome.ok
    assert stocked.get(CollectionKind.SALES, sale.id) is None
    assert _stock(stocked, "1") == Decimal("100")


def test_delete_unknown_sale_reports_nothing_written(store, ledger):
    """Voiding an id that was never recorded is harmless."""

    outcome = ledger.delete_sale("ghost")
    assert outcome.sale_written is False


# ---------------------------------------------------------------------------
# Closing the day and restoring reports
# ---------------------------------------------------------------------------


def test_close_day_archives_and_clears(stocked, ledger):
    """Closing moves every active sale and expense into one report."""

    first = prepare_sale(_command(quantity="5"), staff_name=DEFAULT_STAFF)
    second = prepare_sale(
        _command(quantity="1", timestamp=BASE_MOMENT + timedelta(minutes=5)), staff_name=DEFAULT_STAFF
    )
    ledger.create_sale(first)
    ledger.create_sale(second)
    ledger.add_expense("Ice", Decimal("40"))

    outcome = ledger.close_day()

    assert outcome.archived and outcome.cleared
    report = outcome.report
    assert report.total_sales == 2
    assert report.total_revenue == Decimal("400")
    assert report.items_sold == Decimal("6")
    assert [sale.id for sale in report.sales] == [second.id, first.id]
    assert len(report.expenses) == 1
    assert report.closed_by == DEFAULT_STAFF
    assert report.id.startswith(report.date + "-")
    assert core_logic.list_sales(stocked) == []
    assert core_logic.list_expenses(stocked) == []
    assert core_logic.list_reports(stocked) == [report]


def test_close_day_with_no_sales_writes_empty_report(store, ledger):
    """An empty day still produces a report."""

    outcome = ledger.close_day(date="2024-05-13", closed_by="Manager")

    assert outcome.report.total_sales == 0
    assert outcome.report.total_revenue == Decimal("0")
    assert outcome.report.date == "2024-05-13"
    assert outcome.report.closed_by == "Manager"


def test_closing_twice_keeps_both_reports(store, ledger):
    """Two closes on the same date never overwrite each other."""

    first = ledger.close_day().report
    second = ledger.close_day().report

    assert first.date == second.date
    assert first.id != second.id
    assert len(core_logic.list_reports(store)) == 2


def test_archived_report_is_unaffected_by_later_sales(stocked, ledger):
    """Reports hold copies; later activity never changes them."""

    sale = prepare_sale(_command(), staff_name=DEFAULT_STAFF)
    ledger.create_sale(sale)
    report = ledger.close_day().report

    ledger.create_sale(prepare_sale(_command(quantity="2"), staff_name=DEFAULT_STAFF))

    stored = core_logic.get_report(stocked, report.id)
    assert stored == report
    assert [archived.id for archived in stored.sales] == [sale.id]


def test_close_day_failure_leaves_sales_active(stocked, ledger):
    """A failed close writes neither the report nor the removals."""

    ledger.create_sale(prepare_sale(_command(), staff_name=DEFAULT_STAFF))
    with mock.patch.object(stocked, "batch_commit", side_effect=StoreError("offline")):
        outcome = ledger.close_day()

    assert outcome.report is None
    assert not outcome.archived
    assert len(core_logic.list_sales(stocked)) == 1


def test_restore_report_brings_sales_back_without_stock(stocked, ledger):
    """Restoring copies archived sales back and leaves stock untouched."""

    sale = prepare_sale(_command(quantity="5"), staff_name=DEFAULT_STAFF)
    ledger.create_sale(sale)
    report = ledger.close_day().report

    assert ledger.restore_report(report.id) is True
    assert ledger.restore_report(report.id) is True

    assert [restored.id for restored in core_logic.list_sales(stocked)] == [sale.id]
    assert _stock(stocked, "1") == Decimal("95")
    assert core_logic.get_report(stocked, report.id) == report


def test_restore_unknown_report_returns_false(store, ledger):
    """Restoring a missing report is reported, not raised."""

    assert ledger.restore_report("2024-01-01-000000") is False


def test_delete_report_removes_archive(store, ledger):
    """Deleted reports are gone from the listing."""

    report = ledger.close_day().report
    assert ledger.delete_report(report.id) is True
    assert core_logic.list_reports(store) == []
    with pytest.raises(MissingReferenceError):
        core_logic.get_report(store, report.id)


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


def test_add_expense_records_document(store, ledger):
    """Expenses are stored with a trimmed description."""

    expense = ledger.add_expense("  Rolling papers ", Decimal("25"))

    assert expense.description == "Rolling papers"
    assert core_logic.list_expenses(store) == [expense]


@pytest.mark.parametrize(("description", "amount"), [("", "10"), ("Ice", "0"), ("Ice", "-3")])
def test_add_expense_rejects_invalid_input(ledger, description, amount):
    """Blank descriptions and non-positive amounts are refused."""

    with pytest.raises(ValueError):
        ledger.add_expense(description, Decimal(amount))


def test_delete_expense_removes_document(store, ledger):
    """Deleting an expense drops it from the active set."""

    expense = ledger.add_expense("Ice", Decimal("40"))
    assert ledger.delete_expense(expense.id) is True
    assert core_logic.list_expenses(store) == []


# ---------------------------------------------------------------------------
# Runtime context
# ---------------------------------------------------------------------------


def test_load_runtime_context_opens_shop_workbook(runtime_context):
    """The runtime context is bound to the configured shop's workbook."""

    assert isinstance(runtime_context.store, WorkbookLedgerStore)
    assert runtime_context.store.shop == "Test Shop"
    assert runtime_context.ledger.staff_name == DEFAULT_STAFF
    assert runtime_context.stock.store is runtime_context.store


def test_runtime_context_persists_sales(runtime_context):
    """Sales written through the context land in the workbook."""

    context = runtime_context
    context.stock.seed_default_inventory()
    sale = prepare_sale(_command(), staff_name=context.settings.staff_name)
    context.ledger.create_sale(sale)

    reopened = WorkbookLedgerStore("Test Shop", context.store.data_file, create=False)
    assert [record.id for record in core_logic.list_sales(reopened)] == [sale.id]
    assert _stock(reopened, "1") == Decimal("95")


def test_ensure_schema_version_rejects_mismatch(config_factory):
    """Outdated configuration is refused before any command runs."""

    bundle = config_factory(schema_version="0.9.0")
    context = core_logic.load_runtime_context(bundle.config_path)
    with pytest.raises(RuntimeError):
        core_logic.ensure_schema_version(context)


def test_get_report_decodes_document(store, ledger):
    """get_report returns the typed report."""

    report = ledger.close_day().report
    assert isinstance(core_logic.get_report(store, report.id), DayReport)
