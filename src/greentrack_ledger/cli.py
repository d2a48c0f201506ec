"""Command-line entry points for GreenTrack Ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the objects consumed by the business layer and
printing results. Every write goes through the shop store configured in
``config.ini``, which persists it immediately.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, ledger_io, log, pricing, reporting
from .alerting import check_stock_levels, publish_stock_summary
from .constants import CollectionKind, FlowerGrade, NotificationType, PaymentMethod, ProductCategory
from .ledger_store import load_records
from .models import InventoryItem, generate_id, utcnow
from .notifications import NotificationChannel


CENT = Decimal("0.01")


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="greentrack-cli",
        description="Command-line tools for the GreenTrack shop ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and day closes."""
    specs = {
        "seed": register_seed_command(subparsers),
        "add-item": register_add_item_command(subparsers),
        "remove-item": register_remove_item_command(subparsers),
        "adjust-stock": register_adjust_stock_command(subparsers),
        "sale": register_sale_command(subparsers),
        "void": register_void_command(subparsers),
        "expense": register_expense_command(subparsers),
        "close-day": register_close_day_command(subparsers),
        "restore": register_restore_command(subparsers),
        "delete-report": register_delete_report_command(subparsers),
        "notify": register_notify_command(subparsers),
        "import": register_import_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "quote": register_quote_command(subparsers),
        "stock": register_stock_command(subparsers),
        "check-stock": register_check_stock_command(subparsers),
        "summary": register_summary_command(subparsers),
        "history": register_history_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_category_arguments(parser: argparse.ArgumentParser, *, required: bool = True) -> None:
    parser.add_argument("--category", choices=[member.value for member in ProductCategory], required=required)
    parser.add_argument("--grade", choices=[member.value for member in FlowerGrade], default=None)


# ---------------------------------------------------------------------------
# Write command registrations
# ---------------------------------------------------------------------------


def register_seed_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``seed``."""
    name = "seed"
    help_text = "Load the default starter inventory."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_seed)


def register_add_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-item``."""
    name = "add-item"
    help_text = "Create or replace an inventory item."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", default=None, help="Existing id to replace; generated when omitted.")
        parser.add_argument("--name", required=True)
        _add_category_arguments(parser)
        parser.add_argument("--stock", required=True, help="Grams for flower, units otherwise.")
        parser.add_argument("--unit-price", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_item)


def register_remove_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``remove-item``."""
    name = "remove-item"
    help_text = "Delete an inventory item."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_remove_item)


def register_adjust_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust-stock``."""
    name = "adjust-stock"
    help_text = "Add a signed delta to an item's stock level."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--delta", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_adjust_stock)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Ring up a sale and decrement stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_category_arguments(parser)
        parser.add_argument("--name", required=True, help="Product name as listed in the inventory.")
        parser.add_argument("--quantity", required=True)
        parser.add_argument(
            "--payment",
            choices=[member.value for member in PaymentMethod],
            required=True,
        )
        parser.add_argument("--price", default=None, help="Negotiated price replacing the standard one.")
        parser.add_argument("--notes", dest="notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_void_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``void``."""
    name = "void"
    help_text = "Delete an active sale and return its stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_void)


def register_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expense``."""
    name = "expense"
    help_text = "Record cash paid out of the till."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_expense)


def register_close_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-day``."""
    name = "close-day"
    help_text = "Archive today's sales and expenses into a report."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today in UTC.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_day)


def register_restore_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``restore``."""
    name = "restore"
    help_text = "Copy an archived report's sales back into the active day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--report-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_restore)


def register_delete_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-report``."""
    name = "delete-report"
    help_text = "Delete an archived report."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--report-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_report)


def register_notify_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``notify``."""
    name = "notify"
    help_text = "Broadcast a message to every terminal of the shop."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--message", required=True)
        parser.add_argument(
            "--type",
            choices=[member.value for member in NotificationType],
            default=NotificationType.INFO.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_notify)


def register_import_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import``."""
    name = "import"
    help_text = "Load sales and inventory from a JSON export."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--input", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import)


# ---------------------------------------------------------------------------
# Read command registrations
# ---------------------------------------------------------------------------


def register_quote_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``quote``."""
    name = "quote"
    help_text = "Show the standard price of a checkout line."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_category_arguments(parser)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--unit-price", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_quote)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display current stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_check_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``check-stock``."""
    name = "check-stock"
    help_text = "List out-of-stock and low-stock items."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--publish", action="store_true", help="Broadcast the result to every terminal.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_check_stock)


def register_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``summary``."""
    name = "summary"
    help_text = "Display the open day or an archived period."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--period", choices=["day", "weekly", "monthly"], default="day")
        parser.add_argument("--today", type=date.fromisoformat, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_summary)


def register_history_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``history``."""
    name = "history"
    help_text = "List archived day reports."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default=None, help="Filter by date, product or staff name.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_history)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Write active sales and inventory to a JSON file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translators
# ---------------------------------------------------------------------------


def parse_decimal(raw: Optional[str], field: str) -> Optional[Decimal]:
    """Parse an optional decimal argument, naming ``field`` on failure."""
    if raw is None:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid number for {field}: {raw!r}") from exc


def format_money(amount: Decimal) -> str:
    return f"{amount.quantize(CENT):,}"


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        product_type=ProductCategory(args.category),
        product_name=args.name,
        quantity=parse_decimal(args.quantity, "quantity"),
        payment_method=PaymentMethod(args.payment),
        grade=FlowerGrade(args.grade) if args.grade else None,
        negotiated_price=parse_decimal(args.price, "price"),
        notes=args.notes,
    )


def translate_item(args: argparse.Namespace) -> InventoryItem:
    """Translate CLI args into an inventory item.

    Raises:
        BusinessRuleViolation: If a flower item has no grade.
    """
    category = ProductCategory(args.category)
    grade = FlowerGrade(args.grade) if args.grade else None
    if category is ProductCategory.FLOWER and grade is None:
        raise core_logic.BusinessRuleViolation("Flower items need a grade")
    return InventoryItem(
        id=args.item_id or generate_id(),
        category=category,
        name=args.name,
        stock_level=parse_decimal(args.stock, "stock"),
        last_updated=utcnow(),
        grade=grade if category is ProductCategory.FLOWER else None,
        unit_price=parse_decimal(args.unit_price, "unit price") if category is not ProductCategory.FLOWER else None,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_seed(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Load the default inventory."""
    if not context.stock.seed_default_inventory():
        return 1
    print("Default inventory added.")
    return 0


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = translate_item(args)
    if not context.stock.save_item(item):
        return 1
    print(f"Saved {item.name} ({item.id}) with stock {item.stock_level}.")
    return 0


def run_remove_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if context.store.get(CollectionKind.INVENTORY, args.item_id) is None:
        raise core_logic.MissingReferenceError(f"Unknown item id: {args.item_id}")
    return 0 if context.stock.remove_item(args.item_id) else 1


def run_adjust_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Apply a signed stock delta to one item."""
    document = context.store.get(CollectionKind.INVENTORY, args.item_id)
    if document is None:
        raise core_logic.MissingReferenceError(f"Unknown item id: {args.item_id}")
    delta = parse_decimal(args.delta, "delta")
    if not context.stock.adjust(args.item_id, document.get("stockLevel"), delta):
        return 1
    updated = context.store.get(CollectionKind.INVENTORY, args.item_id) or {}
    print(f"Stock of {document.get('name')} is now {updated.get('stockLevel')}.")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Price and record a sale via the BLL."""
    command = translate_sale(args)
    inventory = load_records(context.store, CollectionKind.INVENTORY)
    sale = core_logic.prepare_sale(command, staff_name=context.settings.staff_name, inventory=inventory)
    outcome = context.ledger.create_sale(sale, inventory)
    if not outcome.sale_written:
        return 1
    suffix = " (negotiated)" if sale.is_negotiated else ""
    print(f"Sale {sale.id}: {sale.quantity} x {sale.product_name} for {format_money(sale.price)}{suffix}.")
    if outcome.stock_adjusted is None and sale.product_type is not ProductCategory.OTHER:
        print("Warning: no inventory item with that name; stock not changed.")
    return 0


def run_void(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if context.store.get(CollectionKind.SALES, args.sale_id) is None:
        raise core_logic.MissingReferenceError(f"Unknown sale id: {args.sale_id}")
    outcome = context.ledger.delete_sale(args.sale_id)
    if not outcome.sale_written:
        return 1
    print(f"Voided sale {args.sale_id}.")
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expense = context.ledger.add_expense(args.description, parse_decimal(args.amount, "amount"))
    if expense is None:
        return 1
    print(f"Expense {expense.id}: {expense.description} {format_money(expense.amount)}.")
    return 0


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Archive the open day."""
    outcome = context.ledger.close_day(date=args.date)
    if outcome.report is None:
        return 1
    report = outcome.report
    print(
        f"Closed {report.date} as {report.id}: {report.total_sales} sales, "
        f"revenue {format_money(report.total_revenue)}."
    )
    return 0


def run_restore(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = core_logic.get_report(context.store, args.report_id)
    if not context.ledger.restore_report(report.id):
        return 1
    print(f"Restored {len(report.sales)} sales from {report.id}.")
    return 0


def run_delete_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.get_report(context.store, args.report_id)
    return 0 if context.ledger.delete_report(args.report_id) else 1


def run_notify(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    channel = NotificationChannel(context.store, sent_by=context.settings.staff_name)
    event = channel.announce(args.message, NotificationType(args.type))
    return 0 if event is not None else 1


def run_import(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Import a JSON export in one batch."""
    payload = ledger_io.read_export(args.input)
    problems = ledger_io.validate_payload(payload)
    if problems:
        for problem in problems:
            log.error("Import rejected: %s", problem)
        raise core_logic.BusinessRuleViolation(f"{len(problems)} invalid document(s) in {args.input}")
    count = ledger_io.import_ledger(context.store, payload)
    print(f"Imported {count} documents.")
    return 0


def run_quote(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    amount = pricing.quote(
        ProductCategory(args.category),
        parse_decimal(args.quantity, "quantity"),
        grade=args.grade,
        unit_price=parse_decimal(args.unit_price, "unit price"),
    )
    print(format_money(amount))
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every item with its stock level."""
    for item in load_records(context.store, CollectionKind.INVENTORY):
        label = item.grade.value if item.grade is not None else item.category.value
        print(f"{item.id}\t{item.name}\t{label}\t{item.stock_level}")
    return 0


def run_check_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    items = load_records(context.store, CollectionKind.INVENTORY)
    threshold = context.settings.low_stock_threshold
    print(check_stock_levels(items, threshold).message())
    if args.publish:
        channel = NotificationChannel(context.store, sent_by=context.settings.staff_name)
        publish_stock_summary(channel, items, threshold)
    return 0


def run_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the day summary or an archived period dashboard."""
    if args.period == "day":
        summary = reporting.day_summary(
            core_logic.list_sales(context.store),
            core_logic.list_expenses(context.store),
        )
        print(f"Revenue: {format_money(summary.total_revenue)} ({summary.transactions} sales)")
        print(f"Cash: {format_money(summary.cash_total)}  Scan: {format_money(summary.scan_total)}")
        print(f"Expenses: {format_money(summary.expenses_total)}  Expected cash: {format_money(summary.expected_cash)}")
        sellers = summary.top_sellers
    else:
        today = args.today or utcnow().date()
        reports = core_logic.list_reports(context.store)
        builder = reporting.weekly_summary if args.period == "weekly" else reporting.monthly_summary
        period = builder(reports, today=today)
        print(f"{period.label}: {format_money(period.total_revenue)} over {period.transactions} sales")
        print(f"Average ticket: {format_money(period.average_ticket)}")
        for label, value in period.buckets:
            print(f"  {label}\t{format_money(value)}")
        for share in period.category_shares:
            print(f"  {share.category.value}\t{share.percent.quantize(Decimal('0.1'))}%")
        sellers = period.best_sellers
    for rank, stat in enumerate(sellers, start=1):
        print(f"{rank}. {stat.name}\t{stat.quantity}\t{format_money(stat.revenue)}")
    return 0


def run_history(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    reports = core_logic.list_reports(context.store)
    if args.search:
        reports = reporting.search_reports(reports, args.search)
    for report in reports:
        print(
            f"{report.id}\t{report.date}\t{report.total_sales} sales\t"
            f"{format_money(report.total_revenue)}\t{report.closed_by}"
        )
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    destination = ledger_io.write_export(ledger_io.export_ledger(context.store), args.output)
    print(f"Exported to {destination}.")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = core_logic.load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
