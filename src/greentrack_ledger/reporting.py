"""Read-only summaries over sales, expenses and archived reports.

Nothing here writes to the store. The day summary works on the active sales
of the open day; the weekly and monthly dashboards only look at sales that
were archived by closing a day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .constants import FlowerGrade, PaymentMethod, ProductCategory
from .models import DayReport, Expense, SaleRecord


TOP_SELLER_COUNT = 5
CASH_DENOMINATIONS: Tuple[Decimal, ...] = tuple(
    Decimal(value) for value in ("1000", "500", "100", "50", "20", "10", "5", "2", "1", "0.5", "0.25")
)


@dataclass(frozen=True)
class ProductStat:
    name: str
    product_type: ProductCategory
    grade: Optional[FlowerGrade]
    quantity: Decimal
    revenue: Decimal


@dataclass(frozen=True)
class CategoryShare:
    category: ProductCategory
    revenue: Decimal
    percent: Decimal


@dataclass(frozen=True)
class DaySummary:
    """Totals shown on the end-of-day receipt."""

    total_revenue: Decimal
    transactions: int
    items_sold: Decimal
    cash_total: Decimal
    scan_total: Decimal
    expenses_total: Decimal
    expected_cash: Decimal
    top_sellers: Tuple[ProductStat, ...]


@dataclass(frozen=True)
class PeriodSummary:
    """Dashboard figures for a window of archived sales."""

    label: str
    start: date
    sales: Tuple[SaleRecord, ...]
    total_revenue: Decimal
    transactions: int
    average_ticket: Decimal
    buckets: Tuple[Tuple[str, Decimal], ...]
    category_shares: Tuple[CategoryShare, ...]
    best_sellers: Tuple[ProductStat, ...]


@dataclass(frozen=True)
class CashDrawerCount:
    total: Decimal
    expected: Decimal

    @property
    def difference(self) -> Decimal:
        return self.total - self.expected


def _sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, Decimal("0"))


def top_sellers(sales: Iterable[SaleRecord], limit: int = TOP_SELLER_COUNT) -> Tuple[ProductStat, ...]:
    """Rank products by quantity sold, highest first.

    Ties keep the order in which products first appear in ``sales``.
    """

    stats: Dict[str, ProductStat] = {}
    for sale in sales:
        current = stats.get(sale.product_name)
        if current is None:
            stats[sale.product_name] = ProductStat(
                name=sale.product_name,
                product_type=sale.product_type,
                grade=sale.grade,
                quantity=sale.quantity,
                revenue=sale.price,
            )
        else:
            stats[sale.product_name] = ProductStat(
                name=current.name,
                product_type=current.product_type,
                grade=current.grade,
                quantity=current.quantity + sale.quantity,
                revenue=current.revenue + sale.price,
            )
    ranked = sorted(stats.values(), key=lambda stat: stat.quantity, reverse=True)
    return tuple(ranked[:limit])


def day_summary(sales: Sequence[SaleRecord], expenses: Sequence[Expense] = ()) -> DaySummary:
    """Summarize the open day; expected cash is cash sales minus expenses."""

    cash_total = _sum(sale.price for sale in sales if sale.payment_method is PaymentMethod.CASH)
    scan_total = _sum(sale.price for sale in sales if sale.payment_method is PaymentMethod.SCAN)
    expenses_total = _sum(expense.amount for expense in expenses)
    return DaySummary(
        total_revenue=_sum(sale.price for sale in sales),
        transactions=len(sales),
        items_sold=_sum(sale.quantity for sale in sales),
        cash_total=cash_total,
        scan_total=scan_total,
        expenses_total=expenses_total,
        expected_cash=cash_total - expenses_total,
        top_sellers=top_sellers(sales),
    )


def category_shares(sales: Iterable[SaleRecord]) -> Tuple[CategoryShare, ...]:
    revenue: Dict[ProductCategory, Decimal] = {}
    for sale in sales:
        revenue[sale.product_type] = revenue.get(sale.product_type, Decimal("0")) + sale.price
    total = _sum(revenue.values())
    return tuple(
        CategoryShare(category, value, (value / total) * 100 if total else Decimal("0"))
        for category, value in revenue.items()
    )


def archived_sales(reports: Iterable[DayReport]) -> List[SaleRecord]:
    return [sale for report in reports for sale in report.sales]


def _period_summary(
    label: str,
    start: date,
    sales: List[SaleRecord],
    bucket_labels: Sequence[str],
    bucket_index,
) -> PeriodSummary:
    buckets = [Decimal("0")] * len(bucket_labels)
    for sale in sales:
        index = bucket_index(sale)
        if 0 <= index < len(buckets):
            buckets[index] += sale.price

    total_revenue = _sum(sale.price for sale in sales)
    return PeriodSummary(
        label=label,
        start=start,
        sales=tuple(sales),
        total_revenue=total_revenue,
        transactions=len(sales),
        average_ticket=total_revenue / len(sales) if sales else Decimal("0"),
        buckets=tuple(zip(bucket_labels, buckets)),
        category_shares=category_shares(sales),
        best_sellers=top_sellers(sales),
    )


def weekly_summary(reports: Iterable[DayReport], *, today: date) -> PeriodSummary:
    """Archived sales of the last seven days, bucketed per calendar day."""

    start = today - timedelta(days=6)
    sales = [sale for sale in archived_sales(reports) if sale.timestamp.date() >= start]
    labels = [(start + timedelta(days=offset)).strftime("%a") for offset in range(7)]
    return _period_summary(
        "Last 7 Days",
        start,
        sales,
        labels,
        lambda sale: (sale.timestamp.date() - start).days,
    )


def monthly_summary(reports: Iterable[DayReport], *, today: date) -> PeriodSummary:
    """Archived sales of the current month in four week buckets.

    Day ``n`` falls in bucket ``(n - 1) // 7``; days 29 and later count
    towards the totals but fall outside the four buckets.
    """

    start = today.replace(day=1)
    sales = [sale for sale in archived_sales(reports) if sale.timestamp.date() >= start]
    return _period_summary(
        "This Month",
        start,
        sales,
        ["W1", "W2", "W3", "W4"],
        lambda sale: (sale.timestamp.day - 1) // 7,
    )


def count_cash_drawer(counts: Mapping[Decimal, int], expected: Decimal) -> CashDrawerCount:
    """Total the notes and coins counted in the drawer.

    Raises:
        ValueError: For an unknown denomination or a negative count.
    """

    total = Decimal("0")
    for denomination, count in counts.items():
        denomination = Decimal(str(denomination))
        if denomination not in CASH_DENOMINATIONS:
            raise ValueError(f"Unknown denomination: {denomination}")
        if count < 0:
            raise ValueError(f"Negative count for denomination {denomination}")
        total += denomination * count
    return CashDrawerCount(total=total, expected=expected)


def search_reports(reports: Iterable[DayReport], query: str) -> List[DayReport]:
    """Filter reports by date, sold product name or closing staff member."""

    needle = query.lower()
    return [
        report
        for report in reports
        if query in report.date
        or any(needle in sale.product_name.lower() for sale in report.sales)
        or needle in report.closed_by.lower()
    ]


__all__ = [
    "CASH_DENOMINATIONS",
    "CashDrawerCount",
    "CategoryShare",
    "DaySummary",
    "PeriodSummary",
    "ProductStat",
    "archived_sales",
    "category_shares",
    "count_cash_drawer",
    "day_summary",
    "monthly_summary",
    "search_reports",
    "top_sellers",
    "weekly_summary",
]
