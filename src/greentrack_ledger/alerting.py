"""Edge-triggered stock alerts and on-demand stock status reports.

:class:`ThresholdMonitor` compares each inventory snapshot with the previous
one seen by the same session and reports an item only when it crosses into
the low-stock band or hits zero, not on every delivery while it stays there.
The first snapshot after start (or after :meth:`ThresholdMonitor.reset`) only
primes the baseline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from . import log
from .constants import LOW_STOCK_THRESHOLD, NotificationType
from .models import InventoryItem, NotificationEvent
from .notifications import NotificationChannel


class AlertKind(str, Enum):
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"


@dataclass(frozen=True)
class StockAlert:
    kind: AlertKind
    item_id: str
    name: str
    level: Decimal

    @property
    def message(self) -> str:
        if self.kind is AlertKind.OUT_OF_STOCK:
            return f"{self.name} is out of stock"
        return f"{self.name} is running low ({self.level} left)"


@dataclass(frozen=True)
class Unprimed:
    """No inventory snapshot seen yet."""


@dataclass(frozen=True)
class Primed:
    """Stock levels from the last snapshot, keyed by item id."""

    levels: Mapping[str, Decimal] = field(default_factory=dict)


MonitorState = Union[Unprimed, Primed]


class ThresholdMonitor:
    """Per-session detector of low-stock and out-of-stock transitions.

    Args:
        threshold: Highest level still counted as low stock.
    """

    def __init__(self, threshold: Decimal = LOW_STOCK_THRESHOLD) -> None:
        self.threshold = threshold
        self.state: MonitorState = Unprimed()

    def reset(self) -> None:
        """Forget the baseline; the next snapshot primes again."""

        self.state = Unprimed()

    def observe(self, items: Iterable[InventoryItem]) -> List[StockAlert]:
        """Diff ``items`` against the baseline and adopt it as the new one.

        An item absent from the baseline is treated as if its previous level
        were unknown, so a new item that arrives already low still alerts.
        """

        items = list(items)
        levels: Dict[str, Decimal] = {item.id: item.stock_level for item in items}

        if isinstance(self.state, Unprimed):
            self.state = Primed(levels)
            log.debug("Stock monitor primed with %d items", len(levels))
            return []

        previous = self.state.levels
        alerts: List[StockAlert] = []
        for item in items:
            before: Optional[Decimal] = previous.get(item.id)
            current = item.stock_level
            if Decimal("0") < current <= self.threshold and (before is None or before > self.threshold):
                alerts.append(StockAlert(AlertKind.LOW_STOCK, item.id, item.name, current))
            elif current <= Decimal("0") and (before is None or before > Decimal("0")):
                alerts.append(StockAlert(AlertKind.OUT_OF_STOCK, item.id, item.name, current))

        self.state = Primed(levels)
        for alert in alerts:
            log.warning("Stock alert: %s", alert.message)
        return alerts


@dataclass(frozen=True)
class StockStatus:
    out_of_stock: Tuple[InventoryItem, ...]
    low_stock: Tuple[InventoryItem, ...]

    @property
    def healthy(self) -> bool:
        return not self.out_of_stock and not self.low_stock

    def message(self) -> str:
        """Render the status as the supplier reorder note."""

        if self.healthy:
            return "Inventory Status: Healthy\nAll items have sufficient stock levels."
        sections = []
        if self.out_of_stock:
            lines = [f"- {item.name} ({item.category.value})" for item in self.out_of_stock]
            sections.append("OUT OF STOCK (Order Immediately):\n" + "\n".join(lines))
        if self.low_stock:
            lines = [f"- {item.name}: {item.stock_level} left" for item in self.low_stock]
            sections.append("LOW STOCK (Order Soon):\n" + "\n".join(lines))
        return "\n\n".join(sections)


def check_stock_levels(items: Iterable[InventoryItem], threshold: Decimal = LOW_STOCK_THRESHOLD) -> StockStatus:
    """Split ``items`` into out-of-stock and low-stock groups."""

    items = list(items)
    return StockStatus(
        out_of_stock=tuple(item for item in items if item.stock_level <= Decimal("0")),
        low_stock=tuple(item for item in items if Decimal("0") < item.stock_level <= threshold),
    )


def publish_stock_summary(
    channel: NotificationChannel,
    items: Iterable[InventoryItem],
    threshold: Decimal = LOW_STOCK_THRESHOLD,
) -> Optional[NotificationEvent]:
    """Broadcast the current stock problems to every terminal of the shop.

    Nothing is published while stock is healthy.
    """

    status = check_stock_levels(items, threshold)
    if status.healthy:
        log.info("Stock summary not published: inventory is healthy")
        return None
    kind = NotificationType.ERROR if status.out_of_stock else NotificationType.WARNING
    return channel.announce(status.message(), kind)


__all__ = [
    "AlertKind",
    "MonitorState",
    "Primed",
    "StockAlert",
    "StockStatus",
    "ThresholdMonitor",
    "Unprimed",
    "check_stock_levels",
    "publish_stock_summary",
]
