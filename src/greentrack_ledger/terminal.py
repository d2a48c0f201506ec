"""One point-of-sale terminal connected to a shop.

A :class:`TerminalSession` subscribes to every collection of its shop, keeps
the latest delivered snapshot of each as plain tuples of records, runs the
stock monitor over inventory deliveries and filters the notification stream
through its own :class:`~greentrack_ledger.notifications.NotificationFeed`.
Commands issued through the session use its local snapshots for lookups, the
same way a till works from what it currently shows.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from . import log
from .alerting import StockAlert, ThresholdMonitor, publish_stock_summary
from .constants import LOW_STOCK_THRESHOLD, CollectionKind, NotificationType
from .core_logic import CloseDayOutcome, SaleCommand, SaleLifecycleManager, SaleOutcome, prepare_sale
from .ledger_store import LedgerStore, Subscription, subscribe_records
from .models import DayReport, Expense, InventoryItem, NotificationEvent, SaleRecord, utcnow
from .notifications import NotificationChannel, NotificationFeed
from .stock import StockAdjustmentEngine


class TerminalSession:
    """Live view of a shop plus the commands a terminal can issue.

    Args:
        store: Shop namespace the terminal connects to.
        staff_name: Staff member operating the terminal.
        threshold: Low-stock threshold for the alert monitor.
        clock: Time source for the join instant and written records.
        on_alert: Called for every stock alert raised by this session.
        on_notification: Called for every notification surfaced to this
            session.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        staff_name: str,
        threshold: Decimal = LOW_STOCK_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
        on_alert: Optional[Callable[[StockAlert], None]] = None,
        on_notification: Optional[Callable[[NotificationEvent], None]] = None,
    ) -> None:
        self.store = store
        self.staff_name = staff_name
        self.threshold = threshold
        self._clock = clock
        self._on_alert = on_alert

        self.stock = StockAdjustmentEngine(store, clock=clock)
        self.ledger = SaleLifecycleManager(store, self.stock, staff_name=staff_name, clock=clock)
        self.channel = NotificationChannel(store, sent_by=staff_name, clock=clock)
        self.monitor = ThresholdMonitor(threshold)
        self.feed: Optional[NotificationFeed] = None
        self._on_notification = on_notification

        self.inventory: Tuple[InventoryItem, ...] = ()
        self.sales: Tuple[SaleRecord, ...] = ()
        self.expenses: Tuple[Expense, ...] = ()
        self.reports: Tuple[DayReport, ...] = ()
        self.alerts: List[StockAlert] = []
        self._subscriptions: List[Subscription] = []

    @property
    def connected(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        """Record the join instant and subscribe to every collection."""

        if self.connected:
            return
        if self.feed is None:
            self.feed = NotificationFeed(self._clock(), self._on_notification)
        self._subscriptions = [
            subscribe_records(self.store, CollectionKind.INVENTORY, self._handle_inventory),
            subscribe_records(self.store, CollectionKind.SALES, self._handle_sales, order_by_timestamp_desc=True),
            subscribe_records(self.store, CollectionKind.EXPENSES, self._handle_expenses, order_by_timestamp_desc=True),
            subscribe_records(self.store, CollectionKind.REPORTS, self._handle_reports, order_by_timestamp_desc=True),
            subscribe_records(
                self.store,
                CollectionKind.NOTIFICATIONS,
                self.feed.handle_snapshot,
                order_by_timestamp_desc=True,
            ),
        ]
        log.info("Terminal for %s joined shop '%s'", self.staff_name, self.store.shop)

    def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        log.info("Terminal for %s left shop '%s'", self.staff_name, self.store.shop)

    def reconnect(self) -> None:
        """Resubscribe after a dropped connection.

        The stock baseline is discarded so the first delivery primes it again.
        The notification feed rejoins at the reconnect instant, so events
        published while the terminal was offline are never surfaced.
        """

        self.stop()
        self.monitor.reset()
        if self.feed is not None:
            self.feed.rejoin(self._clock())
        self.start()

    def _handle_inventory(self, items: Tuple[InventoryItem, ...]) -> None:
        self.inventory = items
        for alert in self.monitor.observe(items):
            self.alerts.append(alert)
            if self._on_alert is not None:
                self._on_alert(alert)

    def _handle_sales(self, sales: Tuple[SaleRecord, ...]) -> None:
        self.sales = sales

    def _handle_expenses(self, expenses: Tuple[Expense, ...]) -> None:
        self.expenses = expenses

    def _handle_reports(self, reports: Tuple[DayReport, ...]) -> None:
        self.reports = reports

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def ring_up(self, command: SaleCommand) -> Tuple[SaleRecord, SaleOutcome]:
        """Price ``command`` against the local inventory and record it."""

        sale = prepare_sale(command, staff_name=self.staff_name, inventory=self.inventory)
        return sale, self.ledger.create_sale(sale, self.inventory)

    def void(self, sale_id: str) -> SaleOutcome:
        return self.ledger.delete_sale(sale_id, self.inventory)

    def adjust_stock(self, item_id: str, delta: Decimal) -> bool:
        """Adjust an item using the level this terminal currently shows."""

        observed = next((item.stock_level for item in self.inventory if item.id == item_id), None)
        return self.stock.adjust(item_id, observed, delta)

    def close_day(self, *, date: Optional[str] = None) -> CloseDayOutcome:
        return self.ledger.close_day(closed_by=self.staff_name, date=date)

    def broadcast(self, message: str, type: NotificationType = NotificationType.INFO) -> Optional[NotificationEvent]:
        return self.channel.announce(message, type)

    def publish_stock_summary(self) -> Optional[NotificationEvent]:
        return publish_stock_summary(self.channel, self.inventory, self.threshold)

    @property
    def notifications(self) -> List[NotificationEvent]:
        return list(self.feed.surfaced) if self.feed is not None else []


__all__ = ["TerminalSession"]
