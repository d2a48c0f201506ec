"""Inventory counters and item maintenance.

Stock levels change through compare-and-swap updates: the current
``stockLevel`` is read, the new value is written with the read value as a
precondition, and a :class:`~greentrack_ledger.ledger_store.WriteConflict`
triggers a re-read and another attempt. Two terminals adjusting the same item
at once therefore both land their deltas instead of one overwriting the other.
"""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from . import log
from .constants import CollectionKind
from .ledger_store import (
    BatchOperation,
    LedgerStore,
    StoreError,
    WriteConflict,
    load_records,
    set_op,
    update_op,
)
from .models import InventoryItem, default_inventory, encode_timestamp, to_decimal, utcnow


class StockAdjustmentEngine:
    """Apply signed deltas to inventory items of one shop.

    Args:
        store: Shop namespace holding the ``inventory`` collection.
        attempts: How many compare-and-swap rounds to try before giving up.
        backoff_base: Seconds to wait after the first conflict; doubled on
            every further conflict.
        clock: Source of ``lastUpdated`` values.
        sleep: Wait function used between attempts.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        attempts: int = 3,
        backoff_base: float = 0.05,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.store = store
        self.attempts = attempts
        self.backoff_base = backoff_base
        self._clock = clock
        self._sleep = sleep

    def adjust(self, item_id: str, observed_stock: Optional[Decimal], delta: Decimal) -> bool:
        """Add ``delta`` to the stock of ``item_id`` and refresh ``lastUpdated``.

        ``observed_stock`` is the level the caller last saw. It is only compared
        against the stored value to log stale views; the stored value is what
        the delta is applied to.

        Returns:
            bool: ``True`` when the new level was written, ``False`` when the
                item does not exist or the store failed.
        """

        if observed_stock is not None:
            current = self.store.get(CollectionKind.INVENTORY, item_id)
            if current is not None and to_decimal(current.get("stockLevel", 0)) != to_decimal(observed_stock):
                log.info(
                    "Stock view for '%s' is stale (observed %s, stored %s); applying delta to stored value",
                    item_id,
                    observed_stock,
                    current.get("stockLevel"),
                )
        try:
            adjusted = self.commit_with_stock_delta(item_id, to_decimal(delta))
        except StoreError as exc:
            log.error("Stock adjustment of '%s' by %s failed: %s", item_id, delta, exc)
            return False
        if not adjusted:
            log.warning("Stock adjustment skipped: inventory item '%s' not found", item_id)
        return adjusted

    def commit_with_stock_delta(
        self,
        item_id: str,
        delta: Decimal,
        extra_operations: Sequence[BatchOperation] = (),
    ) -> bool:
        """Commit ``extra_operations`` together with a stock change, atomically.

        When the item no longer exists the extra operations are committed on
        their own and ``False`` is returned.

        Raises:
            WriteConflict: If every attempt lost the race for the counter.
            StoreError: If the store rejects or fails the batch.
        """

        extra = list(extra_operations)
        for attempt in range(self.attempts):
            current = self.store.get(CollectionKind.INVENTORY, item_id)
            if current is None:
                if extra:
                    self.store.batch_commit(extra)
                return False

            previous = to_decimal(current.get("stockLevel", 0))
            counter = update_op(
                CollectionKind.INVENTORY,
                item_id,
                {"stockLevel": previous + delta, "lastUpdated": encode_timestamp(self._clock())},
                expected={"stockLevel": current.get("stockLevel")},
            )
            try:
                self.store.batch_commit([*extra, counter])
            except WriteConflict:
                if attempt >= self.attempts - 1:
                    log.error("Stock of '%s' kept changing; gave up after %d attempts", item_id, self.attempts)
                    raise
                log.debug("Stock of '%s' changed concurrently; retrying (attempt %d)", item_id, attempt + 1)
                self._sleep(self.backoff_base * (2 ** attempt))
                continue
            log.info("Adjusted stock of '%s' by %s (%s -> %s)", item_id, delta, previous, previous + delta)
            return True
        return False

    # ------------------------------------------------------------------
    # Item maintenance
    # ------------------------------------------------------------------

    def list_items(self) -> List[InventoryItem]:
        return list(load_records(self.store, CollectionKind.INVENTORY))

    def save_item(self, item: InventoryItem) -> bool:
        """Create or fully replace an inventory item document."""

        try:
            self.store.set(CollectionKind.INVENTORY, item.id, item.to_document())
        except StoreError as exc:
            log.error("Failed to save inventory item '%s': %s", item.id, exc)
            return False
        log.info("Saved inventory item '%s' (%s, stock=%s)", item.id, item.name, item.stock_level)
        return True

    def remove_item(self, item_id: str) -> bool:
        try:
            self.store.delete(CollectionKind.INVENTORY, item_id)
        except StoreError as exc:
            log.error("Failed to remove inventory item '%s': %s", item_id, exc)
            return False
        log.info("Removed inventory item '%s'", item_id)
        return True

    def seed_default_inventory(self, now: Optional[datetime] = None) -> bool:
        """Write the default starter inventory in one batch.

        Existing documents with the same ids are replaced.
        """

        items = default_inventory(now if now is not None else self._clock())
        try:
            self.store.batch_commit([set_op(CollectionKind.INVENTORY, item.id, item.to_document()) for item in items])
        except StoreError as exc:
            log.error("Failed to seed default inventory: %s", exc)
            return False
        log.info("Seeded %d default inventory items", len(items))
        return True


__all__ = ["StockAdjustmentEngine"]
