"""Cross-terminal broadcast messages.

Every terminal of a shop writes :class:`~greentrack_ledger.models.NotificationEvent`
documents into the ``notifications`` collection and listens to the whole
collection. A :class:`NotificationFeed` remembers when its session joined and
which events it already surfaced, so history written before the session
started stays silent and redeliveries never repeat a message.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Sequence, Set

from . import log
from .constants import CollectionKind, NotificationType
from .ledger_store import LedgerStore, StoreError
from .models import NotificationEvent, generate_id, utcnow


class NotificationChannel:
    """Publishes events into one shop's ``notifications`` collection."""

    def __init__(self, store: LedgerStore, *, sent_by: str, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.sent_by = sent_by
        self._clock = clock

    def publish(self, event: NotificationEvent) -> bool:
        """Append ``event``; returns ``False`` when the store rejects it."""

        try:
            self.store.set(CollectionKind.NOTIFICATIONS, event.id, event.to_document())
        except StoreError as exc:
            log.error("Failed to publish notification '%s': %s", event.id, exc)
            return False
        log.info("Published %s notification '%s' from %s", event.type.value, event.id, event.sent_by)
        return True

    def announce(self, message: str, type: NotificationType = NotificationType.INFO) -> Optional[NotificationEvent]:
        """Build and publish a new event stamped with the current time."""

        if not message.strip():
            raise ValueError("Notification message must not be empty")
        event = NotificationEvent(
            id=generate_id(),
            message=message,
            type=NotificationType(type),
            timestamp=self._clock(),
            sent_by=self.sent_by,
        )
        return event if self.publish(event) else None


class NotificationFeed:
    """Session-side filter over delivered notification snapshots.

    Args:
        join_instant: When the session started. Events stamped at or before
            this instant are never surfaced.
        on_event: Called once for each newly surfaced event.
    """

    def __init__(
        self,
        join_instant: datetime,
        on_event: Optional[Callable[[NotificationEvent], None]] = None,
    ) -> None:
        self.join_instant = join_instant
        self._on_event = on_event
        self._seen: Set[str] = set()
        self.surfaced: List[NotificationEvent] = []

    def handle_snapshot(self, events: Sequence[NotificationEvent]) -> List[NotificationEvent]:
        """Surface the events of ``events`` this session has not shown yet.

        Returns:
            list[NotificationEvent]: The newly surfaced events, oldest first.
        """

        fresh = [
            event
            for event in events
            if event.timestamp > self.join_instant and event.id not in self._seen
        ]
        fresh.sort(key=lambda event: event.timestamp)
        for event in fresh:
            self._seen.add(event.id)
            self.surfaced.append(event)
            if self._on_event is not None:
                self._on_event(event)
        if fresh:
            log.debug("Surfaced %d new notification(s)", len(fresh))
        return fresh

    def rejoin(self, instant: datetime) -> None:
        """Move the join instant forward; events already seen stay seen."""

        if instant > self.join_instant:
            self.join_instant = instant


__all__ = ["NotificationChannel", "NotificationFeed"]
