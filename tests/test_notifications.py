"""Tests for broadcast notifications and the per-session feed."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest import mock

import pytest

from greentrack_ledger.constants import CollectionKind, NotificationType
from greentrack_ledger.ledger_store import StoreError, subscribe_records
from greentrack_ledger.models import NotificationEvent
from greentrack_ledger.notifications import NotificationChannel, NotificationFeed

JOIN = datetime(2024, 5, 14, 12, 0, tzinfo=UTC)


def _event(event_id, offset_seconds, message="hello"):
    return NotificationEvent(
        id=event_id,
        message=message,
        type=NotificationType.INFO,
        timestamp=JOIN + timedelta(seconds=offset_seconds),
        sent_by="Nok",
    )


def test_announce_writes_event(store, clock):
    """Announcing stores a stamped event in the shop's notifications."""

    channel = NotificationChannel(store, sent_by="Nok", clock=clock)
    event = channel.announce("Delivery arrived", NotificationType.WARNING)

    stored = store.get(CollectionKind.NOTIFICATIONS, event.id)
    assert stored["message"] == "Delivery arrived"
    assert stored["type"] == "warning"
    assert stored["sentBy"] == "Nok"


def test_announce_rejects_blank_message(store):
    """Empty broadcasts are refused."""

    channel = NotificationChannel(store, sent_by="Nok")
    with pytest.raises(ValueError):
        channel.announce("   ")


def test_publish_failure_returns_false(store):
    """Store failures are reported through the return value."""

    channel = NotificationChannel(store, sent_by="Nok")
    with mock.patch.object(store, "set", side_effect=StoreError("offline")):
        assert channel.publish(_event("n1", 1)) is False
        assert channel.announce("hi") is None


def test_feed_ignores_history_before_join():
    """Events stamped at or before the join instant stay silent."""

    feed = NotificationFeed(JOIN)
    fresh = feed.handle_snapshot([_event("old", -60), _event("edge", 0), _event("new", 5)])

    assert [event.id for event in fresh] == ["new"]


def test_feed_surfaces_each_event_once():
    """Redeliveries of the full collection never repeat a message."""

    received = []
    feed = NotificationFeed(JOIN, received.append)

    feed.handle_snapshot([_event("a", 1)])
    feed.handle_snapshot([_event("b", 2), _event("a", 1)])
    feed.handle_snapshot([_event("b", 2), _event("a", 1)])

    assert [event.id for event in received] == ["a", "b"]
    assert [event.id for event in feed.surfaced] == ["a", "b"]


def test_feed_orders_fresh_events_oldest_first():
    """A snapshot listing newest first is surfaced in chronological order."""

    feed = NotificationFeed(JOIN)
    fresh = feed.handle_snapshot([_event("c", 30), _event("b", 20), _event("a", 10)])

    assert [event.id for event in fresh] == ["a", "b", "c"]


def test_feed_rejoin_skips_events_missed_while_away():
    """Rejoining moves the join instant forward and never moves it back."""

    feed = NotificationFeed(JOIN)
    feed.handle_snapshot([_event("a", 1)])

    feed.rejoin(JOIN + timedelta(seconds=60))
    fresh = feed.handle_snapshot([_event("a", 1), _event("missed", 30), _event("later", 90)])
    feed.rejoin(JOIN)

    assert [event.id for event in fresh] == ["later"]
    assert feed.join_instant == JOIN + timedelta(seconds=60)
    assert [event.id for event in feed.surfaced] == ["a", "later"]


def test_feed_over_live_subscription(store):
    """Events published after joining reach a subscribed feed exactly once."""

    channel = NotificationChannel(store, sent_by="Nok", clock=lambda: JOIN - timedelta(minutes=1))
    channel.announce("before")
    feed = NotificationFeed(JOIN)
    subscribe_records(store, CollectionKind.NOTIFICATIONS, feed.handle_snapshot, order_by_timestamp_desc=True)

    later = NotificationChannel(store, sent_by="Ploy", clock=lambda: JOIN + timedelta(minutes=1))
    later.announce("after")
    later.announce("again")

    assert [event.message for event in feed.surfaced] == ["after", "again"]
