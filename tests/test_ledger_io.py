"""Tests for JSON export and import of shop data."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from greentrack_ledger import ledger_io
from greentrack_ledger.constants import CollectionKind
from greentrack_ledger.ledger_store import MemoryLedgerStore, load_records
from greentrack_ledger.models import MalformedDocumentError


EXPORTED_AT = datetime(2024, 5, 14, 23, 0, tzinfo=UTC)


def test_export_then_import_into_another_shop(store, make_item, make_sale, tmp_path):
    """An exported file restores the same sales and inventory elsewhere."""

    item = make_item()
    sale = make_sale(quantity="2.5")
    store.set(CollectionKind.INVENTORY, item.id, item.to_document())
    store.set(CollectionKind.SALES, sale.id, sale.to_document())

    payload = ledger_io.export_ledger(store, now=EXPORTED_AT)
    path = ledger_io.write_export(payload, tmp_path / "out" / "export.json")

    target = MemoryLedgerStore("Other")
    written = ledger_io.import_ledger(target, ledger_io.read_export(path))

    assert written == 2
    assert load_records(target, CollectionKind.SALES) == (sale,)
    assert load_records(target, CollectionKind.INVENTORY) == (item,)


def test_export_payload_shape(store):
    """Exports carry sales, inventory and the export instant."""

    payload = ledger_io.export_ledger(store, now=EXPORTED_AT)
    assert payload == {"sales": [], "inventory": [], "exportedAt": "2024-05-14T23:00:00+00:00"}


def test_import_accepts_epoch_millisecond_timestamps(store):
    """Files from older terminals use epoch milliseconds and numeric ids."""

    payload = {
        "inventory": [
            {"id": 1, "category": "Flower", "name": "Sour Diesel", "grade": "Mid", "stockLevel": 100, "lastUpdated": 1715677200000}
        ],
        "sales": [
            {
                "id": 99,
                "timestamp": 1715677200000,
                "productType": "Flower",
                "productName": "Sour Diesel",
                "grade": "Mid",
                "quantity": 2,
                "price": 200,
                "staffName": "Nok",
                "paymentMethod": "Cash",
                "notes": None,
            }
        ],
    }

    assert ledger_io.import_ledger(store, payload) == 2

    (sale,) = load_records(store, CollectionKind.SALES)
    assert sale.id == "99"
    assert sale.timestamp == datetime(2024, 5, 14, 9, 0, tzinfo=UTC)
    assert sale.date == "2024-05-14"
    assert sale.original_price == Decimal("200")
    assert sale.is_negotiated is False
    assert sale.notes is None
    (item,) = load_records(store, CollectionKind.INVENTORY)
    assert item.id == "1"


def test_import_is_all_or_nothing(store, make_item):
    """One broken document aborts the whole import."""

    payload = {
        "inventory": [make_item().to_document(), {"id": "2", "name": "Broken"}],
    }

    with pytest.raises(MalformedDocumentError):
        ledger_io.import_ledger(store, payload)
    assert store.snapshot(CollectionKind.INVENTORY) == ()


def test_import_empty_payload_writes_nothing(store):
    """An empty file imports zero documents."""

    assert ledger_io.import_ledger(store, {}) == 0


def test_validate_payload_lists_problems(make_item):
    """validate_payload names every document that fails to decode."""

    payload = {"inventory": [make_item().to_document(), {"id": "2"}], "sales": [{"id": "s1"}]}
    problems = ledger_io.validate_payload(payload)

    assert len(problems) == 2
    assert problems[0].startswith("inventory[1]:")
    assert problems[1].startswith("sales[0]:")


def test_read_export_errors(tmp_path):
    """Missing files and non-object JSON are reported."""

    with pytest.raises(FileNotFoundError):
        ledger_io.read_export(tmp_path / "missing.json")

    path = tmp_path / "list.json"
    path.write_text(json.dumps([1, 2]))
    with pytest.raises(ValueError):
        ledger_io.read_export(path)
