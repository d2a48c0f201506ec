"""JSON export and import of a shop's sales and inventory.

Exports are plain JSON files shaped ``{"sales": [...], "inventory": [...],
"exportedAt": ...}``. Imports also accept files written by older offline
terminals, whose timestamps are epoch milliseconds rather than ISO strings.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from . import log
from .constants import CollectionKind
from .ledger_store import LedgerStore, set_op
from .models import InventoryItem, MalformedDocumentError, SaleRecord, encode_timestamp, utcnow


TIMESTAMP_FIELDS = ("timestamp", "lastUpdated")


def export_ledger(store: LedgerStore, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Return the active sales and the inventory as an export payload."""

    return {
        "sales": list(store.snapshot(CollectionKind.SALES, order_by_timestamp_desc=True)),
        "inventory": list(store.snapshot(CollectionKind.INVENTORY)),
        "exportedAt": encode_timestamp(now if now is not None else utcnow()),
    }


def write_export(payload: Mapping[str, Any], destination: Path) -> Path:
    destination = Path(destination).expanduser().resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(payload, default=str, indent=2), encoding="utf-8")
    log.info("Exported ledger to '%s'", destination)
    return destination


def read_export(source: Path) -> Dict[str, Any]:
    """Load an export file, keeping every JSON number as a Decimal.

    Raises:
        FileNotFoundError: If ``source`` does not exist.
        ValueError: If the file is not a JSON object.
    """

    source = Path(source).expanduser().resolve()
    if not source.exists():
        raise FileNotFoundError(f"Export file not found: {source}")
    payload = json.loads(source.read_text(encoding="utf-8"), parse_float=Decimal, parse_int=Decimal)
    if not isinstance(payload, dict):
        raise ValueError(f"Export file '{source}' does not contain a JSON object")
    return payload


def _normalize_legacy(document: Mapping[str, Any]) -> Dict[str, Any]:
    normalized = dict(document)
    for key in TIMESTAMP_FIELDS:
        value = normalized.get(key)
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            normalized[key] = encode_timestamp(datetime.fromtimestamp(float(value) / 1000, UTC))
    if "id" in normalized:
        normalized["id"] = str(normalized["id"])
    return {key: value for key, value in normalized.items() if value is not None}


def _normalize_legacy_sale(document: Mapping[str, Any]) -> Dict[str, Any]:
    # Offline terminals did not record negotiation or the business date.
    normalized = _normalize_legacy(document)
    if "price" in normalized:
        normalized.setdefault("originalPrice", normalized["price"])
        normalized.setdefault("isNegotiated", normalized["originalPrice"] != normalized["price"])
    if "timestamp" in normalized:
        normalized.setdefault("date", str(normalized["timestamp"])[:10])
    return normalized


def import_ledger(store: LedgerStore, payload: Mapping[str, Any]) -> int:
    """Write every sale and inventory item of ``payload`` in one batch.

    Documents replace existing ones with the same id. Stock is not adjusted
    for imported sales.

    Returns:
        int: Number of documents written.

    Raises:
        MalformedDocumentError: If any document cannot be decoded; nothing is
            written in that case.
        StoreError: If the store fails the batch.
    """

    operations = []
    for raw in payload.get("inventory") or ():
        item = InventoryItem.from_document(_normalize_legacy(raw))
        operations.append(set_op(CollectionKind.INVENTORY, item.id, item.to_document()))
    for raw in payload.get("sales") or ():
        sale = SaleRecord.from_document(_normalize_legacy_sale(raw))
        operations.append(set_op(CollectionKind.SALES, sale.id, sale.to_document()))

    if not operations:
        log.info("Import payload holds no documents")
        return 0
    store.batch_commit(operations)
    log.info("Imported %d documents into shop '%s'", len(operations), store.shop)
    return len(operations)


def validate_payload(payload: Mapping[str, Any]) -> List[str]:
    """Return a description of every document in ``payload`` that fails to decode."""

    problems = []
    for key, decoder, normalize in (
        ("inventory", InventoryItem.from_document, _normalize_legacy),
        ("sales", SaleRecord.from_document, _normalize_legacy_sale),
    ):
        for index, raw in enumerate(payload.get(key) or ()):
            try:
                decoder(normalize(raw))
            except MalformedDocumentError as exc:
                problems.append(f"{key}[{index}]: {exc}")
    return problems


__all__ = ["export_ledger", "import_ledger", "read_export", "validate_payload", "write_export"]
