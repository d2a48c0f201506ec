"""Ledger store adapter shared by every terminal of a shop.

A :class:`LedgerStore` holds the collections of exactly one shop namespace and
offers the operations terminals are allowed to use: full-snapshot
subscriptions, single-document ``set``/``update``/``delete`` and an
all-or-nothing :meth:`LedgerStore.batch_commit`. Each successful write
redelivers the complete, ordered state of every touched collection to every
subscriber, the writer included. Subscribers treat each delivery as a full
replacement of their local copy.

Two backends are provided. :class:`MemoryLedgerStore` keeps documents in
process and is what several terminal sessions share in tests and demos.
:class:`WorkbookLedgerStore` persists each commit into a per-shop ``openpyxl``
workbook through :mod:`greentrack_ledger.data_manager`.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import CollectionKind
from .models import RECORD_TYPES, MalformedDocumentError, decode_timestamp


Document = Dict[str, Any]
Snapshot = Tuple[Document, ...]
SnapshotCallback = Callable[[Snapshot], None]


class StoreError(Exception):
    """Raised when the store rejects or fails to carry out a write."""


class DocumentNotFound(StoreError):
    """Raised when an operation requires a document that does not exist."""


class WriteConflict(StoreError):
    """Raised when a precondition attached to a write no longer holds."""


class BatchAction(str, Enum):
    """Enumerate the write kinds a batch may contain."""

    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class BatchOperation:
    """One write inside a batch.

    ``expected`` maps field names to the values the stored document must
    currently hold for an ``UPDATE`` to apply. ``must_exist`` turns a delete
    of a missing document into a :class:`DocumentNotFound` failure instead of
    a no-op.
    """

    action: BatchAction
    kind: CollectionKind
    doc_id: str
    document: Optional[Mapping[str, Any]] = None
    expected: Optional[Mapping[str, Any]] = None
    must_exist: bool = False


def set_op(kind: CollectionKind, doc_id: str, document: Mapping[str, Any]) -> BatchOperation:
    return BatchOperation(BatchAction.SET, kind, doc_id, document=document)


def update_op(
    kind: CollectionKind,
    doc_id: str,
    fields: Mapping[str, Any],
    *,
    expected: Optional[Mapping[str, Any]] = None,
) -> BatchOperation:
    return BatchOperation(BatchAction.UPDATE, kind, doc_id, document=fields, expected=expected)


def delete_op(kind: CollectionKind, doc_id: str, *, must_exist: bool = False) -> BatchOperation:
    return BatchOperation(BatchAction.DELETE, kind, doc_id, must_exist=must_exist)


def _timestamp_sort_key(document: Mapping[str, Any]) -> Tuple[int, datetime]:
    raw = document.get("timestamp")
    if raw is None:
        return (0, datetime.min)
    try:
        return (1, decode_timestamp(raw).replace(tzinfo=None))
    except ValueError:
        return (0, datetime.min)


@dataclass
class Subscription:
    """Handle returned by :meth:`LedgerStore.subscribe`."""

    store: "LedgerStore"
    kind: CollectionKind
    callback: SnapshotCallback
    order_by_timestamp_desc: bool = False
    active: bool = field(default=True)

    def unsubscribe(self) -> None:
        self.store._remove_subscription(self)


class LedgerStore:
    """Document store for one shop namespace.

    Subclasses only decide where committed collections are persisted, by
    overriding :meth:`_persist`. Everything else, including the all-or-nothing
    batch semantics, lives here: a batch is applied to staged copies of the
    touched collections, persisted, and only then swapped in.
    """

    def __init__(self, shop: str) -> None:
        self.shop = shop
        self._collections: Dict[CollectionKind, Dict[str, Document]] = {kind: {} for kind in CollectionKind}
        self._subscriptions: Dict[CollectionKind, List[Subscription]] = {kind: [] for kind in CollectionKind}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reads and subscriptions
    # ------------------------------------------------------------------

    def get(self, kind: CollectionKind, doc_id: str) -> Optional[Document]:
        with self._lock:
            document = self._collections[kind].get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def snapshot(self, kind: CollectionKind, *, order_by_timestamp_desc: bool = False) -> Snapshot:
        """Return a detached, ordered copy of every document in ``kind``."""

        with self._lock:
            documents = [copy.deepcopy(document) for document in self._collections[kind].values()]
        if order_by_timestamp_desc:
            documents.sort(key=_timestamp_sort_key, reverse=True)
        return tuple(documents)

    def subscribe(
        self,
        kind: CollectionKind,
        callback: SnapshotCallback,
        *,
        order_by_timestamp_desc: bool = False,
    ) -> Subscription:
        """Register ``callback`` for every future state of ``kind``.

        The current state is delivered immediately, then again after every
        committed write touching ``kind``.
        """

        subscription = Subscription(self, kind, callback, order_by_timestamp_desc)
        with self._lock:
            self._subscriptions[kind].append(subscription)
        log.debug("Shop '%s': subscribed to '%s'", self.shop, kind.value)
        self._deliver(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.active = False
            listeners = self._subscriptions[subscription.kind]
            if subscription in listeners:
                listeners.remove(subscription)

    def close(self) -> None:
        """Drop every subscription held on this store."""

        with self._lock:
            for listeners in self._subscriptions.values():
                for subscription in listeners:
                    subscription.active = False
                listeners.clear()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, kind: CollectionKind, doc_id: str, document: Mapping[str, Any]) -> None:
        """Upsert a full document."""

        self.batch_commit([set_op(kind, doc_id, document)])

    def update(
        self,
        kind: CollectionKind,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Merge ``fields`` into an existing document.

        Raises:
            DocumentNotFound: If the document does not exist.
            WriteConflict: If ``expected`` does not match the stored values.
        """

        self.batch_commit([update_op(kind, doc_id, fields, expected=expected)])

    def delete(self, kind: CollectionKind, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

        self.batch_commit([delete_op(kind, doc_id)])

    def batch_commit(self, operations: Sequence[BatchOperation]) -> None:
        """Apply ``operations`` atomically.

        Either every operation is applied and persisted, or the store is left
        exactly as it was and the error propagates.

        Raises:
            StoreError: If an operation fails its precondition or the backend
                cannot persist the result.
        """

        operations = list(operations)
        if not operations:
            return

        touched = list(dict.fromkeys(operation.kind for operation in operations))
        with self._lock:
            staged = {kind: dict(self._collections[kind]) for kind in touched}
            for operation in operations:
                self._apply(staged[operation.kind], operation)
            try:
                self._persist(staged)
            except StoreError:
                raise
            except Exception as exc:
                log.error("Shop '%s': failed to persist batch: %s", self.shop, exc)
                raise StoreError(f"Failed to persist batch for shop '{self.shop}': {exc}") from exc
            self._collections.update(staged)

        log.debug(
            "Shop '%s': committed %d operation(s) on %s",
            self.shop,
            len(operations),
            ", ".join(kind.value for kind in touched),
        )
        for kind in touched:
            self._notify(kind)

    def _apply(self, collection: Dict[str, Document], operation: BatchOperation) -> None:
        current = collection.get(operation.doc_id)

        if operation.action is BatchAction.SET:
            if operation.document is None:
                raise StoreError(f"SET on '{operation.doc_id}' carries no document")
            collection[operation.doc_id] = copy.deepcopy(dict(operation.document))
            return

        if operation.action is BatchAction.DELETE:
            if current is None:
                if operation.must_exist:
                    raise DocumentNotFound(f"{operation.kind.value}/{operation.doc_id} does not exist")
                return
            del collection[operation.doc_id]
            return

        if current is None:
            raise DocumentNotFound(f"{operation.kind.value}/{operation.doc_id} does not exist")
        for key, value in (operation.expected or {}).items():
            if current.get(key) != value:
                raise WriteConflict(
                    f"{operation.kind.value}/{operation.doc_id}: expected {key}={value!r}, found {current.get(key)!r}"
                )
        merged = dict(current)
        merged.update(copy.deepcopy(dict(operation.document or {})))
        collection[operation.doc_id] = merged

    def _persist(self, staged: Mapping[CollectionKind, Mapping[str, Document]]) -> None:
        """Persist the staged collections; the default keeps them in memory."""

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _notify(self, kind: CollectionKind) -> None:
        with self._lock:
            listeners = list(self._subscriptions[kind])
        for subscription in listeners:
            self._deliver(subscription)

    def _deliver(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        snapshot = self.snapshot(subscription.kind, order_by_timestamp_desc=subscription.order_by_timestamp_desc)
        try:
            subscription.callback(snapshot)
        except Exception:
            # A failing listener must not break the write or other listeners.
            log.exception(
                "Shop '%s': subscriber to '%s' failed while handling a snapshot",
                self.shop,
                subscription.kind.value,
            )


class MemoryLedgerStore(LedgerStore):
    """In-process store; every terminal holding the instance sees the same data."""


class MemoryLedgerHub:
    """Hands out one :class:`MemoryLedgerStore` per shop namespace."""

    def __init__(self) -> None:
        self._stores: Dict[str, MemoryLedgerStore] = {}
        self._lock = threading.Lock()

    def shop(self, name: str) -> MemoryLedgerStore:
        with self._lock:
            store = self._stores.get(name)
            if store is None:
                store = MemoryLedgerStore(name)
                self._stores[name] = store
            return store

    def shops(self) -> List[str]:
        with self._lock:
            return sorted(self._stores)


class WorkbookLedgerStore(LedgerStore):
    """Store persisting every commit into one shop workbook.

    The workbook is loaded once on construction. A commit rewrites the sheets
    of the touched collections and saves the file; if saving fails the
    workbook is reloaded from disk so memory and file stay in agreement.
    """

    def __init__(self, shop: str, data_file: Path, *, create: bool = True) -> None:
        super().__init__(shop)
        self.data_file = Path(data_file).expanduser().resolve()
        if not self.data_file.exists():
            if not create:
                raise FileNotFoundError(f"Workbook not found: {self.data_file}")
            data_manager.create_shop_workbook(self.data_file)
        self._workbook = self._load()
        for kind in CollectionKind:
            for document in data_manager.iter_documents(self._workbook, kind):
                self._collections[kind][str(document.get("id"))] = document
        log.info(
            "Loaded shop '%s' from '%s' (%s)",
            shop,
            self.data_file,
            ", ".join(f"{kind.value}={len(self._collections[kind])}" for kind in CollectionKind),
        )

    def _load(self) -> Workbook:
        workbook = data_manager.open_workbook(self.data_file)
        data_manager.ensure_sheets(workbook)
        return workbook

    def _persist(self, staged: Mapping[CollectionKind, Mapping[str, Document]]) -> None:
        try:
            for kind, documents in staged.items():
                data_manager.write_documents(self._workbook, kind, documents.values())
            data_manager.save_workbook(self._workbook, self.data_file)
        except (OSError, KeyError, TypeError, ValueError) as exc:
            log.error("Shop '%s': unable to save '%s': %s", self.shop, self.data_file, exc)
            self._workbook = self._load()
            raise StoreError(f"Unable to save shop workbook '{self.data_file}': {exc}") from exc


def open_workbook_store(data_dir: Path, shop: str) -> WorkbookLedgerStore:
    """Open (creating if needed) the workbook-backed store for ``shop``."""

    return WorkbookLedgerStore(shop, data_manager.shop_workbook_path(data_dir, shop))


def _decode_records(store: LedgerStore, kind: CollectionKind, snapshot: Snapshot) -> Tuple[Any, ...]:
    decoder = RECORD_TYPES[kind]
    records = []
    for document in snapshot:
        try:
            records.append(decoder(document))
        except MalformedDocumentError as exc:
            log.warning("Shop '%s': skipping malformed %s document: %s", store.shop, kind.value, exc)
    return tuple(records)


def subscribe_records(
    store: LedgerStore,
    kind: CollectionKind,
    callback: Callable[[Tuple[Any, ...]], None],
    *,
    order_by_timestamp_desc: bool = False,
) -> Subscription:
    """Subscribe to ``kind`` and receive decoded records instead of documents.

    Documents that fail to decode are logged and left out of the delivered
    sequence.
    """

    def _decode(snapshot: Snapshot) -> None:
        callback(_decode_records(store, kind, snapshot))

    return store.subscribe(kind, _decode, order_by_timestamp_desc=order_by_timestamp_desc)


def load_records(store: LedgerStore, kind: CollectionKind, *, order_by_timestamp_desc: bool = False) -> Tuple[Any, ...]:
    """Decode the current state of ``kind``, skipping malformed documents."""

    return _decode_records(store, kind, store.snapshot(kind, order_by_timestamp_desc=order_by_timestamp_desc))


__all__ = [
    "BatchAction",
    "BatchOperation",
    "DocumentNotFound",
    "LedgerStore",
    "MemoryLedgerHub",
    "MemoryLedgerStore",
    "Snapshot",
    "StoreError",
    "Subscription",
    "WorkbookLedgerStore",
    "WriteConflict",
    "delete_op",
    "load_records",
    "open_workbook_store",
    "set_op",
    "subscribe_records",
    "update_op",
]
