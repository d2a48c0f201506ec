"""Typed ledger records and their document encoding.

Every record stored in a shop namespace has a frozen dataclass here together
with ``to_document``/``from_document`` converters. Documents use the camelCase
field names shared by every terminal. Optional fields that are unset are left
out of the document entirely rather than stored as ``None``, and a missing key
decodes back to ``None``, so records survive a round trip unchanged.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .constants import CollectionKind, FlowerGrade, NotificationType, PaymentMethod, ProductCategory


Document = Dict[str, Any]


class MalformedDocumentError(ValueError):
    """Raised when a stored document cannot be decoded into a record."""


def generate_id() -> str:
    """Return an opaque random identifier for a new document."""

    return uuid.uuid4().hex[:12]


def generate_report_id(date: str) -> str:
    """Return a day report identifier made of ``date`` and a short random suffix.

    Closing the same day twice must not overwrite the first report, hence the
    suffix.
    """

    return f"{date}-{uuid.uuid4().hex[:6]}"


def utcnow() -> datetime:
    """Return the current timezone-aware UTC time."""

    return datetime.now(UTC)


def business_date(moment: datetime) -> str:
    """Return the ``YYYY-MM-DD`` calendar day a timestamp belongs to."""

    return moment.date().isoformat()


def encode_timestamp(moment: datetime) -> str:
    return moment.isoformat()


def decode_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        moment = raw
    else:
        moment = datetime.fromisoformat(str(raw))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def to_decimal(raw: Any) -> Decimal:
    if isinstance(raw, Decimal):
        return raw
    return Decimal(str(raw))


def _optional(document: Document, key: str, value: Any) -> None:
    if value is not None:
        document[key] = value


def _require(document: Mapping[str, Any], key: str) -> Any:
    try:
        return document[key]
    except KeyError as exc:
        raise MalformedDocumentError(f"Document is missing required field '{key}'") from exc


@dataclass(frozen=True)
class InventoryItem:
    """A stocked product. Flower is counted in grams, everything else in units."""

    id: str
    category: ProductCategory
    name: str
    stock_level: Decimal
    last_updated: datetime
    grade: Optional[FlowerGrade] = None
    unit_price: Optional[Decimal] = None

    def to_document(self) -> Document:
        document: Document = {
            "id": self.id,
            "category": self.category.value,
            "name": self.name,
            "stockLevel": self.stock_level,
            "lastUpdated": encode_timestamp(self.last_updated),
        }
        _optional(document, "grade", self.grade.value if self.grade is not None else None)
        _optional(document, "unitPrice", self.unit_price)
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "InventoryItem":
        try:
            grade_raw = document.get("grade")
            unit_price_raw = document.get("unitPrice")
            return cls(
                id=str(_require(document, "id")),
                category=ProductCategory(_require(document, "category")),
                name=str(_require(document, "name")),
                stock_level=to_decimal(_require(document, "stockLevel")),
                last_updated=decode_timestamp(_require(document, "lastUpdated")),
                grade=FlowerGrade(grade_raw) if grade_raw is not None else None,
                unit_price=to_decimal(unit_price_raw) if unit_price_raw is not None else None,
            )
        except MalformedDocumentError:
            raise
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"Invalid inventory document: {exc}") from exc


@dataclass(frozen=True)
class SaleRecord:
    """One completed checkout line. Sales are written once and never edited."""

    id: str
    timestamp: datetime
    date: str
    product_type: ProductCategory
    product_name: str
    quantity: Decimal
    price: Decimal
    original_price: Decimal
    is_negotiated: bool
    staff_name: str
    payment_method: PaymentMethod
    grade: Optional[FlowerGrade] = None
    notes: Optional[str] = None

    def to_document(self) -> Document:
        document: Document = {
            "id": self.id,
            "timestamp": encode_timestamp(self.timestamp),
            "date": self.date,
            "productType": self.product_type.value,
            "productName": self.product_name,
            "quantity": self.quantity,
            "price": self.price,
            "originalPrice": self.original_price,
            "isNegotiated": self.is_negotiated,
            "staffName": self.staff_name,
            "paymentMethod": self.payment_method.value,
        }
        _optional(document, "grade", self.grade.value if self.grade is not None else None)
        _optional(document, "notes", self.notes)
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "SaleRecord":
        try:
            grade_raw = document.get("grade")
            notes_raw = document.get("notes")
            return cls(
                id=str(_require(document, "id")),
                timestamp=decode_timestamp(_require(document, "timestamp")),
                date=str(_require(document, "date")),
                product_type=ProductCategory(_require(document, "productType")),
                product_name=str(_require(document, "productName")),
                quantity=to_decimal(_require(document, "quantity")),
                price=to_decimal(_require(document, "price")),
                original_price=to_decimal(_require(document, "originalPrice")),
                is_negotiated=bool(_require(document, "isNegotiated")),
                staff_name=str(_require(document, "staffName")),
                payment_method=PaymentMethod(_require(document, "paymentMethod")),
                grade=FlowerGrade(grade_raw) if grade_raw is not None else None,
                notes=str(notes_raw) if notes_raw is not None else None,
            )
        except MalformedDocumentError:
            raise
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"Invalid sale document: {exc}") from exc


@dataclass(frozen=True)
class Expense:
    """Cash paid out of the till during the day."""

    id: str
    description: str
    amount: Decimal
    timestamp: datetime

    def to_document(self) -> Document:
        return {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "timestamp": encode_timestamp(self.timestamp),
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Expense":
        try:
            return cls(
                id=str(_require(document, "id")),
                description=str(_require(document, "description")),
                amount=to_decimal(_require(document, "amount")),
                timestamp=decode_timestamp(_require(document, "timestamp")),
            )
        except MalformedDocumentError:
            raise
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"Invalid expense document: {exc}") from exc


@dataclass(frozen=True)
class DayReport:
    """Archive of one closed business day.

    ``sales`` and ``expenses`` are copies taken at close time; later edits to
    the active collections never reach them.
    """

    id: str
    date: str
    total_sales: int
    total_revenue: Decimal
    items_sold: Decimal
    sales: Tuple[SaleRecord, ...]
    expenses: Tuple[Expense, ...]
    timestamp: datetime
    closed_by: str

    def to_document(self) -> Document:
        return {
            "id": self.id,
            "date": self.date,
            "totalSales": self.total_sales,
            "totalRevenue": self.total_revenue,
            "itemsSold": self.items_sold,
            "sales": [sale.to_document() for sale in self.sales],
            "expenses": [expense.to_document() for expense in self.expenses],
            "timestamp": encode_timestamp(self.timestamp),
            "closedBy": self.closed_by,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "DayReport":
        try:
            return cls(
                id=str(_require(document, "id")),
                date=str(_require(document, "date")),
                total_sales=int(_require(document, "totalSales")),
                total_revenue=to_decimal(_require(document, "totalRevenue")),
                items_sold=to_decimal(_require(document, "itemsSold")),
                sales=tuple(SaleRecord.from_document(raw) for raw in _require(document, "sales")),
                expenses=tuple(Expense.from_document(raw) for raw in document.get("expenses") or ()),
                timestamp=decode_timestamp(_require(document, "timestamp")),
                closed_by=str(_require(document, "closedBy")),
            )
        except MalformedDocumentError:
            raise
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"Invalid report document: {exc}") from exc


@dataclass(frozen=True)
class NotificationEvent:
    """A message broadcast to every terminal of a shop."""

    id: str
    message: str
    type: NotificationType
    timestamp: datetime
    sent_by: str

    def to_document(self) -> Document:
        return {
            "id": self.id,
            "message": self.message,
            "type": self.type.value,
            "timestamp": encode_timestamp(self.timestamp),
            "sentBy": self.sent_by,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "NotificationEvent":
        try:
            return cls(
                id=str(_require(document, "id")),
                message=str(_require(document, "message")),
                type=NotificationType(_require(document, "type")),
                timestamp=decode_timestamp(_require(document, "timestamp")),
                sent_by=str(_require(document, "sentBy")),
            )
        except MalformedDocumentError:
            raise
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"Invalid notification document: {exc}") from exc


RECORD_TYPES: Dict[CollectionKind, Callable[[Mapping[str, Any]], Any]] = {
    CollectionKind.SALES: SaleRecord.from_document,
    CollectionKind.INVENTORY: InventoryItem.from_document,
    CollectionKind.EXPENSES: Expense.from_document,
    CollectionKind.REPORTS: DayReport.from_document,
    CollectionKind.NOTIFICATIONS: NotificationEvent.from_document,
}


# Loaded only by the explicit seed operation, never as a read fallback.
DEFAULT_INVENTORY: Tuple[Tuple[str, str, FlowerGrade, Decimal], ...] = (
    ("1", "Sour Diesel", FlowerGrade.MID, Decimal("100")),
    ("2", "Blue Dream", FlowerGrade.TOP, Decimal("50")),
)


def default_inventory(now: datetime) -> Tuple[InventoryItem, ...]:
    """Materialize :data:`DEFAULT_INVENTORY` as records stamped with ``now``."""

    return tuple(
        InventoryItem(
            id=item_id,
            category=ProductCategory.FLOWER,
            name=name,
            grade=grade,
            stock_level=stock,
            last_updated=now,
        )
        for item_id, name, grade, stock in DEFAULT_INVENTORY
    )
