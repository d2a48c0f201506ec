"""Enumerations shared across GreenTrack ledger modules.

Centralises domain constants so that the store adapter, the ledger engines,
and the command-line front-end rely on a single source of truth for
identifiers that end up persisted in shop documents.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating shop stores.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Stock level at or below which an item counts as running low.
LOW_STOCK_THRESHOLD = Decimal("10")

# Items under this level are listed as critical in insight prompts.
INSIGHT_LOW_STOCK_LEVEL = Decimal("20")


class ProductCategory(str, Enum):
    """Enumerate the product categories sold by a shop."""

    FLOWER = "Flower"
    PRE_ROLL = "Pre-roll"
    ACCESSORY = "Accessory"
    EDIBLE = "Edible"
    OTHER = "Other"


class FlowerGrade(str, Enum):
    """Enumerate the flower grades understood by the pricing engine."""

    MID = "Mid"
    EXOTIC = "Exotic"
    TOP = "Top"
    TOP_SHELF = "Top-Shelf"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms for sales."""

    CASH = "Cash"
    SCAN = "Scan"


class NotificationType(str, Enum):
    """Enumerate the severities carried by broadcast notifications."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class CollectionKind(str, Enum):
    """Enumerate the document collections held in every shop namespace."""

    SALES = "sales"
    INVENTORY = "inventory"
    EXPENSES = "expenses"
    REPORTS = "reports"
    NOTIFICATIONS = "notifications"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names backing each collection."""

    SALES = "Sales"
    INVENTORY = "Inventory"
    EXPENSES = "Expenses"
    REPORTS = "Reports"
    NOTIFICATIONS = "Notifications"


SHEET_FOR_COLLECTION = {
    CollectionKind.SALES: SheetName.SALES,
    CollectionKind.INVENTORY: SheetName.INVENTORY,
    CollectionKind.EXPENSES: SheetName.EXPENSES,
    CollectionKind.REPORTS: SheetName.REPORTS,
    CollectionKind.NOTIFICATIONS: SheetName.NOTIFICATIONS,
}


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "LOW_STOCK_THRESHOLD",
    "INSIGHT_LOW_STOCK_LEVEL",
    "ProductCategory",
    "FlowerGrade",
    "PaymentMethod",
    "NotificationType",
    "CollectionKind",
    "SheetName",
    "SHEET_FOR_COLLECTION",
]
