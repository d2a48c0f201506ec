"""Data access helpers for GreenTrack shop workbooks.

This module provides low-level helpers that read from and write to the
per-shop ``<shop>.xlsx`` workbooks. Ledger rules belong elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, bootstrapping, and persisting shop workbooks.
3. Sheet codecs: turning collection documents into worksheet rows and back.
"""


from __future__ import annotations

import configparser
import json
import os
import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import LOW_STOCK_THRESHOLD, SHEET_FOR_COLLECTION, CollectionKind


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[CollectionKind, Sequence[str]] = {
    CollectionKind.SALES: [
        "id",
        "timestamp",
        "date",
        "productType",
        "productName",
        "grade",
        "quantity",
        "price",
        "originalPrice",
        "isNegotiated",
        "staffName",
        "paymentMethod",
        "notes",
    ],
    CollectionKind.INVENTORY: [
        "id",
        "category",
        "name",
        "grade",
        "stockLevel",
        "unitPrice",
        "lastUpdated",
    ],
    CollectionKind.EXPENSES: [
        "id",
        "description",
        "amount",
        "timestamp",
    ],
    CollectionKind.REPORTS: [
        "id",
        "date",
        "totalSales",
        "totalRevenue",
        "itemsSold",
        "sales",
        "expenses",
        "timestamp",
        "closedBy",
    ],
    CollectionKind.NOTIFICATIONS: [
        "id",
        "message",
        "type",
        "timestamp",
        "sentBy",
    ],
}

# Columns whose cells hold numbers that must come back as Decimal.
DECIMAL_COLUMNS = frozenset(
    {"quantity", "price", "originalPrice", "stockLevel", "unitPrice", "amount", "totalRevenue", "itemsSold"}
)
# Columns holding embedded record lists, stored as JSON text.
JSON_COLUMNS = frozenset({"sales", "expenses"})
# Required text columns. openpyxl saves "" as an empty cell, so an empty cell in
# one of these reads back as "".
TEXT_COLUMNS = frozenset(
    {"name", "date", "productName", "staffName", "description", "closedBy", "message", "sentBy"}
)


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_dir: Path
    shop_name: str
    schema_version: str
    staff_name: str
    low_stock_threshold: Decimal = LOW_STOCK_THRESHOLD


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` and ``[Shop]`` sections are mandatory. ``[Alerts]`` is
    optional and falls back to :data:`LOW_STOCK_THRESHOLD`. A relative
    ``DataDir`` is anchored at ``base_path`` (or the working directory) and
    resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor a relative
            ``DataDir``. Defaults to :func:`Path.cwd` when omitted.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing from the
            configuration, or ShopName or StaffName is blank.
        ValueError: If ``LowStockThreshold`` is not a number.
    """

    try:
        data_dir_raw = parser.get("System", "DataDir")
        schema_version = parser.get("System", "SchemaVersion")
        shop_name = parser.get("Shop", "ShopName")
        staff_name = parser.get("Shop", "StaffName")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc
    for option, value in (("ShopName", shop_name), ("StaffName", staff_name)):
        if not value.strip():
            raise KeyError(f"Configuration entry [Shop] {option} must not be blank")

    threshold_raw = parser.get("Alerts", "LowStockThreshold", fallback=None)
    try:
        threshold = Decimal(threshold_raw) if threshold_raw is not None else LOW_STOCK_THRESHOLD
    except ArithmeticError as exc:
        raise ValueError(f"Invalid LowStockThreshold: {threshold_raw!r}") from exc

    data_dir = Path(data_dir_raw)
    if not data_dir.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_dir = (base_path / data_dir).resolve()

    return ConfigSettings(
        data_dir=data_dir,
        shop_name=shop_name,
        schema_version=schema_version,
        staff_name=staff_name,
        low_stock_threshold=threshold,
    )


def shop_slug(shop: str) -> str:
    """Return a filesystem-safe key for a shop namespace."""

    slug = re.sub(r"[^a-z0-9]+", "-", shop.strip().lower()).strip("-")
    if not slug:
        raise ValueError(f"Shop name {shop!r} does not yield a usable namespace key")
    return slug


def shop_workbook_path(data_dir: Path, shop: str) -> Path:
    """Return where the workbook for ``shop`` lives under ``data_dir``."""

    return Path(data_dir) / f"{shop_slug(shop)}.xlsx"


def create_shop_workbook(destination: Path, *, overwrite: bool = False) -> Path:
    """Create an empty shop workbook with one headed sheet per collection.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing shop workbook: {destination}"
        )

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    ensure_sheets(workbook)
    save_workbook(workbook, destination)
    log.info("Created shop workbook '%s'", destination)
    return destination


def ensure_sheets(workbook: Workbook) -> None:
    """Add any missing collection sheet, with bold headers, to ``workbook``."""

    bold_font = Font(bold=True)
    for kind, columns in SHEET_COLUMNS.items():
        title = SHEET_FOR_COLLECTION[kind].value
        if title in workbook.sheetnames:
            continue
        worksheet = workbook.create_sheet(title=title)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font


def open_workbook(data_file: Path) -> Workbook:
    """Open a shop workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    The workbook is first written next to the destination and then moved into
    place, so a failed save leaves the previous file intact.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    staging = dest.with_name(f".{dest.name}.tmp")
    try:
        workbook.save(staging)
        os.replace(staging, dest)
    finally:
        if staging.exists():
            staging.unlink()


def iter_documents(workbook: Workbook, kind: CollectionKind) -> Iterable[dict[str, Any]]:
    """Yield every document stored on the sheet backing ``kind``.

    Header and fully empty rows are skipped.
    """

    sheet = workbook[SHEET_FOR_COLLECTION[kind].value]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_row(kind, raw)


def write_documents(workbook: Workbook, kind: CollectionKind, documents: Iterable[Mapping[str, Any]]) -> None:
    """Replace every data row on the sheet backing ``kind`` with ``documents``."""

    sheet = workbook[SHEET_FOR_COLLECTION[kind].value]
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    for document in documents:
        sheet.append(serialize_document(kind, document))


def serialize_document(kind: CollectionKind, document: Mapping[str, Any]) -> list[object]:
    """Convert a collection document into the sheet column ordering.

    Absent fields become empty cells. Embedded record lists are written as
    JSON text with numbers rendered as strings so that decimals survive.

    Raises:
        KeyError: If the document carries a field the sheet has no column for.
    """

    columns = SHEET_COLUMNS[kind]
    unknown = set(document) - set(columns)
    if unknown:
        raise KeyError(f"Unknown {kind.value} field(s): {', '.join(sorted(unknown))}")

    row: list[object] = []
    for column in columns:
        value = document.get(column)
        if value is not None and column in JSON_COLUMNS:
            value = json.dumps(value, default=str)
        row.append(value)
    return row


def deserialize_row(kind: CollectionKind, raw_row: Sequence[object]) -> dict[str, Any]:
    """Convert a raw worksheet row into a collection document.

    Empty cells are left out of the document, except in required text columns
    where they read back as the empty string. Numeric columns are normalized
    into :class:`~decimal.Decimal` instances and JSON columns are parsed back
    into lists.
    """

    document: dict[str, Any] = {}
    for column, value in zip(SHEET_COLUMNS[kind], raw_row):
        if value is None:
            if column in TEXT_COLUMNS:
                document[column] = ""
            continue
        if column in DECIMAL_COLUMNS:
            value = Decimal(str(value))
        elif column in JSON_COLUMNS:
            value = json.loads(str(value))
        elif column == "totalSales":
            value = int(value)
        elif column == "isNegotiated":
            value = bool(value)
        elif column == "id":
            value = str(value)
        document[column] = value
    return document
