"""Shared pytest fixtures and utilities for GreenTrack Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from greentrack_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from greentrack_ledger.constants import FlowerGrade, PaymentMethod, ProductCategory  # noqa: E402
from greentrack_ledger.ledger_store import MemoryLedgerStore  # noqa: E402
from greentrack_ledger.models import InventoryItem, SaleRecord, generate_id  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_SHOP = "Test Shop"
DEFAULT_STAFF = "Nok"
BASE_MOMENT = datetime(2024, 5, 14, 9, 0, tzinfo=UTC)
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataDir = {data_dir}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Shop]\n"
    "ShopName = {shop_name}\n"
    "StaffName = {staff_name}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_dir: Path
    workbook_path: Path
    shop_name: str
    staff_name: str
    schema_version: str


class FakeClock:
    """Deterministic clock that moves forward by ``step`` on every reading."""

    def __init__(self, start: datetime = BASE_MOMENT, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        moment = self.current
        self.current = self.current + self.step
        return moment

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        shop_name: str = DEFAULT_SHOP,
        staff_name: str = DEFAULT_STAFF,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        threshold: Optional[str] = None,
        create_workbook: bool = True,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        data_dir = bundle_dir / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = data_manager.shop_workbook_path(data_dir, shop_name)
        if create_workbook:
            data_manager.create_shop_workbook(workbook_path)

        text = _CONFIG_TEMPLATE.format(
            data_dir="data" if make_relative else str(data_dir),
            schema_version=schema_version,
            shop_name=shop_name,
            staff_name=staff_name,
        )
        if threshold is not None:
            text += f"\n[Alerts]\nLowStockThreshold = {threshold}\n"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(text)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_dir=data_dir,
            workbook_path=workbook_path,
            shop_name=shop_name,
            staff_name=staff_name,
            schema_version=schema_version,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Store and record fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryLedgerStore:
    """Return an empty in-memory shop namespace."""

    return MemoryLedgerStore(DEFAULT_SHOP)


@pytest.fixture
def make_item() -> Callable[..., InventoryItem]:
    """Factory for inventory items with sensible flower defaults."""

    def _make(
        item_id: str = "1",
        name: str = "Sour Diesel",
        stock: str = "100",
        *,
        category: ProductCategory = ProductCategory.FLOWER,
        grade: Optional[FlowerGrade] = FlowerGrade.MID,
        unit_price: Optional[str] = None,
    ) -> InventoryItem:
        return InventoryItem(
            id=item_id,
            category=category,
            name=name,
            stock_level=Decimal(stock),
            last_updated=BASE_MOMENT,
            grade=grade if category is ProductCategory.FLOWER else None,
            unit_price=Decimal(unit_price) if unit_price is not None else None,
        )

    return _make


@pytest.fixture
def make_sale() -> Callable[..., SaleRecord]:
    """Factory for sale records; price defaults to the quantity times 100."""

    def _make(
        name: str = "Sour Diesel",
        quantity: str = "2",
        price: Optional[str] = None,
        *,
        sale_id: Optional[str] = None,
        product_type: ProductCategory = ProductCategory.FLOWER,
        payment: PaymentMethod = PaymentMethod.CASH,
        timestamp: datetime = BASE_MOMENT,
        grade: Optional[FlowerGrade] = FlowerGrade.MID,
        staff_name: str = DEFAULT_STAFF,
    ) -> SaleRecord:
        amount = Decimal(price) if price is not None else Decimal(quantity) * 100
        return SaleRecord(
            id=sale_id or generate_id(),
            timestamp=timestamp,
            date=timestamp.date().isoformat(),
            product_type=product_type,
            product_name=name,
            grade=grade if product_type is ProductCategory.FLOWER else None,
            quantity=Decimal(quantity),
            price=amount,
            original_price=amount,
            is_negotiated=False,
            staff_name=staff_name,
            payment_method=payment,
        )

    return _make


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="greentrack-cli", description="GreenTrack CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("catalog-test")

    spec = cli.CommandSpec(
        name="catalog-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "catalog-test", spec


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
